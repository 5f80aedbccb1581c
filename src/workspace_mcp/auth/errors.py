"""Exceptions raised by the credential subsystem.

Storage errors (``StorageError``, ``KeyStoreError``) are fatal. Envelope
errors (``NotFoundError``, ``IntegrityError``) are recovered by treating the
token record as absent. ``RefreshError`` and ``AuthenticationError`` surface
to the CLI, which is the only place that turns them into an exit code.
"""


class WorkspaceMCPError(Exception):
    """Base class for workspace-mcp errors."""


class StorageError(WorkspaceMCPError):
    """The token file could not be read or written."""


class KeyStoreError(StorageError):
    """The master key file or its directory is unreadable or unwritable."""


class NotFoundError(WorkspaceMCPError):
    """No ciphertext envelope exists."""


class IntegrityError(WorkspaceMCPError):
    """The ciphertext envelope is corrupted, tampered with, or under another key."""


class RefreshError(WorkspaceMCPError):
    """The provider rejected the refresh token, or the refresh request failed."""


class AuthenticationError(WorkspaceMCPError):
    """Interactive authorization was denied, timed out, or produced no client."""


class AuthorizationRequiredError(AuthenticationError):
    """Interactive authorization is needed but no authorizer is available."""
