"""OAuth credential lifecycle for Google Workspace MCP.

This package acquires, encrypts, persists, refreshes and invalidates
the OAuth2 credentials the server uses for Google Workspace APIs.

Quick Start:
    ```python
    from workspace_mcp.auth import CredentialManager, LocalServerAuthorizer
    from workspace_mcp.config import WorkspaceConfig

    config = WorkspaceConfig.from_env()
    manager = CredentialManager.from_config(
        config, authorizer=LocalServerAuthorizer.from_config(config)
    )

    # Refreshes silently, or opens the browser if consent is needed
    credentials = await manager.get_authenticated_client()
    ```
"""

from workspace_mcp.auth.credential_manager import CredentialManager
from workspace_mcp.auth.errors import (
    AuthenticationError,
    AuthorizationRequiredError,
    IntegrityError,
    KeyStoreError,
    NotFoundError,
    RefreshError,
    StorageError,
    WorkspaceMCPError,
)
from workspace_mcp.auth.interactive import Authorizer, LocalServerAuthorizer
from workspace_mcp.auth.models import (
    CredentialSet,
    CredentialState,
    TokenMetadata,
    TokenRecord,
)
from workspace_mcp.auth.secret_store import SecretStore
from workspace_mcp.auth.token_cache import TokenCache

__all__ = [
    "AuthenticationError",
    "AuthorizationRequiredError",
    "Authorizer",
    "CredentialManager",
    "CredentialSet",
    "CredentialState",
    "IntegrityError",
    "KeyStoreError",
    "LocalServerAuthorizer",
    "NotFoundError",
    "RefreshError",
    "SecretStore",
    "StorageError",
    "TokenCache",
    "TokenMetadata",
    "TokenRecord",
    "WorkspaceMCPError",
]
