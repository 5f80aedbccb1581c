"""Credential lifecycle for Google Workspace authentication.

``CredentialManager`` owns the in-memory credentials and runs this state
machine:

    UNINITIALIZED --load()--> VALID | EXPIRED_REFRESHABLE
                              | EXPIRED_UNREFRESHABLE | MISSING

    EXPIRED_REFRESHABLE --refresh ok--> VALID
    EXPIRED_REFRESHABLE --refresh rejected--> MISSING (token.json cleared)
    MISSING | EXPIRED_UNREFRESHABLE --authorizer--> VALID (token.json saved)
    any --clear_auth()--> MISSING

The manager never opens a browser itself. Interactive authorization is
delegated to an injected ``Authorizer``; without one, states that need it
raise ``AuthorizationRequiredError``.
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

import httpx
from google.auth import exceptions as google_exceptions
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from workspace_mcp.auth.errors import (
    AuthenticationError,
    AuthorizationRequiredError,
    RefreshError,
)
from workspace_mcp.auth.interactive import GOOGLE_TOKEN_URI, Authorizer
from workspace_mcp.auth.models import CredentialSet, CredentialState, TokenMetadata
from workspace_mcp.auth.token_cache import TokenCache
from workspace_mcp.config import (
    DEFAULT_REFRESH_MARGIN_SECONDS,
    WORKSPACE_SCOPES,
    WorkspaceConfig,
)

logger = logging.getLogger(__name__)

GOOGLE_REVOKE_URI = "https://oauth2.googleapis.com/revoke"


def _to_utc(expiry: datetime | None) -> datetime:
    if expiry is None:
        # Default to 1 hour expiration
        return datetime.now(timezone.utc) + timedelta(hours=1)
    if expiry.tzinfo is None:
        return expiry.replace(tzinfo=timezone.utc)
    return expiry


class CredentialManager:
    """OAuth credential manager for Google Workspace.

    Handles loading persisted credentials, silent refresh, interactive
    authorization through an authorizer, invalidation and revocation.

    Attributes:
        cache: Token cache for persisting credentials.
        scopes: Scopes every usable credential must cover.
        authorizer: Interactive authorizer, or None for silent-only use.

    Example:
        ```python
        manager = CredentialManager.from_config(config)

        # Silent: refreshes if needed, raises if a browser is required
        client = await manager.get_authenticated_client()

        # Interactive: force a new consent
        manager = CredentialManager.from_config(
            config, authorizer=LocalServerAuthorizer.from_config(config)
        )
        client = await manager.reauthenticate()
        ```
    """

    def __init__(
        self,
        cache: TokenCache,
        scopes: Sequence[str] = WORKSPACE_SCOPES,
        authorizer: Authorizer | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS,
    ) -> None:
        """Initialize credential manager.

        Args:
            cache: Token cache instance.
            scopes: Required OAuth scopes.
            authorizer: Interactive authorizer used when re-consent is needed.
            client_id: Google OAuth client ID, needed for refresh.
            client_secret: Google OAuth client secret, needed for refresh.
            refresh_margin_seconds: Refresh this long before expiry.
        """
        self.cache = cache
        self.scopes = tuple(scopes)
        self.authorizer = authorizer
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_margin_seconds = refresh_margin_seconds

        self._state = CredentialState.UNINITIALIZED
        self._credentials: CredentialSet | None = None
        self._metadata: TokenMetadata | None = None

    @classmethod
    def from_config(
        cls,
        config: WorkspaceConfig,
        authorizer: Authorizer | None = None,
    ) -> "CredentialManager":
        return cls(
            cache=TokenCache.from_config(config),
            scopes=config.scopes,
            authorizer=authorizer,
            client_id=config.client_id,
            client_secret=config.client_secret,
            refresh_margin_seconds=config.refresh_margin_seconds,
        )

    @property
    def state(self) -> CredentialState:
        return self._state

    @property
    def credentials(self) -> CredentialSet | None:
        return self._credentials

    def classify(self, credentials: CredentialSet | None) -> CredentialState:
        """Classify a credential set against the required scopes and expiry.

        Missing scopes count as unrefreshable: refreshing cannot add scopes,
        only a new consent can.
        """
        if credentials is None:
            return CredentialState.MISSING

        if not credentials.covers(self.scopes):
            return CredentialState.EXPIRED_UNREFRESHABLE

        if not credentials.is_expired(self.refresh_margin_seconds):
            return CredentialState.VALID

        if credentials.is_refreshable:
            return CredentialState.EXPIRED_REFRESHABLE

        return CredentialState.EXPIRED_UNREFRESHABLE

    def load(self) -> CredentialState:
        """Load persisted credentials and classify them.

        Returns:
            The new state.

        Raises:
            StorageError: If the token file cannot be read.
            KeyStoreError: If the master key cannot be read or created.
        """
        record = self.cache.load_record()
        self._credentials = record.credentials if record else None
        self._metadata = record.metadata if record else None
        self._state = self.classify(self._credentials)

        logger.debug(f"Loaded credentials, state: {self._state.value}")
        return self._state

    def status(self) -> tuple[CredentialState, CredentialSet | None]:
        """Get the current state and credentials, loading them if needed."""
        if self._state is CredentialState.UNINITIALIZED:
            self.load()
        return (self._state, self._credentials)

    def _to_google_credentials(self, credentials: CredentialSet) -> Credentials:
        """Convert a CredentialSet to google-auth Credentials."""
        # google-auth compares expiry against naive UTC
        expiry = credentials.expires_at.astimezone(timezone.utc).replace(tzinfo=None)
        return Credentials(
            token=credentials.access_token,
            refresh_token=credentials.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=list(credentials.scopes),
            expiry=expiry,
        )

    def _from_google_credentials(
        self, google_credentials: Credentials, requested_scopes: Sequence[str]
    ) -> CredentialSet:
        """Convert google-auth Credentials to a CredentialSet."""
        granted = getattr(google_credentials, "granted_scopes", None) or requested_scopes
        return CredentialSet(  # nosec B106 - "Bearer" is OAuth token type, not a password
            access_token=google_credentials.token,
            refresh_token=google_credentials.refresh_token,
            expires_at=_to_utc(google_credentials.expiry),
            scopes=list(granted),
            token_type="Bearer",
        )

    async def refresh(self) -> CredentialSet:
        """Refresh the access token using the stored refresh token.

        The credential set is updated in place and persisted.

        Returns:
            The refreshed credentials.

        Raises:
            RefreshError: If there is nothing to refresh, the request fails,
                or the provider rejects the refresh token. A rejection also
                clears the cache and moves to MISSING.
        """
        credentials = self._credentials
        if credentials is None or not credentials.is_refreshable:
            raise RefreshError("No refresh token available")

        if not self.client_id or not self.client_secret:
            raise RefreshError(
                "Client ID and secret required to refresh tokens. "
                "Set GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET."
            )

        google_credentials = self._to_google_credentials(credentials)

        logger.info("Access token expired, refreshing...")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, google_credentials.refresh, Request())
        except google_exceptions.RefreshError as e:
            if getattr(e, "retryable", False):
                raise RefreshError(f"Token refresh failed, try again later: {e}") from e
            logger.warning(f"Refresh token rejected by provider: {e}")
            await self.clear_auth()
            raise RefreshError(f"Refresh token rejected by provider: {e}") from e
        except google_exceptions.TransportError as e:
            raise RefreshError(f"Token refresh request failed: {e}") from e

        credentials.access_token = google_credentials.token
        if google_credentials.refresh_token:
            credentials.refresh_token = google_credentials.refresh_token
        credentials.expires_at = _to_utc(google_credentials.expiry)

        metadata = self._metadata or TokenMetadata()
        metadata.last_refreshed = datetime.now(timezone.utc)
        self._metadata = metadata

        self.cache.save(credentials, metadata)
        self._state = self.classify(credentials)

        logger.info("Access token refreshed")
        return credentials

    async def _authorize(self) -> None:
        if self.authorizer is None:
            raise AuthorizationRequiredError(
                "Interactive authorization required. Run: workspace-mcp --auth"
            )

        logger.info("Starting interactive authorization")
        google_credentials = await self.authorizer.authorize(self.scopes)
        if google_credentials is None:
            raise AuthenticationError("Failed to obtain authenticated client - no client returned")

        credentials = self._from_google_credentials(google_credentials, self.scopes)
        if not credentials.covers(self.scopes):
            missing = sorted(set(self.scopes) - set(credentials.scopes))
            raise AuthenticationError(
                f"Authorization did not grant required scopes: {', '.join(missing)}"
            )

        metadata = TokenMetadata()
        self.cache.save(credentials, metadata)

        self._credentials = credentials
        self._metadata = metadata
        self._state = self.classify(credentials)
        logger.info("Authorization complete, credentials saved")

    async def get_authenticated_client(self) -> Credentials:
        """Run the state machine until credentials are usable.

        Returns:
            google-auth Credentials ready for API calls.

        Raises:
            RefreshError: If a silent refresh failed and no authorizer is set.
            AuthorizationRequiredError: If consent is needed and no authorizer
                is set.
            AuthenticationError: If interactive authorization failed.
        """
        if self._state is CredentialState.UNINITIALIZED:
            self.load()

        if self._state is CredentialState.EXPIRED_REFRESHABLE:
            try:
                await self.refresh()
            except RefreshError:
                if self.authorizer is None or not self._state.requires_authorization:
                    raise
                logger.info("Silent refresh failed, falling back to interactive authorization")

        if self._state.requires_authorization:
            await self._authorize()

        if self._state is not CredentialState.VALID or self._credentials is None:
            raise AuthenticationError(f"No usable credentials (state: {self._state.value})")

        return self._to_google_credentials(self._credentials)

    async def clear_auth(self) -> None:
        """Forget and delete the current credentials.

        The in-memory credential set is wiped and token.json removed; the
        master key stays in place.
        """
        if self._credentials is not None:
            self._credentials.wipe()
        self._credentials = None
        self._metadata = None

        self.cache.clear()
        self._state = CredentialState.MISSING
        logger.info("Cleared cached credentials")

    async def reauthenticate(self) -> Credentials:
        """Force a fresh interactive authorization.

        Moves to MISSING and then through the authorizer to VALID, so stale
        or expired credentials are never silently reused.

        Raises:
            AuthorizationRequiredError: If no authorizer is set. Nothing is
                cleared in that case.
            AuthenticationError: If authorization failed.
        """
        if self.authorizer is None:
            raise AuthorizationRequiredError("Re-authentication requires an interactive authorizer")

        await self.clear_auth()
        return await self.get_authenticated_client()

    async def revoke(self) -> bool:
        """Revoke the stored grant with Google and clear local credentials.

        Local credentials are cleared even if the revocation request fails.

        Returns:
            True if Google confirmed the revocation.
        """
        if self._state is CredentialState.UNINITIALIZED:
            self.load()

        credentials = self._credentials
        token = (credentials.refresh_token or credentials.access_token) if credentials else None

        revoked = False
        if token:
            try:
                async with httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0)) as client:
                    response = await client.post(
                        GOOGLE_REVOKE_URI,
                        data={"token": token},
                        headers={"Content-Type": "application/x-www-form-urlencoded"},
                    )
                    response.raise_for_status()
                revoked = True
                logger.info("Revoked OAuth grant with Google")
            except httpx.HTTPError as e:
                logger.warning(f"Token revocation failed: {e}")

        await self.clear_auth()
        return revoked
