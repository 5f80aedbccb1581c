"""Data models for OAuth credentials and their persisted form."""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

TOKEN_RECORD_VERSION = 1


class CredentialState(str, Enum):
    """States of the credential manager's state machine."""

    UNINITIALIZED = "uninitialized"
    VALID = "valid"
    EXPIRED_REFRESHABLE = "expired_refreshable"
    EXPIRED_UNREFRESHABLE = "expired_unrefreshable"
    MISSING = "missing"

    @property
    def requires_authorization(self) -> bool:
        """Whether only the interactive flow can leave this state."""
        return self in (CredentialState.MISSING, CredentialState.EXPIRED_UNREFRESHABLE)


class CredentialSet(BaseModel):
    """OAuth2 credentials for the signed-in user.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived token for silent renewal, if granted.
        expires_at: When the access token expires (UTC).
        scopes: Scopes granted with this token.
        token_type: Token type, always "Bearer" for Google.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime
    scopes: list[str] = Field(default_factory=list)
    token_type: str = "Bearer"

    @field_validator("expires_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # google-auth hands out naive UTC datetimes
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, margin_seconds: int = 60) -> bool:
        """Check whether the access token is expired or about to expire.

        Args:
            margin_seconds: Treat the token as expired this many seconds early.

        Returns:
            True if the token should not be used without refreshing.
        """
        if not self.access_token:
            return True
        deadline = datetime.now(timezone.utc) + timedelta(seconds=margin_seconds)
        return deadline >= self.expires_at

    @property
    def is_refreshable(self) -> bool:
        return bool(self.refresh_token)

    def covers(self, required_scopes: Iterable[str]) -> bool:
        """Check that every required scope was granted."""
        return set(required_scopes).issubset(self.scopes)

    def wipe(self) -> None:
        """Overwrite token material in place."""
        self.access_token = ""
        self.refresh_token = None
        self.scopes = []
        self.expires_at = datetime.fromtimestamp(0, tz=timezone.utc)


class TokenMetadata(BaseModel):
    """Bookkeeping stored alongside the credentials."""

    provider: str = "google"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_refreshed: datetime | None = None


class TokenRecord(BaseModel):
    """The plaintext form of token.json before encryption."""

    version: int = TOKEN_RECORD_VERSION
    metadata: TokenMetadata = Field(default_factory=TokenMetadata)
    credentials: CredentialSet
