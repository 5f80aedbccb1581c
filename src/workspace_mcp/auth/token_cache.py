"""Encrypted OAuth token persistence for Google Workspace MCP.

Storage Location: <config_dir>/token.json (see ``workspace_mcp.config``)

The file holds a single Fernet envelope wrapping a JSON ``TokenRecord``.
A missing, corrupted or undecryptable file is reported as "no credentials"
so the user can simply authenticate again. Only genuine filesystem failures
propagate.

Writes go to a temp file in the same directory and are renamed over
token.json, so a crash never leaves a half-written record behind.
"""

import contextlib
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from workspace_mcp.auth.errors import IntegrityError, NotFoundError, StorageError
from workspace_mcp.auth.models import CredentialSet, TokenMetadata, TokenRecord
from workspace_mcp.auth.secret_store import SecretStore
from workspace_mcp.config import WorkspaceConfig

logger = logging.getLogger(__name__)


class TokenCache:
    """Single-record encrypted storage for the current credentials.

    Attributes:
        token_path: Path to token.json.
        secret_store: SecretStore providing the master key and cipher.

    Example:
        ```python
        cache = TokenCache.from_config(config)

        cache.save(credentials)
        loaded = cache.load()  # CredentialSet or None

        cache.clear()
        assert cache.load() is None
        ```
    """

    def __init__(self, token_path: Path, secret_store: SecretStore) -> None:
        """Initialize token cache.

        Args:
            token_path: Path to the encrypted token file.
            secret_store: Secret store used to encrypt and decrypt the record.
        """
        self.token_path = token_path
        self.secret_store = secret_store

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> "TokenCache":
        return cls(config.token_path, SecretStore.from_config(config))

    def _ensure_credentials_dir(self) -> None:
        """Create credentials directory with secure permissions if needed."""
        creds_dir = self.token_path.parent
        try:
            if not creds_dir.exists():
                creds_dir.mkdir(parents=True, mode=0o700)
            else:
                creds_dir.chmod(0o700)
        except OSError as e:
            raise StorageError(f"Cannot prepare credentials directory {creds_dir}: {e}") from e

    def exists(self) -> bool:
        """Check whether a token file is present, without decrypting it."""
        return self.token_path.is_file()

    def load_record(self) -> TokenRecord | None:
        """Decrypt and parse the persisted token record.

        Returns:
            The TokenRecord, or None if absent or unreadable as a record.

        Loading never creates a master key; a token without its key is
        unreadable and counts as absent.

        Raises:
            StorageError: If the token file exists but cannot be read.
            KeyStoreError: If the master key file cannot be read.
        """
        try:
            envelope = self.secret_store.read_envelope(self.token_path)
        except NotFoundError:
            logger.debug(f"No token record at {self.token_path}")
            return None

        try:
            key = self.secret_store.load_master_key()
        except NotFoundError:
            logger.warning(f"Token record at {self.token_path} has no master key, ignoring it")
            return None

        try:
            plaintext = self.secret_store.decrypt(envelope, key)
        except NotFoundError:
            logger.debug(f"Empty token record at {self.token_path}")
            return None
        except IntegrityError:
            logger.warning(f"Token record at {self.token_path} failed integrity check, ignoring it")
            return None

        try:
            return TokenRecord.model_validate_json(plaintext)
        except ValidationError as e:
            logger.warning(f"Token record at {self.token_path} is not a valid record: {e}")
            return None

    def load(self) -> CredentialSet | None:
        """Load the persisted credentials.

        Returns:
            CredentialSet if a valid record exists, None otherwise.
        """
        record = self.load_record()
        return record.credentials if record else None

    def save(self, credentials: CredentialSet, metadata: TokenMetadata | None = None) -> None:
        """Encrypt and atomically replace the persisted token record.

        Args:
            credentials: Credentials to persist.
            metadata: Record metadata. A fresh TokenMetadata if not given.

        Raises:
            StorageError: If the record cannot be written.
            KeyStoreError: If the master key cannot be read or created.
        """
        record = TokenRecord(metadata=metadata or TokenMetadata(), credentials=credentials)

        key = self.secret_store.load_or_create_master_key()
        envelope = self.secret_store.encrypt(record.model_dump_json().encode("utf-8"), key)

        self._ensure_credentials_dir()
        self._write_atomic(envelope)
        logger.debug(f"Saved token record to {self.token_path}")

    def _write_atomic(self, data: bytes) -> None:
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=".token-", suffix=".tmp", dir=self.token_path.parent
            )
        except OSError as e:
            raise StorageError(f"Cannot write token file at {self.token_path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.token_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise StorageError(f"Cannot write token file at {self.token_path}: {e}") from e

    def clear(self) -> None:
        """Delete the persisted token record.

        The master key is kept so the next record reuses it. Clearing an
        absent record is a no-op.

        Raises:
            StorageError: If the file exists but cannot be removed.
        """
        try:
            self.token_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Cannot remove token file at {self.token_path}: {e}") from e

        logger.info(f"Cleared token record at {self.token_path}")
