"""Master key management and authenticated encryption for the token record.

The master key is a Fernet key stored in ``<config_dir>/.master-key`` with
owner-only permissions. Fernet provides AES-128-CBC with an HMAC-SHA256 tag,
so any corruption, truncation or wrong key is detected on decrypt instead of
yielding garbage plaintext.

Losing the master key makes token.json unrecoverable. There is no fallback
key; the user simply authenticates again.
"""

import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from workspace_mcp.auth.errors import (
    IntegrityError,
    KeyStoreError,
    NotFoundError,
    StorageError,
)
from workspace_mcp.config import WorkspaceConfig

logger = logging.getLogger(__name__)


def _is_valid_key(key: bytes) -> bool:
    try:
        Fernet(key)
    except (TypeError, ValueError):
        return False
    return True


class SecretStore:
    """Loads or creates the master key and encrypts/decrypts envelopes.

    Attributes:
        key_path: Path to the master key file.

    Example:
        ```python
        store = SecretStore(config.master_key_path)
        key = store.load_or_create_master_key()

        envelope = store.encrypt(b"secret", key)
        assert store.decrypt(envelope, key) == b"secret"
        ```
    """

    def __init__(self, key_path: Path) -> None:
        self.key_path = key_path

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> "SecretStore":
        return cls(config.master_key_path)

    def load_or_create_master_key(self) -> bytes:
        """Return the master key, generating and persisting one if needed.

        Returns:
            Fernet key material (urlsafe base64, 44 bytes).

        Raises:
            KeyStoreError: If the key file cannot be read or written.
        """
        key = self._read_key()
        if key is not None:
            return key
        return self._create_key()

    def load_master_key(self) -> bytes:
        """Return the existing master key without creating one.

        Raises:
            NotFoundError: If there is no usable key file.
            KeyStoreError: If the key file cannot be read.
        """
        key = self._read_key()
        if key is None:
            raise NotFoundError(f"No usable master key at {self.key_path}")
        return key

    def _read_key(self) -> bytes | None:
        try:
            raw = self.key_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise KeyStoreError(f"Cannot read master key at {self.key_path}: {e}") from e

        key = raw.strip()
        if not _is_valid_key(key):
            logger.warning(f"Master key at {self.key_path} is malformed")
            return None
        return key

    def _create_key(self) -> bytes:
        key = Fernet.generate_key()
        try:
            self.key_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(key)
            # O_CREAT mode is ignored when the file already existed
            self.key_path.chmod(0o600)
        except OSError as e:
            raise KeyStoreError(f"Cannot write master key at {self.key_path}: {e}") from e

        logger.info(f"Generated new master key at {self.key_path}")
        return key

    @staticmethod
    def encrypt(plaintext: bytes, key: bytes) -> bytes:
        """Encrypt plaintext into a Fernet envelope.

        Raises:
            KeyStoreError: If the key is not valid Fernet key material.
        """
        try:
            fernet = Fernet(key)
        except (TypeError, ValueError) as e:
            raise KeyStoreError(f"Invalid master key: {e}") from e
        return fernet.encrypt(plaintext)

    @staticmethod
    def decrypt(envelope: bytes | None, key: bytes) -> bytes:
        """Decrypt and verify a Fernet envelope.

        Raises:
            NotFoundError: If there is no envelope.
            IntegrityError: If the envelope fails verification.
            KeyStoreError: If the key is not valid Fernet key material.
        """
        if not envelope:
            raise NotFoundError("No encrypted token envelope")

        try:
            fernet = Fernet(key)
        except (TypeError, ValueError) as e:
            raise KeyStoreError(f"Invalid master key: {e}") from e

        try:
            return fernet.decrypt(envelope)
        except InvalidToken as e:
            raise IntegrityError("Token envelope failed integrity check") from e

    @staticmethod
    def read_envelope(path: Path) -> bytes:
        """Read a ciphertext envelope from disk.

        Raises:
            NotFoundError: If the file does not exist.
            StorageError: If the file exists but cannot be read.
        """
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"No token file at {path}") from e
        except OSError as e:
            raise StorageError(f"Cannot read token file at {path}: {e}") from e
