"""Runtime configuration for workspace-mcp.

All settings are resolved once into an explicit ``WorkspaceConfig`` object
that is passed to the components that need it. Nothing here is cached at
module level, so tests can build independent configurations side by side.

Initialization order used by the CLI and the server:
    1. ``WorkspaceConfig.from_env()``
    2. ``config.ensure_directories()``
    3. ``configure_logging(config)``
    4. ``SecretStore`` -> ``TokenCache`` -> ``CredentialManager``
    5. ``AuthFlowController`` or ``WorkspaceServer``

Environment Variables:
    GOOGLE_WORKSPACE_MCP_HOME: Override for the config directory.
    LOG_LEVEL: One of ERROR, WARN, INFO, DEBUG (default: INFO).
    GOOGLE_OAUTH_CLIENT_ID: Google OAuth client ID.
    GOOGLE_OAUTH_CLIENT_SECRET: Google OAuth client secret.
    GOOGLE_OAUTH_REDIRECT_URI: Loopback redirect URI
        (default: http://127.0.0.1:<ephemeral port>/callback).
"""

import logging
import os
import sys
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

APP_DIR_NAME = "google-workspace-mcp"
TOKEN_FILE_NAME = "token.json"
MASTER_KEY_FILE_NAME = ".master-key"
LOG_DIR_NAME = "logs"
LOG_FILE_NAME = "server.log"

HOME_ENV_VAR = "GOOGLE_WORKSPACE_MCP_HOME"

# Google Workspace OAuth scopes, requested in this order
WORKSPACE_SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/chat.spaces",
    "https://www.googleapis.com/auth/chat.messages",
    "https://www.googleapis.com/auth/chat.memberships",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/directory.readonly",
    "https://www.googleapis.com/auth/presentations.readonly",
    "https://www.googleapis.com/auth/spreadsheets.readonly",
)

DEFAULT_REFRESH_MARGIN_SECONDS = 60
DEFAULT_AUTH_TIMEOUT_SECONDS = 300.0


class LogLevel(str, Enum):
    """Log levels in order of severity."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"

    @property
    def logging_level(self) -> int:
        """Equivalent stdlib ``logging`` level."""
        return _STDLIB_LEVELS[self]


_STDLIB_LEVELS = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


def parse_log_level(value: str | None) -> LogLevel:
    """Parse a LOG_LEVEL value, defaulting to INFO for anything unknown."""
    if not value:
        return LogLevel.INFO

    normalized = value.strip().upper()
    if normalized == "WARNING":
        normalized = "WARN"

    try:
        return LogLevel(normalized)
    except ValueError:
        return LogLevel.INFO


def default_config_dir(
    environ: Mapping[str, str] | None = None,
    platform: str | None = None,
    home: Path | None = None,
) -> Path:
    """Determine the config directory for credentials and logs.

    Uses OS-standard persistent directories so tokens survive reinstalls:

    - Override: GOOGLE_WORKSPACE_MCP_HOME environment variable
    - macOS/Linux: ~/.config/google-workspace-mcp/
    - Windows: %APPDATA%/google-workspace-mcp/

    Args:
        environ: Environment mapping. Defaults to ``os.environ``.
        platform: Platform identifier as in ``sys.platform``.
        home: Home directory. Defaults to ``Path.home()``.

    Returns:
        Path to the config directory (not created).
    """
    env = os.environ if environ is None else environ

    override = env.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()

    platform = platform or sys.platform
    home = home or Path.home()

    if platform == "win32":
        appdata = env.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / APP_DIR_NAME

    return home / ".config" / APP_DIR_NAME


class WorkspaceConfig(BaseModel):
    """Resolved configuration for one process.

    Attributes:
        config_dir: Directory holding token.json, .master-key and logs/.
        log_level: Minimum level persisted to the log file.
        client_id: Google OAuth client ID.
        client_secret: Google OAuth client secret.
        redirect_uri: Explicit loopback redirect URI, or None for an
            ephemeral port on 127.0.0.1.
        scopes: Scopes requested and required for a usable credential.
        refresh_margin_seconds: Access tokens this close to expiry count as
            expired.
        auth_timeout_seconds: Upper bound on waiting for the browser callback.
    """

    config_dir: Path
    log_level: LogLevel = LogLevel.INFO
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    scopes: tuple[str, ...] = WORKSPACE_SCOPES
    refresh_margin_seconds: int = Field(default=DEFAULT_REFRESH_MARGIN_SECONDS, ge=0)
    auth_timeout_seconds: float = Field(default=DEFAULT_AUTH_TIMEOUT_SECONDS, gt=0)

    model_config = {"frozen": True}

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        platform: str | None = None,
        **overrides: Any,
    ) -> "WorkspaceConfig":
        """Build a configuration from environment variables.

        Args:
            environ: Environment mapping. Defaults to ``os.environ``.
            platform: Platform identifier as in ``sys.platform``.
            **overrides: Field values that take precedence over the environment.

        Returns:
            A new WorkspaceConfig.
        """
        env = os.environ if environ is None else environ

        values: dict[str, Any] = {
            "config_dir": default_config_dir(env, platform),
            "log_level": parse_log_level(env.get("LOG_LEVEL")),
            "client_id": env.get("GOOGLE_OAUTH_CLIENT_ID") or None,
            "client_secret": env.get("GOOGLE_OAUTH_CLIENT_SECRET") or None,
            "redirect_uri": env.get("GOOGLE_OAUTH_REDIRECT_URI") or None,
        }
        values.update(overrides)
        return cls(**values)

    @property
    def token_path(self) -> Path:
        """Path to the encrypted token record."""
        return self.config_dir / TOKEN_FILE_NAME

    @property
    def master_key_path(self) -> Path:
        """Path to the master encryption key."""
        return self.config_dir / MASTER_KEY_FILE_NAME

    @property
    def log_dir(self) -> Path:
        return self.config_dir / LOG_DIR_NAME

    @property
    def log_file_path(self) -> Path:
        """Path to the append-only server log."""
        return self.log_dir / LOG_FILE_NAME

    def with_log_level(self, level: LogLevel) -> "WorkspaceConfig":
        """Return a copy of this configuration with a different log level."""
        return self.model_copy(update={"log_level": level})

    def ensure_directories(self) -> None:
        """Create the config and log directories if needed.

        Raises:
            OSError: If the directories cannot be created.
        """
        if not self.config_dir.exists():
            self.config_dir.mkdir(parents=True, mode=0o700)
        self.log_dir.mkdir(parents=True, exist_ok=True)
