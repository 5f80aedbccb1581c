"""Tests for the workspace-mcp command-line interface."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from google.auth import exceptions as google_exceptions
from google.oauth2.credentials import Credentials

from workspace_mcp.auth.models import CredentialSet
from workspace_mcp.auth.secret_store import SecretStore
from workspace_mcp.auth.token_cache import TokenCache
from workspace_mcp.auth_flow import AuthFlowResult
from workspace_mcp.cli.main import main


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, config_dir: Path) -> Path:
    """Point the CLI at a temporary config directory with an OAuth client."""
    monkeypatch.setenv("GOOGLE_WORKSPACE_MCP_HOME", str(config_dir))
    monkeypatch.setenv("GOOGLE_OAUTH_CLIENT_ID", "test_client_id")
    monkeypatch.setenv("GOOGLE_OAUTH_CLIENT_SECRET", "test_client_secret")  # pragma: allowlist secret
    monkeypatch.delenv("GOOGLE_OAUTH_REDIRECT_URI", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    return config_dir


@pytest.fixture
def cli_cache(cli_env: Path) -> TokenCache:
    """Token cache at the location the CLI will use."""
    return TokenCache(cli_env / "token.json", SecretStore(cli_env / ".master-key"))


@pytest.fixture
def mock_controller():
    """Patch AuthFlowController in the CLI module."""
    with patch("workspace_mcp.cli.main.AuthFlowController") as controller_cls:
        controller_cls.return_value.run = AsyncMock(return_value=AuthFlowResult(success=True))
        yield controller_cls


@pytest.fixture
def mock_create_server():
    """Patch create_server so no stdio transport is started."""
    with patch("workspace_mcp.server.create_server") as create_server:
        create_server.return_value.run = AsyncMock()
        yield create_server


def _interactive(value: bool):
    return patch("workspace_mcp.cli.main.is_interactive_terminal", return_value=value)


@pytest.mark.unit
class TestAuthMode:
    """Tests for `workspace-mcp --auth`."""

    def test_should_exit_zero_on_success(
        self, cli_runner: CliRunner, cli_env: Path, mock_controller: MagicMock
    ) -> None:
        """Verify a successful flow exits 0."""
        result = cli_runner.invoke(main, ["--auth"])

        assert result.exit_code == 0
        assert "Starting Google Workspace MCP authentication" in result.output
        mock_controller.return_value.run.assert_awaited_once()

    def test_should_exit_one_on_failure(
        self, cli_runner: CliRunner, cli_env: Path, mock_controller: MagicMock
    ) -> None:
        """Verify a failed flow exits 1."""
        mock_controller.return_value.run.return_value = AuthFlowResult(success=False)

        result = cli_runner.invoke(main, ["--auth"])

        assert result.exit_code == 1

    def test_should_not_start_server(
        self,
        cli_runner: CliRunner,
        cli_env: Path,
        mock_controller: MagicMock,
        mock_create_server: MagicMock,
    ) -> None:
        """Verify --auth never starts the MCP server."""
        cli_runner.invoke(main, ["--auth"])

        mock_create_server.assert_not_called()

    def test_should_report_missing_client_config(
        self, cli_runner: CliRunner, cli_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Verify the real flow fails cleanly without an OAuth client."""
        monkeypatch.delenv("GOOGLE_OAUTH_CLIENT_ID")

        result = cli_runner.invoke(main, ["--auth"])

        assert result.exit_code == 1
        assert "Authentication failed" in result.output
        assert "GOOGLE_OAUTH_CLIENT_ID" in result.output


@pytest.mark.unit
class TestServerMode:
    """Tests for `workspace-mcp` without arguments."""

    def test_should_start_server_with_valid_credentials(
        self,
        cli_runner: CliRunner,
        cli_cache: TokenCache,
        valid_credentials: CredentialSet,
        mock_controller: MagicMock,
        mock_create_server: MagicMock,
    ) -> None:
        """Verify stored credentials skip the auth flow."""
        cli_cache.save(valid_credentials)

        with _interactive(False):
            result = cli_runner.invoke(main, [])

        assert result.exit_code == 0
        mock_controller.assert_not_called()
        mock_create_server.return_value.run.assert_awaited_once()

    def test_should_print_remediation_when_not_interactive(
        self,
        cli_runner: CliRunner,
        cli_env: Path,
        mock_controller: MagicMock,
        mock_create_server: MagicMock,
    ) -> None:
        """Verify a non-TTY without credentials exits 1 with instructions."""
        with _interactive(False):
            result = cli_runner.invoke(main, [])

        assert result.exit_code == 1
        assert "automated/non-interactive" in result.output
        assert "workspace-mcp --auth" in result.output
        assert "GOOGLE_WORKSPACE_MCP_HOME" in result.output
        mock_controller.assert_not_called()
        mock_create_server.return_value.run.assert_not_called()

    def test_should_authenticate_then_serve_when_interactive(
        self,
        cli_runner: CliRunner,
        cli_env: Path,
        mock_controller: MagicMock,
        mock_create_server: MagicMock,
    ) -> None:
        """Verify a TTY without credentials runs the auth flow before serving."""
        with _interactive(True):
            result = cli_runner.invoke(main, [])

        assert result.exit_code == 0
        assert "No credentials found. Starting authentication" in result.output
        mock_controller.return_value.run.assert_awaited_once()
        mock_create_server.return_value.run.assert_awaited_once()

    @pytest.mark.parametrize("interactive", [True, False])
    def test_should_keep_token_when_refresh_fails_transiently(
        self,
        cli_runner: CliRunner,
        cli_cache: TokenCache,
        expired_credentials: CredentialSet,
        mock_controller: MagicMock,
        mock_create_server: MagicMock,
        interactive: bool,
    ) -> None:
        """Verify a network failure during refresh exits 1 and keeps token.json."""
        cli_cache.save(expired_credentials)
        network_down = google_exceptions.TransportError("network down")

        with _interactive(interactive), patch.object(
            Credentials, "refresh", autospec=True, side_effect=network_down
        ):
            result = cli_runner.invoke(main, [])

        assert result.exit_code == 1
        assert cli_cache.exists() is True
        assert cli_cache.load().refresh_token == expired_credentials.refresh_token
        assert "Could not refresh Google credentials" in result.output
        assert "network down" in result.output
        assert "No valid credentials" not in result.output
        mock_controller.assert_not_called()
        mock_create_server.return_value.run.assert_not_called()

    def test_should_keep_token_when_refresh_is_retryable(
        self,
        cli_runner: CliRunner,
        cli_cache: TokenCache,
        expired_credentials: CredentialSet,
        mock_controller: MagicMock,
        mock_create_server: MagicMock,
    ) -> None:
        """Verify a retryable provider error does not start re-consent."""
        cli_cache.save(expired_credentials)
        error = google_exceptions.RefreshError("internal_failure", retryable=True)

        with _interactive(True), patch.object(
            Credentials, "refresh", autospec=True, side_effect=error
        ):
            result = cli_runner.invoke(main, [])

        assert result.exit_code == 1
        assert cli_cache.exists() is True
        assert "Could not refresh Google credentials" in result.output
        mock_controller.assert_not_called()

    def test_should_not_serve_when_interactive_auth_fails(
        self,
        cli_runner: CliRunner,
        cli_env: Path,
        mock_controller: MagicMock,
        mock_create_server: MagicMock,
    ) -> None:
        """Verify a failed automatic flow exits 1 without serving."""
        mock_controller.return_value.run.return_value = AuthFlowResult(success=False)

        with _interactive(True):
            result = cli_runner.invoke(main, [])

        assert result.exit_code == 1
        mock_create_server.return_value.run.assert_not_called()

    def test_should_exit_one_on_server_error(
        self,
        cli_runner: CliRunner,
        cli_cache: TokenCache,
        valid_credentials: CredentialSet,
        mock_create_server: MagicMock,
    ) -> None:
        """Verify an unexpected server failure exits 1."""
        cli_cache.save(valid_credentials)
        mock_create_server.return_value.run.side_effect = RuntimeError("transport closed")

        result = cli_runner.invoke(main, [])

        assert result.exit_code == 1
        assert "Server error: transport closed" in result.output


@pytest.mark.unit
class TestLogging:
    """Tests for --debug and LOG_LEVEL handling."""

    def test_should_write_debug_lines_with_flag(
        self, cli_runner: CliRunner, cli_env: Path
    ) -> None:
        """Verify --debug persists DEBUG records."""
        cli_runner.invoke(main, ["--debug", "doctor"])

        log_text = (cli_env / "logs" / "server.log").read_text(encoding="utf-8")
        assert "[DEBUG]" in log_text

    def test_should_omit_debug_lines_by_default(
        self, cli_runner: CliRunner, cli_env: Path
    ) -> None:
        """Verify the default INFO level drops DEBUG records."""
        cli_runner.invoke(main, ["doctor"])

        log_path = cli_env / "logs" / "server.log"
        log_text = log_path.read_text(encoding="utf-8") if log_path.exists() else ""
        assert "[DEBUG]" not in log_text

    def test_should_create_config_and_log_directories(
        self, cli_runner: CliRunner, cli_env: Path
    ) -> None:
        """Verify startup creates the config tree."""
        cli_runner.invoke(main, ["doctor"])

        assert cli_env.is_dir()
        assert (cli_env / "logs").is_dir()


@pytest.mark.unit
class TestDoctorCommand:
    """Tests for `workspace-mcp doctor`."""

    def test_should_report_ready_with_valid_credentials(
        self, cli_runner: CliRunner, cli_cache: TokenCache, valid_credentials: CredentialSet
    ) -> None:
        """Verify doctor passes with valid credentials."""
        cli_cache.save(valid_credentials)

        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 0
        assert "✓ Authenticated" in result.output
        assert "Ready to use!" in result.output

    def test_should_report_refreshable_credentials(
        self, cli_runner: CliRunner, cli_cache: TokenCache, expired_credentials: CredentialSet
    ) -> None:
        """Verify doctor accepts expired but refreshable credentials."""
        cli_cache.save(expired_credentials)

        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 0
        assert "can be refreshed" in result.output

    def test_should_fail_without_credentials(self, cli_runner: CliRunner, cli_env: Path) -> None:
        """Verify doctor fails when not authenticated."""
        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 1
        assert "Not authenticated" in result.output
        assert "workspace-mcp --auth" in result.output

    def test_should_flag_unreadable_token_file(
        self, cli_runner: CliRunner, cli_cache: TokenCache, valid_credentials: CredentialSet
    ) -> None:
        """Verify doctor distinguishes a corrupted file from a missing one."""
        cli_cache.save(valid_credentials)
        cli_cache.secret_store.key_path.unlink()

        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 1
        assert "Token file unreadable" in result.output
        assert not cli_cache.secret_store.key_path.exists()

    def test_should_flag_missing_client_config(
        self, cli_runner: CliRunner, cli_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Verify doctor shows the OAuth client status."""
        monkeypatch.delenv("GOOGLE_OAUTH_CLIENT_SECRET")

        result = cli_runner.invoke(main, ["doctor"])

        assert "❌ OAuth client credentials" in result.output


@pytest.mark.unit
class TestLogoutCommand:
    """Tests for `workspace-mcp logout`."""

    def test_should_remove_token_and_keep_master_key(
        self, cli_runner: CliRunner, cli_cache: TokenCache, valid_credentials: CredentialSet
    ) -> None:
        """Verify logout deletes token.json only."""
        cli_cache.save(valid_credentials)

        result = cli_runner.invoke(main, ["logout"])

        assert result.exit_code == 0
        assert "Signed out" in result.output
        assert cli_cache.exists() is False
        assert cli_cache.secret_store.key_path.exists()

    def test_should_succeed_when_already_signed_out(
        self, cli_runner: CliRunner, cli_env: Path
    ) -> None:
        """Verify logout is idempotent."""
        result = cli_runner.invoke(main, ["logout"])

        assert result.exit_code == 0

    def test_should_revoke_with_google(
        self, cli_runner: CliRunner, cli_cache: TokenCache, valid_credentials: CredentialSet
    ) -> None:
        """Verify --revoke posts to Google and removes the token."""
        cli_cache.save(valid_credentials)
        client = AsyncMock()
        client.__aenter__.return_value = client
        client.post = AsyncMock(return_value=MagicMock())

        with patch(
            "workspace_mcp.auth.credential_manager.httpx.AsyncClient", return_value=client
        ):
            result = cli_runner.invoke(main, ["logout", "--revoke"])

        assert result.exit_code == 0
        assert "Access revoked with Google" in result.output
        client.post.assert_awaited_once()
        assert cli_cache.exists() is False


@pytest.mark.unit
class TestVersion:
    """Tests for --version."""

    def test_should_print_version(self, cli_runner: CliRunner, cli_env: Path) -> None:
        """Verify --version prints the package version."""
        from workspace_mcp.__version__ import __version__

        result = cli_runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output
