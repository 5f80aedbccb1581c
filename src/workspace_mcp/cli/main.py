"""Command-line interface for workspace-mcp.

Modes:
    workspace-mcp --auth    Run the interactive authentication flow and exit
    workspace-mcp           Ensure credentials, then start the MCP server

If no usable credentials exist and the terminal is interactive, the
authentication flow runs automatically before the server starts. In a
non-interactive environment (CI, Docker, an MCP client launching the
server) remediation instructions are printed and the process exits 1.
"""

import asyncio
import logging
import sys

import click

from workspace_mcp.__version__ import __version__
from workspace_mcp.auth import (
    AuthenticationError,
    CredentialManager,
    CredentialState,
    RefreshError,
    StorageError,
)
from workspace_mcp.auth_flow import AuthFlowController
from workspace_mcp.config import LogLevel, WorkspaceConfig
from workspace_mcp.logger import configure_logging

logger = logging.getLogger(__name__)


def is_interactive_terminal() -> bool:
    """Check whether a human can answer prompts on this terminal."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def _load_config(debug: bool) -> WorkspaceConfig:
    config = WorkspaceConfig.from_env()
    if debug:
        config = config.with_log_level(LogLevel.DEBUG)

    try:
        config.ensure_directories()
    except OSError as e:
        click.echo(f"❌ Cannot create config directory {config.config_dir}: {e}", err=True)
        sys.exit(1)

    configure_logging(config)
    logger.debug(f"Using config directory {config.config_dir}")
    return config


def _run_auth_flow(config: WorkspaceConfig) -> bool:
    try:
        result = asyncio.run(AuthFlowController(config).run())
    except KeyboardInterrupt:
        click.echo("\n❌ Authentication cancelled.", err=True)
        return False
    return result.success


def _print_non_interactive_help(config: WorkspaceConfig) -> None:
    click.echo("❌ No valid credentials found.\n", err=True)
    click.echo("For automated/non-interactive environments:", err=True)
    click.echo("1. Run authentication on an interactive machine:", err=True)
    click.echo("   workspace-mcp --auth\n", err=True)
    click.echo("2. Copy credentials (token.json and .master-key) to your environment:", err=True)
    click.echo("   macOS/Linux: ~/.config/google-workspace-mcp/", err=True)
    click.echo("   Windows: %APPDATA%/google-workspace-mcp/\n", err=True)
    click.echo("3. Or set GOOGLE_WORKSPACE_MCP_HOME to the credentials location", err=True)
    click.echo(f"   (currently: {config.config_dir})\n", err=True)


def _ensure_credentials(config: WorkspaceConfig) -> None:
    """Resolve credentials silently, falling back to the interactive flow."""
    manager = CredentialManager.from_config(config)
    try:
        asyncio.run(manager.get_authenticated_client())
        return
    except (AuthenticationError, RefreshError) as e:
        logger.info(f"No usable credentials at startup: {e}")
        startup_error = e
    except StorageError as e:
        logger.error(f"Credential storage error: {e}")
        click.echo(f"❌ Credential storage error: {e}", err=True)
        sys.exit(1)

    # A transient refresh failure keeps the refresh token; re-consent would discard it
    if not manager.state.requires_authorization:
        click.echo("❌ Could not refresh Google credentials. Try again later.", err=True)
        click.echo(f"Error: {startup_error}", err=True)
        sys.exit(1)

    if not is_interactive_terminal():
        _print_non_interactive_help(config)
        sys.exit(1)

    click.echo("🔐 No credentials found. Starting authentication...\n")
    if not _run_auth_flow(config):
        sys.exit(1)
    click.echo("\nStarting Google Workspace MCP server...\n", err=True)


def _serve(config: WorkspaceConfig) -> None:
    from workspace_mcp.server import create_server

    _ensure_credentials(config)

    try:
        asyncio.run(create_server(config).run())
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except Exception as e:
        logger.exception("Server error")
        click.echo(f"❌ Server error: {e}", err=True)
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option("--auth", "run_auth", is_flag=True, help="Run interactive authentication and exit")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, run_auth: bool, debug: bool) -> None:
    """Google Workspace MCP Server - Connect MCP clients to Google Workspace.

    Gmail, Calendar, Drive, Docs, Sheets and Chat, with encrypted
    OAuth token storage and automatic token refresh.

    Without a subcommand, ensures credentials and starts the stdio server.
    """
    config = _load_config(debug)
    ctx.obj = config

    if ctx.invoked_subcommand is not None:
        return

    if run_auth:
        click.echo("🔐 Starting Google Workspace MCP authentication...\n")
        sys.exit(0 if _run_auth_flow(config) else 1)

    _serve(config)


@main.command()
@click.pass_obj
def doctor(config: WorkspaceConfig) -> None:
    """Check installation and authentication status.

    Verifies:
    1. Python dependencies installed
    2. OAuth client and storage locations configured
    3. Token validity
    """
    click.echo("Google Workspace MCP Status:")
    click.echo("")

    click.echo("Dependencies:")
    try:
        import cryptography  # noqa: F401
        import google.auth  # noqa: F401
        import google_auth_oauthlib  # noqa: F401

        click.echo("  ✓ google-auth installed")
        click.echo("  ✓ google-auth-oauthlib installed")
        click.echo("  ✓ cryptography installed")
    except ImportError as e:
        click.echo(f"  ❌ Missing dependency: {e}")
        sys.exit(1)

    click.echo("")

    click.echo("Configuration:")
    click.echo(f"  Config directory: {config.config_dir}")
    click.echo(f"  Log file: {config.log_file_path}")
    client_ok = bool(config.client_id and config.client_secret)
    click.echo(f"  {'✓' if client_ok else '❌'} OAuth client credentials")
    click.echo("")

    manager = CredentialManager.from_config(config)
    try:
        state, credentials = manager.status()
    except StorageError as e:
        click.echo(f"❌ Credential storage error: {e}")
        sys.exit(1)

    click.echo("Authentication:")
    click.echo(f"  Token file: {config.token_path}")

    if state == CredentialState.MISSING:
        if manager.cache.exists():
            click.echo("  ❌ Token file unreadable (corrupted or master key changed)")
        else:
            click.echo("  ❌ Not authenticated")
        click.echo("")
        click.echo("Run 'workspace-mcp --auth' to authenticate.")
        sys.exit(1)
    elif state == CredentialState.EXPIRED_UNREFRESHABLE:
        click.echo("  ❌ Token expired or missing required scopes")
        click.echo("")
        click.echo("Run 'workspace-mcp --auth' to re-authenticate.")
        sys.exit(1)
    elif state == CredentialState.EXPIRED_REFRESHABLE:
        click.echo("  ⚠️  Token expired (can be refreshed)")
    elif state == CredentialState.VALID:
        click.echo("  ✓ Authenticated")

    if credentials:
        click.echo(
            f"  Token expires: {credentials.expires_at.strftime('%Y-%m-%d %H:%M:%S UTC')}"
        )
        click.echo(f"  Scopes: {len(credentials.scopes)} granted")

    click.echo("")
    click.echo("✓ Ready to use!")


@main.command()
@click.option("--revoke", is_flag=True, help="Also revoke the grant with Google")
@click.pass_obj
def logout(config: WorkspaceConfig, revoke: bool) -> None:
    """Remove stored credentials.

    The master key is kept, so the next authentication reuses it.
    """
    manager = CredentialManager.from_config(config)

    try:
        if revoke:
            if asyncio.run(manager.revoke()):
                click.echo("✓ Access revoked with Google")
            else:
                click.echo("⚠️  Could not revoke access with Google (see log for details)")
        else:
            asyncio.run(manager.clear_auth())
    except StorageError as e:
        click.echo(f"❌ Credential storage error: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Signed out. Removed {config.token_path}")


if __name__ == "__main__":
    main()
