"""Interactive authentication flow.

Forces a fresh Google consent, saves the resulting credentials and reports
the outcome on the console. The controller returns an ``AuthFlowResult``
and leaves the exit code to the CLI.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from workspace_mcp.auth import (
    AuthenticationError,
    CredentialManager,
    LocalServerAuthorizer,
)
from workspace_mcp.config import WorkspaceConfig

logger = logging.getLogger(__name__)


@dataclass
class AuthFlowResult:
    """Outcome of one interactive authentication attempt."""

    success: bool
    error: AuthenticationError | None = None
    token_path: Path | None = None

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class AuthFlowController:
    """Runs the one-shot interactive authentication sequence.

    Attributes:
        config: Resolved configuration.
        manager: Credential manager with an interactive authorizer. Built
            from ``config`` on first use if not given.
    """

    def __init__(
        self,
        config: WorkspaceConfig,
        manager: CredentialManager | None = None,
        echo: Callable[..., Any] = click.echo,
    ) -> None:
        self.config = config
        self.manager = manager
        self._echo = echo

    def _build_manager(self) -> CredentialManager:
        authorizer = LocalServerAuthorizer.from_config(self.config)
        return CredentialManager.from_config(self.config, authorizer=authorizer)

    async def run(self) -> AuthFlowResult:
        """Clear cached credentials and authorize from scratch.

        Returns:
            AuthFlowResult with ``success`` and, on failure, the error.
        """
        self._echo("Opening browser for Google authentication...")
        self._echo("Please log in and grant the requested permissions.\n")
        self._echo("⚠️  Note: When you see the OAuth consent screen, you may need to click")
        self._echo('   "Advanced" and then "Go to <app name> (unsafe)"')
        self._echo("   if this OAuth client is not yet verified by Google.\n")

        logger.info("Starting authentication flow")

        try:
            if self.manager is None:
                self.manager = self._build_manager()

            client = await self.manager.reauthenticate()
            if client is None:
                raise AuthenticationError(
                    "Failed to obtain authenticated client - no client returned"
                )
        except Exception as e:
            logger.info(f"Authentication failed: {e}")
            self._report_failure(e)
            error = e if isinstance(e, AuthenticationError) else AuthenticationError(str(e))
            if error is not e:
                error.__cause__ = e
            return AuthFlowResult(success=False, error=error)

        logger.info("Successfully obtained authenticated client")

        self._echo("\n✅ Authentication successful!")
        self._echo("Tokens have been saved securely.")
        self._echo(f"Token stored at: {self.config.token_path}")
        self._echo("\nYou can now use this server with your MCP client:")
        self._echo("  workspace-mcp\n")

        logger.info("Authentication flow completed successfully")
        return AuthFlowResult(success=True, token_path=self.config.token_path)

    def _report_failure(self, error: BaseException) -> None:
        self._echo("\n❌ Authentication failed. Please try again.", err=True)
        self._echo(f"Error: {error}\n", err=True)
        self._echo("Troubleshooting:", err=True)
        self._echo("1. Make sure your browser window opened (check taskbar/dock)", err=True)
        self._echo(f"2. Check logs at: {self.config.log_dir}", err=True)
        self._echo(
            "3. Verify GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET are set",
            err=True,
        )
        self._echo("", err=True)
