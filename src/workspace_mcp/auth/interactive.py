"""Interactive OAuth2 authorization-code flow for Google Workspace.

Opens the system browser on Google's consent screen and receives the
authorization code on a loopback HTTP listener, then exchanges it for
tokens with google-auth-oauthlib.

The listener binds 127.0.0.1 on an ephemeral port unless
GOOGLE_OAUTH_REDIRECT_URI names a fixed one (needed for Web Application
OAuth clients). It is closed before ``authorize`` returns, whatever the
outcome.
"""

import asyncio
import logging
import secrets
import sys
import threading
import time
import webbrowser
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Protocol
from urllib.parse import parse_qs, urlparse

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from workspace_mcp.auth.errors import AuthenticationError
from workspace_mcp.config import WorkspaceConfig

logger = logging.getLogger(__name__)

# OAuth configuration defaults
DEFAULT_OAUTH_HOST = "127.0.0.1"
DEFAULT_OAUTH_PORT = 0  # ephemeral
DEFAULT_CALLBACK_PATH = "/callback"
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105

# How often the callback loop wakes up to check for cancellation
POLL_INTERVAL_SECONDS = 1.0

_SUCCESS_PAGE = (
    b"<html><body><h1>Authentication Successful!</h1>"
    b"<p>You can close this window and return to the terminal.</p>"
    b"</body></html>"
)
_FAILURE_PAGE = (
    b"<html><body><h1>Authentication Failed</h1>"
    b"<p>Please close this window and try again.</p></body></html>"
)


class Authorizer(Protocol):
    """Something that can obtain fresh credentials with a human in the loop."""

    async def authorize(self, scopes: Sequence[str]) -> Credentials | None: ...


@dataclass
class _CallbackResult:
    code: str | None = None
    error: str | None = None


class LocalServerAuthorizer:
    """Browser-based authorization with a loopback callback listener.

    Attributes:
        client_id: Google OAuth client ID.
        client_secret: Google OAuth client secret.
        redirect_uri: Fixed redirect URI, or None for an ephemeral port.
        timeout_seconds: Maximum time to wait for the browser callback.

    Example:
        ```python
        authorizer = LocalServerAuthorizer.from_config(config)
        credentials = await authorizer.authorize(WORKSPACE_SCOPES)
        ```
    """

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str | None = None,
        timeout_seconds: float = 300.0,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ) -> None:
        """Initialize the authorizer.

        Args:
            client_id: Google OAuth client ID.
            client_secret: Google OAuth client secret.
            redirect_uri: Fixed loopback redirect URI (optional).
            timeout_seconds: Maximum wait for the authorization code.
            open_browser: Callable used to open the authorization URL.

        Raises:
            AuthenticationError: If client ID or secret is missing.
        """
        if not client_id or not client_secret:
            raise AuthenticationError(
                "Client ID and secret required. "
                "Set GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET environment variables."
            )
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout_seconds = timeout_seconds
        self._open_browser = open_browser

    @classmethod
    def from_config(cls, config: WorkspaceConfig, **kwargs: Any) -> "LocalServerAuthorizer":
        return cls(
            client_id=config.client_id,
            client_secret=config.client_secret,
            redirect_uri=config.redirect_uri,
            timeout_seconds=config.auth_timeout_seconds,
            **kwargs,
        )

    async def authorize(self, scopes: Sequence[str]) -> Credentials:
        """Run the browser flow and return the exchanged credentials.

        Raises:
            AuthenticationError: On denial, timeout, cancellation or a failed
                code exchange.
        """
        cancelled = threading.Event()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._run_oauth_flow, list(scopes), cancelled)
        except asyncio.CancelledError:
            # Lets the executor thread stop waiting and close the listener
            cancelled.set()
            raise

    def _listen_address(self) -> tuple[str, int, str]:
        if not self.redirect_uri:
            return DEFAULT_OAUTH_HOST, DEFAULT_OAUTH_PORT, DEFAULT_CALLBACK_PATH

        parsed = urlparse(self.redirect_uri)
        host = parsed.hostname or DEFAULT_OAUTH_HOST
        port = parsed.port or DEFAULT_OAUTH_PORT
        return host, port, parsed.path or DEFAULT_CALLBACK_PATH

    def _client_config(self, redirect_uri: str) -> dict[str, Any]:
        # Desktop clients accept any loopback port; web clients need the exact URI
        client_type = "web" if self.redirect_uri else "installed"
        return {
            client_type: {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [redirect_uri],
            }
        }

    def _run_oauth_flow(self, scopes: list[str], cancelled: threading.Event) -> Credentials:
        """Run the OAuth flow (blocking operation).

        Args:
            scopes: OAuth scopes to request.
            cancelled: Set from the event loop to abandon the wait.

        Returns:
            Google OAuth2 credentials.
        """
        host, port, callback_path = self._listen_address()
        state = secrets.token_urlsafe(32)
        result = _CallbackResult()

        class OAuthCallbackHandler(BaseHTTPRequestHandler):
            """HTTP handler for OAuth callback."""

            # Idle browser preconnects must not block the polling loop
            timeout = 5

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("OAuth callback: " + format % args)

            def _respond(self, status: int, body: bytes) -> None:
                self.send_response(status)
                self.send_header("Content-type", "text/html")
                self.end_headers()
                self.wfile.write(body)

            def do_GET(self) -> None:
                request_parsed = urlparse(self.path)

                # Browsers also ask for /favicon.ico and the like
                if request_parsed.path != callback_path:
                    self.send_response(404)
                    self.end_headers()
                    self.wfile.write(b"Not Found")
                    return

                query_params = parse_qs(request_parsed.query)

                if "error" in query_params:
                    result.error = query_params["error"][0]
                    self._respond(400, _FAILURE_PAGE)
                    return

                if query_params.get("state", [None])[0] != state:
                    result.error = "state_mismatch"
                    self._respond(400, _FAILURE_PAGE)
                    return

                if "code" in query_params:
                    result.code = query_params["code"][0]
                    self._respond(200, _SUCCESS_PAGE)
                else:
                    result.error = "missing_code"
                    self._respond(400, _FAILURE_PAGE)

        try:
            server = HTTPServer((host, port), OAuthCallbackHandler)
        except OSError as e:
            raise AuthenticationError(
                f"Cannot listen on {host}:{port} for the OAuth callback: {e}"
            ) from e

        try:
            redirect_uri = f"http://{host}:{server.server_address[1]}{callback_path}"
            flow = Flow.from_client_config(
                self._client_config(redirect_uri),
                scopes=scopes,
                redirect_uri=redirect_uri,
            )
            auth_url, _ = flow.authorization_url(
                access_type="offline",
                prompt="consent",
                state=state,
            )

            # stdout is reserved for the MCP protocol
            print("Opening browser for Google authorization...", file=sys.stderr)
            print(f"If browser doesn't open, visit: {auth_url}", file=sys.stderr)
            logger.debug(f"Waiting for OAuth callback on {redirect_uri}")
            self._open_browser(auth_url)

            self._wait_for_callback(server, result, cancelled)
        finally:
            server.server_close()

        if result.error:
            raise AuthenticationError(f"OAuth authentication failed: {result.error}")

        try:
            flow.fetch_token(code=result.code)
        except Exception as e:
            raise AuthenticationError(f"Failed to exchange authorization code: {e}") from e

        return flow.credentials

    def _wait_for_callback(
        self,
        server: HTTPServer,
        result: _CallbackResult,
        cancelled: threading.Event,
    ) -> None:
        deadline = time.monotonic() + self.timeout_seconds
        while result.code is None and result.error is None:
            if cancelled.is_set():
                raise AuthenticationError("Authorization was cancelled")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AuthenticationError(
                    f"Timed out after {self.timeout_seconds:g}s waiting for browser authorization"
                )

            server.timeout = min(POLL_INTERVAL_SECONDS, remaining)
            server.handle_request()
