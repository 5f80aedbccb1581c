"""Google Workspace MCP server over stdio.

The server is only started once the credential manager has resolved to
VALID credentials. Each tool call goes back through the manager, which
refreshes the access token silently when it nears expiry.
"""

import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from workspace_mcp.auth import CredentialManager

logger = logging.getLogger(__name__)

SERVER_NAME = "google-workspace-mcp"


class WorkspaceServer:
    """MCP server for Google Workspace APIs.

    Attributes:
        server: MCP Server instance.
        manager: CredentialManager supplying access tokens.
    """

    def __init__(self, manager: CredentialManager) -> None:
        """Initialize the Google Workspace MCP server.

        Args:
            manager: Credential manager, normally already resolved to VALID.
        """
        self.server = Server(SERVER_NAME)
        self.manager = manager
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return [
                Tool(
                    name="get_auth_status",
                    description=(
                        "Report the Google account authorization status: "
                        "credential state, granted scopes and access token expiry"
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {},
                        "required": [],
                    },
                ),
            ]

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            try:
                result = await self._dispatch_tool(name, arguments)
                return [TextContent(type="text", text=json.dumps(result, indent=2))]
            except Exception as e:
                logger.exception(f"Error calling tool {name}")
                return [
                    TextContent(
                        type="text",
                        text=json.dumps({"error": str(e)}, indent=2),
                    )
                ]

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch tool call to appropriate handler.

        Raises:
            ValueError: If the tool name is unknown.
        """
        handlers = {
            "get_auth_status": self._get_auth_status,
        }
        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")
        return await handler(arguments)

    async def _get_auth_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        # Refreshes first so the reported expiry is the live one
        await self.manager.get_authenticated_client()
        state, credentials = self.manager.status()

        return {
            "state": state.value,
            "expires_at": credentials.expires_at.isoformat() if credentials else None,
            "scopes": list(credentials.scopes) if credentials else [],
            "has_refresh_token": bool(credentials and credentials.refresh_token),
        }

    async def run(self) -> None:
        """Resolve credentials, then serve MCP over stdio.

        Raises:
            RefreshError: If credentials cannot be refreshed silently.
            AuthenticationError: If authorization is required.
        """
        await self.manager.get_authenticated_client()
        logger.info("Credentials ready, starting MCP server on stdio")

        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )
