"""MCP server implementation for Google Workspace.

Transport: Stdio
Authentication: OAuth 2.0 with encrypted token storage and automatic refresh
"""

from workspace_mcp.auth import CredentialManager
from workspace_mcp.config import WorkspaceConfig
from workspace_mcp.server.workspace_server import WorkspaceServer


def create_server(config: WorkspaceConfig) -> WorkspaceServer:
    """Create a Google Workspace MCP server for silent (non-interactive) use.

    Returns:
        WorkspaceServer: Configured server instance ready to run.

    Example:
        >>> server = create_server(WorkspaceConfig.from_env())
        >>> asyncio.run(server.run())
    """
    return WorkspaceServer(CredentialManager.from_config(config))


__all__ = ["create_server", "WorkspaceServer"]
