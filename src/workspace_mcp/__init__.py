"""Google Workspace MCP Server.

Connect an MCP client to Gmail, Calendar, Drive, Docs, Sheets and Chat,
with encrypted OAuth2 credential storage and automatic token refresh.
"""

from workspace_mcp.__version__ import __version__

__all__ = ["__version__"]
