"""Version information for workspace-mcp."""

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

DISTRIBUTION_NAME = "workspace-mcp"


def _get_version() -> str:
    """Get the installed distribution version, else the repo VERSION file."""
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        pass

    # Running from a source checkout: src/workspace_mcp/ -> repo root
    root_version = Path(__file__).resolve().parents[2] / "VERSION"
    if root_version.exists():
        return root_version.read_text().strip()

    return "0.0.0"


__version__ = _get_version()
