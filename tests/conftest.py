"""Shared pytest fixtures for workspace-mcp tests.

This module provides reusable fixtures for testing configuration,
encrypted token storage, the credential manager and Google auth mocks.
"""

import logging
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from workspace_mcp.auth.models import CredentialSet, TokenMetadata
from workspace_mcp.config import WORKSPACE_SCOPES, WorkspaceConfig

# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Path for a per-test config directory (not created)."""
    return tmp_path / "google-workspace-mcp"


@pytest.fixture
def workspace_config(config_dir: Path) -> WorkspaceConfig:
    """Create a configuration rooted in a temporary directory."""
    return WorkspaceConfig(
        config_dir=config_dir,
        client_id="test_client_id",
        client_secret="test_client_secret",  # pragma: allowlist secret
        auth_timeout_seconds=5,
    )


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Generator[None, None, None]:
    """Remove handlers installed by configure_logging between tests."""
    yield
    package_logger = logging.getLogger("workspace_mcp")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


# =============================================================================
# Credential Fixtures
# =============================================================================


@pytest.fixture
def valid_credentials() -> CredentialSet:
    """Create valid, non-expired credentials covering all required scopes."""
    return CredentialSet(
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        scopes=list(WORKSPACE_SCOPES),
        token_type="Bearer",
    )


@pytest.fixture
def expired_credentials() -> CredentialSet:
    """Create expired credentials that still carry a refresh token."""
    return CredentialSet(
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        scopes=list(WORKSPACE_SCOPES),
        token_type="Bearer",
    )


@pytest.fixture
def token_metadata() -> TokenMetadata:
    """Create token metadata for testing."""
    return TokenMetadata(
        provider="google",
        created_at=datetime.now(timezone.utc) - timedelta(days=1),
    )


# =============================================================================
# Storage and Manager Fixtures
# =============================================================================


@pytest.fixture
def secret_store(workspace_config: WorkspaceConfig):
    """Create a SecretStore with a temporary key path."""
    from workspace_mcp.auth.secret_store import SecretStore

    return SecretStore.from_config(workspace_config)


@pytest.fixture
def token_cache(workspace_config: WorkspaceConfig):
    """Create a TokenCache with temporary storage."""
    from workspace_mcp.auth.token_cache import TokenCache

    return TokenCache.from_config(workspace_config)


@pytest.fixture
def credential_manager(workspace_config: WorkspaceConfig, token_cache):
    """Create a silent CredentialManager (no authorizer) with temporary storage."""
    from workspace_mcp.auth.credential_manager import CredentialManager

    manager = CredentialManager.from_config(workspace_config)
    manager.cache = token_cache
    return manager


# =============================================================================
# Mock Google Credentials
# =============================================================================


@pytest.fixture
def mock_google_credentials() -> MagicMock:
    """Create a mock Google OAuth2 Credentials object."""
    mock_creds = MagicMock()
    mock_creds.token = "mock_access_token"
    mock_creds.refresh_token = "mock_refresh_token"
    # google-auth uses naive UTC datetimes
    mock_creds.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
    mock_creds.expired = False
    mock_creds.valid = True
    mock_creds.scopes = list(WORKSPACE_SCOPES)
    mock_creds.granted_scopes = list(WORKSPACE_SCOPES)
    return mock_creds


@pytest.fixture
def fake_authorizer(mock_google_credentials: MagicMock) -> MagicMock:
    """Create an authorizer that grants credentials without a browser."""
    authorizer = MagicMock()
    authorizer.authorize = AsyncMock(return_value=mock_google_credentials)
    return authorizer


@pytest.fixture
def interactive_manager(workspace_config: WorkspaceConfig, token_cache, fake_authorizer):
    """Create a CredentialManager wired to the fake authorizer."""
    from workspace_mcp.auth.credential_manager import CredentialManager

    manager = CredentialManager.from_config(workspace_config, authorizer=fake_authorizer)
    manager.cache = token_cache
    return manager


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
