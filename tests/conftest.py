"""
Test Configuration and Fixtures

Shared fixtures and collaborator mocks for the test suite.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing settings.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from conversation_engine.activities.models import IdentityContext, Key  # noqa: E402
from conversation_engine.config import Settings  # noqa: E402
from conversation_engine.conversations.service import ConversationService  # noqa: E402
from conversation_engine.transport.catalog import StaticServiceCatalog  # noqa: E402
from conversation_engine.transport.models import TransportResponse  # noqa: E402

BASE_URL = "https://conv.example.com/conversation/api/v1"
SELF_ID = "5d1b6d2c-0000-4000-8000-000000000001"
OTHER_ID = "5d1b6d2c-0000-4000-8000-000000000002"
NEW_KEY_URI = "kms://kms.example.com/keys/new-key"


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (may use real services)")


def pytest_collection_modifyitems(config, items):
    """
    Auto-assign tier markers so we can run `pytest -m unit`.

    Convention:
    - tests/integration/** => integration
    - everything else      => unit
    """
    for item in items:
        path = str(getattr(item, "fspath", ""))
        if item.get_closest_marker("integration") or item.get_closest_marker("unit"):
            continue
        if "/tests/integration/" in path:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# SETTINGS & IDENTITY FIXTURES
# =============================================================================


@pytest.fixture
def settings():
    """Settings pointing at a fake conversation service."""
    return Settings(
        environment="test",
        conversation_service_url=BASE_URL,
        access_token="test-token",
        http_max_attempts=1,
    )


@pytest.fixture
def identity():
    """The calling user."""
    return IdentityContext(user_id=SELF_ID)


@pytest.fixture
def catalog(settings):
    return StaticServiceCatalog(settings)


# =============================================================================
# COLLABORATOR MOCKS
# =============================================================================


def _as_uuid(participant, create=False):
    if isinstance(participant, dict):
        return participant["id"]
    return participant


@pytest.fixture
def transport():
    """Transport mock; responds 200 with an empty body unless overridden."""
    mock = AsyncMock()
    mock.request.return_value = TransportResponse(status_code=200, body={})
    return mock


@pytest.fixture
def identity_resolver():
    """Identity resolver mock that treats strings as already-resolved UUIDs."""
    mock = AsyncMock()
    mock.as_uuid.side_effect = _as_uuid
    mock.record_uuid.return_value = None
    return mock


@pytest.fixture
def kms():
    """KMS mock minting a single key (returned as a batch of one)."""
    mock = AsyncMock()
    mock.create_unbound_keys.return_value = [Key(uri=NEW_KEY_URI)]
    return mock


@pytest.fixture
def events():
    return MagicMock()


@pytest.fixture
def service(identity, transport, catalog, identity_resolver, kms, events, settings):
    return ConversationService(
        identity=identity,
        transport=transport,
        catalog=catalog,
        identity_resolver=identity_resolver,
        kms=kms,
        events=events,
        settings=settings,
    )


@pytest.fixture
def sent(transport):
    """Callable returning every request descriptor the transport received, in order."""

    def _sent():
        return [call.args[0] for call in transport.request.await_args_list]

    return _sent
