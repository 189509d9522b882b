"""
Pytest configuration and shared fixtures.

Test settings are taken from the environment when present, otherwise the
defaults below are used. Settings are reloaded before any app imports.
"""

import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_devicesync.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("MOBILE_API_KEY", "test-mobile-key")

# Clear settings cache before any app imports to ensure test env vars are used
from devicesync.config import get_settings  # noqa: E402
get_settings.cache_clear()

from fastapi.testclient import TestClient  # noqa: E402

from devicesync.main import app  # noqa: E402
from devicesync.storage import Base, engine  # noqa: E402


TEST_MOBILE_API_KEY = os.environ["MOBILE_API_KEY"]


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def auth_headers() -> dict:
    """Headers carrying the mobile app's bearer token."""
    return {"Authorization": f"Bearer {TEST_MOBILE_API_KEY}"}


def make_message(index: int = 1, **overrides) -> dict:
    """Build a valid raw message record."""
    message = {
        "id": index,
        "guid": f"g{index}",
        "text": f"message {index}",
        "contact": "+15550001111",
        "subject": None,
        "date": f"2024-01-01T00:{index // 60 % 60:02d}:{index % 60:02d}Z",
        "isFromMe": index % 2 == 0,
        "isRead": True,
        "isSent": True,
        "isDelivered": True,
        "hasAttachments": False,
        "service": "iMessage",
    }
    message.update(overrides)
    return message


def make_envelope(messages: list, /, **overrides) -> dict:
    """Build a sync request envelope around raw records."""
    envelope = {
        "messages": messages,
        "syncTime": "2024-01-02T00:00:00Z",
        "deviceId": "dev1",
        "messageCount": len(messages),
    }
    envelope.update(overrides)
    return envelope
