"""
Tests for the read endpoints.

Tests cover:
- GET /api/imessages ordering, filters, limit and response shape
- GET /api/screenshots/latest ordering, limit and display filter
"""

from datetime import datetime, timedelta

import pytest

from conftest import make_envelope, make_message
from devicesync.models import Screenshot
from devicesync.storage import SessionLocal


@pytest.fixture
def seeded_client(client, auth_headers):
    """Client with messages from two contacts, synced out of date order."""
    messages = [
        make_message(3, date="2024-01-03T10:00:00Z"),
        make_message(1, date="2024-01-01T10:00:00Z"),
        make_message(2, date="2024-01-02T10:00:00Z", contact="+15559999999"),
        make_message(4, date="2024-01-04T10:00:00Z", contact="+15559999999"),
    ]
    response = client.post("/api/imessages", json=make_envelope(messages), headers=auth_headers)
    assert response.json()["messageCount"] == 4
    return client


class TestListMessages:
    """Test GET /api/imessages."""

    def test_empty(self, client, auth_headers):
        """Test an empty store returns no messages."""
        response = client.get("/api/imessages", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "messages": [], "count": 0}

    def test_ordered_by_date(self, seeded_client, auth_headers):
        """Test messages come back oldest first."""
        data = seeded_client.get("/api/imessages", headers=auth_headers).json()

        assert data["count"] == 4
        assert [m["guid"] for m in data["messages"]] == ["g1", "g2", "g3", "g4"]

    def test_message_shape(self, seeded_client, auth_headers):
        """Test stored messages are returned in camelCase with boolean flags."""
        message = seeded_client.get("/api/imessages", headers=auth_headers).json()["messages"][0]

        assert message["messageId"] == 1
        assert message["userId"] == "default"
        assert message["deviceId"] == "dev1"
        assert message["isFromMe"] is False
        assert message["isRead"] is True
        assert message["hasAttachments"] is False
        assert message["chatId"] is None
        assert message["date"] == "2024-01-01T10:00:00.000Z"
        assert message["syncTime"] == "2024-01-02T00:00:00.000Z"

    def test_filter_by_contact(self, seeded_client, auth_headers):
        """Test filtering by contact (exact match)."""
        data = seeded_client.get(
            "/api/imessages", params={"contact": "+15559999999"}, headers=auth_headers
        ).json()

        assert data["count"] == 2
        assert [m["guid"] for m in data["messages"]] == ["g2", "g4"]

    def test_filter_after_inclusive(self, seeded_client, auth_headers):
        """Test 'after' keeps messages dated at or after the given time."""
        data = seeded_client.get(
            "/api/imessages", params={"after": "2024-01-02T10:00:00Z"}, headers=auth_headers
        ).json()

        assert [m["guid"] for m in data["messages"]] == ["g2", "g3", "g4"]

    def test_filter_after_and_contact(self, seeded_client, auth_headers):
        """Test combined filters."""
        data = seeded_client.get(
            "/api/imessages",
            params={"after": "2024-01-03T00:00:00Z", "contact": "+15559999999"},
            headers=auth_headers,
        ).json()

        assert [m["guid"] for m in data["messages"]] == ["g4"]

    def test_invalid_after(self, seeded_client, auth_headers):
        """Test an unparseable 'after' returns 400."""
        response = seeded_client.get("/api/imessages", params={"after": "last week"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json() == {"error": 'Invalid date format for "after" parameter'}

    def test_requires_auth(self, seeded_client):
        """Test reads require the bearer token."""
        response = seeded_client.get("/api/imessages")

        assert response.status_code == 401

    def test_limited_to_1000(self, client, auth_headers):
        """Test at most 1000 messages are returned."""
        messages = [make_message(i) for i in range(1, 1011)]
        client.post("/api/imessages", json=make_envelope(messages), headers=auth_headers)

        data = client.get("/api/imessages", headers=auth_headers).json()

        assert data["count"] == 1000
        assert data["messages"][0]["guid"] == "g1"


def add_screenshots(*screenshots: dict) -> None:
    with SessionLocal() as db:
        for values in screenshots:
            db.add(Screenshot(**values))
        db.commit()


@pytest.fixture
def screenshot_client(client):
    """Client with five screenshots across two displays."""
    base = datetime(2024, 1, 1, 12, 0, 0)
    add_screenshots(*[
        {
            "user_id": "default",
            "display_id": "main" if i % 2 == 0 else "side",
            "timestamp": base + timedelta(minutes=i),
            "image_url": f"https://example.test/shot-{i}.png",
            "width": 1920,
            "height": 1080,
        }
        for i in range(5)
    ])
    add_screenshots({
        "user_id": "someone-else",
        "display_id": "main",
        "timestamp": base + timedelta(hours=1),
        "image_url": "https://example.test/other.png",
    })
    return client


class TestLatestScreenshots:
    """Test GET /api/screenshots/latest."""

    def test_default_limit_is_one(self, screenshot_client):
        """Test the newest screenshot is returned by default."""
        response = screenshot_client.get("/api/screenshots/latest")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["count"] == 1
        assert data["screenshots"][0]["imageUrl"] == "https://example.test/shot-4.png"
        assert data["screenshots"][0]["timestamp"] == "2024-01-01T12:04:00.000Z"

    def test_newest_first(self, screenshot_client):
        """Test screenshots are ordered newest first."""
        data = screenshot_client.get("/api/screenshots/latest", params={"limit": 3}).json()

        assert data["count"] == 3
        assert [s["imageUrl"] for s in data["screenshots"]] == [
            "https://example.test/shot-4.png",
            "https://example.test/shot-3.png",
            "https://example.test/shot-2.png",
        ]

    def test_filter_by_display(self, screenshot_client):
        """Test filtering by displayId."""
        data = screenshot_client.get(
            "/api/screenshots/latest", params={"limit": 10, "displayId": "side"}
        ).json()

        assert data["count"] == 2
        assert all(s["displayId"] == "side" for s in data["screenshots"])

    def test_other_users_excluded(self, screenshot_client):
        """Test only the default user's screenshots are returned."""
        data = screenshot_client.get("/api/screenshots/latest", params={"limit": 100}).json()

        assert data["count"] == 5
        assert all(s["userId"] == "default" for s in data["screenshots"])

    @pytest.mark.parametrize("limit", ["0", "101", "-1", "abc"])
    def test_limit_out_of_range(self, screenshot_client, limit):
        """Test limits outside 1-100 return 400."""
        response = screenshot_client.get("/api/screenshots/latest", params={"limit": limit})

        assert response.status_code == 400
        assert response.json() == {"error": "Limit must be between 1 and 100"}

    @pytest.mark.parametrize("limit, expected", [("5abc", 5), ("2.5", 2), ("3 ", 3), ("+4", 4)])
    def test_limit_reads_leading_integer(self, screenshot_client, limit, expected):
        """Test only the leading digits of limit are used."""
        response = screenshot_client.get("/api/screenshots/latest", params={"limit": limit})

        assert response.status_code == 200
        assert response.json()["count"] == expected

    @pytest.mark.parametrize("limit", ["", "abc5", ".5", "150px"])
    def test_limit_without_usable_integer(self, screenshot_client, limit):
        """Test limits with no leading integer in range return 400."""
        response = screenshot_client.get("/api/screenshots/latest", params={"limit": limit})

        assert response.status_code == 400
        assert response.json() == {"error": "Limit must be between 1 and 100"}

    def test_empty(self, client):
        """Test no screenshots yields an empty list."""
        data = client.get("/api/screenshots/latest").json()

        assert data == {"success": True, "count": 0, "screenshots": []}
