"""
Tests for Messages Router

HTTP tests for history paging, REST sends, presence and rate limiting.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tests.conftest import RecordingServer, add_trip, add_user, make_token
from tripchat.exceptions import StorageUnavailableError
from tripchat.middleware.rate_limit import RateLimitMiddleware
from tripchat.realtime.gateway import ChatGateway
from tripchat.routers import messages


def auth(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def gateway():
    return ChatGateway(RecordingServer())


@pytest.fixture
def client(fake_db, gateway):
    add_trip(fake_db, "T", owner_id="U1", member_ids=["U1", "U2"])
    add_user(fake_db, "U1", "Alice", "alice@example.com")

    app = FastAPI()
    app.include_router(messages.router, prefix="/api/v1/trips")
    app.state.chat_gateway = gateway
    return TestClient(app)


def seed(fake_db, count):
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    for i in range(count):
        fake_db.chat_messages.docs.append({
            "message_id": f"{i + 1:024x}",
            "trip_id": "T",
            "sender_id": "U1",
            "text": f"message {i + 1}",
            "created_at": base + timedelta(seconds=i),
            "is_deleted": False,
        })


# =============================================================================
# History
# =============================================================================

class TestGetMessages:
    """Tests for GET /trips/{trip_id}/messages."""

    def test_requires_auth(self, client):
        """Missing credentials should return 401."""
        response = client.get("/api/v1/trips/T/messages")
        assert response.status_code == 401

    def test_rejects_bad_scheme(self, client):
        """Non-Bearer authorization should return 401."""
        response = client.get("/api/v1/trips/T/messages", headers={"Authorization": "Token abc"})
        assert response.status_code == 401

    def test_cookie_auth(self, client):
        """A token cookie should authenticate."""
        client.cookies.set("token", make_token("U1"))
        response = client.get("/api/v1/trips/T/messages")
        assert response.status_code == 200

    def test_non_member(self, client):
        """Non-members should get 403."""
        response = client.get("/api/v1/trips/T/messages", headers=auth("U3"))
        assert response.status_code == 403
        assert response.json()["detail"] == "You are not a member of this trip"

    def test_unknown_trip(self, client):
        """Unknown trips should get 404."""
        response = client.get("/api/v1/trips/nope/messages", headers=auth("U1"))
        assert response.status_code == 404

    def test_paginates(self, client, fake_db):
        """Following nextCursor should walk back to the oldest message."""
        seed(fake_db, 15)

        first = client.get("/api/v1/trips/T/messages", headers=auth("U2")).json()
        assert [m["text"] for m in first["messages"]] == [f"message {n}" for n in range(6, 16)]
        assert first["hasMore"] is True

        older = client.get(
            "/api/v1/trips/T/messages",
            params={"before": first["nextCursor"]},
            headers=auth("U2"),
        ).json()
        assert [m["text"] for m in older["messages"]] == [f"message {n}" for n in range(1, 6)]
        assert older["hasMore"] is False
        assert older["nextCursor"] is None

    def test_limit_out_of_range(self, client):
        """A limit above 50 should be rejected."""
        response = client.get("/api/v1/trips/T/messages", params={"limit": 51}, headers=auth("U1"))
        assert response.status_code == 422

    def test_storage_unavailable(self, client):
        """Storage outages should surface as 503."""
        with patch.object(messages.message_service, "page", AsyncMock(side_effect=StorageUnavailableError())):
            response = client.get("/api/v1/trips/T/messages", headers=auth("U1"))
        assert response.status_code == 503


# =============================================================================
# Sending
# =============================================================================

class TestPostMessage:
    """Tests for POST /trips/{trip_id}/messages."""

    def test_send_persists_and_broadcasts(self, client, fake_db, gateway):
        """A REST send should be stored and reach the room."""
        gateway.registry.register("s2", "U2")
        gateway.registry.join("s2", "T")

        response = client.post("/api/v1/trips/T/messages", json={"text": "Hi"}, headers=auth("U1"))

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["text"] == "Hi"
        assert data["sender"]["name"] == "Alice"
        assert len(fake_db.chat_messages.docs) == 1
        assert gateway.sio.events_for("s2", "newMessage")[0]["id"] == data["id"]

    def test_empty_text(self, client, fake_db):
        """Whitespace-only text should be rejected without storing."""
        response = client.post("/api/v1/trips/T/messages", json={"text": "  "}, headers=auth("U1"))
        assert response.status_code == 422
        assert fake_db.chat_messages.docs == []

    def test_too_long(self, client):
        """Text over 2000 characters should be rejected."""
        response = client.post("/api/v1/trips/T/messages", json={"text": "a" * 2001}, headers=auth("U1"))
        assert response.status_code == 422

    def test_non_member(self, client, fake_db):
        """Non-members should not be able to send."""
        response = client.post("/api/v1/trips/T/messages", json={"text": "Hi"}, headers=auth("U3"))
        assert response.status_code == 403
        assert fake_db.chat_messages.docs == []


class TestPresence:
    """Tests for GET /trips/{trip_id}/presence."""

    def test_lists_online_users(self, client, gateway):
        """Users with a socket in the room should be listed."""
        gateway.registry.register("s1", "U1")
        gateway.registry.register("s2", "U2")
        gateway.registry.join("s1", "T")
        gateway.registry.join("s2", "T")

        response = client.get("/api/v1/trips/T/presence", headers=auth("U1"))

        assert response.status_code == 200
        assert response.json() == {"tripId": "T", "onlineUserIds": ["U1", "U2"]}


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware."""

    def test_limits_by_ip(self):
        """Requests over the limit should get 429 except health checks."""
        app = FastAPI()

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        @app.get("/health")
        async def health():
            return {"status": "healthy"}

        app.add_middleware(RateLimitMiddleware)

        with patch("tripchat.middleware.rate_limit.settings.rate_limit_per_minute", 2):
            client = TestClient(app)
            codes = [client.get("/ping").status_code for _ in range(3)]
            health = [client.get("/health").status_code for _ in range(3)]

        assert codes == [200, 200, 429]
        assert health == [200, 200, 200]
