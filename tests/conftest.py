"""
Shared test fixtures.

Settings are read from the environment at import time, so required
variables are set before anything under tripchat is imported.
"""

import os

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-tripchat")
os.environ.setdefault("CORS_ORIGINS", "*")

import copy
from datetime import timedelta
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest
from jose import jwt

from tripchat.config import settings
from tripchat.utils.timezone_utils import utc_now


# =============================================================================
# Fake Motor collections
# =============================================================================


def _match_value(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict):
        for op, operand in condition.items():
            if op == "$lt":
                if value is None or not value < operand:
                    return False
            elif op == "$ne":
                if value == operand:
                    return False
            elif op == "$in":
                if value not in operand:
                    return False
            else:
                raise NotImplementedError(op)
        return True
    return value == condition


def matches(doc: dict, query: dict) -> bool:
    """Evaluate the subset of Mongo query syntax the services use."""
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, clause) for clause in condition):
                return False
        elif not _match_value(doc.get(key), condition):
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[dict]):
        self._docs = docs
        self._limit: Optional[int] = None

    def sort(self, keys):
        # Stable sorts applied from the least significant key
        for field, direction in reversed(keys):
            self._docs.sort(key=lambda d: d[field], reverse=direction < 0)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length: Optional[int] = None):
        docs = self._docs
        if self._limit is not None:
            docs = docs[: self._limit]
        if length is not None:
            docs = docs[:length]
        return [copy.deepcopy(d) for d in docs]


class FakeCollection:
    def __init__(self):
        self.docs: List[dict] = []
        self.insert_calls = 0

    async def find_one(self, query: dict, projection: Optional[dict] = None):
        for doc in self.docs:
            if matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, doc: dict):
        self.insert_calls += 1
        self.docs.append(copy.deepcopy(doc))

    def find(self, query: dict):
        return FakeCursor([d for d in self.docs if matches(d, query)])

    async def create_index(self, *args, **kwargs):
        return None


class FakeDatabase:
    def __init__(self):
        self._collections: Dict[str, FakeCollection] = {}

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self._collections.setdefault(name, FakeCollection())


@pytest.fixture
def fake_db():
    db = FakeDatabase()
    with patch("tripchat.services.message_service.get_db", return_value=db), \
         patch("tripchat.services.membership_service.get_db", return_value=db), \
         patch("tripchat.services.user_service.get_db", return_value=db):
        yield db


def add_trip(db: FakeDatabase, trip_id: str, owner_id: str, member_ids=(), is_deleted=False):
    db.trips.docs.append({
        "trip_id": trip_id,
        "owner_id": owner_id,
        "member_ids": list(member_ids),
        "is_deleted": is_deleted,
    })


def add_user(db: FakeDatabase, user_id: str, name: str, email: Optional[str] = None):
    db.users.docs.append({"user_id": user_id, "name": name, "email": email})


# =============================================================================
# Fake Socket.IO server
# =============================================================================


class RecordingServer:
    """Stands in for socketio.AsyncServer: records handlers and emits."""

    def __init__(self):
        self.handlers: Dict[str, Any] = {}
        self.emitted: List[tuple] = []
        self.failing_sids = set()

    def on(self, event: str, handler=None):
        self.handlers[event] = handler

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None, **kwargs):
        if to in self.failing_sids:
            raise ConnectionError(f"socket {to} is gone")
        self.emitted.append((event, data, to))

    def events_for(self, sid: str, event: Optional[str] = None) -> List[Any]:
        return [
            data for (name, data, to) in self.emitted
            if to == sid and (event is None or name == event)
        ]

    def events_named(self, event: str) -> List[tuple]:
        return [(data, to) for (name, data, to) in self.emitted if name == event]


@pytest.fixture
def sio():
    return RecordingServer()


# =============================================================================
# Tokens
# =============================================================================


def make_token(user_id: str, expires_in: timedelta = timedelta(hours=1), claim: str = "id") -> str:
    return jwt.encode(
        {claim: user_id, "exp": utc_now() + expires_in},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
