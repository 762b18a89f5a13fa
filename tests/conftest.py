"""Pytest configuration and shared fixtures.

This module provides fixtures for testing borrowkit, including an in-memory
record store wired to an in-process realtime hub, seeded marketplace data,
fake HTTP responses, and a loguru capture sink.
"""

import base64
import json
from concurrent.futures import Executor, Future
from typing import Any, Generator, Optional
from unittest.mock import MagicMock

import pytest

from borrowkit.api.auth import CredentialStore
from borrowkit.config import reset_config
from borrowkit.db.sqlite import Database, SqliteRecordStore
from borrowkit.lending.tasks import BestEffortRunner
from borrowkit.logger import logger
from borrowkit.realtime.channel import LocalRealtimeHub


@pytest.fixture(autouse=True)
def fresh_config() -> Generator[None, None, None]:
    """Make every test read configuration from its own environment."""
    reset_config()
    yield
    reset_config()


# ============================================================================
# Record Store Fixtures
# ============================================================================


@pytest.fixture
def db() -> Database:
    """Create an in-memory database with all tables."""
    database = Database(":memory:")
    database.create_tables()
    return database


@pytest.fixture
def hub() -> LocalRealtimeHub:
    """In-process realtime channel."""
    return LocalRealtimeHub()


@pytest.fixture
def store(db: Database, hub: LocalRealtimeHub) -> SqliteRecordStore:
    """Record store that publishes its writes to ``hub``."""
    return SqliteRecordStore(db, hub)


@pytest.fixture
def seed(store: SqliteRecordStore) -> dict[str, dict]:
    """One library with one available item, one borrower and a pending request."""
    library = store.create(
        "libraries", {"owner_id": "owner-1", "name": "Ann's Garage", "slug": "anns-garage"}
    )
    item = store.create("items", {"library_id": library["id"], "name": "Cordless Drill"})
    borrower = store.create("borrowers", {"phone": "+15559876543", "name": "Bo"})
    request = store.create(
        "borrow_requests",
        {
            "item_id": item["id"],
            "borrower_id": borrower["id"],
            "message": "Can I borrow this?",
        },
    )
    return {"library": library, "item": item, "borrower": borrower, "request": request}


# ============================================================================
# Credentials
# ============================================================================


def make_jwt(claims: dict[str, Any]) -> str:
    """Build an unsigned JWT carrying ``claims``."""

    def encode(part: dict) -> str:
        raw = base64.urlsafe_b64encode(json.dumps(part).encode()).decode()
        return raw.rstrip("=")

    return f"{encode({'alg': 'none', 'typ': 'JWT'})}.{encode(claims)}.signature"


@pytest.fixture
def credentials(tmp_path) -> CredentialStore:
    """Credential store persisting to a temp directory, signed in as owner-1."""
    creds = CredentialStore(tmp_path / "tokens.json")
    creds.set_tokens(make_jwt({"sub": "owner-1"}), "refresh-1")
    return creds


# ============================================================================
# Background Tasks
# ============================================================================


class ImmediateExecutor(Executor):
    """Executor that runs each task synchronously on submit."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def runner() -> BestEffortRunner:
    """Best-effort runner whose tasks finish before ``spawn`` returns."""
    return BestEffortRunner(ImmediateExecutor())


# ============================================================================
# Logging
# ============================================================================


@pytest.fixture
def log_records() -> Generator[list[dict], None, None]:
    """Collect loguru records emitted during the test."""
    records: list[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


def messages_at(records: list[dict], level: str) -> list[str]:
    return [r["message"] for r in records if r["level"].name == level]


# ============================================================================
# HTTP
# ============================================================================

_NO_JSON = object()


def make_response(
    status: int = 200,
    json_body: Any = _NO_JSON,
    text: Optional[str] = None,
    content_type: Optional[str] = "application/json",
) -> MagicMock:
    """Fake ``requests.Response``."""
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.headers = {"content-type": content_type} if content_type else {}
    if json_body is not _NO_JSON:
        raw = json.dumps(json_body)
        response.json.return_value = json_body
    else:
        raw = text or ""
        response.json.side_effect = ValueError("No JSON object could be decoded")
    response.text = raw
    response.content = raw.encode()
    return response
