"""
tests/conftest.py -- Shared test fixtures for MemberAuth.

This module provides:
  - RecordingSink: notification sink that records messages and can be told
    to reject or fail specific addresses
  - services: the real service graph (init_services) around an in-memory
    store, a RecordingSink and a temp-dir blob store, for service-level tests
  - client: TestClient over the real FastAPI app with a patched lifespan
    wiring the same fakes, one fresh database per test
  - make_account(): create an account with a password and chosen flags

Design: the app fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync dependencies in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment variables must be set before any api/auth/core import so
get_settings() auto-generates SECRET_KEY and the rate limits read at import
time are loose enough for a test session.
"""

from __future__ import annotations

import asyncio
import os
import re
import tempfile
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace

# CRITICAL: set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SIGNIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("RECOVERY_RATE_LIMIT", "1000/minute")
os.environ.setdefault("BLOB_ROOT", tempfile.mkdtemp(prefix="memberauth-blobs-"))

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_services
from auth.errors import NotificationError
from auth.models import Account
from auth.store import AccountStore
from blobs.store import LocalBlobStore
from core.config import get_settings

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingSink:
    """NotificationSink fake.

    reject: addresses the "server" refuses (send returns False)
    fail:   addresses whose delivery raises NotificationError
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.reject: set[str] = set()
        self.fail: set[str] = set()

    async def send(self, to: str, subject: str, body: str) -> bool:
        if to in self.fail:
            raise NotificationError()
        if to in self.reject:
            return False
        self.sent.append((to, subject, body))
        return True

    def to(self, address: str) -> list[tuple[str, str]]:
        return [(subject, body) for to, subject, body in self.sent if to == address]


_LINK_RE = re.compile(r"https?://\S+/api/v1/auth/email-verify/\d+/[0-9a-f]+")
_TEMP_RE = re.compile(r"Temporary password: (\S+)")


def verification_path(body: str) -> str:
    """Extract the path of the email verification link from a mail body."""
    match = _LINK_RE.search(body)
    assert match, f"no verification link in: {body!r}"
    return "/api/v1" + match.group(0).split("/api/v1", 1)[1]


def temporary_password(body: str) -> str:
    match = _TEMP_RE.search(body)
    assert match, f"no temporary password in: {body!r}"
    return match.group(1)


# ---------------------------------------------------------------------------
# Service graph
# ---------------------------------------------------------------------------


def _build_state(store: AccountStore, tmp_path: Path) -> SimpleNamespace:
    """Run init_services against a bare namespace standing in for the app."""
    holder = SimpleNamespace(state=SimpleNamespace())
    sink = RecordingSink()
    blobs = LocalBlobStore(tmp_path / "blobs", "https://files.test/uploads")
    init_services(holder, store, sink, blobs, get_settings())
    return holder.state


def make_account(
    state: SimpleNamespace,
    email: str,
    password: str | None = "correct-horse",
    *,
    name: str = "Kim Minji",
    role: str = "Member",
    email_verified: bool = True,
    verified: bool = True,
    year_of_birth: int = 2001,
) -> int:
    """Create an account directly through the store; password=None leaves it legacy."""
    role_id = state.roles.resolve(role).id
    account_id = state.store.create_account(
        Account(
            name=name,
            email=email,
            role_id=role_id,
            email_verified=email_verified,
            verified=verified,
            year_of_birth=year_of_birth,
            gender="F",
            major="Computer Science",
            enrolled_year=2020,
            kakao_talk_id=f"kt-{email.split('@')[0]}",
        )
    )
    if password is not None:
        asyncio.run(state.authenticator.set_password(account_id, password))
    return account_id


@pytest.fixture
def services(tmp_path: Path) -> Generator[SimpleNamespace, None, None]:
    """Real services around an in-memory store, RecordingSink and temp-dir blobs."""
    store = AccountStore("sqlite:///:memory:")
    state = _build_state(store, tmp_path)
    yield state
    store.close()


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------


def _patch_lifespan(state: SimpleNamespace):
    """Return a lifespan that copies the prepared service graph onto app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        for key, value in vars(state).items():
            setattr(app.state, key, value)
        yield

    return test_lifespan


@pytest.fixture
def client(tmp_path: Path) -> Generator[tuple[TestClient, SimpleNamespace], None, None]:
    """Yield (client, state) with a fresh shared-memory database per test.

    state is the same object graph the routes see, so tests can seed
    accounts with make_account() and inspect state.store / state.sink.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = AccountStore(db_url=db_url)
    state = _build_state(store, tmp_path)

    app.router.lifespan_context = _patch_lifespan(state)

    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client, state

    store.close()


def sign_in(client: TestClient, email: str, password: str):
    return client.post("/api/v1/auth/signin", json={"email": email, "password": password})
