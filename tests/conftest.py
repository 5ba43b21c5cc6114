"""Shared pytest fixtures.

Every test gets its own in-memory SQLite database, a fresh change feed and
services built on top of it. The messaging client is an AsyncMock so no
request leaves the process.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPENAI_API_KEY", "")

from collections.abc import Generator
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from support_console import main
from support_console.auth import AuthService
from support_console.booking import BookingService
from support_console.dashboard import DashboardService
from support_console.database import Base
from support_console.discussions import DiscussionBoard
from support_console.events import ChangeFeed
from support_console.messaging import WhatsAppClient
from support_console.quotes import QuoteService
from support_console.responder import AutomatedResponder, InboundHandler
from support_console.store import RowStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def store(engine, feed) -> RowStore:
    return RowStore(sessionmaker(autocommit=False, autoflush=False, bind=engine), feed)


@pytest.fixture
def messenger() -> AsyncMock:
    return AsyncMock(spec=WhatsAppClient)


@pytest.fixture
def board(store, messenger) -> DiscussionBoard:
    return DiscussionBoard(store, messenger)


@pytest.fixture
def bookings(store) -> BookingService:
    return BookingService(store)


@pytest.fixture
def quotes(store) -> QuoteService:
    return QuoteService(store)


@pytest.fixture
def auth(store) -> AuthService:
    return AuthService(store, secret="test-secret", ttl_hours=1)


@pytest.fixture
def dashboard(store) -> DashboardService:
    return DashboardService(store)


@pytest.fixture
def responder() -> AutomatedResponder:
    return AutomatedResponder(api_key="")


@pytest.fixture
def inbound(store, messenger, responder) -> InboundHandler:
    return InboundHandler(store, messenger, responder)


@pytest.fixture
def add_message(store):
    """Insert a discussion row ``minutes`` after a fixed base time."""
    base = datetime(2024, 5, 1, 9, 0)

    def _add(session_id, type="human", minutes=0, read=False, assigned=False,
             message="Bonjour", client_name=None):
        return store.insert("discussions", {
            "session_id": session_id,
            "type": type,
            "message": message,
            "created_at": base + timedelta(minutes=minutes),
            "client_name": client_name or f"Client {session_id}",
            "read": read,
            "assigned_to_agent": assigned,
        })

    return _add


@pytest.fixture
def admin(auth):
    return auth.create_admin("admin@garage.test", "secret-pass", "Admin")


@pytest.fixture
def client(board, bookings, quotes, auth, dashboard, inbound, admin) -> Generator[TestClient, None, None]:
    """TestClient wired to the per-test services and signed in as admin."""
    main.app.dependency_overrides[main.get_board] = lambda: board
    main.app.dependency_overrides[main.get_bookings] = lambda: bookings
    main.app.dependency_overrides[main.get_quotes] = lambda: quotes
    main.app.dependency_overrides[main.get_auth] = lambda: auth
    main.app.dependency_overrides[main.get_dashboard] = lambda: dashboard
    main.app.dependency_overrides[main.get_inbound] = lambda: inbound

    token, _ = auth.sign_in("admin@garage.test", "secret-pass")
    test_client = TestClient(main.app)
    test_client.headers["Authorization"] = f"Bearer {token}"
    yield test_client
    main.app.dependency_overrides.clear()
