"""Shared pytest fixtures for the Autoflow test suite.

Provides:
- Async SQLite database per test (no PostgreSQL needed for tests)
- AsyncSession factory
- Fakes for the outgoing world: HTTP mock transport, SMTP relay
- FastAPI test client (httpx.AsyncClient) with the app lifespan running
- Workflow definition builders
"""

import os
from typing import AsyncGenerator
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from app.config import Settings  # noqa: E402
from db.base import Base  # noqa: E402
from db.database import create_db_engine, create_session_factory  # noqa: E402


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeRelay:
    """SMTP relay stand-in that records messages instead of sending them."""

    def __init__(self, refused=None, error=None):
        self.sent = []
        self.refused = refused or {}
        self.error = error

    def send(self, message, recipients):
        if self.error:
            raise self.error
        self.sent.append((message, list(recipients)))
        return {addr: (550, b"rejected") for addr in recipients if addr in self.refused}


def json_handler(payload=None, status_code=200):
    """httpx.MockTransport handler answering every request with ``payload``."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=payload if payload is not None else {})

    handler.requests = requests
    return handler


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ENVIRONMENT="testing",
        SCHEDULER_ENABLED=False,
        SMTP_FROM="autoflow@example.com",
        BACKEND_URL="http://hooks.test",
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so background tasks get their own connections."""
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'autoflow-test.db'}")
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def remote_api():
    """Handler behind every http_request step issued through the app."""
    return json_handler({"email": "lead@example.com", "items": [1, 2, 3]})


@pytest_asyncio.fixture
async def app(settings, session_factory, relay, remote_api):
    """FastAPI app wired to the test database with its lifespan running."""
    from app.main import create_app

    test_app = create_app(
        settings=settings,
        session_factory=session_factory,
        http_transport=httpx.MockTransport(remote_api),
        mail_relay=relay,
    )
    async with test_app.router.lifespan_context(test_app):
        yield test_app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data
# ---------------------------------------------------------------------------

def make_definition(trigger=None, steps=None, name="Test Workflow") -> dict:
    return {
        "name": name,
        "trigger": trigger or {"type": "manual"},
        "steps": steps or [],
    }


@pytest_asyncio.fixture
async def scheduled_workflow(session_factory):
    """An active workflow firing every five minutes."""
    from services.workflow_service import WorkflowService

    async with session_factory() as session:
        svc = WorkflowService(session)
        wf = await svc.create_workflow(
            name="Every five minutes",
            definition=make_definition(
                trigger={"type": "schedule", "cron": "*/5 * * * *"},
                steps=[{"id": "s1", "type": "transform_data", "config": {
                    "operation": "reduce", "expression": "count", "input": [1, 2],
                }}],
            ),
            user_id=f"user-{uuid4().hex[:6]}",
        )
        wf = await svc.deploy(wf.id)
        await session.commit()
        return wf


@pytest.fixture(name="fake_relay")
def fake_relay_fixture():
    """The FakeRelay class, for tests that build their own relay."""
    return FakeRelay


@pytest.fixture(name="json_handler")
def json_handler_fixture():
    """The json_handler factory for httpx.MockTransport."""
    return json_handler


@pytest.fixture(name="make_definition")
def make_definition_fixture():
    return make_definition
