"""Pytest configuration and fixtures for mystery tests.

Test isolation strategy:
- Every test gets a fresh in-memory SQLite database (StaticPool, one shared
  connection) with the ORM schema created from Base.metadata
- The global session factory points at that database, so routes, watch
  sessions and task helpers all see the same data
- The status change channel is an InMemoryStatusNotifier per test
- The generation service is a FakeGenerationClient per test
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

# Settings are read at import time by the Celery app; configure first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MYSTERY_ENV"] = "test"
for _name in ("REDIS_URL", "RESEND_API_KEY", "SUPABASE_URL", "SUPABASE_SERVICE_KEY"):
    os.environ.pop(_name, None)

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mystery.app import add_request_id_middleware, create_app
from mystery.config import clear_settings_cache
from mystery.db.models import Base
from mystery.db.session import create_session_factory, set_session_factory
from mystery.services.generation_client import FakeGenerationClient
from mystery.services.notifier import InMemoryStatusNotifier, set_status_notifier


@pytest.fixture(autouse=True)
def settings_cache() -> Generator[None, None, None]:
    """Reload settings from the environment for every test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> Generator[sessionmaker[Session], None, None]:
    """Session factory installed as the global default."""
    factory = create_session_factory(engine)
    set_session_factory(factory)
    yield factory
    set_session_factory(None)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Session for arranging and asserting test data.

    Services commit through their own transaction() blocks; call
    db_session.expire_all() before asserting on rows another session wrote.
    """
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier() -> Generator[InMemoryStatusNotifier, None, None]:
    """In-memory change channel installed as the global default."""
    channel = InMemoryStatusNotifier()
    set_status_notifier(channel)
    yield channel
    set_status_notifier(None)


@pytest.fixture
def generation_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def app(
    session_factory: sessionmaker[Session],
    notifier: InMemoryStatusNotifier,
    generation_client: FakeGenerationClient,
) -> FastAPI:
    """App wired to the test database, channel and fake generator."""
    app = create_app(generation_client=generation_client, notifier=notifier)
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """FastAPI test client (runs the app lifespan)."""
    with TestClient(app) as client:
        yield client
