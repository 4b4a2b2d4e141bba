"""Pytest configuration and fixtures for Cadence Core tests.

This module provides fixtures for:
- Database: SQLite in-memory with the full schema
- HTTP client: AsyncClient for FastAPI testing
- Fakes: token exchanger, completion client and platform adapter overrides
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from cadence_core.config import Settings
from cadence_core.domain.models import Base
from cadence_core.infrastructure.crypto import TokenCipher


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        base_url="http://test",
        encryption_key=TokenCipher.generate_key(),
        session_expire_hours=1,
        x_client_id="test-client-id",
        token_exchange_url="http://exchange.test/exchange",
        inference_url="http://inference.test/v1",
        inference_api_key="test-inference-key",
        pipeline_timeout_seconds=5,
        log_json=False,
    )


@pytest.fixture
def cipher(test_settings: Settings) -> TokenCipher:
    return TokenCipher(test_settings.encryption_key)


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite only autoincrements INTEGER PRIMARY KEY columns
    from sqlalchemy.dialects import sqlite
    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    Base.metadata.create_all(bind=engine)

    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Fakes for outbound services
# -----------------------------------------------------------------------------


@pytest.fixture
def fake_exchanger() -> AsyncMock:
    """Token exchanger whose ``exchange`` result each test configures."""
    exchanger = AsyncMock()
    exchanger.exchange = AsyncMock()
    return exchanger


@pytest.fixture
def fake_inference() -> AsyncMock:
    """Completion client whose ``prompt`` answers each test configures."""
    client = AsyncMock()
    client.prompt = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def failing_adapter_factory():
    """Adapter factory whose adapters fail every call (forces fallback)."""
    from tests.factories import FailingAdapter

    return lambda tokens: FailingAdapter()


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(
    test_settings,
    sync_session_factory,
    fake_exchanger,
    fake_inference,
    failing_adapter_factory,
) -> Generator[FastAPI, None, None]:
    """FastAPI app wired to the test database and fake outbound services."""
    from cadence_core.api.deps import (
        get_adapter_factory,
        get_db,
        get_inference_client,
        get_token_exchanger,
    )
    from cadence_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def override_get_inference_client():
        yield fake_inference

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_exchanger] = lambda: fake_exchanger
    app.dependency_overrides[get_inference_client] = override_get_inference_client
    app.dependency_overrides[get_adapter_factory] = lambda: failing_adapter_factory

    yield app

    app.dependency_overrides.clear()
    del app.state.settings


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the test app.

    The db_session fixture is included so the schema exists before the
    first request.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def identity(db_session):
    """A linked identity."""
    from tests.factories import create_identity

    identity = create_identity(db_session)
    db_session.commit()
    return identity


@pytest.fixture
async def authenticated_client(
    test_app, db_session, cipher, test_settings, identity
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client carrying a valid session cookie for ``identity``."""
    from tests.factories import create_session

    session = create_session(db_session, cipher, identity)
    db_session.commit()

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        ac.cookies.set(test_settings.session_cookie_name, session.id)
        yield ac


# -----------------------------------------------------------------------------
# Cleanup Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    from cadence_core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
