"""Shared pytest fixtures for Flora tests.

Unit tests run the full pipeline against in-memory or flowerbed-directory
storage with a fixed clock and a deterministic completion backend.

Integration tests get PostgreSQL via two modes:
1. TEST_DATABASE_* env vars present → connect to external PG (CI scenario)
2. Otherwise → testcontainers auto-starts a temporary PG container (local dev)

Safety: refuses to run against any database whose name doesn't contain '_test'.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from flora.agent.context_encoder import ContextEncoder
from flora.agent.evolution import EvolutionEngine
from flora.agent.model_client import StaticBackend
from flora.agent.prompt_router import PromptRouter
from flora.agent.provider_registry import CompletionRegistry
from flora.config.settings import SessionSettings
from flora.constants import DB_SCHEMA
from flora.memory.records import Base
from flora.memory.repository import InMemoryFlowerRepository
from flora.memory.store import MemoryStore
from flora.session.engine import SessionEngine

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TickingClock:
    """Returns T0, T0+1s, T0+2s, ... on successive calls."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)) -> None:
        self._counter = itertools.count()
        self._start = start
        self._step = step

    def __call__(self) -> datetime:
        return self._start + self._step * next(self._counter)


def make_suffixes() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{next(counter):06x}"


@pytest.fixture()
def backend() -> StaticBackend:
    return StaticBackend("I hear you. The garden is quiet today.")


@pytest.fixture()
def registry(backend: StaticBackend) -> CompletionRegistry:
    registry = CompletionRegistry()
    registry.register("gpt-4", backend, name="static")
    return registry


@pytest.fixture()
def repository() -> InMemoryFlowerRepository:
    return InMemoryFlowerRepository()


@pytest.fixture()
def memory_store(repository: InMemoryFlowerRepository) -> MemoryStore:
    return MemoryStore(repository)


@pytest.fixture()
def engine_factory(
    memory_store: MemoryStore, registry: CompletionRegistry
) -> Callable[..., SessionEngine]:
    """Build a fresh SessionEngine; keyword overrides go to SessionSettings."""

    def _build(**session_overrides) -> SessionEngine:
        return SessionEngine(
            memory_store,
            ContextEncoder(),
            EvolutionEngine(),
            PromptRouter(registry),
            settings=SessionSettings(**session_overrides),
            clock=TickingClock(),
            suffix_factory=make_suffixes(),
        )

    return _build


@pytest.fixture()
def engine(engine_factory) -> SessionEngine:
    return engine_factory()


# ── PostgreSQL (integration) ──


def _validate_test_db_name(name: str) -> None:
    """Safety: refuse to truncate a database whose name doesn't contain '_test'."""
    if "_test" not in name.lower():
        raise RuntimeError(
            f"Refusing to run tests against database '{name}': "
            "name must contain '_test' to prevent accidental data loss. "
            "Set TEST_DATABASE_NAME to a test-specific database."
        )


def _build_pg_url_from_env() -> str | None:
    """Build async PG URL from TEST_DATABASE_* env vars, or return None."""
    host = os.getenv("TEST_DATABASE_HOST")
    if host is None:
        return None
    port = os.getenv("TEST_DATABASE_PORT", "5432")
    user = os.getenv("TEST_DATABASE_USER", "postgres")
    password = os.getenv("TEST_DATABASE_PASSWORD", "")
    name = os.getenv("TEST_DATABASE_NAME", "flora_test")
    _validate_test_db_name(name)
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@pytest.fixture(scope="session")
def _pg_container():
    """Manage testcontainers PostgreSQL lifecycle.

    Yields (url, container) where container is None if using external PG.
    """
    url = _build_pg_url_from_env()
    if url is not None:
        yield url, None
        return

    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:16", dbname="flora_test")
    container.start()

    host = container.get_container_host_ip()
    port = container.get_exposed_port(5432)
    _validate_test_db_name(container.dbname)
    url = (
        f"postgresql+asyncpg://{container.username}:{container.password}"
        f"@{host}:{port}/{container.dbname}"
    )

    yield url, container

    container.stop()


@pytest.fixture(scope="session")
def pg_url(_pg_container) -> str:
    url, _ = _pg_container
    return url


@pytest_asyncio.fixture(scope="session")
async def db_engine(pg_url: str):
    """Create async engine, set up schema + tables. Tear down after session."""
    engine = create_async_engine(pg_url, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.execute(text(f"DROP SCHEMA IF EXISTS {DB_SCHEMA} CASCADE"))

    await engine.dispose()


@pytest_asyncio.fixture(scope="session")
async def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def clean_flowers(db_session_factory):
    """Truncate the flowers table after the test."""
    yield
    async with db_session_factory() as db_session:
        await db_session.execute(text(f"TRUNCATE {DB_SCHEMA}.flowers"))
        await db_session.commit()
