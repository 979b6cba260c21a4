"""Integration tests for SqlFlowerRepository against a real PostgreSQL database.

Covers: upsert overwrite, lossless document round trip, delete semantics,
and a full seed → bloom → tend → wilt cycle on PostgreSQL storage.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import text

from flora.agent.context_encoder import ContextEncoder
from flora.agent.evolution import EvolutionEngine
from flora.agent.model_client import StaticBackend
from flora.agent.prompt_router import PromptRouter
from flora.agent.provider_registry import CompletionRegistry
from flora.constants import DB_SCHEMA
from flora.flower.models import Flower, FlowerMetadata, Genome, Interaction
from flora.infra.errors import FlowerNotFoundError
from flora.memory.database import SqlFlowerRepository
from flora.memory.store import MemoryStore
from flora.session.engine import SessionEngine

pytestmark = pytest.mark.integration

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def sql_store(db_session_factory, clean_flowers) -> MemoryStore:
    return MemoryStore(SqlFlowerRepository(db_session_factory))


def _flower() -> Flower:
    return Flower(
        id="rose_00beef",
        metadata=FlowerMetadata(created=T0),
        genome=Genome(traits=["gentle"]),
    )


class TestSqlFlowerRepository:
    async def test_save_and_load(self, sql_store: MemoryStore) -> None:
        flower = _flower()
        await sql_store.save(flower)

        loaded = await sql_store.load(flower.id)
        assert loaded is not None
        assert loaded.to_document() == flower.to_document()

    async def test_save_overwrites_single_row(
        self, sql_store: MemoryStore, db_session_factory
    ) -> None:
        flower = _flower()
        await sql_store.save(flower)
        await sql_store.record_interaction(
            flower, Interaction(input="remember the rain", response="I will.", timestamp=T0)
        )

        loaded = await sql_store.load(flower.id)
        assert len(loaded.memory.short_term) == 1

        async with db_session_factory() as db_session:
            count = await db_session.execute(
                text(f"SELECT count(*) FROM {DB_SCHEMA}.flowers WHERE id = :id"),
                {"id": flower.id},
            )
            assert count.scalar_one() == 1

    async def test_load_missing(self, sql_store: MemoryStore) -> None:
        assert await sql_store.load("ghost_000000") is None

    async def test_delete(self, sql_store: MemoryStore) -> None:
        flower = _flower()
        await sql_store.save(flower)
        await sql_store.delete(flower.id)
        assert await sql_store.load(flower.id) is None

        with pytest.raises(FlowerNotFoundError):
            await sql_store.delete(flower.id)


class TestLifecycleOnPostgres:
    async def test_seed_bloom_tend_wilt(self, sql_store: MemoryStore) -> None:
        registry = CompletionRegistry()
        registry.register("gpt-4", StaticBackend("The soil is warm."))
        engine = SessionEngine(
            sql_store, ContextEncoder(), EvolutionEngine(), PromptRouter(registry)
        )

        flower = await engine.seed({"type": "rose", "traits": ["gentle"]})
        session = await engine.bloom(flower.id)
        await engine.tend(session.session_id, "hello")

        stored = await sql_store.load(flower.id)
        assert stored.metadata.bloom_count == 1
        assert len(stored.memory.short_term) == 1
        assert len(stored.metadata.evolution_history) == 1

        await engine.wilt(flower.id)
        assert await sql_store.load(flower.id) is None
