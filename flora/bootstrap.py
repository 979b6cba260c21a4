"""Wire a SessionEngine from Settings.

Backends are registered only when their api key is set; storage is the
flowerbed directory or PostgreSQL depending on ``STORAGE_BACKEND``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from flora.agent.context_encoder import ContextEncoder
from flora.agent.evolution import EvolutionEngine
from flora.agent.model_client import OpenAICompatBackend
from flora.agent.prompt_router import PromptRouter
from flora.agent.provider_registry import CompletionRegistry
from flora.config.settings import Settings
from flora.memory.repository import FileFlowerRepository, FlowerRepository
from flora.memory.store import MemoryStore
from flora.session.engine import SessionEngine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger()


def build_registry(settings: Settings) -> CompletionRegistry:
    registry = CompletionRegistry()
    if settings.openai.api_key:
        registry.register(
            settings.openai.model,
            OpenAICompatBackend(
                api_key=settings.openai.api_key,
                model=settings.openai.upstream_model,
                base_url=settings.openai.base_url,
            ),
            name="openai",
        )
    if settings.anthropic.api_key:
        registry.register(
            settings.anthropic.model,
            OpenAICompatBackend(
                api_key=settings.anthropic.api_key,
                model=settings.anthropic.upstream_model,
                base_url=settings.anthropic.base_url,
            ),
            name="anthropic",
        )
    if not registry.available_models():
        logger.warning("no_completion_backends", msg="tend will fail with PROVIDER_NOT_FOUND")
    return registry


async def build_repository(
    settings: Settings, *, db_engine: AsyncEngine | None = None
) -> FlowerRepository:
    """Open the configured storage.

    For PostgreSQL the caller owns ``db_engine`` and disposes it on shutdown;
    when omitted, one is created from ``settings.database``.
    """
    if settings.storage.backend == "postgres":
        from flora.memory.database import (
            SqlFlowerRepository,
            create_db_engine,
            ensure_schema,
            make_session_factory,
        )

        engine = db_engine
        if engine is None:
            engine = await create_db_engine(settings.database)
        await ensure_schema(engine)
        return SqlFlowerRepository(make_session_factory(engine))
    return FileFlowerRepository(settings.storage.path)


async def build_engine(
    settings: Settings,
    *,
    registry: CompletionRegistry | None = None,
    repository: FlowerRepository | None = None,
) -> SessionEngine:
    """Assemble the four core components behind one SessionEngine."""
    store = MemoryStore(repository or await build_repository(settings), settings.memory)
    return SessionEngine(
        store,
        ContextEncoder(fragment_count=settings.memory.context_fragments),
        EvolutionEngine(),
        PromptRouter(registry or build_registry(settings)),
        settings=settings.session,
        evolution_settings=settings.evolution,
    )
