"""Async database engine, session factory and PostgreSQL flower repository."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.sql import func

from flora.constants import DB_SCHEMA
from flora.infra.errors import FlowerNotFoundError, PersistenceError
from flora.memory.records import Base, FlowerRecord

if TYPE_CHECKING:
    from flora.config.settings import DatabaseSettings

logger = structlog.get_logger()


async def create_db_engine(settings: DatabaseSettings) -> AsyncEngine:
    """Create an async SQLAlchemy engine from DatabaseSettings."""
    url = (
        f"postgresql+asyncpg://{settings.user}:{settings.password}"
        f"@{settings.host}:{settings.port}/{settings.name}"
    )
    engine = create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        connect_args={"server_settings": {"search_path": f"{settings.schema_}, public"}},
    )
    logger.info("db_engine_created", host=settings.host, database=settings.name)
    return engine


async def ensure_schema(engine: AsyncEngine, schema: str = DB_SCHEMA) -> None:
    """Ensure the target schema exists, then create all tables."""
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db_schema_ensured", schema=schema)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create an async session factory bound to the engine."""
    return async_sessionmaker(engine, expire_on_commit=False)


class SqlFlowerRepository:
    """Flower documents in ``flora.flowers``; save is a single upsert."""

    def __init__(self, db_session_factory: async_sessionmaker) -> None:
        self._db = db_session_factory

    async def write(self, flower_id: str, document: dict[str, Any]) -> None:
        try:
            async with self._db() as db_session:
                stmt = (
                    pg_insert(FlowerRecord)
                    .values(id=flower_id, document=document)
                    .on_conflict_do_update(
                        index_elements=["id"],
                        set_={"document": document, "updated_at": func.now()},
                    )
                )
                await db_session.execute(stmt)
                await db_session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save flower {flower_id}: {e}") from e

    async def read(self, flower_id: str) -> dict[str, Any] | None:
        try:
            async with self._db() as db_session:
                result = await db_session.execute(
                    select(FlowerRecord.document).where(FlowerRecord.id == flower_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load flower {flower_id}: {e}") from e

    async def remove(self, flower_id: str) -> None:
        try:
            async with self._db() as db_session:
                result = await db_session.execute(
                    delete(FlowerRecord)
                    .where(FlowerRecord.id == flower_id)
                    .returning(FlowerRecord.id)
                )
                deleted = result.scalar_one_or_none()
                await db_session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete flower {flower_id}: {e}") from e
        if deleted is None:
            raise FlowerNotFoundError(flower_id)
