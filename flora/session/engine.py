"""SessionEngine: flower lifecycle orchestration (seed → bloom → tend → wilt).

The engine is the only component holding in-memory session state. Each
session owns its own Flower instance for its lifetime.

Concurrency:
- tend() is serialized per session id (default) or per flower id
  (``SessionSettings.serialization = "flower"``).
- With per-session serialization, two sessions of one flower may interleave
  saves; the durable record is last-write-wins.
- With per-flower serialization every write reloads the durable record and
  applies only this session's changes on top of it, so sessions never
  overwrite each other's interactions.
- wilt() does not wait for in-flight tends. A tend that already passed its
  session check may still persist after the record was deleted, which
  resurrects the record. A close_session waiting behind such a tend does not.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from flora.agent.evolution import EvolutionContext
from flora.config.settings import EvolutionSettings, SessionSettings
from flora.flower.models import (
    EvolutionRecord,
    Flower,
    FlowerConfig,
    FlowerMetadata,
    FlowerState,
    Genome,
    Interaction,
    Memory,
    MemoryFragment,
)
from flora.infra.errors import (
    FlowerNotFoundError,
    InvalidConfigError,
    SessionNotFoundError,
)
from flora.memory.store import calculate_importance
from flora.session.locks import KeyedLocks
from flora.session.tracker import SessionTracker

if TYPE_CHECKING:
    from flora.agent.context_encoder import ContextEncoder
    from flora.agent.evolution import EvolutionEngine
    from flora.agent.prompt_router import PromptRouter
    from flora.memory.store import MemoryStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _short_suffix() -> str:
    return uuid.uuid4().hex[:6]


def _apply_bloom_bump(flower: Flower, session: BloomSession) -> None:
    """Count one bloom on ``flower`` and move its activation time forward."""
    flower.metadata.bloom_count += 1
    activated = flower.metadata.last_activated_at
    if activated is None or activated < session.start_time:
        flower.metadata.last_activated_at = session.start_time


@dataclass
class BloomSession:
    session_id: str
    flower_id: str
    flower: Flower
    context: str
    start_time: datetime
    tracker: SessionTracker
    # True while the flower carries changes not yet written (the bloom bump).
    dirty: bool = False


@dataclass(frozen=True)
class TendResult:
    session_id: str
    response: str
    state: FlowerState
    evolution: EvolutionRecord | None = None


class SessionEngine:
    """Coordinates MemoryStore, ContextEncoder, EvolutionEngine and PromptRouter."""

    def __init__(
        self,
        memory_store: MemoryStore,
        context_encoder: ContextEncoder,
        evolution_engine: EvolutionEngine,
        prompt_router: PromptRouter,
        *,
        settings: SessionSettings | None = None,
        evolution_settings: EvolutionSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        suffix_factory: Callable[[], str] = _short_suffix,
    ) -> None:
        self._store = memory_store
        self._encoder = context_encoder
        self._evolution = evolution_engine
        self._router = prompt_router
        self._settings = settings or SessionSettings()
        self._evolution_settings = evolution_settings or EvolutionSettings()
        self._clock = clock
        self._suffix_factory = suffix_factory
        self._sessions: dict[str, BloomSession] = {}
        self._locks = KeyedLocks()

    # ── lifecycle ──

    async def seed(self, config: FlowerConfig | dict[str, Any]) -> Flower:
        """Create and persist a new dormant flower."""
        cfg = self._validate_config(config)
        now = self._clock()
        flower = Flower(
            id=f"{cfg.type}_{self._suffix_factory()}",
            metadata=FlowerMetadata(created=now),
            genome=Genome(
                base_model=cfg.base_model,
                temperature=cfg.temperature,
                system_prompt=cfg.system_prompt,
                traits=list(cfg.traits),
            ),
            memory=Memory(),
            state=FlowerState(),
        )
        if cfg.initial_memory:
            flower.memory.short_term.append(
                MemoryFragment(
                    content=cfg.initial_memory,
                    timestamp=now,
                    importance=calculate_importance(cfg.initial_memory, ""),
                )
            )

        await self._store.save(flower)
        logger.info(
            "flower_seeded",
            flower_id=flower.id,
            base_model=flower.genome.base_model,
            traits=flower.genome.traits,
        )
        return flower

    async def bloom(self, flower_id: str) -> BloomSession:
        """Open a new session against a persisted flower.

        The bloom counter bump is written with the next successful tend (or
        on close_session) unless ``persist_on_bloom`` is set.
        """
        flower = await self._store.load(flower_id)
        if flower is None:
            raise FlowerNotFoundError(flower_id)

        now = self._clock()
        context = self._encoder.encode(flower)
        flower.metadata.bloom_count += 1
        flower.metadata.last_activated_at = now

        session = BloomSession(
            session_id=str(uuid.uuid4()),
            flower_id=flower_id,
            flower=flower,
            context=context,
            start_time=now,
            tracker=SessionTracker(
                start_time=now,
                trajectory_window=self._evolution_settings.trajectory_window,
                topic_window=self._evolution_settings.topic_window,
            ),
            dirty=True,
        )
        if self._settings.persist_on_bloom:
            async with self._locks.hold(self._lock_key(session)):
                await self._write_bloom_bump(session)

        self._sessions[session.session_id] = session
        logger.info(
            "flower_bloomed",
            flower_id=flower_id,
            session_id=session.session_id,
            bloom_count=session.flower.metadata.bloom_count,
        )
        return session

    async def tend(self, session_id: str, user_input: str) -> TendResult:
        """One interaction: route → update state → evolve → record memory.

        Any failure aborts the remaining steps and leaves the session's
        flower exactly as it was before the call.
        """
        session = self._require_session(session_id)
        async with self._locks.hold(self._lock_key(session)):
            # The session may have been wilted while this call waited.
            session = self._require_session(session_id)
            flower = session.flower
            if self._settings.serialization == "flower":
                latest = await self._store.load(session.flower_id)
                if latest is not None:
                    if session.dirty:
                        _apply_bloom_bump(latest, session)
                    flower = latest

            completion = await self._router.route(flower, session.context, user_input)

            now = self._clock()
            interaction = Interaction(
                input=user_input, response=completion.content, timestamp=now
            )
            working = flower.snapshot()
            working.state = self._encoder.update_state(
                working.state, user_input, completion.content
            )
            evolution_context = session.tracker.preview(
                working.state.current_mood, user_input, now
            )
            evolved = self._evolution.evolve_flower(working, interaction, evolution_context)
            await self._store.record_interaction(evolved, interaction)

            session.flower = evolved
            session.dirty = False
            session.tracker.record(working.state.current_mood, user_input)

        logger.info(
            "flower_tended",
            flower_id=session.flower_id,
            session_id=session_id,
            mood=evolved.state.current_mood,
            energy=round(evolved.state.energy_level, 3),
            emergent_state=evolved.state.emergent_state,
        )
        return TendResult(
            session_id=session_id,
            response=completion.content,
            state=evolved.state.model_copy(),
            evolution=evolved.metadata.evolution_history[-1],
        )

    async def close_session(self, session_id: str) -> None:
        """Close one session, writing any unpersisted bloom bump first."""
        session = self._require_session(session_id)
        async with self._locks.hold(self._lock_key(session)):
            # wilt() may have dropped the session while this call waited.
            if self._sessions.get(session_id) is not session:
                raise SessionNotFoundError(session_id)
            if session.dirty:
                await self._write_bloom_bump(session)
            self._sessions.pop(session_id, None)
        self._locks.discard(session_id)
        logger.info("session_closed", flower_id=session.flower_id, session_id=session_id)

    async def wilt(self, flower_id: str) -> None:
        """Drop every session of the flower, then delete its durable record.

        Raises FlowerNotFoundError only if the record was already absent.
        """
        closed = [sid for sid, s in self._sessions.items() if s.flower_id == flower_id]
        for sid in closed:
            del self._sessions[sid]
            self._locks.discard(sid)
        self._locks.discard(flower_id)

        await self._store.delete(flower_id)
        logger.info("flower_wilted", flower_id=flower_id, sessions_closed=len(closed))

    def active_sessions(self, flower_id: str | None = None) -> list[BloomSession]:
        return [
            s for s in self._sessions.values() if flower_id is None or s.flower_id == flower_id
        ]

    def get_session(self, session_id: str) -> BloomSession:
        return self._require_session(session_id)

    # ── collaborator entry points (job queue) ──

    async def get_flower(self, flower_id: str) -> Flower:
        flower = await self._store.load(flower_id)
        if flower is None:
            raise FlowerNotFoundError(flower_id)
        return flower

    async def update_flower_memory(self, flower_id: str, memory: Memory) -> Flower:
        """Replace a flower's memory tiers (e.g. with a consolidation result).

        Open sessions of the flower pick up the new tiers so their next save
        does not write the old ones back.
        """
        async with self._flower_write_lock(flower_id):
            flower = await self.get_flower(flower_id)
            flower.memory = memory.model_copy(deep=True)
            await self._store.save(flower)

        for session in self.active_sessions(flower_id):
            async with self._locks.hold(self._lock_key(session)):
                session.flower.memory = memory.model_copy(deep=True)

        logger.info(
            "flower_memory_updated",
            flower_id=flower_id,
            short_term=len(memory.short_term),
            long_term=len(memory.long_term),
            episodic=len(memory.episodic),
        )
        return flower

    async def evolve_flower(self, flower: Flower | str, trigger: str) -> Flower:
        """Run the evolution rules out-of-band, with no session context.

        Open sessions of the flower take over the evolved state, genome and
        history; their memory tiers are left alone.
        """
        flower_id = flower if isinstance(flower, str) else flower.id
        async with self._flower_write_lock(flower_id):
            if isinstance(flower, str):
                flower = await self.get_flower(flower)
            interaction = Interaction(input=trigger, response="", timestamp=self._clock())
            evolved = self._evolution.evolve_flower(flower, interaction, EvolutionContext())
            await self._store.save(evolved)

        for session in self.active_sessions(flower_id):
            async with self._locks.hold(self._lock_key(session)):
                fresh = evolved.snapshot()
                session.flower.state = fresh.state
                session.flower.genome = fresh.genome
                session.flower.metadata.evolution_history = fresh.metadata.evolution_history

        logger.info(
            "flower_evolved",
            flower_id=flower_id,
            mood=evolved.state.current_mood,
            emergent_state=evolved.state.emergent_state,
        )
        return evolved

    # ── helpers ──

    async def _write_bloom_bump(self, session: BloomSession) -> None:
        """Persist the session's pending bloom bump. Caller holds the lock."""
        if self._settings.serialization == "flower":
            latest = await self._store.load(session.flower_id)
            if latest is None:
                raise FlowerNotFoundError(session.flower_id)
            _apply_bloom_bump(latest, session)
            await self._store.save(latest)
            session.flower = latest
        else:
            await self._store.save(session.flower)
        session.dirty = False

    def _flower_write_lock(self, flower_id: str) -> AbstractAsyncContextManager[None]:
        if self._settings.serialization == "flower":
            return self._locks.hold(flower_id)
        return nullcontext()

    def _require_session(self, session_id: str) -> BloomSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _lock_key(self, session: BloomSession) -> str:
        if self._settings.serialization == "flower":
            return session.flower_id
        return session.session_id

    @staticmethod
    def _validate_config(config: FlowerConfig | dict[str, Any]) -> FlowerConfig:
        if isinstance(config, FlowerConfig):
            return config
        try:
            return FlowerConfig.model_validate(config)
        except ValidationError as e:
            raise InvalidConfigError(f"Invalid flower config: {e}") from e
