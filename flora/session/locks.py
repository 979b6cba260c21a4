"""Write serialization for the tend pipeline.

The pipeline reads then writes flower state across four components without
a transaction, so concurrent tends must be serialized. Two strategies:

- ``session``: one writer per session id. Sessions of the same flower run
  concurrently and the durable record is last-write-wins.
- ``flower``: one writer per flower id across all of its sessions.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

logger = structlog.get_logger()


class KeyedLocks:
    """Lazily created asyncio locks, one per key."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            logger.debug("tend_waiting_for_lock", key=key)
        async with lock:
            yield

    def discard(self, key: str) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
