"""Durable flower record repositories.

A repository stores one structured document per flower id. MemoryStore
owns the retention policy; repositories only move documents.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Protocol

import structlog
from pydantic import ValidationError

from flora.constants import FLOWER_FILE_SUFFIX
from flora.flower.models import Flower
from flora.infra.errors import FlowerNotFoundError, PersistenceError

logger = structlog.get_logger()


class FlowerRepository(Protocol):
    async def write(self, flower_id: str, document: dict[str, Any]) -> None: ...

    async def read(self, flower_id: str) -> dict[str, Any] | None: ...

    async def remove(self, flower_id: str) -> None:
        """Raises FlowerNotFoundError if no document exists."""
        ...


def decode_document(flower_id: str, document: dict[str, Any]) -> Flower:
    try:
        return Flower.from_document(document)
    except ValidationError as e:
        raise PersistenceError(f"Stored record for {flower_id} is malformed: {e}") from e


class FileFlowerRepository:
    """One pretty-printed JSON file per flower: ``{root}/{id}.flwr``.

    Writes go to a temp file first and are swapped in with os.replace,
    so a reader never observes a half-written document.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, flower_id: str) -> Path:
        if not flower_id or "/" in flower_id or "\\" in flower_id or flower_id in (".", ".."):
            raise PersistenceError(f"Invalid flower id for file storage: {flower_id!r}")
        return self._root / f"{flower_id}{FLOWER_FILE_SUFFIX}"

    async def write(self, flower_id: str, document: dict[str, Any]) -> None:
        path = self._path(flower_id)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    async def read(self, flower_id: str) -> dict[str, Any] | None:
        path = self._path(flower_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt flower record {path}: {e}") from e

    async def remove(self, flower_id: str) -> None:
        path = self._path(flower_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise FlowerNotFoundError(flower_id) from None
        except OSError as e:
            raise PersistenceError(f"Failed to delete {path}: {e}") from e


class InMemoryFlowerRepository:
    """Process-local repository. Documents are stored as JSON text so that
    callers never share mutable state with the store."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    async def write(self, flower_id: str, document: dict[str, Any]) -> None:
        self._documents[flower_id] = json.dumps(document)

    async def read(self, flower_id: str) -> dict[str, Any] | None:
        raw = self._documents.get(flower_id)
        return json.loads(raw) if raw is not None else None

    async def remove(self, flower_id: str) -> None:
        if self._documents.pop(flower_id, None) is None:
            raise FlowerNotFoundError(flower_id)

    def __contains__(self, flower_id: str) -> bool:
        return flower_id in self._documents
