"""Memory module: durable flower records and tiered-memory retention."""

from flora.memory.repository import (
    FileFlowerRepository,
    FlowerRepository,
    InMemoryFlowerRepository,
)
from flora.memory.store import MemoryStore, MemoryUpdate

__all__ = [
    "FileFlowerRepository",
    "FlowerRepository",
    "InMemoryFlowerRepository",
    "MemoryStore",
    "MemoryUpdate",
]
