"""Pydantic models for the flower record.

The durable document is the camelCase alias form of these models
(``Flower.to_document()``); loading it back with ``Flower.from_document()``
and dumping again yields an identical document.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from flora.constants import (
    DEFAULT_BASE_MODEL,
    DEFAULT_MOOD,
    DEFAULT_TEMPERATURE,
    DEFAULT_TONE,
    FLOWER_VERSION,
)


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemoryFragment(_Document):
    """A single remembered exchange. Immutable once created."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    content: str
    timestamp: datetime
    importance: float = Field(ge=0.0, le=1.0)


class Episode(_Document):
    """A significant interaction, summarized with an emotional tone."""

    id: str
    fragments: list[MemoryFragment] = Field(min_length=1)
    summary: str
    emotional_tone: str = DEFAULT_TONE


class Memory(_Document):
    short_term: list[MemoryFragment] = Field(default_factory=list)
    long_term: list[MemoryFragment] = Field(default_factory=list)
    episodic: list[Episode] = Field(default_factory=list)


class EvolutionChanges(_Document):
    mood: bool = False
    energy: bool = False
    traits: bool = False
    emergent: bool = False


class EvolutionRecord(_Document):
    """Audit entry appended after every evolution pass."""

    timestamp: datetime
    changes: EvolutionChanges
    trigger: str


class FlowerMetadata(_Document):
    created: datetime
    last_activated_at: datetime | None = None
    bloom_count: int = Field(0, ge=0)
    evolution_history: list[EvolutionRecord] = Field(default_factory=list)

    @property
    def activation_count(self) -> int:
        return self.bloom_count


class Genome(_Document):
    base_model: str = DEFAULT_BASE_MODEL
    temperature: float = Field(DEFAULT_TEMPERATURE, ge=0.0, le=1.0)
    system_prompt: str = ""
    traits: list[str] = Field(default_factory=list)


class FlowerState(_Document):
    current_mood: str = DEFAULT_MOOD
    energy_level: float = Field(1.0, ge=0.0, le=1.0)
    coherence: float = Field(1.0, ge=0.0, le=1.0)
    emergent_state: str | None = None
    emotional_inertia: float | None = None
    memory_resonance: float | None = None
    conversation_mode: str | None = None


class Flower(_Document):
    """The persistent, evolving agent."""

    id: str
    version: str = FLOWER_VERSION
    metadata: FlowerMetadata
    genome: Genome
    memory: Memory = Field(default_factory=Memory)
    state: FlowerState = Field(default_factory=FlowerState)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Flower:
        return cls.model_validate(document)

    def snapshot(self) -> Flower:
        """Deep copy; the session pipeline mutates a snapshot, never the original."""
        return self.model_copy(deep=True)


class FlowerConfig(_Document):
    """Seed input."""

    type: str
    base_model: str = DEFAULT_BASE_MODEL
    temperature: float = Field(DEFAULT_TEMPERATURE, ge=0.0, le=1.0)
    system_prompt: str = ""
    traits: list[str] = Field(default_factory=list)
    initial_memory: str | None = None

    @field_validator("type")
    @classmethod
    def _validate_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("type must be a non-empty string")
        return v

    @field_validator("traits")
    @classmethod
    def _dedupe_traits(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(t.strip() for t in v if t.strip()))


@dataclass(frozen=True)
class Interaction:
    """One completed exchange, fed to the state, evolution and memory steps."""

    input: str
    response: str
    timestamp: datetime
