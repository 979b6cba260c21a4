"""Realtime payloads produced after session operations.

The transport (WebSocket rooms, etc.) lives outside the core; it only needs
``event.name`` and ``event.to_payload()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flora.flower.models import Flower
    from flora.session.engine import TendResult


@dataclass
class FlowerTyping:
    session_id: str
    name: str = "flower:typing"

    def to_payload(self) -> dict[str, Any]:
        return {"sessionId": self.session_id}


@dataclass
class FlowerResponse:
    session_id: str
    response: str
    state: dict[str, Any]
    response_time_ms: int
    name: str = "flower:response"

    def to_payload(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "response": self.response,
            "state": self.state,
            "metadata": {"responseTime": self.response_time_ms},
        }


@dataclass
class FlowerStateSnapshot:
    flower_id: str
    state: dict[str, Any]
    metadata: dict[str, Any]
    memory_counts: dict[str, int] | None = None
    name: str = "flower:state"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "flowerId": self.flower_id,
            "state": self.state,
            "metadata": self.metadata,
        }
        if self.memory_counts is not None:
            payload["memory"] = self.memory_counts
        return payload


FlowerEvent = FlowerTyping | FlowerResponse | FlowerStateSnapshot


def typing_event(session_id: str) -> FlowerTyping:
    return FlowerTyping(session_id=session_id)


def response_event(result: TendResult, response_time_ms: int) -> FlowerResponse:
    return FlowerResponse(
        session_id=result.session_id,
        response=result.response,
        state=result.state.model_dump(mode="json", by_alias=True),
        response_time_ms=response_time_ms,
    )


def state_event(flower: Flower, *, include_memory_counts: bool = False) -> FlowerStateSnapshot:
    """Current state; the sync form also carries per-tier memory counts."""
    counts = None
    if include_memory_counts:
        counts = {
            "shortTermCount": len(flower.memory.short_term),
            "longTermCount": len(flower.memory.long_term),
            "episodicCount": len(flower.memory.episodic),
        }
    return FlowerStateSnapshot(
        flower_id=flower.id,
        state=flower.state.model_dump(mode="json", by_alias=True),
        metadata=flower.metadata.model_dump(mode="json", by_alias=True),
        memory_counts=counts,
    )
