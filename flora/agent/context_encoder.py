"""ContextEncoder: renders flower state + recent memory, and derives the
next mood/energy/coherence from an interaction outcome.

Both operations are pure; neither touches storage.
"""

from __future__ import annotations

import re

from flora.flower.models import Flower, FlowerState

POSITIVE_WORDS = frozenset({"happy", "joy", "love", "beautiful"})
NEGATIVE_WORDS = frozenset({"sad", "angry", "fear", "worried"})

ENERGY_DRAIN_PER_TURN = 0.1
SENTENCES_FOR_FULL_COHERENCE = 5

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def analyze_sentiment(text: str) -> int:
    """#positive minus #negative lexicon hits over whitespace-split words."""
    score = 0
    for word in text.lower().split():
        if word in POSITIVE_WORDS:
            score += 1
        elif word in NEGATIVE_WORDS:
            score -= 1
    return score


def evolve_mood(current_mood: str, sentiment: int) -> str:
    if sentiment > 2:
        return "joyful"
    if sentiment < -2:
        return "melancholic"
    if sentiment == 0:
        return "contemplative"
    return current_mood


def sentence_count(text: str) -> int:
    return len([s for s in _SENTENCE_SPLIT.split(text) if s.strip()])


def calculate_coherence(response: str) -> float:
    return min(1.0, sentence_count(response) / SENTENCES_FOR_FULL_COHERENCE)


def describe_state(state: FlowerState) -> str:
    intensity = "very" if state.energy_level > 0.7 else "somewhat"
    return f"The flower is {intensity} {state.current_mood}"


class ContextEncoder:
    def __init__(self, fragment_count: int = 5) -> None:
        self._fragment_count = fragment_count

    def encode(self, flower: Flower) -> str:
        """State line followed by the most recent short-term contents, oldest first."""
        recent = flower.memory.short_term[-self._fragment_count :]
        memories = "\n".join(m.content for m in recent)
        return (
            f"Current state: {describe_state(flower.state)}\n"
            f"Recent memories:\n{memories}"
        ).strip()

    def update_state(
        self, current_state: FlowerState, user_input: str, response: str
    ) -> FlowerState:
        """Next state after one exchange.

        Only mood, energy and coherence change; the optional fields written by
        evolution rules (emergent state, inertia, resonance, mode) carry over.
        """
        sentiment = analyze_sentiment(f"{user_input} {response}")
        return current_state.model_copy(
            update={
                "current_mood": evolve_mood(current_state.current_mood, sentiment),
                "energy_level": max(0.0, current_state.energy_level - ENERGY_DRAIN_PER_TURN),
                "coherence": calculate_coherence(response),
            }
        )
