"""Evolution engine: rule-based drift of a flower after each interaction.

An ordered, fixed list of independent rules runs against a copy of the
flower. Each rule exposes two operations:

- ``should_apply(flower, context) -> bool``
- ``apply(flower, interaction, context) -> Flower``

Order matters: later rules read fields earlier rules may have written, and
energy dynamics runs last so it sees the freshest mood. After the rules,
the emergent-behavior check runs and an audit record is appended to
``metadata.evolution_history``.

Known simplification: the memory-influence "blend" replaces the current mood
with the resonant memory's tone outright whenever the blend weight exceeds
0.5; it never interpolates between moods.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Protocol

import structlog

from flora.flower.models import (
    Episode,
    EvolutionChanges,
    EvolutionRecord,
    Flower,
    Interaction,
)

logger = structlog.get_logger()

TRIGGER_CHARS = 50
ENERGY_CHANGE_THRESHOLD = 0.1


@dataclass(frozen=True)
class EvolutionContext:
    """Derived per-interaction context; never stored."""

    interaction_count: int = 0
    session_duration: float = 0.0  # seconds since bloom
    emotional_trajectory: tuple[str, ...] = ()  # most recent last
    recent_topics: tuple[str, ...] = ()


class EvolutionRule(Protocol):
    name: str

    def should_apply(self, flower: Flower, context: EvolutionContext) -> bool: ...

    def apply(
        self, flower: Flower, interaction: Interaction, context: EvolutionContext
    ) -> Flower: ...


# ── rules ──


class EmotionalContinuityRule:
    """Raise emotional inertia when the recent trajectory is stable."""

    name = "emotional_continuity"
    window = 5
    stable_inertia = 0.8
    responsive_inertia = 0.3

    def should_apply(self, flower: Flower, context: EvolutionContext) -> bool:
        return len(context.emotional_trajectory) > 3

    def apply(
        self, flower: Flower, interaction: Interaction, context: EvolutionContext
    ) -> Flower:
        trajectory = context.emotional_trajectory[-self.window :]
        dominant = dominant_value(trajectory)
        stable = len(set(trajectory)) <= 2
        if dominant is not None and stable:
            flower.state.emotional_inertia = self.stable_inertia
        else:
            flower.state.emotional_inertia = self.responsive_inertia
        return flower


class MemoryInfluenceRule:
    """Let episodes that share words with the input pull the mood toward their tone."""

    name = "memory_influence"
    emotional_pull = 0.7
    pull_threshold = 0.6

    def should_apply(self, flower: Flower, context: EvolutionContext) -> bool:
        return len(flower.memory.episodic) > 0

    def apply(
        self, flower: Flower, interaction: Interaction, context: EvolutionContext
    ) -> Flower:
        relevant = find_relevant_episodes(flower.memory.episodic, interaction.input)
        if not relevant:
            return flower

        flower.state.memory_resonance = min(len(relevant) / 10, 1.0)
        if self.emotional_pull >= self.pull_threshold:
            tone = dominant_value([ep.emotional_tone for ep in relevant])
            flower.state.current_mood = blend_moods(
                flower.state.current_mood, tone, self.emotional_pull
            )
        return flower


class InteractionPatternRule:
    """Switch conversation mode on repetitive or diverse topic streams."""

    name = "interaction_pattern"
    temperature_step = 0.1
    temperature_cap = 0.95

    def should_apply(self, flower: Flower, context: EvolutionContext) -> bool:
        return context.interaction_count > 5

    def apply(
        self, flower: Flower, interaction: Interaction, context: EvolutionContext
    ) -> Flower:
        topics = context.recent_topics
        if not topics:
            return flower
        diversity = len(set(topics)) / len(topics)
        if diversity < 0.3:
            flower.state.conversation_mode = "exploring_variations"
            flower.genome.temperature = min(
                flower.genome.temperature + self.temperature_step, self.temperature_cap
            )
        elif diversity > 0.8:
            flower.state.conversation_mode = "adaptive_engagement"
        return flower


class EnergyDynamicsRule:
    """Spend energy on complex exchanges, recover it on quiet ones."""

    name = "energy_dynamics"
    intense_words = ("love", "hate", "desperate", "ecstatic", "terrified")
    complex_indicators = ("explain", "analyze", "compare", "why", "how")
    max_cost = 0.2
    low_energy = 0.2
    coherence_floor = 0.5
    temperature_floor = 0.3
    quiet_input_chars = 50
    recovery = 0.05

    def should_apply(self, flower: Flower, context: EvolutionContext) -> bool:
        return True

    def apply(
        self, flower: Flower, interaction: Interaction, context: EvolutionContext
    ) -> Flower:
        state = flower.state
        cost = self.energy_cost(interaction)
        state.energy_level = max(0.0, state.energy_level - cost)

        if state.energy_level < self.low_energy:
            state.coherence = max(self.coherence_floor, state.coherence - 0.1)
            flower.genome.temperature = max(
                self.temperature_floor, flower.genome.temperature - 0.1
            )

        if len(interaction.input) < self.quiet_input_chars and not self.is_complex_query(
            interaction.input
        ):
            state.energy_level = min(1.0, state.energy_level + self.recovery)
        return flower

    def energy_cost(self, interaction: Interaction) -> float:
        complexity = self.complexity(interaction.input)
        return min(0.05 + complexity * 0.1 + len(interaction.response) / 10000, self.max_cost)

    def complexity(self, text: str) -> float:
        return (
            text.count("?") * 0.3
            + len(text.split()) / 100
            + self.emotional_intensity(text) * 0.4
        )

    def emotional_intensity(self, text: str) -> float:
        lowered = text.lower()
        matches = sum(1 for word in self.intense_words if word in lowered)
        return min(matches / 3, 1.0)

    def is_complex_query(self, text: str) -> bool:
        lowered = text.lower()
        return any(indicator in lowered for indicator in self.complex_indicators)


# ── helpers ──


def dominant_value(values: list[str] | tuple[str, ...]) -> str | None:
    """Most frequent value; ties go to the value seen first."""
    if not values:
        return None
    counts = Counter(values)
    best = max(counts.values())
    return next(v for v in values if counts[v] == best)


def find_relevant_episodes(episodes: list[Episode], user_input: str) -> list[Episode]:
    """Episodes whose summary shares a whitespace-delimited token with the input."""
    keywords = set(user_input.lower().split())
    if not keywords:
        return []
    return [ep for ep in episodes if keywords & set(ep.summary.lower().split())]


def blend_moods(current: str, memory_tone: str | None, weight: float) -> str:
    # Full replacement above 0.5, no interpolation.
    if memory_tone is not None and weight > 0.5:
        return memory_tone
    return current


def check_emergent_behaviors(flower: Flower) -> Flower:
    """Set emergent_state for fixed trait/mood/energy combinations.

    No match leaves the previous emergent state in place.
    """
    traits = set(flower.genome.traits)
    mood = flower.state.current_mood
    energy = flower.state.energy_level

    if {"creative", "melancholic"} <= traits and energy < 0.3:
        flower.state.emergent_state = "profound_introspection"
    elif {"empathetic"} <= traits and mood == "joyful" and energy > 0.8:
        flower.state.emergent_state = "radiant_compassion"
    return flower


def detect_changes(before: Flower, after: Flower) -> EvolutionChanges:
    return EvolutionChanges(
        mood=before.state.current_mood != after.state.current_mood,
        energy=abs(before.state.energy_level - after.state.energy_level)
        > ENERGY_CHANGE_THRESHOLD,
        traits=before.genome.traits != after.genome.traits,
        emergent=before.state.emergent_state != after.state.emergent_state,
    )


def default_rules() -> list[EvolutionRule]:
    return [
        EmotionalContinuityRule(),
        MemoryInfluenceRule(),
        InteractionPatternRule(),
        EnergyDynamicsRule(),
    ]


class EvolutionEngine:
    """Applies the rule pipeline and records an audit trail."""

    def __init__(self, rules: list[EvolutionRule] | None = None) -> None:
        self._rules: tuple[EvolutionRule, ...] = tuple(
            rules if rules is not None else default_rules()
        )

    @property
    def rule_names(self) -> list[str]:
        return [rule.name for rule in self._rules]

    def evolve_flower(
        self,
        flower: Flower,
        interaction: Interaction,
        context: EvolutionContext,
    ) -> Flower:
        """Return an evolved copy of ``flower``; the argument is left untouched."""
        evolved = flower.snapshot()

        for rule in self._rules:
            if rule.should_apply(evolved, context):
                evolved = rule.apply(evolved, interaction, context)
                logger.debug("evolution_rule_applied", flower_id=flower.id, rule=rule.name)

        evolved = check_emergent_behaviors(evolved)
        changes = detect_changes(flower, evolved)
        if changes.emergent:
            logger.info(
                "emergent_state_changed",
                flower_id=flower.id,
                emergent_state=evolved.state.emergent_state,
            )

        evolved.metadata.evolution_history.append(
            EvolutionRecord(
                timestamp=interaction.timestamp,
                changes=changes,
                trigger=interaction.input[:TRIGGER_CHARS],
            )
        )
        logger.info(
            "flower_evolved",
            flower_id=flower.id,
            changes=changes.model_dump(),
        )
        return evolved
