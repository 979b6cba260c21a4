"""MemoryStore: durable flower records and the tiered-memory retention policy.

Responsibilities:
- save / load / delete flower records through a FlowerRepository
- score each interaction's importance
- append to short-term memory, promote to long-term on overflow
- create episodes for high-importance interactions

Retention steps are pure functions of the flower and the interaction
(the interaction carries its own timestamp), so tier contents are
reproducible. Consolidation into denser summaries is not done here; it is
run out-of-band through SessionEngine.update_flower_memory().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from flora.config.settings import MemorySettings
from flora.flower.models import Episode, Flower, Interaction, MemoryFragment
from flora.memory.repository import decode_document

if TYPE_CHECKING:
    from flora.memory.repository import FlowerRepository

logger = structlog.get_logger()

EMPHASIS_KEYWORDS = ("important", "remember", "never forget", "always")
EMPHASIS_BONUS = 0.2
LENGTH_NORMALIZER = 500
LENGTH_SCORE_CAP = 0.5

# Checked in order; the first matching tone wins.
TONE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("joyful", ("happy", "joy")),
    ("melancholic", ("sad", "cry")),
    ("tense", ("angry", "frustrated")),
)
NEUTRAL_TONE = "neutral"


def calculate_importance(user_input: str, response: str) -> float:
    """Length score (capped at 0.5) plus 0.2 per emphasis keyword in the input.

    Rounded to 6 places so that threshold comparisons (> 0.7, > 0.8) are not
    decided by float noise.
    """
    score = min((len(user_input) + len(response)) / LENGTH_NORMALIZER, LENGTH_SCORE_CAP)
    lowered = user_input.lower()
    for keyword in EMPHASIS_KEYWORDS:
        if keyword in lowered:
            score += EMPHASIS_BONUS
    return round(min(score, 1.0), 6)


def format_fragment(user_input: str, response: str) -> str:
    return f"User: {user_input}\nFlower: {response}"


def summarize_interaction(user_input: str, max_chars: int = 50) -> str:
    return f"Discussed: {user_input[:max_chars]}..."


def detect_emotional_tone(user_input: str, response: str) -> str:
    text = (user_input + response).lower()
    for tone, words in TONE_KEYWORDS:
        if any(word in text for word in words):
            return tone
    return NEUTRAL_TONE


def _episode_id(flower: Flower, interaction: Interaction) -> str:
    base = f"ep_{int(interaction.timestamp.timestamp() * 1000)}"
    existing = {ep.id for ep in flower.memory.episodic}
    if base not in existing:
        return base
    n = 1
    while f"{base}_{n}" in existing:
        n += 1
    return f"{base}_{n}"


@dataclass(frozen=True)
class MemoryUpdate:
    """What one recorded interaction did to the memory tiers."""

    fragment: MemoryFragment
    promoted: tuple[MemoryFragment, ...] = ()
    episode: Episode | None = None


class MemoryStore:
    """Owns flower durability and tiered-memory mutation."""

    def __init__(
        self,
        repository: FlowerRepository,
        settings: MemorySettings | None = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or MemorySettings()

    @property
    def settings(self) -> MemorySettings:
        return self._settings

    async def save(self, flower: Flower) -> None:
        """Persist the full record, overwriting any prior record with the same id."""
        await self._repository.write(flower.id, flower.to_document())
        logger.debug("flower_saved", flower_id=flower.id)

    async def load(self, flower_id: str) -> Flower | None:
        """Return the persisted record, or None if there is none."""
        document = await self._repository.read(flower_id)
        if document is None:
            return None
        return decode_document(flower_id, document)

    async def delete(self, flower_id: str) -> None:
        """Remove the record. Raises FlowerNotFoundError if absent."""
        await self._repository.remove(flower_id)
        logger.info("flower_deleted", flower_id=flower_id)

    def apply_interaction(self, flower: Flower, interaction: Interaction) -> MemoryUpdate:
        """Mutate the flower's memory tiers for one interaction (no I/O)."""
        s = self._settings
        memory = flower.memory
        fragment = MemoryFragment(
            content=format_fragment(interaction.input, interaction.response),
            timestamp=interaction.timestamp,
            importance=calculate_importance(interaction.input, interaction.response),
        )
        memory.short_term.append(fragment)

        promoted: tuple[MemoryFragment, ...] = ()
        if len(memory.short_term) > s.short_term_capacity:
            promoted = tuple(
                [m for m in memory.short_term if m.importance > s.promotion_threshold][
                    : s.promotion_limit
                ]
            )
            memory.long_term.extend(promoted)
            memory.short_term = memory.short_term[-s.short_term_retain :]
            logger.info(
                "memory_promoted",
                flower_id=flower.id,
                promoted=len(promoted),
                long_term_size=len(memory.long_term),
            )

        episode: Episode | None = None
        if fragment.importance > s.episode_threshold:
            episode = Episode(
                id=_episode_id(flower, interaction),
                fragments=[fragment],
                summary=summarize_interaction(interaction.input, s.summary_chars),
                emotional_tone=detect_emotional_tone(interaction.input, interaction.response),
            )
            memory.episodic.append(episode)
            logger.info(
                "episode_created",
                flower_id=flower.id,
                episode_id=episode.id,
                emotional_tone=episode.emotional_tone,
            )

        return MemoryUpdate(fragment=fragment, promoted=promoted, episode=episode)

    async def record_interaction(
        self, flower: Flower, interaction: Interaction
    ) -> MemoryUpdate:
        """Apply the retention policy for one interaction, then persist the flower."""
        update = self.apply_interaction(flower, interaction)
        await self.save(flower)
        return update
