"""Per-session bookkeeping that feeds the EvolutionContext."""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from flora.agent.evolution import EvolutionContext

_WORD = re.compile(r"[a-z0-9']+")

MIN_TOPIC_CHARS = 4
STOPWORDS = frozenset(
    {
        "about", "after", "again", "also", "been", "before", "being", "could",
        "does", "doing", "from", "have", "here", "just", "like", "more", "much",
        "only", "really", "should", "some", "than", "that", "their", "them",
        "then", "there", "these", "they", "this", "very", "want", "were", "what",
        "when", "where", "which", "while", "will", "with", "would", "your",
    }
)


def extract_topics(text: str) -> list[str]:
    """Lowercased content words of at least four characters, in input order."""
    return [
        w
        for w in _WORD.findall(text.lower())
        if len(w) >= MIN_TOPIC_CHARS and w not in STOPWORDS
    ]


@dataclass
class SessionTracker:
    """Bounded mood trajectory and topic stream for one session."""

    start_time: datetime
    trajectory_window: int = 10
    topic_window: int = 10
    interaction_count: int = 0
    trajectory: deque[str] = field(init=False)
    topics: deque[str] = field(init=False)

    def __post_init__(self) -> None:
        self.trajectory = deque(maxlen=self.trajectory_window)
        self.topics = deque(maxlen=self.topic_window)

    def preview(self, mood: str, user_input: str, now: datetime) -> EvolutionContext:
        """Context as it will look once this interaction is recorded.

        Nothing is committed; call record() after the interaction succeeded.
        """
        trajectory = deque(self.trajectory, maxlen=self.trajectory_window)
        trajectory.append(mood)
        topics = deque(self.topics, maxlen=self.topic_window)
        topics.extend(extract_topics(user_input))
        return EvolutionContext(
            interaction_count=self.interaction_count + 1,
            session_duration=(now - self.start_time).total_seconds(),
            emotional_trajectory=tuple(trajectory),
            recent_topics=tuple(topics),
        )

    def record(self, mood: str, user_input: str) -> None:
        self.interaction_count += 1
        self.trajectory.append(mood)
        self.topics.extend(extract_topics(user_input))
