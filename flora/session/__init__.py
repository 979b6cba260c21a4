"""Session lifecycle: seed, bloom, tend, wilt."""

from flora.session.engine import BloomSession, SessionEngine, TendResult

__all__ = ["BloomSession", "SessionEngine", "TendResult"]
