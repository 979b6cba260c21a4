"""Custom exception hierarchy for Flora.

All application-specific exceptions inherit from FloraError,
which carries an error code for transport-level error mapping.
"""

from __future__ import annotations


class FloraError(Exception):
    """Base exception for all Flora errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class NotFoundError(FloraError):
    """A flower id or session id could not be resolved."""

    def __init__(self, message: str, *, code: str = "NOT_FOUND") -> None:
        super().__init__(message, code=code)


class FlowerNotFoundError(NotFoundError):
    """No durable record exists for the flower id."""

    def __init__(self, flower_id: str) -> None:
        super().__init__(f"Flower not found: {flower_id}", code="FLOWER_NOT_FOUND")
        self.flower_id = flower_id


class SessionNotFoundError(NotFoundError):
    """No open session exists for the session id (never bloomed, or wilted)."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", code="SESSION_NOT_FOUND")
        self.session_id = session_id


class InvalidConfigError(FloraError):
    """Malformed seed input."""

    def __init__(self, message: str, *, code: str = "INVALID_CONFIG") -> None:
        super().__init__(message, code=code)


class ProviderNotFoundError(FloraError):
    """No completion backend registered for the flower's base model."""

    def __init__(self, model: str) -> None:
        super().__init__(
            f"Provider not found for model: {model}", code="PROVIDER_NOT_FOUND"
        )
        self.model = model


class ProviderError(FloraError):
    """Completion backend failure (timeouts, rate limits, API errors)."""

    def __init__(self, message: str, *, code: str = "PROVIDER_ERROR") -> None:
        super().__init__(message, code=code)


class PersistenceError(FloraError):
    """Durable read/write failure."""

    def __init__(self, message: str, *, code: str = "PERSISTENCE_ERROR") -> None:
        super().__init__(message, code=code)
