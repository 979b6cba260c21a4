"""CompletionRegistry: completion backends keyed by flower base model.

Created at startup; holds pre-initialized backends.
Thread-safe for read (no mutation after init).
PromptRouter does per-request lookup via get(flower.genome.base_model).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flora.infra.errors import ProviderNotFoundError

if TYPE_CHECKING:
    from flora.agent.model_client import CompletionBackend


@dataclass
class ProviderEntry:
    """A registered completion backend."""

    name: str  # provider name, for logging/reporting
    model: str  # flower genome base model this entry answers for
    backend: CompletionBackend


class CompletionRegistry:
    def __init__(self) -> None:
        self._providers: dict[str, ProviderEntry] = {}

    def register(self, model: str, backend: CompletionBackend, *, name: str | None = None) -> None:
        self._providers[model] = ProviderEntry(name=name or model, model=model, backend=backend)

    def get(self, model: str) -> ProviderEntry:
        """Raises ProviderNotFoundError if no backend serves ``model``."""
        if model not in self._providers:
            raise ProviderNotFoundError(model)
        return self._providers[model]

    def available_models(self) -> list[str]:
        return list(self._providers.keys())
