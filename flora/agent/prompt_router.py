from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from flora.agent.model_client import Completion
    from flora.agent.provider_registry import CompletionRegistry
    from flora.flower.models import Flower

logger = structlog.get_logger()

COMPLETION_ANCHOR = "Flower:"


class PromptRouter:
    """Picks a completion backend by base model and assembles the prompt.

    Prompt layout:
    1. Genome system prompt
    2. Trait list
    3. Current mood and energy
    4. Context block (from ContextEncoder)
    5. User input, followed by the "Flower:" continuation anchor
    """

    def __init__(self, registry: CompletionRegistry) -> None:
        self._registry = registry

    def build_prompt(self, flower: Flower, context: str, user_input: str) -> str:
        traits = ", ".join(flower.genome.traits)
        return (
            f"{flower.genome.system_prompt}\n\n"
            f"You are a flower with the following traits: {traits}\n"
            f"Current mood: {flower.state.current_mood}\n"
            f"Energy level: {flower.state.energy_level}\n\n"
            f"Context:\n{context}\n\n"
            f"User: {user_input}\n"
            f"{COMPLETION_ANCHOR}"
        )

    async def route(self, flower: Flower, context: str, user_input: str) -> Completion:
        """Raises ProviderNotFoundError before any prompt is built for an unknown model.

        Backend failures (ProviderError) propagate unmodified.
        """
        entry = self._registry.get(flower.genome.base_model)
        prompt = self.build_prompt(flower, context, user_input)
        completion = await entry.backend.complete(
            prompt, temperature=flower.genome.temperature
        )
        logger.info(
            "completion_routed",
            flower_id=flower.id,
            provider=entry.name,
            model=entry.model,
            response_chars=len(completion.content),
        )
        return completion
