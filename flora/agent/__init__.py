"""Agent runtime: context encoding, evolution rules and completion routing."""

from flora.agent.context_encoder import ContextEncoder
from flora.agent.evolution import EvolutionContext, EvolutionEngine
from flora.agent.model_client import Completion, CompletionBackend, StaticBackend
from flora.agent.prompt_router import PromptRouter
from flora.agent.provider_registry import CompletionRegistry

__all__ = [
    "Completion",
    "CompletionBackend",
    "CompletionRegistry",
    "ContextEncoder",
    "EvolutionContext",
    "EvolutionEngine",
    "PromptRouter",
    "StaticBackend",
]
