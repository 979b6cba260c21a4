"""Flower record models."""

from flora.flower.models import (
    Episode,
    EvolutionChanges,
    EvolutionRecord,
    Flower,
    FlowerConfig,
    FlowerMetadata,
    FlowerState,
    Genome,
    Interaction,
    Memory,
    MemoryFragment,
)

__all__ = [
    "Episode",
    "EvolutionChanges",
    "EvolutionRecord",
    "Flower",
    "FlowerConfig",
    "FlowerMetadata",
    "FlowerState",
    "Genome",
    "Interaction",
    "Memory",
    "MemoryFragment",
]
