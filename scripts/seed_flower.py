"""Seed a new flower into the configured storage.

Usage:
    python scripts/seed_flower.py [type] [traits] [temperature]

    python scripts/seed_flower.py companion friendly,helpful 0.7

Reads from .env: STORAGE_BACKEND, STORAGE_PATH, DATABASE_*
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_project_root))

from flora.bootstrap import build_engine, build_repository  # noqa: E402
from flora.config.settings import get_settings  # noqa: E402
from flora.infra.errors import FloraError  # noqa: E402
from flora.infra.logging import setup_logging  # noqa: E402
from flora.memory.database import create_db_engine  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed a new flower.")
    parser.add_argument("type", nargs="?", default="companion")
    parser.add_argument("traits", nargs="?", default="friendly,helpful")
    parser.add_argument("temperature", nargs="?", type=float, default=0.7)
    parser.add_argument("--base-model", default="gpt-4")
    parser.add_argument("--system-prompt", default="")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(json_output=settings.logging.json_output, log_level=settings.logging.level)

    db_engine = None
    if settings.storage.backend == "postgres":
        db_engine = await create_db_engine(settings.database)

    try:
        repository = await build_repository(settings, db_engine=db_engine)
        engine = await build_engine(settings, repository=repository)
        config = {
            "type": args.type,
            "traits": [t for t in args.traits.split(",") if t],
            "temperature": args.temperature,
            "base_model": args.base_model,
            "system_prompt": args.system_prompt,
        }
        print(f"Seeding flower with config: {config}")

        try:
            flower = await engine.seed(config)
        except FloraError as e:
            print(f"Failed to seed flower: {e} ({e.code})", file=sys.stderr)
            return 1
    finally:
        if db_engine is not None:
            await db_engine.dispose()

    print(f"Flower created: {flower.id}")
    if settings.storage.backend == "file":
        print(f"Saved to: {settings.storage.path / (flower.id + '.flwr')}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
