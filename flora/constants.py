"""Project-wide constants."""

DB_SCHEMA = "flora"

FLOWER_FILE_SUFFIX = ".flwr"
FLOWER_VERSION = "1.0"

DEFAULT_BASE_MODEL = "gpt-4"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MOOD = "neutral"
DEFAULT_TONE = "neutral"
