"""Stable identifiers for lessons and cards."""

from ulid import ULID


def generate_card_id() -> str:
    """Generate a stable, globally unique card id using ULID."""
    return f"card_{ULID()}"


def generate_lesson_id() -> str:
    """Generate a stable, globally unique lesson id using ULID."""
    return f"lesson_{ULID()}"
