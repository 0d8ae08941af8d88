"""Author lessons on this device from a YAML document."""

import logging
from pathlib import Path
from typing import Any

import yaml

from lingolift.application.id_service import generate_card_id, generate_lesson_id
from lingolift.application.srs import create_initial_state
from lingolift.domain.clock import now_ms
from lingolift.domain.errors import LingoLiftError
from lingolift.domain.models import Flashcard, Lesson

logger = logging.getLogger(__name__)


class LessonImportError(LingoLiftError):
    pass


def parse_lessons(data: Any, now: int | None = None) -> list[Lesson]:
    """
    Build lessons from parsed YAML.

    Expected shape::

        lessons:
          - title: Negotiation
            description: Useful phrases
            tags: [business]
            markdown: "# Notes"
            cards:
              - front: Leverage
                back: Power to influence people
    """
    if not isinstance(data, dict) or not isinstance(data.get("lessons"), list):
        raise LessonImportError("Expected a top-level 'lessons' list")

    ts = now_ms() if now is None else now
    lessons: list[Lesson] = []

    for i, entry in enumerate(data["lessons"], start=1):
        if not isinstance(entry, dict) or not entry.get("title"):
            raise LessonImportError(f"Lesson #{i} has no title")

        cards = []
        for card in entry.get("cards") or []:
            if not isinstance(card, dict) or "front" not in card or "back" not in card:
                logger.warning(f"Skipping malformed card in lesson '{entry['title']}': {card}")
                continue
            cards.append(
                Flashcard(
                    id=str(card.get("id") or generate_card_id()),
                    front=str(card["front"]),
                    back=str(card["back"]),
                    **create_initial_state(ts),
                )
            )

        lessons.append(
            Lesson(
                id=str(entry.get("id") or generate_lesson_id()),
                title=str(entry["title"]),
                description=entry.get("description"),
                created_at=ts,
                tags=list(dict.fromkeys(str(t) for t in entry.get("tags") or [])),
                markdown_content=entry.get("markdown"),
                flashcards=cards,
            )
        )

    return lessons


def load_lessons_from_yaml(path: Path, now: int | None = None) -> list[Lesson]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise LessonImportError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise LessonImportError(f"Invalid YAML in {path}: {e}") from e
    return parse_lessons(data, now)
