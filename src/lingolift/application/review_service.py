"""
Review Service: Application layer for studying and editing cards.

Every write saves the owning lesson as a whole, so a concurrent reader never
sees a half-updated flashcard list.
"""

import logging
from dataclasses import replace

from lingolift.application.id_service import generate_card_id
from lingolift.application.srs import (
    Grade,
    create_initial_state,
    preview_next_interval,
    schedule_review,
)
from lingolift.domain.clock import now_ms
from lingolift.domain.errors import CardNotFoundError, LessonNotFoundError
from lingolift.domain.models import DueCard, Flashcard, Lesson
from lingolift.domain.ports import LessonStore

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Global review queue and card editing on top of the local store.

    Follows Dependency Inversion: depends on the LessonStore abstraction,
    not a concrete adapter.
    """

    def __init__(self, store: LessonStore):
        self._store = store

    async def due_cards(self, now: int | None = None, tag: str | None = None) -> list[DueCard]:
        """
        Collect every card due at `now` across all lessons.

        Args:
            now: Epoch ms; defaults to the current time.
            tag: Only consider lessons carrying this tag.

        Returns:
            DueCard pairs, lesson order then card order.
        """
        ts = now_ms() if now is None else now
        lessons = await self._store.get_all_lessons(tag)
        return [
            DueCard(lesson_id=lesson.id, card=card)
            for lesson in lessons
            for card in lesson.flashcards
            if card.next_review <= ts
        ]

    async def record_review(self, due: DueCard, grade: Grade, now: int | None = None) -> Flashcard:
        """Grade a due card, persist its lesson, and return the rescheduled card."""
        lesson = await self._require_lesson(due.lesson_id)
        current = lesson.find_card(due.card.id)
        if current is None:
            raise CardNotFoundError(due.card.id)

        updated = schedule_review(current, grade, now)
        lesson.flashcards = [updated if c.id == updated.id else c for c in lesson.flashcards]
        await self._store.save_lesson(lesson)

        logger.debug(
            f"[review] {updated.id} graded {Grade(grade).name}: "
            f"interval={updated.interval} efactor={updated.efactor:.2f}"
        )
        return updated

    def preview(self, card: Flashcard) -> dict[Grade, str]:
        return {
            grade: preview_next_interval(card.interval, grade, card.efactor) for grade in Grade
        }

    async def add_card(
        self, lesson_id: str, front: str, back: str, now: int | None = None
    ) -> Flashcard:
        """Author a card on this device; it is flagged so merges never drop it."""
        lesson = await self._require_lesson(lesson_id)
        card = Flashcard(
            id=generate_card_id(),
            front=front,
            back=back,
            is_user_created=True,
            **create_initial_state(now),
        )
        lesson.flashcards = [*lesson.flashcards, card]
        await self._store.save_lesson(lesson)
        logger.info(f"[review] Added card {card.id} to lesson {lesson_id}")
        return card

    async def edit_card(
        self, lesson_id: str, card_id: str, front: str, back: str, now: int | None = None
    ) -> Flashcard:
        lesson = await self._require_lesson(lesson_id)
        card = lesson.find_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)

        ts = now_ms() if now is None else now
        # Stamps must keep increasing even when the card came from a clock running ahead
        updated = replace(
            card, front=front, back=back, last_updated=max(ts, card.last_updated + 1)
        )
        lesson.flashcards = [updated if c.id == card_id else c for c in lesson.flashcards]
        await self._store.save_lesson(lesson)
        return updated

    async def delete_card(self, lesson_id: str, card_id: str) -> None:
        lesson = await self._require_lesson(lesson_id)
        if lesson.find_card(card_id) is None:
            raise CardNotFoundError(card_id)

        lesson.flashcards = [c for c in lesson.flashcards if c.id != card_id]
        await self._store.save_lesson(lesson)
        await self._store.record_deleted_card(card_id)
        logger.info(f"[review] Deleted card {card_id} from lesson {lesson_id}")

    async def delete_lesson(self, lesson_id: str) -> None:
        await self._require_lesson(lesson_id)
        await self._store.delete_lesson(lesson_id)

    async def available_tags(self) -> list[str]:
        tags: set[str] = set()
        for lesson in await self._store.get_all_lessons():
            tags.update(lesson.tags)
        return sorted(tags)

    async def _require_lesson(self, lesson_id: str) -> Lesson:
        lesson = await self._store.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        return lesson
