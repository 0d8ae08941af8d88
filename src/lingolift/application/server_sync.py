"""
Server side of the sync protocol.

A lesson library with soft deletes, scoped per owner. It lives in memory and,
when given an archive, is written through to it after every mutation. It applies
a device's upstream change-set (last writer wins on `last_updated`) and
answers with everything that changed since the device's watermark.
"""

import logging
from dataclasses import dataclass, field, replace

from lingolift.application.id_service import generate_card_id, generate_lesson_id
from lingolift.application.srs import create_initial_state
from lingolift.domain.clock import now_ms
from lingolift.domain.errors import CardNotFoundError, LessonNotFoundError
from lingolift.domain.models import (
    CardProgress,
    CardRecord,
    ChangeSet,
    Flashcard,
    Lesson,
    LessonRecord,
    ServerUpdateSet,
    Updates,
)
from lingolift.domain.ports import LibraryArchive

logger = logging.getLogger(__name__)

DEFAULT_OWNER = "default"


@dataclass
class ServerLibrary:
    """Lessons and cards held by the sync server."""

    lessons: dict[str, LessonRecord] = field(default_factory=dict)
    cards: dict[str, CardRecord] = field(default_factory=dict)
    archive: LibraryArchive | None = None

    def __post_init__(self):
        if self.archive is not None:
            lessons, cards = self.archive.load()
            self.lessons.update((rec.lesson.id, rec) for rec in lessons)
            self.cards.update((rec.card.id, rec) for rec in cards)

    # ---------- Authoring ----------

    def create_lesson(
        self,
        owner: str,
        title: str,
        description: str | None = None,
        tags: list[str] | None = None,
        markdown_content: str | None = None,
        cards: list[tuple[str, str]] | None = None,
        now: int | None = None,
    ) -> Lesson:
        ts = now_ms() if now is None else now
        lesson = Lesson(
            id=generate_lesson_id(),
            title=title,
            description=description,
            created_at=ts,
            tags=list(dict.fromkeys(tags or [])),
            markdown_content=markdown_content,
        )
        self.lessons[lesson.id] = LessonRecord(lesson=lesson, owner=owner, last_updated=ts)
        for front, back in cards or []:
            self._insert_card(lesson.id, front, back, ts)
        self._persist()
        logger.info(f"[server] Created lesson {lesson.id} for {owner}")
        return self.get_lesson(owner, lesson.id)

    def add_card(
        self, owner: str, lesson_id: str, front: str, back: str, now: int | None = None
    ) -> Flashcard:
        self._owned_lesson(owner, lesson_id)
        card = self._insert_card(lesson_id, front, back, now)
        self._persist()
        return card

    def list_lessons(self, owner: str, deleted: bool = False) -> list[Lesson]:
        return [
            self._assemble(rec)
            for rec in self.lessons.values()
            if rec.owner == owner and bool(rec.deleted_at) == deleted
        ]

    def get_lesson(self, owner: str, lesson_id: str) -> Lesson:
        return self._assemble(self._owned_lesson(owner, lesson_id))

    def delete_lesson(self, owner: str, lesson_id: str, now: int | None = None) -> None:
        self._owned_lesson(owner, lesson_id).deleted_at = now_ms() if now is None else now
        self._persist()

    def restore_lesson(self, owner: str, lesson_id: str, now: int | None = None) -> None:
        rec = self._owned_lesson(owner, lesson_id)
        rec.deleted_at = 0
        rec.last_updated = now_ms() if now is None else now
        self._persist()

    def delete_card(self, owner: str, card_id: str, now: int | None = None) -> None:
        rec = self._owned_card(owner, card_id)
        if rec is None:
            raise CardNotFoundError(card_id)
        ts = now_ms() if now is None else now
        rec.deleted_at = rec.changed_at = ts
        rec.card = replace(rec.card, last_updated=ts)
        self._persist()

    # ---------- Sync ----------

    def apply_sync(
        self, owner: str, change_set: ChangeSet, now: int | None = None
    ) -> ServerUpdateSet:
        """Apply upstream changes, then collect downstream updates since the device's watermark."""
        ts = now_ms() if now is None else now
        changes = change_set.changes
        logger.debug(
            f"[server] {owner}: {len(changes.created_cards)} created, "
            f"{len(changes.modified_cards)} modified, "
            f"{len(changes.deleted_card_ids)} deleted cards, "
            f"{len(changes.deleted_lesson_ids)} deleted lessons"
        )
        # Content and progress for one card may arrive together; both compare
        # against the stamp the card had before this request.
        baseline = {card_id: rec.card.last_updated for card_id, rec in self.cards.items()}

        for new in changes.created_cards:
            lesson = self.lessons.get(new.lesson_id)
            if lesson is None or lesson.owner != owner:
                logger.debug(f"[server] Lesson {new.lesson_id} not owned by {owner}; skipping card")
                continue
            existing = self.cards.get(new.card.id)
            if existing is None:
                self.cards[new.card.id] = CardRecord(
                    card=new.card, lesson_id=new.lesson_id, changed_at=ts
                )
            elif self._owner_of(existing) != owner:
                logger.debug(f"[server] Card {new.card.id} belongs to another owner; skipping")
            elif new.card.last_updated > existing.card.last_updated:
                existing.card = new.card
                existing.changed_at = ts

        for modified in changes.modified_cards:
            rec = self._owned_card(owner, modified.id)
            if rec is not None and modified.last_updated > baseline.get(
                modified.id, rec.card.last_updated
            ):
                rec.card = replace(
                    rec.card,
                    front=modified.front,
                    back=modified.back,
                    last_updated=modified.last_updated,
                )
                rec.changed_at = ts

        for card_id in changes.deleted_card_ids:
            rec = self._owned_card(owner, card_id)
            if rec is not None:
                rec.deleted_at = rec.changed_at = ts
                rec.card = replace(rec.card, last_updated=ts)

        for lesson_id in changes.deleted_lesson_ids:
            lesson = self.lessons.get(lesson_id)
            if lesson is not None and lesson.owner == owner:
                lesson.deleted_at = ts

        for progress in changes.progress_updates:
            rec = self._owned_card(owner, progress.card_id)
            if rec is not None and progress.last_updated > baseline.get(
                progress.card_id, rec.card.last_updated
            ):
                rec.card = progress.apply_to(rec.card)
                rec.changed_at = ts

        self._persist()
        return ServerUpdateSet(
            server_timestamp=ts,
            updates=self._updates_since(owner, change_set.last_sync_timestamp),
        )

    def _updates_since(self, owner: str, since: int) -> Updates:
        live_cards = [
            rec
            for rec in self.cards.values()
            if not rec.deleted_at and self._owner_of(rec) == owner
        ]
        touched_lessons = {rec.lesson_id for rec in live_cards if rec.changed_at > since}

        lessons = [
            self._assemble(rec)
            for rec in self.lessons.values()
            if rec.owner == owner
            and not rec.deleted_at
            and (
                since == 0
                or rec.lesson.created_at > since
                or rec.last_updated > since
                or rec.lesson.id in touched_lessons
            )
        ]

        return Updates(
            lessons=lessons,
            deleted_lesson_ids=[
                rec.lesson.id
                for rec in self.lessons.values()
                if rec.owner == owner and rec.deleted_at > since
            ],
            remote_progress=[
                CardProgress.from_card(rec.card)
                for rec in live_cards
                if rec.changed_at > since
            ],
            deleted_card_ids=[
                rec.card.id
                for rec in self.cards.values()
                if rec.deleted_at > since and self._owner_of(rec) == owner
            ],
        )

    # ---------- Helpers ----------

    def _insert_card(self, lesson_id: str, front: str, back: str, now: int | None) -> Flashcard:
        card = Flashcard(id=generate_card_id(), front=front, back=back, **create_initial_state(now))
        self.cards[card.id] = CardRecord(
            card=card, lesson_id=lesson_id, changed_at=card.last_updated
        )
        return card

    def _persist(self) -> None:
        if self.archive is not None:
            self.archive.save(list(self.lessons.values()), list(self.cards.values()))

    def _assemble(self, rec: LessonRecord) -> Lesson:
        cards = [
            c.card
            for c in self.cards.values()
            if c.lesson_id == rec.lesson.id and not c.deleted_at
        ]
        return replace(rec.lesson, flashcards=cards)

    def _owned_lesson(self, owner: str, lesson_id: str) -> LessonRecord:
        rec = self.lessons.get(lesson_id)
        if rec is None or rec.owner != owner:
            raise LessonNotFoundError(lesson_id)
        return rec

    def _owned_card(self, owner: str, card_id: str) -> CardRecord | None:
        rec = self.cards.get(card_id)
        if rec is None or self._owner_of(rec) != owner:
            return None
        return rec

    def _owner_of(self, rec: CardRecord) -> str | None:
        lesson = self.lessons.get(rec.lesson_id)
        return lesson.owner if lesson else None
