"""
Domain models for lessons, flashcards and the sync protocol.

These are pure data structures with no I/O or external dependencies.
All timestamps are integer epoch milliseconds.
"""

from dataclasses import dataclass, field, replace

from .constants import DEFAULT_EFACTOR


@dataclass(frozen=True)
class Flashcard:
    """
    A single card owned by exactly one lesson.

    Attributes:
        id: Stable, globally unique identifier.
        interval: Current interval in days.
        repetition: Number of successful reviews in a row.
        efactor: SuperMemo-2 easiness factor (never below 1.3).
        next_review: When the card is due again.
        last_updated: Bumped on every change; the sole conflict-resolution key.
    """

    id: str
    front: str
    back: str
    is_user_created: bool = False
    interval: int = 0
    repetition: int = 0
    efactor: float = DEFAULT_EFACTOR
    next_review: int = 0
    last_updated: int = 0


@dataclass(frozen=True)
class CardProgress:
    """SRS state of one card, as exchanged during sync."""

    card_id: str
    interval: int
    repetition: int
    efactor: float
    next_review: int
    last_updated: int

    @classmethod
    def from_card(cls, card: Flashcard) -> "CardProgress":
        return cls(
            card_id=card.id,
            interval=card.interval,
            repetition=card.repetition,
            efactor=card.efactor,
            next_review=card.next_review,
            last_updated=card.last_updated,
        )

    def apply_to(self, card: Flashcard) -> Flashcard:
        """Return `card` carrying this progress instead of its own SRS fields."""
        return replace(
            card,
            interval=self.interval,
            repetition=self.repetition,
            efactor=self.efactor,
            next_review=self.next_review,
            last_updated=self.last_updated,
        )


@dataclass
class Lesson:
    """
    A lesson and the flashcards it exclusively owns.

    `audio_blob` and `pdf_blob` are device-local media caches. They are never
    sent over the wire and survive every merge.
    """

    id: str
    title: str
    created_at: int
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    audio_url: str | None = None
    pdf_url: str | None = None
    markdown_content: str | None = None
    flashcards: list[Flashcard] = field(default_factory=list)

    audio_blob: bytes | None = None
    pdf_blob: bytes | None = None

    def find_card(self, card_id: str) -> Flashcard | None:
        for card in self.flashcards:
            if card.id == card_id:
                return card
        return None


@dataclass(frozen=True)
class Tombstone:
    """A recorded deletion, kept so peers syncing later can apply it."""

    id: str
    timestamp: int


@dataclass(frozen=True)
class NewUserCard:
    """A user-authored card together with the lesson that owns it."""

    lesson_id: str
    card: Flashcard


@dataclass(frozen=True)
class DueCard:
    """A card queued for review, paired with its owning lesson."""

    lesson_id: str
    card: Flashcard


@dataclass
class Changes:
    created_cards: list[NewUserCard] = field(default_factory=list)
    modified_cards: list[Flashcard] = field(default_factory=list)
    deleted_card_ids: list[str] = field(default_factory=list)
    deleted_lesson_ids: list[str] = field(default_factory=list)
    progress_updates: list[CardProgress] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.created_cards
            or self.modified_cards
            or self.deleted_card_ids
            or self.deleted_lesson_ids
            or self.progress_updates
        )


@dataclass
class ChangeSet:
    """Upstream payload: everything this device changed since `last_sync_timestamp`."""

    last_sync_timestamp: int
    changes: Changes = field(default_factory=Changes)


@dataclass
class Updates:
    lessons: list[Lesson] = field(default_factory=list)
    deleted_lesson_ids: list[str] = field(default_factory=list)
    remote_progress: list[CardProgress] = field(default_factory=list)
    deleted_card_ids: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.lessons
            or self.deleted_lesson_ids
            or self.remote_progress
            or self.deleted_card_ids
        )


@dataclass
class ServerUpdateSet:
    """Downstream payload returned by the sync server."""

    server_timestamp: int
    updates: Updates = field(default_factory=Updates)


@dataclass
class LessonRecord:
    """
    A lesson as the sync server holds it.

    Its flashcards live in CardRecord entries; `lesson.flashcards` stays empty.
    """

    lesson: Lesson
    owner: str
    last_updated: int
    deleted_at: int = 0


@dataclass
class CardRecord:
    card: Flashcard
    lesson_id: str
    changed_at: int  # server clock; downstream queries use this, not card.last_updated
    deleted_at: int = 0
