"""
JSON wire format of the sync protocol.

Pydantic models mirror the camelCase request/response bodies; the converters
translate them to and from the domain dataclasses. Device-local media blobs
never cross the wire.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from lingolift.domain.constants import DEFAULT_EFACTOR
from lingolift.domain.models import (
    CardProgress,
    Changes,
    ChangeSet,
    Flashcard,
    Lesson,
    NewUserCard,
    ServerUpdateSet,
    Updates,
)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _none_to_list(v: Any) -> Any:
    return [] if v is None else v


class FlashcardPayload(WireModel):
    id: str
    front: str = ""
    back: str = ""
    is_user_created: bool = False
    interval: int = 0
    repetition: int = 0
    efactor: float = DEFAULT_EFACTOR
    next_review: int = 0
    last_updated: int = 0

    @field_validator("is_user_created", mode="before")
    @classmethod
    def _null_flag(cls, v: Any) -> Any:
        return False if v is None else v


class LessonPayload(WireModel):
    id: str
    title: str
    description: str | None = None
    created_at: int = 0
    tags: list[str] = Field(default_factory=list)
    audio_url: str | None = None
    pdf_url: str | None = None
    markdown_content: str | None = None
    flashcards: list[FlashcardPayload] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _ordered_tag_set(cls, v: Any) -> Any:
        if v is None:
            return []
        return list(dict.fromkeys(v))

    @field_validator("flashcards", mode="before")
    @classmethod
    def _null_cards(cls, v: Any) -> Any:
        return _none_to_list(v)


class CardProgressPayload(WireModel):
    card_id: str
    interval: int
    repetition: int
    efactor: float
    next_review: int
    last_updated: int


class NewUserCardPayload(WireModel):
    lesson_id: str
    card: FlashcardPayload


class ChangesPayload(WireModel):
    created_cards: list[NewUserCardPayload] = Field(default_factory=list)
    modified_cards: list[FlashcardPayload] = Field(default_factory=list)
    deleted_card_ids: list[str] = Field(default_factory=list)
    deleted_lesson_ids: list[str] = Field(default_factory=list)
    progress_updates: list[CardProgressPayload] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def _null_lists(cls, v: Any) -> Any:
        return _none_to_list(v)


class ChangeSetPayload(WireModel):
    last_sync_timestamp: int = 0
    changes: ChangesPayload = Field(default_factory=ChangesPayload)


class UpdatesPayload(WireModel):
    lessons: list[LessonPayload] = Field(default_factory=list)
    deleted_lesson_ids: list[str] = Field(default_factory=list)
    remote_progress: list[CardProgressPayload] = Field(default_factory=list)
    deleted_card_ids: list[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def _null_lists(cls, v: Any) -> Any:
        return _none_to_list(v)


class ServerUpdateSetPayload(WireModel):
    server_timestamp: int
    updates: UpdatesPayload = Field(default_factory=UpdatesPayload)


# ---------------------------------------------------------------------------
# Domain <-> wire
# ---------------------------------------------------------------------------


def card_to_payload(card: Flashcard) -> FlashcardPayload:
    return FlashcardPayload(
        id=card.id,
        front=card.front,
        back=card.back,
        is_user_created=card.is_user_created,
        interval=card.interval,
        repetition=card.repetition,
        efactor=card.efactor,
        next_review=card.next_review,
        last_updated=card.last_updated,
    )


def card_from_payload(payload: FlashcardPayload) -> Flashcard:
    return Flashcard(**payload.model_dump())


def progress_to_payload(progress: CardProgress) -> CardProgressPayload:
    return CardProgressPayload(
        card_id=progress.card_id,
        interval=progress.interval,
        repetition=progress.repetition,
        efactor=progress.efactor,
        next_review=progress.next_review,
        last_updated=progress.last_updated,
    )


def progress_from_payload(payload: CardProgressPayload) -> CardProgress:
    return CardProgress(**payload.model_dump())


def lesson_to_payload(lesson: Lesson) -> LessonPayload:
    return LessonPayload(
        id=lesson.id,
        title=lesson.title,
        description=lesson.description,
        created_at=lesson.created_at,
        tags=list(lesson.tags),
        audio_url=lesson.audio_url,
        pdf_url=lesson.pdf_url,
        markdown_content=lesson.markdown_content,
        flashcards=[card_to_payload(c) for c in lesson.flashcards],
    )


def lesson_from_payload(payload: LessonPayload) -> Lesson:
    return Lesson(
        id=payload.id,
        title=payload.title,
        description=payload.description,
        created_at=payload.created_at,
        tags=list(payload.tags),
        audio_url=payload.audio_url,
        pdf_url=payload.pdf_url,
        markdown_content=payload.markdown_content,
        flashcards=[card_from_payload(c) for c in payload.flashcards],
    )


def encode_change_set(change_set: ChangeSet) -> dict[str, Any]:
    """Domain change-set to a JSON-ready request body."""
    c = change_set.changes
    payload = ChangeSetPayload(
        last_sync_timestamp=change_set.last_sync_timestamp,
        changes=ChangesPayload(
            created_cards=[
                NewUserCardPayload(lesson_id=n.lesson_id, card=card_to_payload(n.card))
                for n in c.created_cards
            ],
            modified_cards=[card_to_payload(card) for card in c.modified_cards],
            deleted_card_ids=list(c.deleted_card_ids),
            deleted_lesson_ids=list(c.deleted_lesson_ids),
            progress_updates=[progress_to_payload(p) for p in c.progress_updates],
        ),
    )
    return payload.model_dump(by_alias=True)


def decode_change_set(payload: ChangeSetPayload) -> ChangeSet:
    c = payload.changes
    return ChangeSet(
        last_sync_timestamp=payload.last_sync_timestamp,
        changes=Changes(
            created_cards=[
                NewUserCard(lesson_id=n.lesson_id, card=card_from_payload(n.card))
                for n in c.created_cards
            ],
            modified_cards=[card_from_payload(card) for card in c.modified_cards],
            deleted_card_ids=list(c.deleted_card_ids),
            deleted_lesson_ids=list(c.deleted_lesson_ids),
            progress_updates=[progress_from_payload(p) for p in c.progress_updates],
        ),
    )


def encode_server_updates(update_set: ServerUpdateSet) -> ServerUpdateSetPayload:
    u = update_set.updates
    return ServerUpdateSetPayload(
        server_timestamp=update_set.server_timestamp,
        updates=UpdatesPayload(
            lessons=[lesson_to_payload(lesson) for lesson in u.lessons],
            deleted_lesson_ids=list(u.deleted_lesson_ids),
            remote_progress=[progress_to_payload(p) for p in u.remote_progress],
            deleted_card_ids=list(u.deleted_card_ids),
        ),
    )


def decode_server_updates(data: Any) -> ServerUpdateSet:
    """
    Validate a response body and convert it to the domain update-set.

    Raises:
        pydantic.ValidationError: If the body does not match the protocol.
    """
    payload = ServerUpdateSetPayload.model_validate(data)
    u = payload.updates
    return ServerUpdateSet(
        server_timestamp=payload.server_timestamp,
        updates=Updates(
            lessons=[lesson_from_payload(lesson) for lesson in u.lessons],
            deleted_lesson_ids=list(u.deleted_lesson_ids),
            remote_progress=[progress_from_payload(p) for p in u.remote_progress],
            deleted_card_ids=list(u.deleted_card_ids),
        ),
    )
