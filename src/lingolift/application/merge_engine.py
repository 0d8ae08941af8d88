"""
Merge engine: reconciles a server update-set with the lessons held locally.

The server is authoritative for lesson content and deletions. Card progress
is resolved per card by recency of `last_updated`, and cards authored on this
device are never dropped. Running the merge again on its own output with the
same payload changes nothing.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Literal

from lingolift.domain.constants import MIN_EFACTOR
from lingolift.domain.errors import MergeInconsistency
from lingolift.domain.models import CardProgress, Flashcard, Lesson, ServerUpdateSet

logger = logging.getLogger(__name__)

ContentAuthority = Literal["server", "local"]


@dataclass(frozen=True)
class SyncPolicy:
    """
    Which sync variant this device runs.

    Attributes:
        multi_user: Server-backed multi-user deployment. Changes how upstream
            buckets are filled (see change_collector).
        content_authority: Who wins for `front`/`back` text. "server" always
            takes the server copy; "local" keeps a local card's text when it
            is strictly newer than the server copy.
    """

    multi_user: bool = False
    content_authority: ContentAuthority = "server"


@dataclass
class MergeResult:
    """Final lesson set after a merge, plus what has to be written."""

    lessons: list[Lesson]
    changed_lesson_ids: list[str] = field(default_factory=list)
    removed_lesson_ids: list[str] = field(default_factory=list)
    skipped_card_ids: list[str] = field(default_factory=list)

    @property
    def changed_lessons(self) -> list[Lesson]:
        wanted = set(self.changed_lesson_ids)
        return [lesson for lesson in self.lessons if lesson.id in wanted]


def build_progress_index(progress: Iterable[CardProgress]) -> dict[str, CardProgress]:
    """Index remote progress by card id, keeping the newest entry per card."""
    index: dict[str, CardProgress] = {}
    for entry in progress:
        current = index.get(entry.card_id)
        if current is None or entry.last_updated > current.last_updated:
            index[entry.card_id] = entry
    return index


class MergeEngine:
    """
    Stateless reconciliation of server updates against local lessons.

    Deletions run first and win over any content arriving in the same
    response. Then every server lesson is either adopted (new) or merged
    card by card with the local copy.
    """

    def __init__(self, policy: SyncPolicy | None = None):
        self.policy = policy or SyncPolicy()

    def merge(
        self,
        server_updates: ServerUpdateSet,
        local_lessons: Iterable[Lesson],
        remote_progress_index: dict[str, CardProgress] | None = None,
    ) -> MergeResult:
        updates = server_updates.updates
        if remote_progress_index is None:
            remote_progress_index = build_progress_index(updates.remote_progress)

        deleted_lessons = set(updates.deleted_lesson_ids)
        deleted_cards = set(updates.deleted_card_ids)

        final: dict[str, Lesson] = {}
        changed: list[str] = []
        removed: list[str] = []
        skipped: list[str] = []

        # 1. Deletion pass
        for lesson in local_lessons:
            if lesson.id in deleted_lessons:
                removed.append(lesson.id)
                continue
            kept = [c for c in lesson.flashcards if c.id not in deleted_cards]
            if len(kept) != len(lesson.flashcards):
                lesson = replace(lesson, flashcards=kept)
                changed.append(lesson.id)
            final[lesson.id] = lesson

        # 2. Content merge, one server lesson at a time
        returned: set[str] = set()
        for server_lesson in updates.lessons:
            if server_lesson.id in deleted_lessons:
                logger.debug(f"[merge] Lesson {server_lesson.id} deleted on server; not adopting")
                continue
            returned.add(server_lesson.id)

            server_cards = [c for c in server_lesson.flashcards if c.id not in deleted_cards]
            local = final.get(server_lesson.id)
            merged = self._merge_lesson(
                server_lesson, server_cards, local, remote_progress_index, skipped
            )

            final[server_lesson.id] = merged
            if merged != local and server_lesson.id not in changed:
                changed.append(server_lesson.id)

        # 3. Remote progress for lessons the server did not send
        for lesson_id, lesson in list(final.items()):
            if lesson_id in returned:
                continue
            cards = [self._newer_progress(c, remote_progress_index) for c in lesson.flashcards]
            if cards != lesson.flashcards:
                final[lesson_id] = replace(lesson, flashcards=cards)
                if lesson_id not in changed:
                    changed.append(lesson_id)

        logger.info(
            f"[merge] lessons={len(final)} changed={len(changed)} "
            f"removed={len(removed)} skipped_cards={len(skipped)}"
        )
        return MergeResult(
            lessons=list(final.values()),
            changed_lesson_ids=changed,
            removed_lesson_ids=removed,
            skipped_card_ids=skipped,
        )

    def _merge_lesson(
        self,
        server_lesson: Lesson,
        server_cards: list[Flashcard],
        local: Lesson | None,
        remote_progress_index: dict[str, CardProgress],
        skipped: list[str],
    ) -> Lesson:
        if local is None:
            local = replace(server_lesson, flashcards=[])
        local_cards = {c.id: c for c in local.flashcards}

        merged_cards: list[Flashcard] = []
        for server_card in server_cards:
            try:
                card = self._reconcile_card(
                    server_card,
                    local_cards.get(server_card.id),
                    remote_progress_index.get(server_card.id),
                )
            except MergeInconsistency as e:
                logger.warning(f"[merge] Keeping server copy in lesson {server_lesson.id}: {e}")
                skipped.append(e.card_id)
                card = server_card
            merged_cards.append(card)

        server_ids = {c.id for c in server_cards}
        user_cards = [
            c for c in local.flashcards if c.is_user_created and c.id not in server_ids
        ]

        return replace(
            server_lesson,
            flashcards=merged_cards + user_cards,
            audio_blob=_keep(local.audio_blob, server_lesson.audio_blob),
            pdf_blob=_keep(local.pdf_blob, server_lesson.pdf_blob),
        )

    def _reconcile_card(
        self,
        server_card: Flashcard,
        local_card: Flashcard | None,
        remote: CardProgress | None,
    ) -> Flashcard:
        """
        Pick content and SRS state for one server card.

        Progress precedence: remote progress if strictly newer than the local
        copy (or no local copy), else local progress, else the server defaults.
        Equal timestamps favor local.
        """
        if not server_card.id:
            raise MergeInconsistency("", "server card has no id")
        if remote is not None:
            _check_progress(server_card.id, remote)

        content = server_card
        if (
            self.policy.content_authority == "local"
            and local_card is not None
            and local_card.last_updated > server_card.last_updated
        ):
            content = replace(server_card, front=local_card.front, back=local_card.back)

        if remote is not None and (
            local_card is None or remote.last_updated > local_card.last_updated
        ):
            return remote.apply_to(content)
        if local_card is not None:
            return CardProgress.from_card(local_card).apply_to(content)
        return content

    def _newer_progress(
        self, card: Flashcard, remote_progress_index: dict[str, CardProgress]
    ) -> Flashcard:
        remote = remote_progress_index.get(card.id)
        if remote is None or remote.last_updated <= card.last_updated:
            return card
        try:
            _check_progress(card.id, remote)
        except MergeInconsistency as e:
            logger.warning(f"[merge] Ignoring remote progress: {e}")
            return card
        return remote.apply_to(card)


def _keep(local: bytes | None, server: bytes | None) -> bytes | None:
    return local if local is not None else server


def _check_progress(card_id: str, remote: CardProgress) -> None:
    if remote.card_id != card_id:
        raise MergeInconsistency(card_id, f"progress entry belongs to {remote.card_id!r}")
    if remote.interval < 0 or remote.repetition < 0:
        raise MergeInconsistency(card_id, "negative interval or repetition")
    if remote.efactor < MIN_EFACTOR:
        raise MergeInconsistency(card_id, f"efactor {remote.efactor} below {MIN_EFACTOR}")
