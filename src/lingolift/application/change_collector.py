"""
Change collector: gathers everything a device changed since its last sync.

This is a pure read over already-loaded lessons; nothing is mutated.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from lingolift.application.merge_engine import SyncPolicy
from lingolift.domain.models import (
    CardProgress,
    Changes,
    ChangeSet,
    Lesson,
    NewUserCard,
)

logger = logging.getLogger(__name__)


@dataclass
class Tombstones:
    """Deleted ids read from the store's tombstone tables, already filtered by watermark."""

    lesson_ids: list[str] = field(default_factory=list)
    card_ids: list[str] = field(default_factory=list)


def collect_changes(
    local_lessons: Iterable[Lesson],
    tombstones: Tombstones,
    last_sync: int,
    policy: SyncPolicy | None = None,
) -> ChangeSet:
    """
    Build the upstream change-set for cards touched after `last_sync`.

    Single-device policy reports every qualifying card as modified and as a
    progress update, user-created ones additionally as created. Multi-user
    policy reports user-created cards only as created and all others only as
    progress updates.
    """
    policy = policy or SyncPolicy()
    changes = Changes(
        deleted_card_ids=list(tombstones.card_ids),
        deleted_lesson_ids=list(tombstones.lesson_ids),
    )

    for lesson in local_lessons:
        for card in lesson.flashcards:
            if card.last_updated <= last_sync:
                continue

            if card.is_user_created:
                changes.created_cards.append(NewUserCard(lesson_id=lesson.id, card=card))
                if policy.multi_user:
                    continue

            if not policy.multi_user:
                changes.modified_cards.append(card)
            changes.progress_updates.append(CardProgress.from_card(card))

    logger.debug(
        f"[collect] since={last_sync} created={len(changes.created_cards)} "
        f"modified={len(changes.modified_cards)} progress={len(changes.progress_updates)} "
        f"deleted_cards={len(changes.deleted_card_ids)} "
        f"deleted_lessons={len(changes.deleted_lesson_ids)}"
    )
    return ChangeSet(last_sync_timestamp=last_sync, changes=changes)
