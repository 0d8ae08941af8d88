"""
Sync Orchestrator: Application layer entry point for synchronization.

Sequences collect -> exchange -> merge -> persist -> advance watermark.
This is the only component that writes the watermark, and it does so only
after every lesson write of the cycle has succeeded.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from lingolift.application.change_collector import Tombstones, collect_changes
from lingolift.application.merge_engine import MergeEngine, SyncPolicy
from lingolift.domain.errors import SyncInProgressError
from lingolift.domain.ports import LessonStore, SyncTransport

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """Summary of one successful sync cycle."""

    previous_watermark: int
    server_timestamp: int
    pushed_created: int = 0
    pushed_modified: int = 0
    pushed_progress: int = 0
    pushed_deleted_cards: int = 0
    pushed_deleted_lessons: int = 0
    lessons_written: list[str] = field(default_factory=list)
    lessons_removed: list[str] = field(default_factory=list)
    skipped_card_ids: list[str] = field(default_factory=list)

    @property
    def had_changes(self) -> bool:
        return bool(
            self.pushed_created
            or self.pushed_modified
            or self.pushed_progress
            or self.pushed_deleted_cards
            or self.pushed_deleted_lessons
            or self.lessons_written
            or self.lessons_removed
        )


class SyncOrchestrator:
    """
    Runs sync cycles against a local store and a transport.

    Not reentrant: a call made while another cycle is in flight is rejected
    with SyncInProgressError.
    """

    def __init__(
        self,
        store: LessonStore,
        transport: SyncTransport,
        policy: SyncPolicy | None = None,
        merge_engine: MergeEngine | None = None,
    ):
        """
        Args:
            store: The local store (port).
            transport: The sync transport (port).
            policy: Sync variant; shared by the collector and the merge engine.
            merge_engine: Optional custom engine; built from `policy` if not provided.
        """
        self._store = store
        self._transport = transport
        self.policy = policy or SyncPolicy()
        self._merge = merge_engine or MergeEngine(self.policy)
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def sync_lessons(self) -> SyncOutcome:
        """
        Run one full sync cycle from the persisted watermark.

        The watermark is read once, threaded through `run_cycle`, and written
        back only when the cycle returns successfully. Any failure leaves it
        untouched so a retry re-sends from the same point.
        """
        if self._lock.locked():
            raise SyncInProgressError("A sync is already in progress")

        async with self._lock:
            last_sync = await self._store.get_last_sync_timestamp()
            outcome = await self.run_cycle(last_sync)
            await self._store.set_last_sync_timestamp(outcome.server_timestamp)
            logger.info(
                f"[sync] Watermark advanced {outcome.previous_watermark} -> "
                f"{outcome.server_timestamp}"
            )
            return outcome

    async def reset_sync(self) -> None:
        """Zero the watermark so the next sync re-sends and re-fetches everything."""
        if self._lock.locked():
            raise SyncInProgressError("Cannot reset while a sync is in progress")
        async with self._lock:
            await self._store.reset_last_sync_timestamp()
            logger.info("[sync] Watermark reset to 0")

    async def run_cycle(self, last_sync: int) -> SyncOutcome:
        """
        One sync round-trip from an explicit watermark; returns the next watermark.

        Does not touch the persisted watermark.
        """
        try:
            local_lessons = await self._store.get_all_lessons()
            tombstones = Tombstones(
                lesson_ids=await self._store.get_deleted_lesson_ids(last_sync),
                card_ids=await self._store.get_deleted_card_ids(last_sync),
            )
            change_set = collect_changes(local_lessons, tombstones, last_sync, self.policy)
            changes = change_set.changes
            logger.info(
                f"[sync] Last sync: {last_sync}; pushing created={len(changes.created_cards)} "
                f"modified={len(changes.modified_cards)} progress={len(changes.progress_updates)} "
                f"deleted_cards={len(changes.deleted_card_ids)} "
                f"deleted_lessons={len(changes.deleted_lesson_ids)}"
            )

            server_updates = await self._transport.exchange(change_set)

            # Lessons saved while the exchange was in flight must survive the merge
            local_lessons = await self._store.get_all_lessons()
            result = self._merge.merge(server_updates, local_lessons)

            for lesson_id in result.removed_lesson_ids:
                await self._store.purge_lesson(lesson_id)
            for lesson in result.changed_lessons:
                await self._store.save_lesson(lesson)
        except Exception as e:
            logger.error(f"Sync failed: {e}")
            raise

        return SyncOutcome(
            previous_watermark=last_sync,
            server_timestamp=server_updates.server_timestamp,
            pushed_created=len(changes.created_cards),
            pushed_modified=len(changes.modified_cards),
            pushed_progress=len(changes.progress_updates),
            pushed_deleted_cards=len(changes.deleted_card_ids),
            pushed_deleted_lessons=len(changes.deleted_lesson_ids),
            lessons_written=list(result.changed_lesson_ids),
            lessons_removed=list(result.removed_lesson_ids),
            skipped_card_ids=list(result.skipped_card_ids),
        )
