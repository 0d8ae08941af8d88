"""
SQLite Library Archive: keeps the sync server's lessons and cards across restarts.

Records are upserted, never removed; soft deletes travel in `deleted_at`.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from lingolift.domain.errors import StoreWriteError
from lingolift.domain.models import CardRecord, LessonRecord
from lingolift.domain.ports import LibraryArchive
from lingolift.infrastructure.wire import (
    FlashcardPayload,
    LessonPayload,
    card_from_payload,
    card_to_payload,
    lesson_from_payload,
    lesson_to_payload,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS server_lessons (
    id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    payload TEXT NOT NULL,
    last_updated INTEGER NOT NULL,
    deleted_at INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS server_cards (
    id TEXT PRIMARY KEY,
    lesson_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    changed_at INTEGER NOT NULL,
    deleted_at INTEGER NOT NULL DEFAULT 0
);
"""


class SqliteLibraryArchive(LibraryArchive):
    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def load(self) -> tuple[list[LessonRecord], list[CardRecord]]:
        with self._connect() as conn:
            lesson_rows = conn.execute(
                "SELECT owner, payload, last_updated, deleted_at FROM server_lessons "
                "ORDER BY rowid"
            ).fetchall()
            card_rows = conn.execute(
                "SELECT lesson_id, payload, changed_at, deleted_at FROM server_cards "
                "ORDER BY rowid"
            ).fetchall()

        lessons = [
            LessonRecord(
                lesson=lesson_from_payload(LessonPayload.model_validate_json(row["payload"])),
                owner=row["owner"],
                last_updated=row["last_updated"],
                deleted_at=row["deleted_at"],
            )
            for row in lesson_rows
        ]
        cards = [
            CardRecord(
                card=card_from_payload(FlashcardPayload.model_validate_json(row["payload"])),
                lesson_id=row["lesson_id"],
                changed_at=row["changed_at"],
                deleted_at=row["deleted_at"],
            )
            for row in card_rows
        ]
        logger.info(f"[archive] Loaded {len(lessons)} lessons and {len(cards)} cards")
        return lessons, cards

    def save(self, lessons: list[LessonRecord], cards: list[CardRecord]) -> None:
        try:
            with self._connect() as conn:
                conn.executemany(
                    "INSERT INTO server_lessons (id, owner, payload, last_updated, deleted_at) "
                    "VALUES (?, ?, ?, ?, ?) ON CONFLICT(id) DO UPDATE SET owner = excluded.owner, "
                    "payload = excluded.payload, last_updated = excluded.last_updated, "
                    "deleted_at = excluded.deleted_at",
                    [
                        (
                            rec.lesson.id,
                            rec.owner,
                            lesson_to_payload(rec.lesson).model_dump_json(by_alias=True),
                            rec.last_updated,
                            rec.deleted_at,
                        )
                        for rec in lessons
                    ],
                )
                conn.executemany(
                    "INSERT INTO server_cards (id, lesson_id, payload, changed_at, deleted_at) "
                    "VALUES (?, ?, ?, ?, ?) ON CONFLICT(id) DO UPDATE SET "
                    "lesson_id = excluded.lesson_id, payload = excluded.payload, "
                    "changed_at = excluded.changed_at, deleted_at = excluded.deleted_at",
                    [
                        (
                            rec.card.id,
                            rec.lesson_id,
                            card_to_payload(rec.card).model_dump_json(by_alias=True),
                            rec.changed_at,
                            rec.deleted_at,
                        )
                        for rec in cards
                    ],
                )
        except sqlite3.Error as e:
            logger.error(f"[archive] Save failed: {e}")
            raise StoreWriteError(f"Archive save failed: {e}") from e
