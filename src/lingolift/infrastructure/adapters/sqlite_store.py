"""
SQLite Lesson Store: Infrastructure adapter for the local store port.

Each lesson is one row holding its JSON document (flashcards included), so a
lesson is always written as a whole unit inside one transaction.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from lingolift.domain.clock import now_ms
from lingolift.domain.constants import INITIAL_WATERMARK, WATERMARK_KEY
from lingolift.domain.errors import StoreWriteError
from lingolift.domain.models import Lesson, Tombstone
from lingolift.domain.ports import LessonStore
from lingolift.infrastructure.wire import LessonPayload, lesson_from_payload, lesson_to_payload

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS lessons (
    id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    audio_blob BLOB,
    pdf_blob BLOB
);
CREATE TABLE IF NOT EXISTS deleted_lessons (
    id TEXT PRIMARY KEY,
    timestamp INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS deleted_cards (
    id TEXT PRIMARY KEY,
    timestamp INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


class SqliteLessonStore(LessonStore):
    """
    Keeps lessons, deletion tombstones and the sync watermark in one SQLite file.

    Tombstones are append-only and never pruned.
    """

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

    @contextmanager
    def _writing(self, what: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.Error as e:
            logger.error(f"[store] {what} failed: {e}")
            raise StoreWriteError(f"{what} failed: {e}") from e

    # ---------- Lessons ----------

    async def get_all_lessons(self, tag: str | None = None) -> list[Lesson]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT payload, audio_blob, pdf_blob FROM lessons ORDER BY rowid"
            ).fetchall()
        lessons = [self._row_to_lesson(row) for row in rows]
        if tag is not None:
            lessons = [lesson for lesson in lessons if tag in lesson.tags]
        return lessons

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload, audio_blob, pdf_blob FROM lessons WHERE id = ?",
                (lesson_id,),
            ).fetchone()
        return self._row_to_lesson(row) if row else None

    async def save_lesson(self, lesson: Lesson) -> None:
        payload = lesson_to_payload(lesson).model_dump_json(by_alias=True)
        with self._writing(f"save lesson {lesson.id}") as conn:
            conn.execute(
                "INSERT INTO lessons (id, payload, audio_blob, pdf_blob) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, "
                "audio_blob = excluded.audio_blob, pdf_blob = excluded.pdf_blob",
                (lesson.id, payload, lesson.audio_blob, lesson.pdf_blob),
            )

    async def delete_lesson(self, lesson_id: str) -> None:
        ts = now_ms()
        with self._writing(f"delete lesson {lesson_id}") as conn:
            conn.execute("DELETE FROM lessons WHERE id = ?", (lesson_id,))
            conn.execute(
                "INSERT OR REPLACE INTO deleted_lessons (id, timestamp) VALUES (?, ?)",
                (lesson_id, ts),
            )
        logger.info(f"[store] Deleted lesson {lesson_id} at {ts}")

    async def purge_lesson(self, lesson_id: str) -> None:
        with self._writing(f"purge lesson {lesson_id}") as conn:
            conn.execute("DELETE FROM lessons WHERE id = ?", (lesson_id,))

    @staticmethod
    def _row_to_lesson(row: sqlite3.Row) -> Lesson:
        lesson = lesson_from_payload(LessonPayload.model_validate_json(row["payload"]))
        lesson.audio_blob = row["audio_blob"]
        lesson.pdf_blob = row["pdf_blob"]
        return lesson

    # ---------- Tombstones ----------

    async def record_deleted_card(self, card_id: str) -> None:
        with self._writing(f"record deleted card {card_id}") as conn:
            conn.execute(
                "INSERT OR REPLACE INTO deleted_cards (id, timestamp) VALUES (?, ?)",
                (card_id, now_ms()),
            )

    async def get_deleted_lesson_ids(self, since: int) -> list[str]:
        return [t.id for t in self._tombstones_since("deleted_lessons", since)]

    async def get_deleted_card_ids(self, since: int) -> list[str]:
        return [t.id for t in self._tombstones_since("deleted_cards", since)]

    def _tombstones_since(self, table: str, since: int) -> list[Tombstone]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id, timestamp FROM {table} WHERE timestamp > ? ORDER BY timestamp, id",
                (since,),
            ).fetchall()
        return [Tombstone(row["id"], row["timestamp"]) for row in rows]

    # ---------- Watermark ----------

    async def get_last_sync_timestamp(self) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM sync_state WHERE key = ?", (WATERMARK_KEY,)
            ).fetchone()
        return int(row["value"]) if row else INITIAL_WATERMARK

    async def set_last_sync_timestamp(self, timestamp: int) -> None:
        with self._writing("advance watermark") as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (WATERMARK_KEY, int(timestamp)),
            )

    async def reset_last_sync_timestamp(self) -> None:
        await self.set_last_sync_timestamp(INITIAL_WATERMARK)
