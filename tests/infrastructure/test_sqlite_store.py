import sqlite3
from unittest.mock import patch

import pytest

from lingolift.domain.errors import StoreWriteError
from lingolift.infrastructure.adapters.sqlite_store import SqliteLessonStore


@pytest.mark.asyncio
async def test_roundtrip_keeps_cards_tags_and_blobs(store, make_card, make_lesson):
    lesson = make_lesson(
        "l1",
        tags=["es", "food"],
        description="Comida",
        markdown_content="# Menu",
        audio_blob=b"\x00mp3",
        pdf_blob=b"%PDF",
        cards=[make_card("c1", is_user_created=True, efactor=2.36, interval=6)],
    )

    await store.save_lesson(lesson)

    assert await store.get_lesson("l1") == lesson
    assert await store.get_lesson("missing") is None


@pytest.mark.asyncio
async def test_upsert_preserves_insertion_order(store, make_lesson):
    for lesson_id in ("a", "b", "c"):
        await store.save_lesson(make_lesson(lesson_id))
    await store.save_lesson(make_lesson("a", title="Renamed"))

    lessons = await store.get_all_lessons()
    assert [lesson.id for lesson in lessons] == ["a", "b", "c"]
    assert lessons[0].title == "Renamed"


@pytest.mark.asyncio
async def test_tag_filter(store, make_lesson):
    await store.save_lesson(make_lesson("a", tags=["x"]))
    await store.save_lesson(make_lesson("b", tags=["y"]))
    assert [lesson.id for lesson in await store.get_all_lessons("y")] == ["b"]


@pytest.mark.asyncio
async def test_delete_records_tombstone_but_purge_does_not(store, make_lesson):
    await store.save_lesson(make_lesson("a"))
    await store.save_lesson(make_lesson("b"))

    with patch("lingolift.infrastructure.adapters.sqlite_store.now_ms", return_value=2_000):
        await store.delete_lesson("a")
    await store.purge_lesson("b")

    assert await store.get_all_lessons() == []
    assert await store.get_deleted_lesson_ids(1_999) == ["a"]
    assert await store.get_deleted_lesson_ids(2_000) == []


@pytest.mark.asyncio
async def test_card_tombstones_filtered_by_watermark(store):
    with patch("lingolift.infrastructure.adapters.sqlite_store.now_ms", side_effect=[100, 200]):
        await store.record_deleted_card("c1")
        await store.record_deleted_card("c2")

    assert await store.get_deleted_card_ids(0) == ["c1", "c2"]
    assert await store.get_deleted_card_ids(100) == ["c2"]


@pytest.mark.asyncio
async def test_watermark_defaults_sets_and_resets(store):
    assert await store.get_last_sync_timestamp() == 0
    await store.set_last_sync_timestamp(1_234)
    assert await store.get_last_sync_timestamp() == 1_234
    await store.reset_last_sync_timestamp()
    assert await store.get_last_sync_timestamp() == 0


@pytest.mark.asyncio
async def test_data_survives_reopen(tmp_path, make_lesson):
    path = tmp_path / "nested" / "lingolift.db"
    await SqliteLessonStore(path).save_lesson(make_lesson("a"))
    assert [lesson.id for lesson in await SqliteLessonStore(path).get_all_lessons()] == ["a"]


@pytest.mark.asyncio
async def test_write_failure_raises_store_write_error(store, make_lesson):
    await store.save_lesson(make_lesson("a"))
    with patch.object(store, "_connect", side_effect=sqlite3.OperationalError("disk I/O error")):
        with pytest.raises(StoreWriteError, match="disk I/O error"):
            await store.save_lesson(make_lesson("a", title="lost"))

    assert (await store.get_lesson("a")).title == "Lesson a"
