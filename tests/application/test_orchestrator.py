import asyncio
import itertools
from unittest.mock import AsyncMock, patch

import pytest

from lingolift.application.orchestrator import SyncOrchestrator
from lingolift.application.review_service import ReviewService
from lingolift.application.server_sync import DEFAULT_OWNER, ServerLibrary
from lingolift.application.srs import Grade
from lingolift.domain.errors import StoreWriteError, SyncInProgressError, SyncTransportError
from lingolift.domain.models import DueCard, ServerUpdateSet, Updates
from lingolift.domain.ports import SyncTransport
from lingolift.infrastructure.adapters.sqlite_store import SqliteLessonStore
from lingolift.infrastructure.wire import (
    ChangeSetPayload,
    decode_change_set,
    decode_server_updates,
    encode_change_set,
    encode_server_updates,
)

SERVER_TS = 1_700_000_000_000


class LibraryTransport(SyncTransport):
    """Talks to an in-process ServerLibrary through the JSON wire format."""

    def __init__(self, library: ServerLibrary, clock, owner: str = DEFAULT_OWNER):
        self.library = library
        self.clock = clock
        self.owner = owner

    async def exchange(self, change_set):
        request = ChangeSetPayload.model_validate(encode_change_set(change_set))
        result = self.library.apply_sync(
            self.owner, decode_change_set(request), now=next(self.clock)
        )
        return decode_server_updates(encode_server_updates(result).model_dump(by_alias=True))


def server_response(make_card, make_lesson, ts=SERVER_TS) -> ServerUpdateSet:
    return ServerUpdateSet(
        server_timestamp=ts,
        updates=Updates(
            lessons=[
                make_lesson("l1", cards=[make_card(f"c{i}", last_updated=100) for i in (1, 2, 3)]),
                make_lesson("l2", cards=[make_card(f"c{i}", last_updated=100) for i in (4, 5)]),
            ]
        ),
    )


@pytest.fixture
def transport():
    return AsyncMock(spec=SyncTransport)


@pytest.mark.asyncio
async def test_first_sync_on_empty_device(store, transport, make_card, make_lesson):
    transport.exchange.return_value = server_response(make_card, make_lesson)
    orchestrator = SyncOrchestrator(store, transport)

    outcome = await orchestrator.sync_lessons()

    sent = transport.exchange.await_args.args[0]
    assert sent.last_sync_timestamp == 0
    assert sent.changes.is_empty()

    lessons = await store.get_all_lessons()
    assert [lesson.id for lesson in lessons] == ["l1", "l2"]
    assert sum(len(lesson.flashcards) for lesson in lessons) == 5
    assert await store.get_last_sync_timestamp() == SERVER_TS
    assert outcome.previous_watermark == 0
    assert outcome.lessons_written == ["l1", "l2"]


@pytest.mark.asyncio
async def test_transport_failure_keeps_watermark_and_retry_converges(
    store, transport, make_card, make_lesson
):
    await store.save_lesson(make_lesson("l1", cards=[make_card("c1", last_updated=50)]))
    await store.set_last_sync_timestamp(10)
    orchestrator = SyncOrchestrator(store, transport)

    transport.exchange.side_effect = SyncTransportError("boom", status_code=500)
    with pytest.raises(SyncTransportError):
        await orchestrator.sync_lessons()
    assert await store.get_last_sync_timestamp() == 10
    assert not orchestrator.in_progress

    transport.exchange.side_effect = None
    transport.exchange.return_value = server_response(make_card, make_lesson)
    await orchestrator.sync_lessons()

    retried = transport.exchange.await_args.args[0]
    assert retried.last_sync_timestamp == 10
    assert [p.card_id for p in retried.changes.progress_updates] == ["c1"]
    assert await store.get_last_sync_timestamp() == SERVER_TS


@pytest.mark.asyncio
async def test_store_failure_keeps_watermark(store, transport, make_card, make_lesson):
    transport.exchange.return_value = server_response(make_card, make_lesson)
    orchestrator = SyncOrchestrator(store, transport)

    with patch.object(store, "save_lesson", side_effect=StoreWriteError("disk full")):
        with pytest.raises(StoreWriteError):
            await orchestrator.sync_lessons()

    assert await store.get_last_sync_timestamp() == 0

    await orchestrator.sync_lessons()
    assert len(await store.get_all_lessons()) == 2
    assert await store.get_last_sync_timestamp() == SERVER_TS


@pytest.mark.asyncio
async def test_store_failure_partway_retry_matches_clean_run(
    tmp_path, store, transport, make_card, make_lesson
):
    transport.exchange.return_value = server_response(make_card, make_lesson)
    orchestrator = SyncOrchestrator(store, transport)
    save_lesson = store.save_lesson

    async def fail_on_second_lesson(lesson):
        if lesson.id == "l2":
            raise StoreWriteError("disk full")
        await save_lesson(lesson)

    with patch.object(store, "save_lesson", side_effect=fail_on_second_lesson):
        with pytest.raises(StoreWriteError):
            await orchestrator.sync_lessons()

    assert [lesson.id for lesson in await store.get_all_lessons()] == ["l1"]
    assert await store.get_last_sync_timestamp() == 0

    await orchestrator.sync_lessons()

    clean = SqliteLessonStore(tmp_path / "clean.db")
    await SyncOrchestrator(clean, transport).sync_lessons()
    assert await store.get_all_lessons() == await clean.get_all_lessons()
    assert await store.get_last_sync_timestamp() == SERVER_TS
    assert await clean.get_last_sync_timestamp() == SERVER_TS


@pytest.mark.asyncio
async def test_card_added_during_exchange_survives_merge(
    store, transport, make_card, make_lesson
):
    await store.save_lesson(make_lesson("l1", cards=[make_card("c1", last_updated=100)]))
    added = []

    async def exchange_while_user_adds_card(change_set):
        added.append(await ReviewService(store).add_card("l1", "mine", "authored", now=5_000))
        return ServerUpdateSet(
            server_timestamp=SERVER_TS,
            updates=Updates(
                lessons=[make_lesson("l1", cards=[make_card("c1", last_updated=100)])]
            ),
        )

    transport.exchange.side_effect = exchange_while_user_adds_card
    await SyncOrchestrator(store, transport).sync_lessons()

    cards = (await store.get_lesson("l1")).flashcards
    assert [c.id for c in cards] == ["c1", added[0].id]
    assert cards[1].is_user_created


@pytest.mark.asyncio
async def test_concurrent_sync_is_rejected(store, transport, make_card, make_lesson):
    release = asyncio.Event()

    async def slow_exchange(change_set):
        await release.wait()
        return server_response(make_card, make_lesson)

    transport.exchange.side_effect = slow_exchange
    orchestrator = SyncOrchestrator(store, transport)

    first = asyncio.create_task(orchestrator.sync_lessons())
    await asyncio.sleep(0)
    assert orchestrator.in_progress

    with pytest.raises(SyncInProgressError):
        await orchestrator.sync_lessons()
    with pytest.raises(SyncInProgressError):
        await orchestrator.reset_sync()

    release.set()
    await first
    assert transport.exchange.await_count == 1


@pytest.mark.asyncio
async def test_reset_sync_resends_everything(store, transport, make_card, make_lesson):
    await store.save_lesson(make_lesson("l1", cards=[make_card("c1", last_updated=50)]))
    await store.set_last_sync_timestamp(SERVER_TS)
    transport.exchange.return_value = ServerUpdateSet(server_timestamp=SERVER_TS + 1)
    orchestrator = SyncOrchestrator(store, transport)

    await orchestrator.reset_sync()
    await orchestrator.sync_lessons()

    sent = transport.exchange.await_args.args[0]
    assert sent.last_sync_timestamp == 0
    assert [p.card_id for p in sent.changes.progress_updates] == ["c1"]


@pytest.mark.asyncio
async def test_empty_sync_still_advances_watermark(store, transport):
    transport.exchange.return_value = ServerUpdateSet(server_timestamp=42)

    outcome = await SyncOrchestrator(store, transport).sync_lessons()

    assert not outcome.had_changes
    assert await store.get_last_sync_timestamp() == 42


@pytest.mark.asyncio
async def test_run_cycle_does_not_touch_watermark(store, transport):
    transport.exchange.return_value = ServerUpdateSet(server_timestamp=42)

    outcome = await SyncOrchestrator(store, transport).run_cycle(7)

    assert outcome.server_timestamp == 42
    assert transport.exchange.await_args.args[0].last_sync_timestamp == 7
    assert await store.get_last_sync_timestamp() == 0


@pytest.mark.asyncio
async def test_two_devices_converge_through_server(tmp_path):
    library = ServerLibrary()
    lesson = library.create_lesson(
        DEFAULT_OWNER, "Greetings", cards=[("hola", "hello"), ("adios", "bye")], now=1_000
    )
    clock = itertools.count(10_000, 10_000)

    phone = SqliteLessonStore(tmp_path / "phone.db")
    tablet = SqliteLessonStore(tmp_path / "tablet.db")
    phone_sync = SyncOrchestrator(phone, LibraryTransport(library, clock))
    tablet_sync = SyncOrchestrator(tablet, LibraryTransport(library, clock))

    await phone_sync.sync_lessons()  # server clock 10_000
    await tablet_sync.sync_lessons()  # 20_000

    # Review on the phone, add a personal card on the tablet
    phone_lesson = await phone.get_lesson(lesson.id)
    hola = next(c for c in phone_lesson.flashcards if c.front == "hola")
    await ReviewService(phone).record_review(DueCard(lesson.id, hola), Grade.GOOD, now=25_000)
    await ReviewService(tablet).add_card(lesson.id, "gracias", "thanks", now=25_000)

    await phone_sync.sync_lessons()  # 30_000
    await tablet_sync.sync_lessons()  # 40_000
    await phone_sync.sync_lessons()  # 50_000

    phone_cards = {c.front: c for c in (await phone.get_lesson(lesson.id)).flashcards}
    tablet_cards = {c.front: c for c in (await tablet.get_lesson(lesson.id)).flashcards}
    assert set(phone_cards) == set(tablet_cards) == {"hola", "adios", "gracias"}
    assert tablet_cards["hola"].repetition == 1
    assert phone_cards["hola"].interval == tablet_cards["hola"].interval == 1
    assert await phone.get_last_sync_timestamp() == 50_000
