"""
Ports (interfaces) for the sync core.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import CardRecord, ChangeSet, Lesson, LessonRecord, ServerUpdateSet


class LessonStore(ABC):
    """
    Port for keyed local persistence of lessons, tombstones and the sync watermark.

    Implementations:
        - SqliteLessonStore: single-file SQLite database.
    """

    @abstractmethod
    async def get_all_lessons(self, tag: str | None = None) -> list[Lesson]:
        """
        Return every stored lesson, in insertion order.

        Args:
            tag: If given, only lessons carrying this tag.
        """
        pass

    @abstractmethod
    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        pass

    @abstractmethod
    async def save_lesson(self, lesson: Lesson) -> None:
        """Upsert the lesson as a whole unit, flashcards included."""
        pass

    @abstractmethod
    async def delete_lesson(self, lesson_id: str) -> None:
        """Remove the lesson and record a lesson tombstone stamped now."""
        pass

    @abstractmethod
    async def purge_lesson(self, lesson_id: str) -> None:
        """Remove the lesson without recording a tombstone."""
        pass

    @abstractmethod
    async def record_deleted_card(self, card_id: str) -> None:
        """Record a card tombstone stamped now."""
        pass

    @abstractmethod
    async def get_deleted_lesson_ids(self, since: int) -> list[str]:
        """Ids of lessons deleted strictly after `since`."""
        pass

    @abstractmethod
    async def get_deleted_card_ids(self, since: int) -> list[str]:
        """Ids of cards deleted strictly after `since`."""
        pass

    @abstractmethod
    async def get_last_sync_timestamp(self) -> int:
        pass

    @abstractmethod
    async def set_last_sync_timestamp(self, timestamp: int) -> None:
        pass

    @abstractmethod
    async def reset_last_sync_timestamp(self) -> None:
        pass


class SyncTransport(ABC):
    """
    Port for the single request/response exchange with the sync server.

    Implementations:
        - HttpSyncTransport: JSON POST to `<server_url>/api/sync`.
    """

    @abstractmethod
    async def exchange(self, change_set: ChangeSet) -> ServerUpdateSet:
        """
        Send local changes and receive the server's updates.

        Raises:
            SyncTransportError: On any non-2xx status or network failure.
        """
        pass


class LibraryArchive(ABC):
    """
    Port for keeping the sync server's library across restarts.

    Implementations:
        - SqliteLibraryArchive: single-file SQLite database.
    """

    @abstractmethod
    def load(self) -> tuple[list[LessonRecord], list[CardRecord]]:
        pass

    @abstractmethod
    def save(self, lessons: list[LessonRecord], cards: list[CardRecord]) -> None:
        """Upsert the given records in a single transaction."""
        pass
