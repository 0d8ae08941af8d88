# Domain Package
from .models import (
    CardProgress,
    CardRecord,
    Changes,
    ChangeSet,
    DueCard,
    Flashcard,
    Lesson,
    LessonRecord,
    NewUserCard,
    ServerUpdateSet,
    Tombstone,
    Updates,
)
from .ports import LessonStore, LibraryArchive, SyncTransport

__all__ = [
    "CardProgress",
    "CardRecord",
    "Changes",
    "ChangeSet",
    "DueCard",
    "Flashcard",
    "Lesson",
    "LessonRecord",
    "NewUserCard",
    "ServerUpdateSet",
    "Tombstone",
    "Updates",
    "LessonStore",
    "LibraryArchive",
    "SyncTransport",
]
