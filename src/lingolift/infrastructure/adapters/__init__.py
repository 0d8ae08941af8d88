# Infrastructure Adapters Package
from .http_transport import HttpSyncTransport
from .sqlite_library import SqliteLibraryArchive
from .sqlite_store import SqliteLessonStore

__all__ = ["HttpSyncTransport", "SqliteLibraryArchive", "SqliteLessonStore"]
