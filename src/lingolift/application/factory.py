"""
Sync Factory
Centralizes construction of the store, transport, orchestrator and server library
from config.
"""

from lingolift.application.config import AppConfig
from lingolift.application.merge_engine import SyncPolicy
from lingolift.application.orchestrator import SyncOrchestrator
from lingolift.application.server_sync import ServerLibrary
from lingolift.domain.ports import LessonStore, SyncTransport
from lingolift.infrastructure.adapters.http_transport import HttpSyncTransport
from lingolift.infrastructure.adapters.sqlite_library import SqliteLibraryArchive
from lingolift.infrastructure.adapters.sqlite_store import SqliteLessonStore


def build_policy(config: AppConfig) -> SyncPolicy:
    return SyncPolicy(
        multi_user=config.multi_user,
        content_authority=config.content_authority,
    )


def build_store(config: AppConfig) -> LessonStore:
    return SqliteLessonStore(config.db_path)


def build_transport(config: AppConfig) -> SyncTransport:
    return HttpSyncTransport(
        base_url=config.server_url,
        api_key=config.api_key,
        timeout=config.request_timeout,
    )


def build_orchestrator(
    config: AppConfig,
    store: LessonStore | None = None,
    transport: SyncTransport | None = None,
) -> SyncOrchestrator:
    """
    Returns an orchestrator wired from config; explicit store/transport win.
    """
    return SyncOrchestrator(
        store=store or build_store(config),
        transport=transport or build_transport(config),
        policy=build_policy(config),
    )


def build_server_library(config: AppConfig) -> ServerLibrary:
    """Server library backed by the SQLite archive at `config.server_db_path`."""
    return ServerLibrary(archive=SqliteLibraryArchive(config.server_db_path))
