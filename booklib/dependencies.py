"""
Dependency wiring: builds backends and the library service from settings.
"""

from __future__ import annotations

import logging

from booklib.config import Settings, get_settings
from booklib.db import BookStore, InMemoryBookStore, SqlBookStore
from booklib.local_storage import LocalBookStore
from booklib.queue import ImportQueue, InMemoryImportQueue, RedisImportQueue
from booklib.service import LibraryService

logger = logging.getLogger(__name__)

_service: LibraryService | None = None
_queue_client: ImportQueue | None = None


def create_local_store(settings: Settings) -> LocalBookStore:
    return LocalBookStore(settings.library_dir, settings.offline_dir)


def create_book_store(settings: Settings, local: LocalBookStore | None = None) -> BookStore:
    """Build the primary backend named by ``settings.backend``."""
    kind = settings.backend.lower()
    if kind == "sql":
        if not settings.database_url:
            raise ValueError("BOOKLIB_DATABASE_URL is required for the sql backend")
        store: BookStore = SqlBookStore(settings.database_url)
    elif kind == "file":
        store = local or create_local_store(settings)
    elif kind == "memory":
        store = InMemoryBookStore()
    else:
        raise ValueError(f"Unsupported backend: {settings.backend}")

    if not store.connect(settings):
        # The service starts disconnected and falls back to local storage.
        logger.warning("Primary %s backend is not reachable at startup", kind)
    return store


def create_library_service(settings: Settings) -> LibraryService:
    local = create_local_store(settings)
    local.connect(settings)
    primary = create_book_store(settings, local)
    return LibraryService(primary, local, settings.user_id)


def get_library_service() -> LibraryService:
    """
    Return a singleton service so every request shares the same backends.
    """
    global _service
    if _service:
        return _service
    _service = create_library_service(get_settings())
    return _service


def get_queue_client() -> ImportQueue:
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url:
        _queue_client = RedisImportQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryImportQueue()
    return _queue_client
