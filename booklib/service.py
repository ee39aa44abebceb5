"""
Library service: the single entry point used by the API, CLI and worker.

It picks the storage backend from the current connectivity, checks author
permissions, and runs batched, hash-deduplicated imports.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from booklib.analysis import DEFAULT_ANALYZERS, Analyzer
from booklib.db import BookStore
from booklib.local_storage import LocalBookStore
from booklib.types import (
    AnalysisMethod,
    Book,
    Environment,
    ImportReport,
    Page,
    SearchHit,
    compute_content_hash,
)

logger = logging.getLogger(__name__)

BATCH_SIZE = 50


class LibraryService:
    def __init__(
        self,
        primary: BookStore,
        local: LocalBookStore,
        user_id: str,
        analyzer_factories: Optional[Mapping[AnalysisMethod, Callable[[], Analyzer]]] = None,
    ):
        if not user_id:
            raise ValueError("user_id is required")
        self.primary = primary
        self.local = local
        self.user_id = user_id
        self._analyzer_factories = dict(analyzer_factories or DEFAULT_ANALYZERS)
        self._analyzers: Dict[AnalysisMethod, Analyzer] = {}
        # Set on every DISCONNECTED -> CONNECTED transition until a sync runs.
        self._reconnected = False
        self.environment = self._probe()
        logger.info(
            "Library service for user '%s' started %s", user_id, self.environment.name
        )

    # Environment

    def _probe(self) -> Environment:
        if self.primary.is_available():
            return Environment.CONNECTED
        return Environment.DISCONNECTED

    def refresh_environment(self) -> Environment:
        current = self._probe()
        if current is not self.environment:
            logger.warning(
                "Backend environment changed: %s -> %s",
                self.environment.name,
                current.name,
            )
            if current is Environment.CONNECTED:
                self._reconnected = True
        self.environment = current
        return current

    def is_backend_connected(self) -> bool:
        connected = self.refresh_environment() is Environment.CONNECTED
        if connected:
            logger.info("Database connection is active.")
        else:
            logger.warning("Database connection is inactive.")
        return connected

    def _read_store(self) -> BookStore:
        if self.refresh_environment() is Environment.CONNECTED:
            return self.primary
        logger.warning("Reading from local storage while the database is unavailable")
        return self.local

    def _write_target(self) -> Tuple[BookStore, bool]:
        if self.refresh_environment() is Environment.CONNECTED:
            return self.primary, False
        return self.local, True

    # Permissions

    def has_write_privileges(self, title: str) -> bool:
        book = self._read_store().find_by_title(title)
        if book is None:
            logger.warning("No book found with title: %s", title)
            return False
        if book.author_id == self.user_id:
            logger.info("User '%s' has write privileges for '%s'.", self.user_id, title)
            return True
        logger.warning(
            "User '%s' does NOT have write privileges for '%s'.", self.user_id, title
        )
        return False

    def _assign_author(self, book: Book) -> None:
        if not book.author_id:
            book.author_id = self.user_id
            logger.debug("Set author of '%s' to %s", book.title, self.user_id)

    # Import

    def import_path(self, path: str | Path) -> ImportReport:
        """Import a single book file, or every book file under a directory."""
        target = Path(path)
        store, degraded = self._write_target()
        if target.is_dir():
            books = self.local.list_all(str(target))
            if not books:
                logger.warning("No books found in directory: %s", target)
                return ImportReport()
            report = self._import_in_batches(books, store, degraded)
        elif target.is_file():
            book = self.local.load_book(target)
            if book is None:
                logger.warning("No book could be read from: %s", target)
                return ImportReport()
            report = ImportReport()
            try:
                self._assign_author(book)
                self._store_if_new(book, store, degraded, report)
            except Exception:
                logger.exception("Failed to import book: %s", book.title)
                report.failed.append(book.title)
        else:
            logger.warning("Invalid import path: %s", target)
            return ImportReport()

        logger.info(
            "Import of %s finished: %d imported, %d skipped, %d failed",
            target,
            len(report.imported),
            len(report.skipped),
            len(report.failed),
        )
        return report

    def _import_in_batches(
        self, books: List[Book], store: BookStore, degraded: bool
    ) -> ImportReport:
        report = ImportReport()
        batch: List[Book] = []
        for book in books:
            try:
                self._assign_author(book)
            except Exception:
                logger.exception("Error processing book: %s", book.title)
                report.failed.append(book.title)
                continue
            batch.append(book)
            if len(batch) == BATCH_SIZE:
                self._flush_batch(batch, store, degraded, report)
                batch = []
        if batch:
            self._flush_batch(batch, store, degraded, report)
        return report

    def _flush_batch(
        self, batch: List[Book], store: BookStore, degraded: bool, report: ImportReport
    ) -> None:
        logger.info("Processing batch of size: %d", len(batch))
        report.batch_sizes.append(len(batch))
        for book in batch:
            try:
                self._store_if_new(book, store, degraded, report)
            except Exception:
                logger.exception("Error processing book: %s", book.title)
                report.failed.append(book.title)

    def _store_if_new(
        self, book: Book, store: BookStore, degraded: bool, report: ImportReport
    ) -> None:
        if not book.hash:
            book.hash = compute_content_hash(book.pages)
        if store.hash_exists(book.hash):
            logger.info("Book already exists, skipping: %s", book.title)
            report.skipped.append(book.title)
            return
        if store.insert(book, degraded):
            logger.info("Successfully added book: %s", book.title)
            report.imported.append(book.title)
        elif store.hash_exists(book.hash):
            # Another importer stored the same content in between.
            logger.info("Book already exists, skipping: %s", book.title)
            report.skipped.append(book.title)
        else:
            logger.warning("Failed to add book: %s", book.title)
            report.failed.append(book.title)

    def sync_offline(self) -> ImportReport:
        """Push books written while disconnected into the primary backend."""
        if self.local is self.primary:
            return ImportReport()
        if not self.is_backend_connected():
            logger.warning("Cannot sync offline books while disconnected")
            return ImportReport()
        self._reconnected = False
        if not self.local.offline_dir.is_dir():
            return ImportReport()
        return self.import_path(self.local.offline_dir)

    def sync_after_reconnect(self) -> Optional[ImportReport]:
        """Run ``sync_offline`` if the backend came back since the last sync."""
        self.refresh_environment()
        if not self._reconnected or self.environment is not Environment.CONNECTED:
            return None
        logger.info("Backend reconnected; syncing offline books")
        return self.sync_offline()

    # Export / delete / update

    def export_book(self, book_or_title: Book | str) -> bool:
        if isinstance(book_or_title, Book):
            book = book_or_title
        else:
            book = self.primary.find_by_title(book_or_title)
            if book is None:
                logger.warning("No book found in the database with title: %s", book_or_title)
                return False

        degraded = not self.is_backend_connected()
        exported = self.local.insert(copy.deepcopy(book), degraded)
        if exported:
            logger.info("Exported book to local storage: %s", book.title)
        else:
            logger.warning("Failed to export book to local storage: %s", book.title)
        return exported

    def delete(self, value: str) -> bool:
        """Delete an exported book file when ``value`` is a file path, else a library entry by title."""
        if Path(value).is_file():
            deleted = self.local.delete(value)
            where = "local storage"
        else:
            deleted = self.primary.delete(value)
            where = "the database"
        if deleted:
            logger.info("Deleted book from %s: %s", where, value)
        else:
            logger.warning("Failed to delete book from %s: %s", where, value)
        return deleted

    def update_book(self, book: Book, original_title: Optional[str] = None) -> bool:
        title = original_title or book.title
        if not self.has_write_privileges(title):
            return False
        if book.id is None:
            stored = self.primary.find_by_title(title)
            book.id = stored.id if stored else None
        self._assign_author(book)
        book.hash = compute_content_hash(book.pages)
        updated = self.primary.update(book)
        if updated:
            logger.info("Book '%s' was updated successfully.", book.title)
        else:
            logger.error("Failed to update book '%s'.", book.title)
        return updated

    def create_book(self, title: str, content: str = "") -> Optional[Book]:
        pages = [Page(page_number=1, content=content)]
        book = Book(
            title=title,
            hash=compute_content_hash(pages),
            author_id=self.user_id,
            pages=pages,
        )
        store, degraded = self._write_target()
        if not store.insert(book, degraded):
            logger.warning("Could not create book '%s'", title)
            return None
        logger.info("Created book '%s'", title)
        return book

    # Reads

    def get_all(self) -> List[Book]:
        books = self._read_store().list_all(None)
        if books:
            logger.info("Retrieved %d books.", len(books))
        else:
            logger.info("No books found.")
        return books

    def get_by_title(self, title: str) -> Optional[Book]:
        book = self._read_store().find_by_title(title)
        if book is None:
            logger.warning("No book found with title: %s", title)
        return book

    def add_page(self, title: str, page: Page) -> bool:
        book = self.get_by_title(title)
        if book is None:
            logger.warning("Cannot add page. Book '%s' does not exist.", title)
            return False
        if not self.has_write_privileges(title):
            return False
        added = self.primary.add_page(book.id, page)
        if added:
            logger.info("Added page to book '%s'.", title)
        else:
            logger.warning("Failed to add page to book '%s'.", title)
        return added

    def search_by_content(self, text: str) -> List[SearchHit]:
        results = self._read_store().search_content(text)
        logger.info("Found %d pages matching '%s'.", len(results), text)
        return results

    def search_by_title(self, text: str) -> List[SearchHit]:
        # Same primitive as content search until a title index exists.
        results = self._read_store().search_content(text)
        logger.info("Found %d pages matching title search '%s'.", len(results), text)
        return results

    # Analysis

    def _analyzer(self, method: AnalysisMethod) -> Analyzer:
        analyzer = self._analyzers.get(method)
        if analyzer is None:
            factory = self._analyzer_factories.get(method)
            if factory is None:
                raise ValueError(f"No analyzer configured for {method.value}")
            analyzer = factory()
            self._analyzers[method] = analyzer
        return analyzer

    def analyze(self, book: Book, method: str) -> str:
        try:
            analysis_method = AnalysisMethod(method)
        except ValueError:
            logger.error("Unknown analysis method: %s", method)
            raise ValueError(f"Unknown analysis method: {method}") from None

        logger.info("Starting analysis '%s' for book '%s'.", method, book.title)
        result = self._analyzer(analysis_method).analyze(book)
        logger.info("Completed analysis '%s' for book '%s'.", method, book.title)
        return result
