"""
File-system book store: one file per book, used for export, bulk import and
as the offline substitute when the database is unreachable.

Books are written as JSON records. Plain-text notes (``.md`` / ``.txt``) are
read too so that existing note folders can be imported.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from dacite import Config, DaciteError, from_dict

from booklib.config import Settings
from booklib.security import UnsafeTitleError, safe_book_path
from booklib.types import Book, Page, SearchHit, compute_content_hash, ordered_pages

logger = logging.getLogger(__name__)

BOOK_SUFFIX = ".json"
TEXT_SUFFIXES = (".md", ".txt")
RECOGNIZED_SUFFIXES = (BOOK_SUFFIX,) + TEXT_SUFFIXES
AUTHOR_PREFIX = "**idauthor**: "
MAX_LINES_PER_PAGE = 20


def encode_book(book: Book) -> dict:
    return book.as_dict()


def decode_book(data: dict) -> Book:
    record = {
        "id": data.get("id"),
        "title": data["title"],
        "hash": data.get("hash") or "",
        "author_id": data.get("authorId") or None,
        "pages": [
            {
                "id": page.get("id"),
                "book_id": page.get("bookId"),
                "page_number": page["pageNumber"],
                "content": page.get("content") or "",
            }
            for page in data.get("pages") or []
        ],
    }
    book = from_dict(Book, record, config=Config(strict=True))
    book.pages = ordered_pages(book.pages)
    content_hash = compute_content_hash(book.pages)
    if book.hash and book.hash != content_hash:
        logger.info("Stored hash of '%s' is stale; using the page digest", book.title)
    book.hash = content_hash
    return book


def parse_text_note(path: Path) -> Book:
    """Read a plain-text note, 20 non-blank lines per page."""
    lines = path.read_text(encoding="utf-8").splitlines()
    author_id = None
    if lines and lines[0].startswith(AUTHOR_PREFIX):
        author_id = lines[0][len(AUTHOR_PREFIX):].strip() or None
        lines = lines[1:]

    pages: List[Page] = []
    buffer: List[str] = []
    line_count = 0

    def flush():
        pages.append(Page(page_number=len(pages) + 1, content="\n".join(buffer).strip()))

    for line in lines:
        if line.strip():
            buffer.append(line)
            line_count += 1
            if line_count >= MAX_LINES_PER_PAGE:
                flush()
                buffer, line_count = [], 0
        elif buffer:
            buffer.append("")
    if buffer:
        flush()

    return Book(
        title=path.stem,
        hash=compute_content_hash(pages),
        author_id=author_id,
        pages=pages,
    )


class LocalBookStore:
    """Stores each book as ``<sanitized title>.json`` inside a directory."""

    def __init__(self, library_dir: str | Path, offline_dir: str | Path | None = None):
        self.library_dir = Path(library_dir)
        self.offline_dir = Path(offline_dir) if offline_dir else self.library_dir

    def _directories(self) -> List[Path]:
        if self.offline_dir.resolve() == self.library_dir.resolve():
            return [self.library_dir]
        return [self.library_dir, self.offline_dir]

    def _book_files(self, roots: List[Path]) -> Iterator[Path]:
        seen = set()
        for root in roots:
            if not root.is_dir():
                continue
            for path in sorted(root.rglob("*")):
                if not path.is_file() or path.suffix.lower() not in RECOGNIZED_SUFFIXES:
                    continue
                resolved = path.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                yield path

    def load_book(self, path: str | Path) -> Optional[Book]:
        """Read one book file; returns None (and logs) when it cannot be parsed."""
        path = Path(path)
        if not path.is_file():
            logger.warning("Book file does not exist: %s", path)
            return None
        try:
            if path.suffix.lower() == BOOK_SUFFIX:
                return decode_book(json.loads(path.read_text(encoding="utf-8")))
            if path.suffix.lower() in TEXT_SUFFIXES:
                return parse_text_note(path)
        except (OSError, ValueError, KeyError, TypeError, DaciteError) as e:
            logger.warning("Skipping unreadable book file %s: %s", path, e)
            return None
        logger.warning("Unrecognized book file type: %s", path)
        return None

    def _scan(self, roots: Optional[List[Path]] = None) -> List[Tuple[Path, Book]]:
        found = []
        for path in self._book_files(roots or self._directories()):
            book = self.load_book(path)
            if book is not None:
                found.append((path, book))
        return found

    def _locate(self, predicate: Callable[[Book], bool]) -> Optional[Tuple[Path, Book]]:
        for path, book in self._scan():
            if predicate(book):
                return path, book
        return None

    def _locate_title(self, title: str) -> Optional[Tuple[Path, Book]]:
        wanted = title.lower()
        return self._locate(lambda book: book.title.lower() == wanted)

    def _next_id(self) -> int:
        ids = [book.id for _, book in self._scan() if book.id is not None]
        return max(ids, default=0) + 1

    def _write(self, path: Path, book: Book) -> None:
        for number, page in enumerate(ordered_pages(book.pages), start=1):
            page.id = number
            page.book_id = book.id
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(encode_book(book), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    @staticmethod
    def _is_path(candidate: Path) -> bool:
        # Titles never contain separators, so anything with one is a path.
        return candidate.is_absolute() or len(candidate.parts) > 1

    def _is_managed(self, path: Path) -> bool:
        target = path.resolve()
        return any(directory.resolve() in target.parents for directory in self._directories())

    def _claimed_by_other(self, path: Path, title: str) -> bool:
        """True when ``path`` exists and holds a book with a different title."""
        if not path.exists():
            return False
        existing = self.load_book(path)
        return existing is None or existing.title.lower() != title.lower()

    def list_all(self, scope_hint: Optional[str] = None) -> List[Book]:
        roots = [Path(scope_hint)] if scope_hint else None
        if scope_hint and not Path(scope_hint).is_dir():
            logger.warning("No book directory at %s", scope_hint)
            return []
        return [book for _, book in self._scan(roots)]

    def find_by_title(self, title: str) -> Optional[Book]:
        if not title:
            return None
        candidate = Path(title)
        if self._is_path(candidate):
            if candidate.suffix.lower() not in RECOGNIZED_SUFFIXES or not self._is_managed(candidate):
                logger.warning("Refusing to read %s outside the book directories", candidate)
                return None
            return self.load_book(candidate)
        located = self._locate_title(title)
        return located[1] if located else None

    def insert(self, book: Book, degraded: bool = False) -> bool:
        target_dir = self.offline_dir if degraded else self.library_dir
        try:
            path = safe_book_path(target_dir, book.title, BOOK_SUFFIX)
        except UnsafeTitleError as e:
            logger.error("Rejected book title %r: %s", book.title, e)
            return False
        if self.hash_exists(book.hash):
            logger.info("Book content already stored locally: %s", book.title)
            return False
        if self._claimed_by_other(path, book.title):
            logger.warning("%s already holds a different book; not storing '%s'", path, book.title)
            return False
        if degraded:
            logger.warning(
                "Database unavailable, writing '%s' to offline storage %s",
                book.title,
                target_dir,
            )
        try:
            book.id = self._next_id()
            self._write(path, book)
        except OSError:
            logger.exception("Error writing book '%s' to %s", book.title, path)
            return False
        logger.info("Stored book '%s' at %s", book.title, path)
        return True

    def update(self, book: Book) -> bool:
        located = self._locate(lambda stored: book.id is not None and stored.id == book.id)
        if located is None:
            logger.warning("No local book with id %s to update", book.id)
            return False
        old_path, _ = located
        try:
            new_path = safe_book_path(old_path.parent, book.title, BOOK_SUFFIX)
        except UnsafeTitleError as e:
            logger.error("Rejected book title %r: %s", book.title, e)
            return False
        renamed = new_path.resolve() != old_path.resolve()
        if renamed and self._claimed_by_other(new_path, book.title):
            logger.warning("%s already holds a different book; not renaming '%s'", new_path, book.title)
            return False
        try:
            self._write(new_path, book)
            if renamed:
                old_path.unlink()
        except OSError:
            logger.exception("Error updating local book '%s'", book.title)
            return False
        return True

    def delete(self, title: str) -> bool:
        candidate = Path(title)
        if self._is_path(candidate):
            if candidate.suffix.lower() not in RECOGNIZED_SUFFIXES:
                logger.warning("Refusing to delete non-book file %s", candidate)
                return False
            if not self._is_managed(candidate):
                logger.warning("Refusing to delete %s outside the book directories", candidate)
                return False
            if not candidate.is_file():
                logger.warning("Book file does not exist for deletion: %s", candidate)
                return False
            path = candidate
        else:
            located = self._locate_title(title)
            if located is None:
                logger.warning("Book file does not exist for deletion: %s", title)
                return False
            path = located[0]
        try:
            path.unlink()
        except OSError:
            logger.exception("Failed to delete book file %s", path)
            return False
        logger.info("Deleted book file %s", path)
        return True

    def hash_exists(self, content_hash: str) -> bool:
        return self._locate(lambda book: book.hash == content_hash) is not None

    def connect(self, settings: Optional[Settings] = None) -> bool:
        if settings is not None:
            self.library_dir = Path(settings.library_dir)
            self.offline_dir = Path(settings.offline_dir or settings.library_dir)
        try:
            for directory in self._directories():
                directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.exception("Cannot create book directory %s", self.library_dir)
            return False
        return True

    def is_available(self) -> bool:
        return self.library_dir.is_dir()

    def search_content(self, query: str) -> List[SearchHit]:
        needle = query.lower()
        hits: List[SearchHit] = []
        for _, book in self._scan():
            for page in ordered_pages(book.pages):
                if page.content and needle in page.content.lower():
                    hits.append(SearchHit(book.title, page.page_number, page.content))
        return hits

    def add_page(self, book_id: int, page: Page) -> bool:
        located = self._locate(lambda book: book.id == book_id)
        if located is None:
            return False
        path, book = located
        stored = copy.copy(page)
        book.pages = ordered_pages((book.pages or []) + [stored])
        try:
            self._write(path, book)
        except OSError:
            logger.exception("Failed to add page to local book '%s'", book.title)
            return False
        page.id = stored.id
        page.book_id = book_id
        return True

    def pages_of(self, title: str) -> List[Page]:
        book = self.find_by_title(title)
        return ordered_pages(book.pages) if book else []

    def delete_pages_of(self, title: str) -> None:
        located = self._locate_title(title)
        if located is None:
            return
        path, book = located
        book.pages = []
        try:
            self._write(path, book)
        except OSError:
            logger.exception("Failed to clear pages of local book '%s'", title)
