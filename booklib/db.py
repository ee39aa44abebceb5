"""
Book storage contract with a relational (SQLAlchemy) implementation and an
in-memory test implementation.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import (
    Session,
    declarative_base,
    relationship,
    selectinload,
    sessionmaker,
)

from booklib.config import Settings
from booklib.security import LIKE_ESCAPE_CHAR, MAX_SEARCH_LENGTH, contains_pattern
from booklib.types import Book, Page, SearchHit, ordered_pages

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 500


class BackendUnavailable(RuntimeError):
    """The backend has no usable connection."""


class BookStore(Protocol):
    """Operations every storage backend provides."""

    def list_all(self, scope_hint: Optional[str] = None) -> List[Book]:
        ...

    def find_by_title(self, title: str) -> Optional[Book]:
        ...

    def insert(self, book: Book, degraded: bool = False) -> bool:
        ...

    def update(self, book: Book) -> bool:
        ...

    def delete(self, title: str) -> bool:
        ...

    def hash_exists(self, content_hash: str) -> bool:
        ...

    def connect(self, settings: Optional[Settings] = None) -> bool:
        ...

    def is_available(self) -> bool:
        ...

    def search_content(self, query: str) -> List[SearchHit]:
        ...

    def add_page(self, book_id: int, page: Page) -> bool:
        ...

    def pages_of(self, title: str) -> List[Page]:
        ...

    def delete_pages_of(self, title: str) -> None:
        ...


class InMemoryBookStore:
    """Dictionary-backed store for development and tests."""

    def __init__(self):
        self.books: Dict[int, Book] = {}
        self.pages: Dict[int, Page] = {}
        self._next_book_id = 1
        self._next_page_id = 1

    def clear(self) -> None:
        """Reset all data and id counters (test isolation only)."""
        self.books.clear()
        self.pages.clear()
        self._next_book_id = 1
        self._next_page_id = 1

    def _pages_for(self, book_id: int) -> List[Page]:
        return ordered_pages(
            replace(page) for page in self.pages.values() if page.book_id == book_id
        )

    def _loaded(self, book: Book) -> Book:
        return replace(book, pages=self._pages_for(book.id))

    def _find(self, title: Optional[str]) -> Optional[Book]:
        if title is None:
            return None
        wanted = title.lower()
        for book in self.books.values():
            if book.title.lower() == wanted:
                return book
        return None

    def _store_pages(self, book_id: int, pages: Optional[List[Page]]) -> None:
        for page in pages or []:
            self.add_page(book_id, page)

    def list_all(self, scope_hint: Optional[str] = None) -> List[Book]:
        return [self._loaded(book) for book in self.books.values()]

    def find_by_title(self, title: str) -> Optional[Book]:
        book = self._find(title)
        return self._loaded(book) if book else None

    def insert(self, book: Book, degraded: bool = False) -> bool:
        if self.hash_exists(book.hash):
            return False
        book.id = self._next_book_id
        self._next_book_id += 1
        self.books[book.id] = replace(book, pages=None)
        self._store_pages(book.id, book.pages)
        return True

    def update(self, book: Book) -> bool:
        if book.id not in self.books:
            return False
        self._purge_pages(book.id)
        self.books[book.id] = replace(book, pages=None)
        self._store_pages(book.id, book.pages)
        return True

    def delete(self, title: str) -> bool:
        book = self._find(title)
        if book is None:
            return False
        del self.books[book.id]
        self._purge_pages(book.id)
        return True

    def hash_exists(self, content_hash: str) -> bool:
        return any(book.hash == content_hash for book in self.books.values())

    def connect(self, settings: Optional[Settings] = None) -> bool:
        return True

    def is_available(self) -> bool:
        return True

    def search_content(self, query: str) -> List[SearchHit]:
        needle = query.lower()
        hits: List[SearchHit] = []
        for book in self.books.values():
            for page in self._pages_for(book.id):
                if page.content and needle in page.content.lower():
                    hits.append(SearchHit(book.title, page.page_number, page.content))
        return hits

    def add_page(self, book_id: int, page: Page) -> bool:
        if book_id not in self.books:
            return False
        page.id = self._next_page_id
        page.book_id = book_id
        self._next_page_id += 1
        self.pages[page.id] = replace(page)
        return True

    def pages_of(self, title: str) -> List[Page]:
        book = self._find(title)
        if book is None:
            return []
        return self._pages_for(book.id)

    def delete_pages_of(self, title: str) -> None:
        book = self._find(title)
        if book is not None:
            self._purge_pages(book.id)

    def _purge_pages(self, book_id: int) -> None:
        for page_id in [pid for pid, page in self.pages.items() if page.book_id == book_id]:
            del self.pages[page_id]


class SqlBookStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (MySQL,
    Postgres, or SQLite for tests).

    Every call opens its own session inside a ``with`` block so the
    connection goes back to the pool on success, early return and error.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("database_url is required for SqlBookStore")
        self.database_url = database_url
        self.engine = None
        self.Session = None

    def connect(self, settings: Optional[Settings] = None) -> bool:
        url = (settings.database_url if settings else None) or self.database_url
        if self.engine is not None and url == self.database_url:
            return True
        try:
            engine = create_engine(
                url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
            Base.metadata.create_all(engine)
        except SQLAlchemyError:
            logger.exception("Could not connect to the book database")
            return False
        self.close()
        self.engine = engine
        self.database_url = url
        self.Session = sessionmaker(
            bind=engine, class_=Session, expire_on_commit=False, future=True
        )
        logger.info("Connected to book database (%s)", engine.dialect.name)
        return True

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.Session = None

    def _session(self) -> Session:
        if self.Session is None:
            raise BackendUnavailable("SqlBookStore.connect() has not succeeded")
        return self.Session()

    def is_available(self) -> bool:
        if self.engine is None:
            return False
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Book database is not reachable")
            return False

    def _to_book(self, row: "BookRow", with_pages: bool = True) -> Book:
        pages = None
        if with_pages:
            pages = [self._to_page(page) for page in row.pages]
        return Book(
            id=row.id,
            title=row.title,
            hash=row.hash,
            author_id=row.author_id,
            pages=pages,
        )

    def _to_page(self, row: "PageRow") -> Page:
        return Page(
            id=row.id,
            book_id=row.book_id,
            page_number=row.page_number,
            content=row.content,
        )

    def _find_row(self, session: Session, title: str) -> Optional["BookRow"]:
        stmt = (
            select(BookRow)
            .where(func.lower(BookRow.title) == func.lower(title))
            .order_by(BookRow.id)
            .limit(1)
        )
        return session.execute(stmt).scalars().first()

    def _page_rows(self, pages: Optional[List[Page]]) -> List["PageRow"]:
        return [
            PageRow(page_number=page.page_number, content=page.content or "")
            for page in ordered_pages(pages)
        ]

    def _write_back_ids(self, book: Book, row: "BookRow") -> None:
        book.id = row.id
        for page, page_row in zip(ordered_pages(book.pages), row.pages):
            page.id = page_row.id
            page.book_id = row.id

    def list_all(self, scope_hint: Optional[str] = None) -> List[Book]:
        try:
            with self._session() as session:
                stmt = (
                    select(BookRow)
                    .options(selectinload(BookRow.pages))
                    .order_by(BookRow.id)
                )
                return [self._to_book(row) for row in session.execute(stmt).scalars()]
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to list books")
            return []

    def find_by_title(self, title: str) -> Optional[Book]:
        if not title:
            return None
        try:
            with self._session() as session:
                row = self._find_row(session, title)
                return self._to_book(row) if row else None
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to look up book '%s'", title)
            return None

    def hash_exists(self, content_hash: str) -> bool:
        try:
            with self._session() as session:
                stmt = select(BookRow.id).where(BookRow.hash == content_hash).limit(1)
                return session.execute(stmt).first() is not None
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to check content hash")
            return False

    def insert(self, book: Book, degraded: bool = False) -> bool:
        try:
            with self._session() as session:
                exists = session.execute(
                    select(BookRow.id).where(BookRow.hash == book.hash).limit(1)
                ).first()
                if exists:
                    return False
                row = BookRow(
                    title=book.title,
                    hash=book.hash,
                    author_id=book.author_id,
                    pages=self._page_rows(book.pages),
                )
                session.add(row)
                session.commit()
                self._write_back_ids(book, row)
                return True
        except IntegrityError:
            logger.info("Duplicate content hash rejected for book '%s'", book.title)
            return False
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to insert book '%s'", book.title)
            return False

    def update(self, book: Book) -> bool:
        if book.id is None:
            return False
        try:
            with self._session() as session:
                row = session.get(BookRow, book.id)
                if not row:
                    return False
                row.title = book.title
                row.hash = book.hash
                row.author_id = book.author_id
                row.pages = self._page_rows(book.pages)
                session.commit()
                self._write_back_ids(book, row)
                return True
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to update book '%s'", book.title)
            return False

    def delete(self, title: str) -> bool:
        try:
            with self._session() as session:
                row = self._find_row(session, title)
                if not row:
                    return False
                session.delete(row)
                session.commit()
                return True
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to delete book '%s'", title)
            return False

    def search_content(self, query: str) -> List[SearchHit]:
        pattern = contains_pattern(query, MAX_SEARCH_LENGTH)
        try:
            with self._session() as session:
                stmt = (
                    select(BookRow.title, PageRow.page_number, PageRow.content)
                    .join(PageRow, PageRow.book_id == BookRow.id)
                    .where(PageRow.content.ilike(pattern, escape=LIKE_ESCAPE_CHAR))
                    .order_by(BookRow.id, PageRow.page_number)
                )
                return [
                    SearchHit(title, page_number, (content or "")[:EXCERPT_LENGTH])
                    for title, page_number, content in session.execute(stmt)
                ]
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Content search failed")
            return []

    def add_page(self, book_id: int, page: Page) -> bool:
        try:
            with self._session() as session:
                if session.get(BookRow, book_id) is None:
                    return False
                row = PageRow(
                    book_id=book_id,
                    page_number=page.page_number,
                    content=page.content or "",
                )
                session.add(row)
                session.commit()
                page.id = row.id
                page.book_id = book_id
                return True
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to add page to book id %s", book_id)
            return False

    def pages_of(self, title: str) -> List[Page]:
        try:
            with self._session() as session:
                stmt = (
                    select(PageRow)
                    .join(BookRow, PageRow.book_id == BookRow.id)
                    .where(func.lower(BookRow.title) == func.lower(title))
                    .order_by(PageRow.page_number)
                )
                return [self._to_page(row) for row in session.execute(stmt).scalars()]
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to load pages of book '%s'", title)
            return []

    def delete_pages_of(self, title: str) -> None:
        try:
            with self._session() as session:
                row = self._find_row(session, title)
                if not row:
                    return
                row.pages = []
                session.commit()
        except (SQLAlchemyError, BackendUnavailable):
            logger.exception("Failed to delete pages of book '%s'", title)


Base = declarative_base()


class BookRow(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, index=True)
    hash = Column(String(64), nullable=False, unique=True)
    author_id = Column(String(255), nullable=True)

    pages = relationship(
        "PageRow",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="PageRow.page_number",
    )


class PageRow(Base):
    __tablename__ = "pages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page_number = Column(Integer, nullable=False)
    content = Column(Text, nullable=False, default="")

    book = relationship("BookRow", back_populates="pages")
