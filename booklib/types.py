"""
Entity types shared by the storage backends and the library service.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import Iterable, List, Optional


@dataclass(eq=False)
class Page:
    id: Optional[int] = None
    book_id: Optional[int] = None
    page_number: int = 1
    content: str = ""

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Page):
            return NotImplemented
        return (self.id, self.book_id, self.page_number) == (
            other.id,
            other.book_id,
            other.page_number,
        )

    def __hash__(self):
        return hash((self.id, self.book_id, self.page_number))

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "bookId": self.book_id,
            "pageNumber": self.page_number,
            "content": self.content,
        }


@dataclass(eq=False)
class Book:
    id: Optional[int] = None
    title: str = ""
    hash: str = ""
    author_id: Optional[str] = None
    # None means the pages were not loaded.
    pages: Optional[List[Page]] = None

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Book):
            return NotImplemented
        return (self.id, self.title) == (other.id, other.title)

    def __hash__(self):
        return hash((self.id, self.title))

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "hash": self.hash,
            "authorId": self.author_id,
            "pages": [page.as_dict() for page in self.pages or []],
        }


@dataclass(frozen=True)
class SearchHit:
    title: str
    page_number: int
    content: str

    def __str__(self) -> str:
        return f"Title: {self.title}, Page: {self.page_number}, Content: {self.content}"


@dataclass
class ImportReport:
    imported: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    batch_sizes: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "imported": list(self.imported),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
            "batch_sizes": list(self.batch_sizes),
        }


class Environment(Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class AnalysisMethod(StrEnum):
    QUALITY_PHRASES = "Paper"
    PMI = "PMI"
    PKL = "PKL"
    TF_IDF = "TF-IDF"


def compute_content_hash(pages: Iterable[Page] | None) -> str:
    """SHA-256 hex digest of the page contents in reading order."""
    digest = hashlib.sha256()
    for page in ordered_pages(pages):
        digest.update((page.content or "").encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


def ordered_pages(pages: Iterable[Page] | None) -> List[Page]:
    return sorted(pages or [], key=lambda page: page.page_number)
