"""
Pydantic schemas for the HTTP API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from booklib.types import Book, ImportReport, Page, SearchHit


class PageModel(BaseModel):
    id: Optional[int] = None
    book_id: Optional[int] = None
    page_number: int = Field(..., ge=1)
    content: str = ""

    @classmethod
    def from_page(cls, page: Page) -> "PageModel":
        return cls(
            id=page.id,
            book_id=page.book_id,
            page_number=page.page_number,
            content=page.content,
        )

    def to_page(self) -> Page:
        return Page(page_number=self.page_number, content=self.content)


class BookModel(BaseModel):
    id: Optional[int] = None
    title: str
    hash: str
    author_id: Optional[str] = None
    pages: Optional[list[PageModel]] = None

    @classmethod
    def from_book(cls, book: Book) -> "BookModel":
        pages = None
        if book.pages is not None:
            pages = [PageModel.from_page(page) for page in book.pages]
        return cls(
            id=book.id,
            title=book.title,
            hash=book.hash,
            author_id=book.author_id,
            pages=pages,
        )


class BookListResponse(BaseModel):
    books: list[BookModel]


class CreateBookRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = ""


class UpdateBookRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    pages: list[PageModel]


class AddPageRequest(BaseModel):
    page_number: int = Field(..., ge=1)
    content: str


class ImportRequest(BaseModel):
    path: str = Field(..., min_length=1)


class ImportReportResponse(BaseModel):
    imported: list[str]
    skipped: list[str]
    failed: list[str]
    batch_sizes: list[int]

    @classmethod
    def from_report(cls, report: ImportReport) -> "ImportReportResponse":
        return cls(**report.as_dict())


class ImportJobResponse(BaseModel):
    path: str
    status: Literal["queued"]
    requested_by: Optional[str] = None
    pending: int = Field(..., ge=0)


class SearchHitModel(BaseModel):
    title: str
    page_number: int
    content: str
    display: str

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "SearchHitModel":
        return cls(
            title=hit.title,
            page_number=hit.page_number,
            content=hit.content,
            display=str(hit),
        )


class SearchResponse(BaseModel):
    results: list[SearchHitModel]


class PrivilegesResponse(BaseModel):
    title: str
    can_write: bool


class AnalysisRequest(BaseModel):
    method: str = Field(..., max_length=32)


class AnalysisResponse(BaseModel):
    title: str
    method: str
    report: str


class OperationResponse(BaseModel):
    status: Literal["ok"]


class StatusResponse(BaseModel):
    environment: str
    connected: bool
    user_id: str
