"""
HTTP routes exposing the library service.
"""

from __future__ import annotations

import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Query

from booklib.dependencies import get_library_service, get_queue_client
from booklib.queue import ImportJob, ImportQueue
from booklib.schemas import (
    AddPageRequest,
    AnalysisRequest,
    AnalysisResponse,
    BookListResponse,
    BookModel,
    CreateBookRequest,
    ImportJobResponse,
    ImportReportResponse,
    ImportRequest,
    OperationResponse,
    PageModel,
    PrivilegesResponse,
    SearchHitModel,
    SearchResponse,
    StatusResponse,
    UpdateBookRequest,
)
from booklib.service import LibraryService
from booklib.types import Book, Page

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_book(service: LibraryService, title: str) -> Book:
    book = service.get_by_title(title)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


def _require_writer(service: LibraryService, title: str) -> None:
    if not service.has_write_privileges(title):
        raise HTTPException(status_code=403, detail="No write privileges for this book")


@router.get("/status", response_model=StatusResponse)
def status(service: LibraryService = Depends(get_library_service)):
    connected = service.is_backend_connected()
    return StatusResponse(
        environment=service.environment.name,
        connected=connected,
        user_id=service.user_id,
    )


@router.get("/books", response_model=BookListResponse)
def list_books(service: LibraryService = Depends(get_library_service)):
    return BookListResponse(books=[BookModel.from_book(b) for b in service.get_all()])


@router.post("/books", response_model=BookModel, status_code=201)
def create_book(
    payload: CreateBookRequest,
    service: LibraryService = Depends(get_library_service),
):
    book = service.create_book(payload.title, payload.content)
    if book is None:
        raise HTTPException(status_code=409, detail="Book could not be created")
    return BookModel.from_book(book)


@router.get("/books/{title}", response_model=BookModel)
def get_book(title: str, service: LibraryService = Depends(get_library_service)):
    return BookModel.from_book(_require_book(service, title))


@router.put("/books/{title}", response_model=BookModel)
def update_book(
    title: str,
    payload: UpdateBookRequest,
    service: LibraryService = Depends(get_library_service),
):
    stored = _require_book(service, title)
    _require_writer(service, title)
    book = Book(
        id=stored.id,
        title=payload.title or stored.title,
        author_id=stored.author_id,
        pages=[page.to_page() for page in payload.pages],
    )
    if not service.update_book(book, original_title=title):
        raise HTTPException(status_code=409, detail="Book could not be updated")
    return BookModel.from_book(book)


@router.delete("/books", response_model=OperationResponse)
def delete_book(
    value: str = Query(..., min_length=1, description="Book title or exported file path"),
    service: LibraryService = Depends(get_library_service),
):
    if not service.delete(value):
        raise HTTPException(status_code=404, detail="Nothing was deleted")
    return OperationResponse(status="ok")


@router.get("/books/{title}/privileges", response_model=PrivilegesResponse)
def privileges(title: str, service: LibraryService = Depends(get_library_service)):
    return PrivilegesResponse(title=title, can_write=service.has_write_privileges(title))


@router.post("/books/{title}/pages", response_model=PageModel, status_code=201)
def add_page(
    title: str,
    payload: AddPageRequest,
    service: LibraryService = Depends(get_library_service),
):
    _require_book(service, title)
    _require_writer(service, title)
    page = Page(page_number=payload.page_number, content=payload.content)
    if not service.add_page(title, page):
        raise HTTPException(status_code=409, detail="Page could not be added")
    return PageModel.from_page(page)


@router.post("/books/{title}/export", response_model=OperationResponse)
def export_book(title: str, service: LibraryService = Depends(get_library_service)):
    _require_book(service, title)
    if not service.export_book(title):
        raise HTTPException(status_code=409, detail="Book could not be exported")
    return OperationResponse(status="ok")


@router.post("/books/{title}/analysis", response_model=AnalysisResponse)
def analyze_book(
    title: str,
    payload: AnalysisRequest,
    service: LibraryService = Depends(get_library_service),
):
    book = _require_book(service, title)
    try:
        report = service.analyze(book, payload.method)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AnalysisResponse(title=book.title, method=payload.method, report=report)


@router.post("/import", response_model=ImportReportResponse)
def import_books(
    payload: ImportRequest,
    service: LibraryService = Depends(get_library_service),
):
    if not os.path.exists(payload.path):
        raise HTTPException(status_code=404, detail="Import path not found")
    return ImportReportResponse.from_report(service.import_path(payload.path))


@router.post("/import-jobs", response_model=ImportJobResponse, status_code=202)
def enqueue_import(
    payload: ImportRequest,
    queue: ImportQueue = Depends(get_queue_client),
    service: LibraryService = Depends(get_library_service),
):
    """
    Queue a (possibly large) import for the background worker.
    """
    job = ImportJob(path=payload.path, requested_by=service.user_id)
    queue.enqueue(job)
    logger.info("Queued import of %s", job.path)
    return ImportJobResponse(
        path=job.path,
        status="queued",
        requested_by=job.requested_by,
        pending=queue.pending(),
    )


def _search(results) -> SearchResponse:
    return SearchResponse(results=[SearchHitModel.from_hit(hit) for hit in results])


@router.get("/search/content", response_model=SearchResponse)
def search_content(
    q: str = Query(..., min_length=1),
    service: LibraryService = Depends(get_library_service),
):
    try:
        return _search(service.search_by_content(q))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/search/title", response_model=SearchResponse)
def search_title(
    q: str = Query(..., min_length=1),
    service: LibraryService = Depends(get_library_service),
):
    try:
        return _search(service.search_by_title(q))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
