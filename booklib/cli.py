"""Command line front end for the book library.

Settings come from ``BOOKLIB_*`` environment variables or a ``.env`` file.
"""

import argparse
import logging
import sys

from booklib.config import get_settings
from booklib.dependencies import create_library_service
from booklib.types import AnalysisMethod

logger = logging.getLogger(__name__)


def _print_report(report) -> None:
    print(f"Imported: {len(report.imported)}")
    print(f"Skipped (duplicates): {len(report.skipped)}")
    print(f"Failed: {len(report.failed)}")
    for title in report.failed:
        print(f"  - {title}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage a personal library of books.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List every book.")
    sub.add_parser("status", help="Show whether the database is reachable.")
    sub.add_parser("sync", help="Import books written while offline.")

    show = sub.add_parser("show", help="Print a book's pages.")
    show.add_argument("title")

    imp = sub.add_parser("import", help="Import a book file or a directory of books.")
    imp.add_argument("path")

    exp = sub.add_parser("export", help="Export a book to local storage.")
    exp.add_argument("title")

    delete = sub.add_parser("delete", help="Delete an exported file or a book by title.")
    delete.add_argument("value")

    search = sub.add_parser("search", help="Search page content.")
    search.add_argument("text")
    search.add_argument("--title", action="store_true", help="Use title search.")

    analyze = sub.add_parser("analyze", help="Run a text analysis on a book.")
    analyze.add_argument("title")
    analyze.add_argument(
        "method", choices=[method.value for method in AnalysisMethod]
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)

    service = create_library_service(get_settings())

    if args.command == "list":
        for book in service.get_all():
            print(f"{book.title} ({len(book.pages or [])} pages, author {book.author_id})")
    elif args.command == "status":
        state = "connected" if service.is_backend_connected() else "disconnected"
        print(f"Database {state}; acting user {service.user_id}")
    elif args.command == "sync":
        _print_report(service.sync_offline())
    elif args.command == "show":
        book = service.get_by_title(args.title)
        if book is None:
            print(f"No book titled {args.title!r}")
            return 1
        for page in book.pages or []:
            print(f"--- Page {page.page_number} ---")
            print(page.content)
    elif args.command == "import":
        _print_report(service.import_path(args.path))
    elif args.command == "export":
        return 0 if service.export_book(args.title) else 1
    elif args.command == "delete":
        return 0 if service.delete(args.value) else 1
    elif args.command == "search":
        search = service.search_by_title if args.title else service.search_by_content
        try:
            hits = search(args.text)
        except ValueError as e:
            print(f"Invalid search: {e}")
            return 2
        for hit in hits:
            print(hit)
    elif args.command == "analyze":
        book = service.get_by_title(args.title)
        if book is None:
            print(f"No book titled {args.title!r}")
            return 1
        print(service.analyze(book, args.method))
    return 0


if __name__ == "__main__":
    sys.exit(main())
