import unittest

from booklib.db import PageRow, SqlBookStore
from booklib.types import Book, Page, compute_content_hash


def make_book(title, *contents, author="alice"):
    pages = [Page(page_number=i, content=text) for i, text in enumerate(contents, start=1)]
    return Book(title=title, hash=compute_content_hash(pages), author_id=author, pages=pages)


class SqlBookStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store.
    """

    def setUp(self):
        self.store = SqlBookStore("sqlite+pysqlite:///:memory:")
        self.assertTrue(self.store.connect())

    def tearDown(self):
        self.store.close()

    def test_connect_is_idempotent(self):
        engine = self.store.engine
        self.assertTrue(self.store.connect())
        self.assertIs(self.store.engine, engine)
        self.assertTrue(self.store.is_available())

    def test_insert_and_find(self):
        book = make_book("Notebook", "first page", "second page")
        self.assertTrue(self.store.insert(book))
        self.assertIsNotNone(book.id)
        self.assertTrue(all(page.id is not None for page in book.pages))

        found = self.store.find_by_title("NOTEBOOK")
        self.assertIsNotNone(found)
        self.assertEqual(found.id, book.id)
        self.assertEqual(found.author_id, "alice")
        self.assertEqual([p.content for p in found.pages], ["first page", "second page"])
        self.assertIsNone(self.store.find_by_title("missing"))

    def test_duplicate_hash_is_rejected(self):
        self.assertTrue(self.store.insert(make_book("One", "shared")))
        self.assertTrue(self.store.hash_exists(compute_content_hash([Page(content="shared")])))
        self.assertFalse(self.store.insert(make_book("Two", "shared")))
        self.assertEqual(len(self.store.list_all()), 1)

    def test_list_all_empty(self):
        self.assertEqual(self.store.list_all(), [])

    def test_update_replaces_everything(self):
        book = make_book("Draft", "old")
        self.store.insert(book)
        book.title = "Final"
        book.author_id = "bob"
        book.pages = [Page(page_number=1, content="new a"), Page(page_number=2, content="new b")]
        book.hash = compute_content_hash(book.pages)
        self.assertTrue(self.store.update(book))

        found = self.store.find_by_title("Final")
        self.assertEqual(found.author_id, "bob")
        self.assertEqual(found.hash, book.hash)
        self.assertEqual([p.content for p in found.pages], ["new a", "new b"])
        self.assertIsNone(self.store.find_by_title("Draft"))

    def test_update_missing_id_fails(self):
        self.assertFalse(self.store.update(Book(id=404, title="Ghost", hash="h")))
        self.assertFalse(self.store.update(Book(title="No id", hash="h")))

    def test_delete_removes_pages(self):
        self.store.insert(make_book("Doomed", "a", "b"))
        self.assertTrue(self.store.delete("doomed"))
        self.assertFalse(self.store.delete("doomed"))
        with self.store.Session() as session:
            self.assertEqual(session.query(PageRow).count(), 0)

    def test_pages_and_add_page(self):
        book = make_book("Pages", "one")
        self.store.insert(book)
        page = Page(page_number=2, content="two")
        self.assertTrue(self.store.add_page(book.id, page))
        self.assertEqual(page.book_id, book.id)
        self.assertFalse(self.store.add_page(12345, Page(page_number=1, content="orphan")))
        self.assertEqual([p.page_number for p in self.store.pages_of("pages")], [1, 2])

        self.store.delete_pages_of("Pages")
        self.store.delete_pages_of("Pages")
        self.assertEqual(self.store.pages_of("Pages"), [])

    def test_search_escapes_wildcards(self):
        self.store.insert(make_book("Percent", "100% pure"))
        self.store.insert(make_book("Plain", "100 pure"))
        self.store.insert(make_book("Under", "snake_case"))
        self.store.insert(make_book("Other", "snakeXcase"))

        hits = self.store.search_content("100%")
        self.assertEqual([h.title for h in hits], ["Percent"])
        hits = self.store.search_content("e_c")
        self.assertEqual([h.title for h in hits], ["Under"])
        self.assertEqual(self.store.search_content("%"), self.store.search_content("100%"))

    def test_search_returns_page_numbers(self):
        self.store.insert(make_book("Book", "intro", "the needle is here"))
        hits = self.store.search_content("needle")
        self.assertEqual(len(hits), 1)
        self.assertEqual(hits[0].page_number, 2)
        self.assertEqual(hits[0].content, "the needle is here")

    def test_non_ascii_titles(self):
        self.store.insert(make_book("Élan", "vital"))
        self.store.insert(make_book("كتاب", "صفحة"))
        self.assertEqual(self.store.find_by_title("Élan").title, "Élan")
        self.assertEqual(self.store.find_by_title("ÉLAN").title, "Élan")
        self.assertEqual([p.content for p in self.store.pages_of("Élan")], ["vital"])
        self.assertEqual(self.store.find_by_title("كتاب").pages[0].content, "صفحة")
        self.assertTrue(self.store.delete("Élan"))
        self.assertIsNone(self.store.find_by_title("Élan"))

    def test_search_rejects_oversized_input(self):
        with self.assertRaises(ValueError):
            self.store.search_content("x" * 501)


class UnreachableSqlBookStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = SqlBookStore("sqlite+pysqlite:////nonexistent-dir/for/booklib/books.db")

    def test_connect_failure_reports_false(self):
        self.assertFalse(self.store.connect())
        self.assertFalse(self.store.is_available())

    def test_calls_fail_without_raising(self):
        self.assertFalse(self.store.insert(make_book("Any", "text")))
        self.assertFalse(self.store.update(Book(id=1, title="Any", hash="h")))
        self.assertFalse(self.store.delete("Any"))
        self.assertFalse(self.store.add_page(1, Page(content="x")))
        self.assertEqual(self.store.list_all(), [])
        self.assertIsNone(self.store.find_by_title("Any"))
        self.assertFalse(self.store.hash_exists("h"))

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            SqlBookStore("")


if __name__ == "__main__":
    unittest.main()
