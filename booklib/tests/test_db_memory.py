import unittest

from booklib.db import InMemoryBookStore
from booklib.types import Book, Page, compute_content_hash


def make_book(title, *contents, author="alice"):
    pages = [Page(page_number=i, content=text) for i, text in enumerate(contents, start=1)]
    return Book(title=title, hash=compute_content_hash(pages), author_id=author, pages=pages)


class InMemoryBookStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryBookStore()

    def test_insert_assigns_sequential_ids(self):
        first = make_book("First", "one")
        second = make_book("Second", "two", "three")
        self.assertTrue(self.store.insert(first))
        self.assertTrue(self.store.insert(second))
        self.assertEqual(first.id, 1)
        self.assertEqual(second.id, 2)
        self.assertEqual([p.id for p in second.pages], [2, 3])
        self.assertTrue(all(p.book_id == 2 for p in second.pages))

    def test_insert_rejects_duplicate_hash_regardless_of_title(self):
        self.assertTrue(self.store.insert(make_book("Original", "same text")))
        self.assertFalse(self.store.insert(make_book("Copy", "same text")))
        self.assertEqual(len(self.store.list_all()), 1)

    def test_ids_are_not_reused_after_delete(self):
        self.store.insert(make_book("Gone", "a"))
        self.assertTrue(self.store.delete("Gone"))
        again = make_book("Next", "b")
        self.store.insert(again)
        self.assertEqual(again.id, 2)

    def test_list_all_empty_and_loaded(self):
        self.assertEqual(self.store.list_all(), [])
        self.store.insert(make_book("Loaded", "p1", "p2"))
        books = self.store.list_all()
        self.assertEqual(len(books), 1)
        self.assertEqual([p.content for p in books[0].pages], ["p1", "p2"])

    def test_find_by_title_is_case_insensitive(self):
        self.store.insert(make_book("Arabic Notes", "مرحبا"))
        found = self.store.find_by_title("arabic notes")
        self.assertIsNotNone(found)
        self.assertEqual(found.title, "Arabic Notes")
        self.assertIsNone(self.store.find_by_title("missing"))

    def test_update_replaces_pages(self):
        book = make_book("Draft", "old")
        self.store.insert(book)
        book.pages = [Page(page_number=1, content="new 1"), Page(page_number=2, content="new 2")]
        book.hash = compute_content_hash(book.pages)
        self.assertTrue(self.store.update(book))
        self.assertEqual([p.content for p in self.store.pages_of("Draft")], ["new 1", "new 2"])

    def test_update_unknown_id_fails(self):
        self.assertFalse(self.store.update(Book(id=42, title="Nope", hash="x")))

    def test_delete_cascades_to_pages(self):
        self.store.insert(make_book("Doomed", "a", "b"))
        self.assertTrue(self.store.delete("Doomed"))
        self.assertEqual(self.store.pages, {})
        self.assertFalse(self.store.delete("Doomed"))

    def test_add_page_requires_existing_book(self):
        book = make_book("Host", "first")
        self.store.insert(book)
        self.assertTrue(self.store.add_page(book.id, Page(page_number=2, content="second")))
        self.assertFalse(self.store.add_page(999, Page(page_number=1, content="orphan")))
        self.assertEqual([p.page_number for p in self.store.pages_of("Host")], [1, 2])

    def test_pages_of_orders_by_page_number(self):
        book = make_book("Shuffled")
        self.store.insert(book)
        self.store.add_page(book.id, Page(page_number=3, content="c"))
        self.store.add_page(book.id, Page(page_number=1, content="a"))
        self.store.add_page(book.id, Page(page_number=2, content="b"))
        self.assertEqual([p.content for p in self.store.pages_of("Shuffled")], ["a", "b", "c"])

    def test_delete_pages_of_is_idempotent(self):
        self.store.insert(make_book("Pages", "a"))
        self.store.delete_pages_of("Pages")
        self.store.delete_pages_of("Pages")
        self.store.delete_pages_of("Missing")
        self.assertEqual(self.store.pages_of("Pages"), [])

    def test_search_content(self):
        self.store.insert(make_book("Latin", "The quick brown fox", "lazy dog"))
        self.store.insert(make_book("Arabic", "كتاب جميل"))
        hits = self.store.search_content("QUICK")
        self.assertEqual(len(hits), 1)
        self.assertEqual((hits[0].title, hits[0].page_number), ("Latin", 1))
        self.assertEqual(str(hits[0]), "Title: Latin, Page: 1, Content: The quick brown fox")
        self.assertEqual(self.store.search_content("جميل")[0].title, "Arabic")

    def test_clear_resets_counters(self):
        self.store.insert(make_book("One", "1"))
        self.store.clear()
        book = make_book("Two", "2")
        self.store.insert(book)
        self.assertEqual(book.id, 1)
        self.assertEqual(book.pages[0].id, 1)

    def test_always_available(self):
        self.assertTrue(self.store.connect())
        self.assertTrue(self.store.is_available())


class EntityEqualityTests(unittest.TestCase):
    def test_book_equality_uses_id_and_title(self):
        a = Book(id=1, title="T", hash="a", pages=[])
        b = Book(id=1, title="T", hash="b", author_id="x")
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))
        self.assertNotEqual(a, Book(id=2, title="T"))

    def test_page_equality_uses_position(self):
        self.assertEqual(
            Page(id=1, book_id=2, page_number=3, content="x"),
            Page(id=1, book_id=2, page_number=3, content="y"),
        )
        self.assertNotEqual(Page(id=1, book_id=2, page_number=3), Page(id=1, book_id=2, page_number=4))

    def test_hash_follows_page_numbers_not_list_order(self):
        first = Page(page_number=1, content="first")
        second = Page(page_number=2, content="second")
        self.assertEqual(
            compute_content_hash([first, second]), compute_content_hash([second, first])
        )

    def test_hash_depends_on_content_only(self):
        pages = [Page(page_number=1, content="same")]
        self.assertEqual(compute_content_hash(pages), compute_content_hash([Page(id=9, content="same")]))
        self.assertNotEqual(compute_content_hash(pages), compute_content_hash([Page(content="other")]))


if __name__ == "__main__":
    unittest.main()
