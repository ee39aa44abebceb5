import os
import tempfile
import unittest
from unittest.mock import patch

from booklib.config import Settings
from booklib.db import InMemoryBookStore, SqlBookStore
from booklib.dependencies import create_book_store, create_library_service
from booklib.local_storage import LocalBookStore
from booklib.types import Environment


class CreateBookStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.library_dir = os.path.join(self._tmp.name, "library")

    def tearDown(self):
        self._tmp.cleanup()

    def settings(self, **overrides):
        values = {"user_id": "alice", "library_dir": self.library_dir}
        values.update(overrides)
        return Settings(**values)

    def test_sql_backend(self):
        store = create_book_store(
            self.settings(backend="sql", database_url="sqlite+pysqlite:///:memory:")
        )
        self.assertIsInstance(store, SqlBookStore)
        self.assertTrue(store.is_available())
        store.close()

    def test_sql_backend_requires_url(self):
        with self.assertRaises(ValueError):
            create_book_store(self.settings(backend="sql", database_url=None))

    def test_file_backend_reuses_local_store(self):
        local = LocalBookStore(self.library_dir)
        store = create_book_store(self.settings(backend="file"), local)
        self.assertIs(store, local)
        self.assertTrue(os.path.isdir(self.library_dir))

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            create_book_store(self.settings(backend="mongo"))

    def test_service_from_settings(self):
        service = create_library_service(self.settings(backend="memory"))
        self.assertIsInstance(service.primary, InMemoryBookStore)
        self.assertEqual(service.user_id, "alice")
        self.assertIs(service.environment, Environment.CONNECTED)

    def test_unreachable_database_starts_disconnected(self):
        url = "sqlite+pysqlite:////nonexistent-dir/for/booklib/books.db"
        service = create_library_service(self.settings(backend="sql", database_url=url))
        self.assertIs(service.environment, Environment.DISCONNECTED)


class SettingsTests(unittest.TestCase):
    def test_user_id_is_required(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                Settings(_env_file=None)

    def test_reads_prefixed_environment(self):
        env = {"BOOKLIB_USER_ID": "carol", "BOOKLIB_BACKEND": "file"}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.user_id, "carol")
        self.assertEqual(settings.backend, "file")
        self.assertEqual(settings.api_prefix, "/api")


if __name__ == "__main__":
    unittest.main()
