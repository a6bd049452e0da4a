from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from storage.application_recorder import MirroredApplicationRecorder
from storage.repository import BotRepository
from storage.repository_factory import create_application_recorder, create_repository, create_session_store
from storage.session_store import InMemorySessionStore, RepositorySessionStore


class RepositoryFactoryTest(unittest.TestCase):
    def test_create_sqlite_repository_by_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repository = create_repository({"storage": {"sqlite_path": str(Path(tmp) / "bot.db")}})
            self.assertIsInstance(repository, BotRepository)

    def test_create_dynamodb_repository(self) -> None:
        config = {
            "conversation": {"session_ttl_minutes": 45},
            "storage": {
                "backend": "dynamodb",
                "dynamodb": {
                    "region": "ap-south-1",
                    "table_prefix": "innova",
                    "event_ttl_days": 3,
                    "tables": {"event_dedupe": "evt", "sessions": "ses", "applications": None},
                },
            },
        }
        with mock.patch("storage.repository_factory.DynamoBotRepository") as constructor:
            _ = create_repository(config)
        constructor.assert_called_once()
        kwargs = constructor.call_args.kwargs
        self.assertEqual(kwargs["event_table_name"], "evt")
        self.assertIsNone(kwargs["applications_table_name"])
        self.assertEqual(kwargs["session_ttl_minutes"], 45)

    def test_unknown_backend_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            create_repository({"storage": {"backend": "postgres"}})

    def test_session_store_backends(self) -> None:
        repository = mock.Mock()
        self.assertIsInstance(create_session_store({}, repository), InMemorySessionStore)
        self.assertIsInstance(
            create_session_store({"storage": {"session_backend": "repository"}}, repository),
            RepositorySessionStore,
        )
        with self.assertRaises(ValueError):
            create_session_store({"storage": {"session_backend": "redis"}}, repository)

    def test_sheets_mirror_only_when_enabled(self) -> None:
        repository = mock.Mock()
        recorder = create_application_recorder({}, repository)
        self.assertIsInstance(recorder, MirroredApplicationRecorder)
        self.assertEqual(recorder.mirrors, [])

        config = {"storage": {"google_sheets": {"enabled": True, "spreadsheet_id": "sheet-1"}}}
        with mock.patch("storage.repository_factory.GoogleSheetsRecorder") as constructor:
            recorder = create_application_recorder(config, repository)
        constructor.assert_called_once()
        self.assertEqual(constructor.call_args.kwargs["spreadsheet_id"], "sheet-1")
        self.assertEqual(len(recorder.mirrors), 1)


if __name__ == "__main__":
    unittest.main()
