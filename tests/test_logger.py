import json
import logging
import unittest
from unittest.mock import MagicMock, patch

from src.core.logger import NOISY_LOGGERS, SeqSink, _sanitize_value, configure_logging, log_patcher


class DummyConnection:
    """Relies on the default object.__repr__ (containing 'at 0x...')."""


async def dummy_coroutine() -> None:
    pass


class TestLoggerSanitization(unittest.TestCase):
    """Test suite for Loguru payload sanitization."""

    def test_collections_pass_through(self) -> None:
        raw_data = {"user_id": "uid-1", "roles": ["viewer", "admin"], "flags": {"can_manage_users": True}}
        self.assertEqual(_sanitize_value(raw_data), raw_data)

    def test_memory_addresses_are_stripped(self) -> None:
        dummy = DummyConnection()
        self.assertIn(" at 0x", repr(dummy))
        self.assertEqual(_sanitize_value(dummy), f"[{dummy.__class__.__module__}.DummyConnection]")

    def test_callables_and_coroutines_are_named(self) -> None:
        self.assertEqual(_sanitize_value(log_patcher), f"{log_patcher.__module__}.log_patcher()")
        self.assertEqual(_sanitize_value(dummy_coroutine), f"{dummy_coroutine.__module__}.dummy_coroutine()")

    def test_log_patcher_mutates_record(self) -> None:
        dummy = DummyConnection()
        record = {"extra": {"session": dummy, "event": "SyncWarning"}, "args": (dummy, "uid-1")}

        log_patcher(record)

        expected = f"[{dummy.__class__.__module__}.DummyConnection]"
        self.assertEqual(record["extra"]["session"], expected)
        self.assertEqual(record["extra"]["event"], "SyncWarning")
        self.assertEqual(record["args"], (expected, "uid-1"))


class TestSeqSink(unittest.TestCase):
    """Test suite for the synchronous HTTP sink routing JSON logs to Seq."""

    def setUp(self) -> None:
        self.sink = SeqSink("http://fake-seq:5341/", api_key="secret123")
        self.message = json.dumps(
            {
                "record": {
                    "time": {"repr": "2026-10-18 09:00:00"},
                    "level": {"name": "WARNING"},
                    "message": "Profile upsert failed",
                    "extra": {"event": "SyncWarning", "user_id": "uid-9"},
                    "function": "_upsert_profile",
                    "module": "service",
                    "line": 10,
                    "process": {"name": "MainProcess"},
                    "exception": None,
                }
            }
        )

    @patch("src.core.logger.httpx.Client.post")
    def test_write_maps_record_to_seq_event(self, mock_post: MagicMock) -> None:
        mock_post.return_value = MagicMock(status_code=201)

        self.sink.write(self.message)

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "http://fake-seq:5341/api/events/raw")
        self.assertEqual(kwargs["headers"]["X-Seq-ApiKey"], "secret123")
        event = kwargs["json"]["Events"][0]
        self.assertEqual(event["Level"], "WARNING")
        self.assertEqual(event["Properties"]["event"], "SyncWarning")
        self.assertNotIn("Exception", event)

    @patch("src.core.logger.sys.stderr.write")
    @patch("src.core.logger.httpx.Client.post")
    def test_http_error_falls_back_to_stderr(self, mock_post: MagicMock, mock_stderr_write: MagicMock) -> None:
        mock_post.return_value = MagicMock(status_code=401, text="Unauthorized")

        self.sink.write(self.message)

        mock_stderr_write.assert_called_once()
        self.assertIn("Seq API Error 401", mock_stderr_write.call_args[0][0])

    @patch("src.core.logger.sys.stderr.write")
    def test_malformed_payload_never_raises(self, mock_stderr_write: MagicMock) -> None:
        self.sink.write("not json")
        self.assertIn("Failed to send log to Seq", mock_stderr_write.call_args[0][0])


class TestConfigureLogging(unittest.TestCase):
    @patch("src.core.logger.logger")
    @patch("src.core.logger.settings")
    def test_seq_sink_only_when_configured(self, mock_settings: MagicMock, mock_logger: MagicMock) -> None:
        mock_settings.SEQ_URL = None
        mock_settings.LOG_LEVEL = "INFO"

        configure_logging()

        self.assertEqual(mock_logger.add.call_count, 1)
        for name in NOISY_LOGGERS:
            self.assertEqual(logging.getLogger(name).level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
