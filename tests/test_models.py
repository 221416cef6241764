import unittest
from datetime import datetime, timezone

from pydantic import ValidationError

from pipelog.models import TOPICS, EventType, LogRecord, PolledMessage, serialized_size


class TestEventType(unittest.TestCase):
    def test_codes(self):
        self.assertEqual(EventType.MESSAGE.code, "M")
        self.assertEqual(EventType.DELETE.code, "D")
        self.assertIs(EventType.from_code("D"), EventType.DELETE)

    def test_unknown_code(self):
        with self.assertRaises(ValueError):
            EventType.from_code("X")


class TestSerializedSize(unittest.TestCase):
    def test_counts_utf8_bytes(self):
        self.assertEqual(serialized_size("abc"), 3)
        self.assertEqual(serialized_size("é"), 2)
        self.assertEqual(serialized_size("€"), 3)
        self.assertEqual(serialized_size(""), 0)
        self.assertEqual(serialized_size(None), 0)


class TestLogRecord(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)

    def test_consistent_size(self):
        record = LogRecord(offset=1, topic="deposit", key="k", data='{"p":"€"}', size_bytes=11, created_at=self.now)
        self.assertTrue(record.has_consistent_size())
        self.assertFalse(record.model_copy(update={"size_bytes": 9}).has_consistent_size())

    def test_negative_size_rejected(self):
        with self.assertRaises(ValidationError):
            LogRecord(offset=1, topic="deposit", key="k", data="x", size_bytes=-1, created_at=self.now)

    def test_wire_form_uses_camel_case(self):
        record = LogRecord(offset=42, topic="location", key="abc", data="{}", size_bytes=2, created_at=self.now)
        wire = record.to_message().model_dump(mode="json", by_alias=True)
        self.assertEqual(wire, {
            "offset": 42,
            "msgKey": "abc",
            "eventType": "MESSAGE",
            "topic": "location",
            "data": "{}",
            "createdAt": "2024-03-01T08:30:00Z",
        })

    def test_polled_message_accepts_aliases(self):
        msg = PolledMessage.model_validate({
            "offset": 1, "msgKey": "k", "eventType": "DELETE", "topic": "t",
            "data": None, "createdAt": "2024-03-01T08:30:00Z",
        })
        self.assertEqual(msg.msg_key, "k")
        self.assertIs(msg.event_type, EventType.DELETE)


class TestTopics(unittest.TestCase):
    def test_unique(self):
        self.assertEqual(len(TOPICS), len(set(TOPICS)))
        self.assertIn("prices-v1", TOPICS)


if __name__ == '__main__':
    unittest.main()
