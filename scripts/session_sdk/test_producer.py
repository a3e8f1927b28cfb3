#!/usr/bin/env python3
"""
Tests for the event producers.

Run with: python3 -m pytest scripts/session_sdk/test_producer.py -v
"""

import json
import logging
import tempfile
import unittest
from pathlib import Path

import sys
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

from session_sdk.errors import CapabilityError
from session_sdk.producer import LoggingProducer, ManualProducer, ReplayProducer


class TestManualProducer(unittest.TestCase):

    def test_emit_only_while_running(self):
        producer = ManualProducer()
        received = []

        self.assertFalse(producer.interaction("click"))
        producer.start({}, received.append)
        self.assertTrue(producer.network("post", "https://api.test/", status=201))
        producer.stop()
        self.assertFalse(producer.console("log", "late"))

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0]["data"]["method"], "POST")


class TestReplayProducer(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.path = Path(self.tmpdir.name) / "events.jsonl"

    def test_replays_whole_file_from_start(self):
        with open(self.path, "w") as f:
            for i in range(3):
                f.write(json.dumps({"type": "click", "timestamp": float(i)}) + "\n")
        producer = ReplayProducer(self.path)
        received = []

        producer.start({}, received.append)
        producer.stop()

        self.assertEqual(producer.replayed, 3)
        self.assertEqual([r["timestamp"] for r in received], [0.0, 1.0, 2.0])

    def test_restart_replays_again(self):
        self.path.write_text(json.dumps({"type": "click"}) + "\n")
        producer = ReplayProducer(self.path)
        received = []

        producer.start({}, received.append)
        producer.stop()
        producer.start({}, received.append)

        self.assertEqual(len(received), 2)
        self.assertEqual(producer.replayed, 2)

    def test_missing_file(self):
        with self.assertRaises(CapabilityError):
            ReplayProducer(self.path).start({}, lambda raw: None)


class TestLoggingProducer(unittest.TestCase):

    def setUp(self):
        self.logger = logging.getLogger("session_sdk.test.producer")
        self.logger.propagate = False
        self.addCleanup(setattr, self.logger, "propagate", True)

    def test_requires_console_capture(self):
        with self.assertRaises(CapabilityError):
            LoggingProducer(self.logger).start({"console": False}, lambda raw: None)

    def test_handler_detached_on_stop(self):
        producer = LoggingProducer(self.logger)
        received = []

        producer.start({"console": True}, received.append)
        self.logger.error("first")
        producer.stop()
        self.logger.error("second")

        self.assertEqual([r["data"]["message"] for r in received], ["first"])
        self.assertEqual(received[0]["type"], "error")


if __name__ == "__main__":
    unittest.main()
