"""
Tests for the Inspector: ingestion callback and end-to-end reporting.
"""

import unittest
import threading
import sys
from io import StringIO
from pathlib import Path
from unittest.mock import Mock

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from mavlink_inspector.inspector import Inspector
from mavlink_inspector.raw_message import RawMessage
from mavlink_inspector.reporter import CLEAR_SCREEN
from mavlink_inspector.schema import MessageSchema, SchemaTable


class TestOnMessage(unittest.TestCase):
    """Test the ingestion callback."""

    def setUp(self):
        """Set up test fixtures."""
        self.inspector = Inspector(SchemaTable(), output=StringIO())

    def test_accepts_message(self):
        """Test that a valid message is recorded."""
        raw = RawMessage(type_id=1, sender_id=1, component_id=1, payload=b'\x01')

        self.assertTrue(self.inspector.on_message(raw))
        self.assertEqual(self.inspector.aggregator.total_recorded, 1)

    def test_rejects_none(self):
        """Test that a missing message is rejected without touching stats."""
        self.assertFalse(self.inspector.on_message(None))
        self.assertEqual(self.inspector.aggregator.total_recorded, 0)
        self.assertEqual(self.inspector.rejected_messages, 1)

    def test_rejects_missing_payload(self):
        """Test that a message without a buffer is rejected."""
        raw = RawMessage(type_id=1, sender_id=1, component_id=1, payload=None)

        self.assertFalse(self.inspector.on_message(raw))
        self.assertEqual(len(self.inspector.aggregator), 0)

    def test_rejections_counted_across_threads(self):
        """Test that rejections from several receive threads are all counted."""
        def reject_many():
            for _ in range(1000):
                self.inspector.on_message(None)

        threads = [threading.Thread(target=reject_many) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(self.inspector.rejected_messages, 4000)

    def test_accepts_empty_payload(self):
        """Test that a zero-length payload is still a valid message."""
        raw = RawMessage(type_id=3, sender_id=1, component_id=1, payload=b'')

        self.assertTrue(self.inspector.on_message(raw))

    def test_attach_registers_handler(self):
        """Test that attach() hands on_message to the transport."""
        transport = Mock()

        self.inspector.attach(transport)

        transport.register_receive_handler.assert_called_once_with(self.inspector.on_message)


class TestEndToEnd(unittest.TestCase):
    """Test ingestion through one reporting cycle."""

    def setUp(self):
        """Set up test fixtures."""
        self.schema = SchemaTable([
            MessageSchema.packed(10, 'TYPE_A', [('value', 'int16_t', 0), ('label', 'char', 4)]),
            MessageSchema.packed(20, 'TYPE_B', [('temps', 'float', 2)]),
        ])
        self.output = StringIO()
        self.inspector = Inspector(self.schema, output=self.output)

    def test_one_window(self):
        """Test 3 messages of A and 1 of B in one window."""
        a_payload = b'\xfe\xff' + b'ab\x00\x00'
        b_payload = b'\x00\x00\xc0\x3f' + b'\x00\x00\x20\x41'
        for _ in range(3):
            self.inspector.on_message(RawMessage(10, 1, 1, a_payload))
        self.inspector.on_message(RawMessage(20, 2, 50, b_payload))

        lines = self.inspector.reporter.report_cycle(1000)

        self.assertEqual(lines, [
            '1 TYPE_B (sysid=2, compid=50, temps=(1.500, 10.000))',
            '3 TYPE_A (sysid=1, compid=1, value=-2, label=ab)',
        ])
        self.assertTrue(self.output.getvalue().startswith(CLEAR_SCREEN))
        self.assertEqual(self.output.getvalue().count('\n'), 3)
        self.assertEqual(len(self.inspector.aggregator), 0)

    def test_next_window_is_empty(self):
        """Test that the following window starts with nothing."""
        self.inspector.on_message(RawMessage(10, 1, 1, b'\x00' * 6))
        self.inspector.reporter.report_cycle(1000)

        self.assertEqual(self.inspector.reporter.report_cycle(1000), [])


if __name__ == '__main__':
    unittest.main()
