"""
Unit tests for the Reporter module.

Tests cover:
- Rate computation and rounding
- Sorting by count
- Report rendering
- Loop timing and cancellation
"""

import unittest
import threading
import time
import sys
from io import StringIO
from pathlib import Path
from unittest.mock import patch

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from mavlink_inspector.raw_message import RawMessage
from mavlink_inspector.reporter import CLEAR_SCREEN, Reporter, compute_rate, sort_by_count
from mavlink_inspector.schema import MessageSchema, SchemaTable
from mavlink_inspector.stats_aggregator import MessageTypeStats, StatsAggregator


def _raw(type_id: int, payload: bytes = b'\x00') -> RawMessage:
    return RawMessage(type_id=type_id, sender_id=1, component_id=1, payload=payload)


class CountdownEvent(threading.Event):
    """Stop event that sets itself after a fixed number of waits."""

    def __init__(self, polls: int):
        super().__init__()
        self.polls = polls

    def wait(self, timeout=None):
        self.polls -= 1
        if self.polls < 0:
            self.set()
        return self.is_set()


class TestComputeRate(unittest.TestCase):
    """Test rate computation."""

    def test_exact_rate(self):
        """Test a one second window."""
        self.assertEqual(compute_rate(10, 1000), 10)

    def test_half_rounds_up(self):
        """Test that x.5 rounds up."""
        self.assertEqual(compute_rate(7, 2000), 4)
        self.assertEqual(compute_rate(5, 2000), 3)

    def test_rounds_down_below_half(self):
        """Test that fractions below .5 round down."""
        self.assertEqual(compute_rate(1, 3000), 0)
        self.assertEqual(compute_rate(10, 1040), 10)

    def test_zero_elapsed(self):
        """Test that a zero-length window does not divide by zero."""
        self.assertEqual(compute_rate(3, 0), 3)


class TestSortByCount(unittest.TestCase):
    """Test snapshot ordering."""

    def test_ascending(self):
        """Test that entries are ordered by count regardless of arrival order."""
        snapshot = [
            MessageTypeStats(1, 5, _raw(1)),
            MessageTypeStats(2, 1, _raw(2)),
            MessageTypeStats(3, 3, _raw(3)),
        ]

        counts = [entry.count for entry in sort_by_count(snapshot)]

        self.assertEqual(counts, [1, 3, 5])

    def test_ties_are_stable(self):
        """Test that equal counts keep their snapshot order."""
        snapshot = [
            MessageTypeStats(7, 2, _raw(7)),
            MessageTypeStats(3, 2, _raw(3)),
            MessageTypeStats(9, 1, _raw(9)),
        ]

        ids = [entry.type_id for entry in sort_by_count(snapshot)]

        self.assertEqual(ids, [9, 7, 3])


class TestReportCycle(unittest.TestCase):
    """Test a single reporting cycle."""

    def setUp(self):
        """Set up test fixtures."""
        self.schema = SchemaTable([
            MessageSchema.packed(1, 'ALPHA', [('a', 'uint8_t', 0)]),
            MessageSchema.packed(2, 'BETA', [('b', 'uint8_t', 0)]),
        ])
        self.aggregator = StatsAggregator()
        self.output = StringIO()
        self.reporter = Reporter(self.aggregator, self.schema, output=self.output)

    def test_rendered_lines(self):
        """Test rate prefix, decoded message and ordering."""
        for _ in range(4):
            self.aggregator.record(_raw(1, b'\x07'))
        self.aggregator.record(_raw(2, b'\x08'))

        lines = self.reporter.report_cycle(1000)

        self.assertEqual(lines, [
            '1 BETA (sysid=1, compid=1, b=8)',
            '4 ALPHA (sysid=1, compid=1, a=7)',
        ])
        self.assertEqual(self.output.getvalue(), CLEAR_SCREEN + '\n'.join(lines) + '\n')

    def test_unknown_type_line(self):
        """Test that a type missing from the schema uses the fallback line."""
        self.aggregator.record(_raw(99, b'\x01\x02'))

        lines = self.reporter.report_cycle(1000)

        self.assertEqual(lines, ['1 MSGID=99 (sysid=1, compid=1) len=2'])

    def test_empty_window(self):
        """Test that an empty window still clears the screen."""
        lines = self.reporter.report_cycle(1000)

        self.assertEqual(lines, [])
        self.assertEqual(self.output.getvalue(), CLEAR_SCREEN)
        self.assertEqual(self.reporter.stats['cycles'], 1)

    def test_no_clear_screen(self):
        """Test that clearing can be disabled."""
        self.reporter.clear_screen = False
        self.aggregator.record(_raw(1))

        self.reporter.report_cycle(1000)

        self.assertNotIn('\033[2J', self.output.getvalue())

    def test_cycle_drains_aggregator(self):
        """Test that a cycle starts a new window."""
        self.aggregator.record(_raw(1))
        self.reporter.report_cycle(1000)

        self.assertEqual(len(self.aggregator), 0)

    def test_invalid_period(self):
        """Test that non-positive periods are rejected."""
        with self.assertRaises(ValueError):
            Reporter(self.aggregator, self.schema, period_ms=0)
        with self.assertRaises(ValueError):
            Reporter(self.aggregator, self.schema, poll_interval_ms=-1)


class TestReporterLoop(unittest.TestCase):
    """Test the periodic loop."""

    def setUp(self):
        """Set up test fixtures."""
        self.schema = SchemaTable([MessageSchema.packed(1, 'ALPHA', [('a', 'uint8_t', 0)])])
        self.aggregator = StatsAggregator()
        self.output = StringIO()

    def test_elapsed_measured_from_previous_report(self):
        """Test that each window is measured from the previous report."""
        clock = iter([0.0, 0.5, 1.0, 1.7, 2.2])
        reporter = Reporter(self.aggregator, self.schema, output=self.output,
                            clock=lambda: next(clock))
        for _ in range(3):
            self.aggregator.record(_raw(1))

        with patch.object(reporter, 'report_cycle', wraps=reporter.report_cycle) as cycle:
            reporter.run(CountdownEvent(polls=4))

        self.assertEqual(cycle.call_count, 2)
        self.assertAlmostEqual(cycle.call_args_list[0][0][0], 1000.0)
        self.assertAlmostEqual(cycle.call_args_list[1][0][0], 1200.0)
        self.assertIn('3 ALPHA (sysid=1, compid=1, a=0)', self.output.getvalue())

    def test_stop_before_first_period(self):
        """Test that a set stop event ends the loop without reporting."""
        reporter = Reporter(self.aggregator, self.schema, output=self.output)
        stop = threading.Event()
        stop.set()

        reporter.run(stop)

        self.assertEqual(reporter.stats['cycles'], 0)
        self.assertEqual(self.output.getvalue(), '')

    def test_background_thread(self):
        """Test start() and stop() on a real clock."""
        reporter = Reporter(self.aggregator, self.schema, output=self.output,
                            period_ms=20, poll_interval_ms=5)
        self.aggregator.record(_raw(1))

        reporter.start()
        deadline = time.monotonic() + 5.0
        while reporter.stats['cycles'] < 1 and time.monotonic() < deadline:
            time.sleep(0.01)
        reporter.stop(timeout=2.0)

        self.assertGreaterEqual(reporter.stats['cycles'], 1)
        self.assertIn('ALPHA', self.output.getvalue())
        self.assertIsNone(reporter._thread)


if __name__ == '__main__':
    unittest.main()
