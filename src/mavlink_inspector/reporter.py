"""
Reporter Module

Periodic console report of the message types seen in the last window.
Every period the reporter drains the aggregator, turns counts into
per-second rates, sorts by count and prints one decoded line per type,
least frequent first.
"""

import math
import sys
import threading
import time
import logging
from typing import Callable, List, Optional, TextIO

from .message_decoder import MessageDecoder
from .stats_aggregator import MessageTypeStats, StatsAggregator

logger = logging.getLogger(__name__)


CLEAR_SCREEN = '\033[2J\n'

DEFAULT_PERIOD_MS = 1000
DEFAULT_POLL_INTERVAL_MS = 100


def compute_rate(count: int, elapsed_ms: float) -> int:
    """
    Messages per second over a window, rounded half up.

    Args:
        count: Messages seen in the window
        elapsed_ms: Window length in milliseconds

    Returns:
        Rate in Hz as an integer
    """
    if elapsed_ms <= 0:
        return count
    return int(math.floor(count * 1000.0 / elapsed_ms + 0.5))


def sort_by_count(snapshot: List[MessageTypeStats]) -> List[MessageTypeStats]:
    """Ascending by raw count; equal counts keep their snapshot order."""
    return sorted(snapshot, key=lambda entry: entry.count)


class Reporter:
    """
    Renders a sorted rate table from a StatsAggregator on a fixed period.

    The loop waits on a stop event between polls, so stop() takes effect
    within one poll interval. Elapsed time is measured on a monotonic clock
    from the previous report, which keeps one late wakeup from shifting
    every later window.

    Attributes:
        period_ms: Reporting period in milliseconds
        poll_interval_ms: How often the loop wakes up to check the clock
        clear_screen: Write the ANSI clear-screen sequence before each report
    """

    def __init__(self, aggregator: StatsAggregator, schema, decoder: Optional[MessageDecoder] = None,
                 output: Optional[TextIO] = None, period_ms: float = DEFAULT_PERIOD_MS,
                 poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS, clear_screen: bool = True,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the reporter.

        Args:
            aggregator: Source of per-type counts
            schema: Object with lookup_descriptors(type_id) and lookup_name(type_id)
            decoder: Message decoder (a plain one is created if None)
            output: Text stream for the report (stdout if None)
            period_ms: Reporting period
            poll_interval_ms: Wakeup interval of the loop
            clear_screen: Clear the terminal before each report
            clock: Monotonic time source in seconds
        """
        if period_ms <= 0:
            raise ValueError(f"period_ms must be positive, got {period_ms}")
        if poll_interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive, got {poll_interval_ms}")

        self.aggregator = aggregator
        self.schema = schema
        self.decoder = decoder or MessageDecoder()
        self.output = output
        self.period_ms = period_ms
        self.poll_interval_ms = poll_interval_ms
        self.clear_screen = clear_screen
        self.clock = clock

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.stats = {
            'cycles': 0,
            'lines_rendered': 0,
        }

    def run(self, stop_event: Optional[threading.Event] = None):
        """
        Report every period until the stop event is set.

        Args:
            stop_event: Cancellation signal (the reporter's own if None)
        """
        stop = stop_event or self._stop_event
        start = self.clock()
        logger.info(f"Reporter running - period={self.period_ms}ms")

        while not stop.wait(self.poll_interval_ms / 1000.0):
            now = self.clock()
            elapsed_ms = (now - start) * 1000.0
            if elapsed_ms >= self.period_ms:
                self.report_cycle(elapsed_ms)
                start = now

        logger.info(f"Reporter stopped after {self.stats['cycles']} cycles")

    def start(self):
        """Run the report loop on a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name='reporter', daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Signal the loop to stop and wait for the background thread."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def report_cycle(self, elapsed_ms: float) -> List[str]:
        """
        Drain the aggregator and write one report.

        Args:
            elapsed_ms: Length of the window being reported

        Returns:
            The rendered lines, in output order
        """
        snapshot = sort_by_count(self.aggregator.drain())
        lines = [self.render_entry(entry, elapsed_ms) for entry in snapshot]

        out = self.output or sys.stdout
        if self.clear_screen:
            out.write(CLEAR_SCREEN)
        for line in lines:
            out.write(line + '\n')
        out.flush()

        self.stats['cycles'] += 1
        self.stats['lines_rendered'] += len(lines)
        logger.debug(f"Reported {len(lines)} message types over {elapsed_ms:.0f}ms")
        return lines

    def render_entry(self, entry: MessageTypeStats, elapsed_ms: float) -> str:
        """Format `<rate> <decoded message>` for one snapshot entry."""
        raw = entry.last_message
        descriptors = self.schema.lookup_descriptors(raw.type_id)
        type_name = self.schema.lookup_name(raw.type_id)
        decoded = self.decoder.decode(raw, descriptors, type_name)
        return f"{compute_rate(entry.count, elapsed_ms)} {decoded}"
