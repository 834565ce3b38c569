"""
Inspector Module

Ties the pieces together: the transport calls on_message() for every
received frame, which folds it into the aggregator; the reporter drains
the aggregator on its own schedule and prints the decoded snapshot.
"""

import threading
import logging
from typing import Optional, TextIO

from .errors import MalformedBuffer
from .message_decoder import MessageDecoder
from .raw_message import RawMessage
from .reporter import DEFAULT_PERIOD_MS, DEFAULT_POLL_INTERVAL_MS, Reporter
from .stats_aggregator import StatsAggregator

logger = logging.getLogger(__name__)


class Inspector:
    """
    Live per-message-type rate monitor.

    Attributes:
        schema: Field layout lookup shared with the reporter
        aggregator: Per-window message counts
        reporter: Periodic renderer
    """

    def __init__(self, schema, output: Optional[TextIO] = None,
                 period_ms: float = DEFAULT_PERIOD_MS,
                 poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
                 clear_screen: bool = True, color_enabled: bool = False):
        self.schema = schema
        self.aggregator = StatsAggregator()
        self.decoder = MessageDecoder(color_enabled=color_enabled)
        self.reporter = Reporter(
            self.aggregator,
            schema,
            decoder=self.decoder,
            output=output,
            period_ms=period_ms,
            poll_interval_ms=poll_interval_ms,
            clear_screen=clear_screen,
        )
        self.rejected_messages = 0
        self._lock = threading.Lock()

    def attach(self, transport):
        """Register on_message as a receive handler of the transport."""
        transport.register_receive_handler(self.on_message)

    def on_message(self, raw: Optional[RawMessage]) -> bool:
        """
        Receive handler invoked by the transport once per frame.

        May be called from any thread.

        Args:
            raw: Received message

        Returns:
            False if the message had no usable buffer, True once recorded
        """
        try:
            if raw is None:
                raise MalformedBuffer("No message")
            raw.validate()
        except MalformedBuffer as e:
            with self._lock:
                self.rejected_messages += 1
            logger.debug(f"Rejected message: {e}")
            return False

        self.aggregator.record(raw)
        return True

    def run(self, stop_event: Optional[threading.Event] = None):
        """Run the reporting loop on the calling thread until stop_event is set."""
        self.reporter.run(stop_event)
