"""
Stats Aggregator Module

Per message type delivery counts for the current reporting window. The
transport thread records into it and the reporter drains it; both sides
only hold the lock for a dict update or a swap, never for I/O.
"""

import threading
import logging
from dataclasses import dataclass
from typing import Dict, List

from .raw_message import RawMessage

logger = logging.getLogger(__name__)


@dataclass
class MessageTypeStats:
    """
    Accumulated statistics for one message type within a window.

    Attributes:
        type_id: MAVLink message id
        count: Messages of this type seen since the last drain (>= 1)
        last_message: Message kept for display (the first one of the window)
    """
    type_id: int
    count: int
    last_message: RawMessage


class StatsAggregator:
    """
    Thread-safe map from message id to MessageTypeStats.

    Only the first message of each type per window is kept for display;
    later ones of the same type are counted but not stored.
    """

    def __init__(self):
        self._messages: Dict[int, MessageTypeStats] = {}
        self._lock = threading.Lock()

        # Lifetime counters, never reset by drain()
        self.stats = {
            'total_recorded': 0,
            'drains': 0,
        }

    def record(self, raw: RawMessage):
        """
        Count one message.

        Args:
            raw: Message just received from the link
        """
        with self._lock:
            entry = self._messages.get(raw.type_id)
            if entry is None:
                self._messages[raw.type_id] = MessageTypeStats(raw.type_id, 1, raw)
            else:
                entry.count += 1
            self.stats['total_recorded'] += 1

    def drain(self) -> List[MessageTypeStats]:
        """
        Take all entries and start a new window.

        The capture and the clear happen under one lock acquisition, so a
        concurrent record() lands either in the returned snapshot or in the
        next window, never in neither.

        Returns:
            Snapshot entries ordered by message id
        """
        with self._lock:
            messages = self._messages
            self._messages = {}
            self.stats['drains'] += 1

        return [messages[type_id] for type_id in sorted(messages)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    @property
    def total_recorded(self) -> int:
        return self.stats['total_recorded']

    def get_stats(self) -> dict:
        """
        Get aggregator statistics.

        Returns:
            Dictionary containing:
                - total_recorded: Messages recorded since creation
                - drains: Number of completed drains
                - pending_types: Distinct types in the current window
        """
        with self._lock:
            stats = self.stats.copy()
            stats['pending_types'] = len(self._messages)
        return stats
