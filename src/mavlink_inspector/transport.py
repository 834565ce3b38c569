"""
MAVLink Transport Module

Reads bytes from a ConnectionManager, frames them into MAVLink messages
with pymavlink, and hands every frame to the registered receive handlers
as a RawMessage. Also reports newly discovered systems (first HEARTBEAT
seen from a system id).
"""

import threading
import logging
from typing import Callable, List, Optional, Set

from .connection_manager import ConnectionManager
from .raw_message import RawMessage
from .schema import DEFAULT_DIALECT, DEFAULT_WIRE_VERSION, load_dialect_module

logger = logging.getLogger(__name__)


MAVLINK_V1_STX = 0xFE
MAVLINK_V2_STX = 0xFD
MAVLINK_V1_HEADER_LEN = 6
MAVLINK_V2_HEADER_LEN = 10

HEARTBEAT_MSG_ID = 0

ReceiveHandler = Callable[[RawMessage], bool]
DiscoverHandler = Callable[[int], None]


def extract_payload(msgbuf) -> bytes:
    """
    Slice the payload out of a complete MAVLink v1 or v2 frame.

    Args:
        msgbuf: Frame bytes starting at the STX marker

    Returns:
        Payload bytes as sent (MAVLink 2 may have trailing zeros trimmed)
    """
    if not msgbuf:
        return b''
    buf = bytes(msgbuf)
    header_len = MAVLINK_V2_HEADER_LEN if buf[0] == MAVLINK_V2_STX else MAVLINK_V1_HEADER_LEN
    if len(buf) < 2:
        return b''
    return buf[header_len:header_len + buf[1]]


class MAVLinkTransport:
    """
    Receive side of a MAVLink link.

    Handlers are called on the thread that feeds bytes in: the background
    reader started by start(), or the caller of process_bytes().
    """

    def __init__(self, connection: ConnectionManager, schema=None,
                 dialect: str = DEFAULT_DIALECT, wire_version: str = DEFAULT_WIRE_VERSION):
        """
        Initialize the transport.

        Args:
            connection: Byte source
            schema: Optional SchemaTable, used to restore trimmed MAVLink 2 payloads
            dialect: pymavlink dialect used for framing
            wire_version: 'v20' (accepts v1 and v2 frames) or 'v10'
        """
        self.connection = connection
        self.schema = schema
        self.dialect = load_dialect_module(dialect, wire_version)
        self.mav = self.dialect.MAVLink(None)

        self._receive_handlers: List[ReceiveHandler] = []
        self._discover_handlers: List[DiscoverHandler] = []
        self.discovered_systems: Set[int] = set()
        self._discovered = threading.Event()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.stats = {
            'total_packets': 0,
            'parse_errors': 0,
            'bad_data': 0,
            'handler_errors': 0,
            'bytes_processed': 0
        }

        logger.info(f"MAVLink transport initialized ({wire_version}/{dialect})")

    def register_receive_handler(self, callback: ReceiveHandler):
        """Call `callback(raw_message)` for every received frame."""
        self._receive_handlers.append(callback)

    def register_on_discover(self, callback: DiscoverHandler):
        """Call `callback(system_id)` the first time a system sends a HEARTBEAT."""
        self._discover_handlers.append(callback)

    def wait_for_discovery(self, timeout: float) -> bool:
        """
        Block until at least one system has been discovered.

        Returns:
            True if a system was discovered within the timeout
        """
        return self._discovered.wait(timeout)

    def process_bytes(self, data: bytes) -> List[RawMessage]:
        """
        Frame a chunk of the byte stream and dispatch complete messages.

        Partial frames are kept by the pymavlink parser until the rest
        arrives in a later call.

        Args:
            data: Raw bytes from the link

        Returns:
            Messages dispatched from this chunk
        """
        if not data:
            return []

        self.stats['bytes_processed'] += len(data)
        messages = []

        for byte in data:
            try:
                msg = self.mav.parse_char(bytes([byte]))
            except self.dialect.MAVError as e:
                self.stats['parse_errors'] += 1
                logger.warning(f"MAVLink error: {e}")
                continue

            if msg is None:
                continue

            raw = self.to_raw_message(msg)
            if raw is None:
                continue

            self.stats['total_packets'] += 1
            self._check_discovery(raw)
            self._dispatch(raw)
            messages.append(raw)

        return messages

    def to_raw_message(self, msg) -> Optional[RawMessage]:
        """
        Convert a pymavlink message into a RawMessage.

        MAVLink 2 senders drop trailing zero bytes from the payload; when the
        schema knows the full payload size those bytes are put back, so the
        decoder sees the same layout the sender packed.

        Returns:
            RawMessage, or None for frames pymavlink flagged as bad data
        """
        if msg.get_type() == 'BAD_DATA':
            self.stats['bad_data'] += 1
            return None

        type_id = msg.get_msgId()
        payload = extract_payload(msg.get_msgbuf())

        full_size = self.schema.payload_size(type_id) if self.schema is not None else None
        if full_size and len(payload) < full_size:
            payload += bytes(full_size - len(payload))

        return RawMessage(
            type_id=type_id,
            sender_id=msg.get_srcSystem(),
            component_id=msg.get_srcComponent(),
            payload=payload,
        )

    def _check_discovery(self, raw: RawMessage):
        if raw.type_id != HEARTBEAT_MSG_ID or raw.sender_id in self.discovered_systems:
            return

        self.discovered_systems.add(raw.sender_id)
        self._discovered.set()
        logger.info(f"Discovered system {raw.sender_id}")
        for callback in list(self._discover_handlers):
            callback(raw.sender_id)

    def _dispatch(self, raw: RawMessage):
        for handler in list(self._receive_handlers):
            try:
                handler(raw)
            except Exception as e:
                self.stats['handler_errors'] += 1
                logger.error(f"Receive handler failed for message id {raw.type_id}: {e}", exc_info=True)

    def run(self, stop_event: Optional[threading.Event] = None):
        """
        Read and dispatch until the stop event is set.

        Args:
            stop_event: Cancellation signal (the transport's own if None)
        """
        stop = stop_event or self._stop_event

        while not stop.is_set():
            if not self.connection.is_healthy():
                logger.warning("Connection unhealthy, attempting reconnect...")
                self.connection.auto_reconnect(stop)
                continue

            data = self.connection.read(1024)
            if not data:
                stop.wait(0.01)
                continue

            self.process_bytes(data)

    def start(self):
        """Run the read loop on a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name='mavlink-rx', daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Stop the read loop and wait for the background thread."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def get_stats(self) -> dict:
        """
        Get transport statistics.

        Returns:
            Dictionary with packet, error and byte counters plus the
            discovered system ids
        """
        stats = self.stats.copy()
        stats['discovered_systems'] = sorted(self.discovered_systems)
        return stats
