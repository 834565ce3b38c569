"""
Connection Manager for the MAVLink Inspector

Handles serial, UDP and TCP links to a MAVLink system with auto-reconnect
and connection health monitoring. Connections are usually described by a
URL:

    udp://[bind_host][:bind_port]
    tcp://[server_host][:server_port]
    serial:///path/to/serial/dev[:baudrate]
"""

import serial
import socket
import threading
import time
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


DEFAULT_UDP_HOST = '0.0.0.0'
DEFAULT_UDP_PORT = 14540
DEFAULT_TCP_HOST = '127.0.0.1'
DEFAULT_TCP_PORT = 5760
DEFAULT_BAUDRATE = 57600


class ConnectionType(Enum):
    """Supported connection types"""
    SERIAL = 1
    UDP = 2
    TCP = 3


def _split_host_port(location: str, default_host: str, default_port: int):
    host, sep, port = location.rpartition(':')
    if not sep:
        host, port = location, ''
    try:
        port_number = int(port) if port else default_port
    except ValueError:
        raise ValueError(f"Invalid port: {port!r}") from None
    if not 0 < port_number < 65536:
        raise ValueError(f"Port out of range: {port_number}")
    return host or default_host, port_number


def parse_connection_url(url: str) -> dict:
    """
    Parse a connection URL into ConnectionManager arguments.

    Args:
        url: 'udp://...', 'tcp://...' or 'serial://...'

    Returns:
        dict with 'conn_type' plus the connection-specific keyword arguments

    Raises:
        ValueError: If the scheme or address is invalid
    """
    scheme, sep, location = url.partition('://')
    if not sep:
        raise ValueError(f"Connection URL must look like scheme://address, got {url!r}")
    scheme = scheme.lower()

    if scheme == 'udp':
        host, port = _split_host_port(location, DEFAULT_UDP_HOST, DEFAULT_UDP_PORT)
        return {'conn_type': ConnectionType.UDP, 'host': host, 'port': port}

    if scheme == 'tcp':
        host, port = _split_host_port(location, DEFAULT_TCP_HOST, DEFAULT_TCP_PORT)
        return {'conn_type': ConnectionType.TCP, 'host': host, 'port': port}

    if scheme == 'serial':
        if not location:
            raise ValueError("Serial URL needs a device path, e.g. serial:///dev/ttyUSB0")
        device, sep, baud = location.rpartition(':')
        if sep and baud.isdigit():
            return {'conn_type': ConnectionType.SERIAL, 'port': device, 'baudrate': int(baud)}
        return {'conn_type': ConnectionType.SERIAL, 'port': location,
                'baudrate': DEFAULT_BAUDRATE}

    raise ValueError(f"Unsupported connection scheme: {scheme!r}")


class ConnectionManager:
    """
    Manages a byte-stream connection to a MAVLink system.

    Supports:
    - Serial port connections with configurable baud rate
    - UDP sockets bound to a local address (the vehicle sends to us)
    - TCP client connections to a server (e.g. a simulator)
    - Automatic reconnection with configurable interval
    - Connection health monitoring
    """

    def __init__(self, conn_type: ConnectionType, **kwargs):
        """
        Initialize connection manager.

        Args:
            conn_type: Type of connection (SERIAL, UDP or TCP)
            **kwargs: Connection-specific parameters
                For SERIAL: port (str), baudrate (int), timeout (float)
                For UDP/TCP: host (str), port (int), timeout (float)
                Common: reconnect_interval (float), stale_timeout (float)
        """
        self.conn_type = conn_type
        self.connection = None
        self.connected = False
        self.reconnect_interval = kwargs.get('reconnect_interval', 5)  # seconds
        self.stale_timeout = kwargs.get('stale_timeout', 30)  # seconds
        self.timeout = kwargs.get('timeout', 1.0)
        self.last_read_time = 0
        self.connection_attempts = 0

        if conn_type == ConnectionType.SERIAL:
            self.port = kwargs.get('port', '/dev/ttyUSB0')
            self.baudrate = kwargs.get('baudrate', DEFAULT_BAUDRATE)
            logger.info(f"Initialized for SERIAL: port={self.port}, baudrate={self.baudrate}")

        elif conn_type == ConnectionType.UDP:
            self.host = kwargs.get('host', DEFAULT_UDP_HOST)
            self.net_port = kwargs.get('port', DEFAULT_UDP_PORT)
            logger.info(f"Initialized for UDP: host={self.host}, port={self.net_port}")

        elif conn_type == ConnectionType.TCP:
            self.host = kwargs.get('host', DEFAULT_TCP_HOST)
            self.net_port = kwargs.get('port', DEFAULT_TCP_PORT)
            logger.info(f"Initialized for TCP: host={self.host}, port={self.net_port}")

    @classmethod
    def from_url(cls, url: str, **kwargs) -> 'ConnectionManager':
        """
        Create a connection manager from a connection URL.

        Args:
            url: Connection URL (see module docstring)
            **kwargs: Extra parameters (timeout, reconnect_interval, ...)

        Raises:
            ValueError: If the URL cannot be parsed
        """
        params = parse_connection_url(url)
        conn_type = params.pop('conn_type')
        params.update(kwargs)
        return cls(conn_type, **params)

    def describe(self) -> str:
        """Short human-readable description of the link."""
        if self.conn_type == ConnectionType.SERIAL:
            return f"serial://{self.port}:{self.baudrate}"
        return f"{self.conn_type.name.lower()}://{self.host}:{self.net_port}"

    def connect(self) -> bool:
        """
        Establish the connection.

        Returns:
            bool: True if connection successful, False otherwise
        """
        self.connection_attempts += 1

        try:
            if self.conn_type == ConnectionType.SERIAL:
                logger.info(f"Attempting serial connection to {self.port} at {self.baudrate} baud...")
                self.connection = serial.Serial(
                    port=self.port,
                    baudrate=self.baudrate,
                    timeout=self.timeout,
                    write_timeout=self.timeout
                )

                if not self.connection.is_open:
                    raise serial.SerialException("Port failed to open")

                logger.info(f"Serial connection established (attempt {self.connection_attempts})")

            elif self.conn_type == ConnectionType.UDP:
                logger.info(f"Attempting UDP bind on {self.host}:{self.net_port}...")
                self.connection = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
                self.connection.bind((self.host, self.net_port))
                self.connection.settimeout(self.timeout)
                logger.info(f"UDP socket bound and listening (attempt {self.connection_attempts})")

            elif self.conn_type == ConnectionType.TCP:
                logger.info(f"Attempting TCP connection to {self.host}:{self.net_port}...")
                self.connection = socket.create_connection(
                    (self.host, self.net_port), timeout=self.timeout
                )
                self.connection.settimeout(self.timeout)
                logger.info(f"TCP connection established (attempt {self.connection_attempts})")

            self.connected = True
            self.last_read_time = time.time()
            self.connection_attempts = 0
            return True

        except serial.SerialException as e:
            logger.error(f"Serial connection failed: {e}")
            self.connected = False
            return False
        except socket.error as e:
            logger.error(f"{self.conn_type.name} connection failed: {e}")
            self.connected = False
            return False

    def disconnect(self):
        """Close the connection gracefully."""
        if self.connection:
            try:
                self.connection.close()
                logger.info(f"{self.conn_type.name} connection closed")
            except (serial.SerialException, socket.error) as e:
                logger.error(f"Error during disconnect: {e}")
            finally:
                self.connection = None
                self.connected = False

    def read(self, size: int = 1024) -> bytes:
        """
        Read data from the connection.

        Args:
            size: Maximum number of bytes to read

        Returns:
            bytes: Data read from connection, empty bytes if error or no data
        """
        if not self.connected:
            return b''

        try:
            if self.conn_type == ConnectionType.SERIAL:
                data = self.connection.read(size)

            elif self.conn_type == ConnectionType.UDP:
                data, addr = self.connection.recvfrom(size)
                logger.debug(f"Received {len(data)} bytes from {addr}")

            else:
                data = self.connection.recv(size)
                if not data:
                    logger.warning("TCP peer closed the connection")
                    self.connected = False
                    return b''

            if data:
                self.last_read_time = time.time()
            return data

        except serial.SerialException as e:
            logger.error(f"Serial read error: {e}")
            self.connected = False
            return b''
        except socket.timeout:
            # Timeout is normal, just return empty
            return b''
        except socket.error as e:
            logger.error(f"{self.conn_type.name} read error: {e}")
            self.connected = False
            return b''

    def is_healthy(self) -> bool:
        """
        Check connection health.

        Returns:
            bool: True if connection is healthy, False otherwise
        """
        if not self.connected:
            return False

        time_since_last_read = time.time() - self.last_read_time
        if time_since_last_read > self.stale_timeout:
            logger.warning(f"No data received for {time_since_last_read:.1f} seconds")
            return False

        if self.conn_type == ConnectionType.SERIAL:
            try:
                if not self.connection.is_open:
                    logger.warning("Serial port is no longer open")
                    self.connected = False
                    return False
            except serial.SerialException:
                self.connected = False
                return False

        return True

    def auto_reconnect(self, stop_event: Optional[threading.Event] = None) -> bool:
        """
        Attempt to reconnect if disconnected.

        Args:
            stop_event: If given, the delay before reconnecting waits on it and
                no reconnect is attempted once it is set

        Returns:
            bool: True if reconnected successfully, False if still disconnected
        """
        if self.connected and self.is_healthy():
            return True

        if self.connection:
            self.disconnect()

        logger.info(f"Attempting to reconnect in {self.reconnect_interval} seconds...")
        if stop_event is None:
            time.sleep(self.reconnect_interval)
        elif stop_event.wait(self.reconnect_interval):
            logger.info("Reconnect cancelled")
            return False

        return self.connect()

    def get_status(self) -> dict:
        """
        Get current connection status information.

        Returns:
            dict: Status information including connection state, type, and parameters
        """
        status = {
            'connected': self.connected,
            'type': self.conn_type.name,
            'healthy': self.is_healthy() if self.connected else False,
            'last_read_time': self.last_read_time,
            'time_since_last_read': time.time() - self.last_read_time if self.last_read_time > 0 else None
        }

        if self.conn_type == ConnectionType.SERIAL:
            status.update({
                'port': self.port,
                'baudrate': self.baudrate,
                'is_open': self.connection.is_open if self.connection else False
            })
        else:
            status.update({
                'host': self.host,
                'port': self.net_port
            })

        return status
