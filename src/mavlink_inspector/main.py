#!/usr/bin/env python3
"""
MAVLink Inspector - Main Application

Command-line entry point. Connects to a MAVLink link, waits for a system
to show up, then prints a live table of every message type received, with
its rate and the decoded fields of one sample message, refreshed once per
reporting period.
"""

import argparse
import sys
import signal
import threading
import time
import logging
from typing import Optional

from .config import InspectorConfig, load_config
from .connection_manager import ConnectionManager
from .inspector import Inspector
from .schema import SchemaTable, load_dialect_schema
from .transport import MAVLinkTransport

logger = logging.getLogger(__name__)

DISCOVERY_POLL_S = 0.1


class InspectorApplication:
    """
    Wires the transport, schema and inspector together and owns their lifetime.

    The transport reads on a background thread; the report loop runs on the
    thread that calls run() until stop_event is set.
    """

    def __init__(self, args):
        """
        Initialize the application.

        Args:
            args: Parsed command-line arguments
        """
        self.args = args
        self.stop_event = threading.Event()
        self.config: InspectorConfig = InspectorConfig()

        # Components (initialized in setup())
        self.schema: Optional[SchemaTable] = None
        self.connection_manager: Optional[ConnectionManager] = None
        self.transport: Optional[MAVLinkTransport] = None
        self.inspector: Optional[Inspector] = None

    def load_config(self):
        """Load the JSON configuration file, then apply command-line overrides."""
        self.config = load_config(self.args.config)
        self._apply_cli_overrides()
        self.config.validate()

    def _apply_cli_overrides(self):
        """Apply command-line argument overrides to configuration."""
        self.config.update(
            connection_url=self.args.connection_url,
            report_period_ms=self.args.period_ms,
            dialect=self.args.dialect,
            discovery_timeout_s=self.args.discovery_timeout,
        )
        if self.args.no_clear:
            self.config.clear_screen = False
        if self.args.no_color:
            self.config.color_enabled = False

    def setup(self) -> bool:
        """
        Set up all components.

        Returns:
            False if no connection was specified
        """
        self.load_config()

        if not self.config.connection_url:
            print("Must specify a connection")
            return False

        self.schema = load_dialect_schema(self.config.dialect)
        self.connection_manager = ConnectionManager.from_url(
            self.config.connection_url,
            reconnect_interval=self.config.reconnect_interval
        )
        self.transport = MAVLinkTransport(
            self.connection_manager, schema=self.schema, dialect=self.config.dialect
        )
        self.inspector = Inspector(
            self.schema,
            period_ms=self.config.report_period_ms,
            poll_interval_ms=self.config.poll_interval_ms,
            clear_screen=self.config.clear_screen,
            color_enabled=self.config.color_enabled,
        )
        self.inspector.attach(self.transport)
        self.transport.register_on_discover(
            lambda system_id: print(f"Discovered system with ID: {system_id}")
        )

        logger.info("Setup complete")
        return True

    def run(self) -> int:
        """
        Connect, wait for discovery and report until stopped.

        Returns:
            Process exit code
        """
        if not self.connection_manager.connect():
            print(f"Connection failed: {self.connection_manager.describe()}")
            return 1

        self.transport.start()

        print("Waiting to discover system...")
        if not self._wait_for_discovery():
            if self.stop_event.is_set():
                logger.info("Interrupted while waiting for discovery")
                self.shutdown()
                return 0
            print("No system found, exiting.")
            self.shutdown()
            return 1

        try:
            self.inspector.run(self.stop_event)
        finally:
            self.shutdown()

        return 0

    def _wait_for_discovery(self) -> bool:
        """
        Wait for the first HEARTBEAT in short slices so a stop request
        (SIGINT/SIGTERM) ends the wait early.

        Returns:
            True if a system was discovered before the timeout or a stop request
        """
        deadline = time.monotonic() + self.config.discovery_timeout_s
        while not self.stop_event.is_set():
            remaining = deadline - time.monotonic()
            if self.transport.wait_for_discovery(max(0.0, min(DISCOVERY_POLL_S, remaining))):
                return True
            if remaining <= 0:
                return False
        return False

    def shutdown(self):
        """Stop the reader thread and close the link."""
        logger.info("Shutting down...")
        self.stop_event.set()

        if self.transport:
            self.transport.stop(timeout=2.0)
            stats = self.transport.get_stats()
            logger.info(f"  Packets received: {stats['total_packets']}")
            logger.info(f"  Parse errors: {stats['parse_errors']}")

        if self.connection_manager:
            self.connection_manager.disconnect()

        logger.info("Shutdown complete")


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description='Live MAVLink message inspector',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Connection URL formats:
  udp://[bind_host][:bind_port]           e.g. udp://:14540
  tcp://[server_host][:server_port]       e.g. tcp://127.0.0.1:5760
  serial:///path/to/serial/dev[:baudrate] e.g. serial:///dev/ttyUSB0:57600
        """
    )

    parser.add_argument(
        'connection_url',
        nargs='?',
        help='Connection to listen on (see formats below)'
    )
    parser.add_argument(
        '--config',
        help='Path to configuration JSON file'
    )
    parser.add_argument(
        '--period-ms',
        type=int,
        help='Reporting period in milliseconds (default: 1000)'
    )
    parser.add_argument(
        '--dialect',
        help='pymavlink dialect to decode with (default: common)'
    )
    parser.add_argument(
        '--discovery-timeout',
        type=float,
        help='Seconds to wait for a HEARTBEAT before giving up (default: 3)'
    )
    parser.add_argument(
        '--no-clear',
        action='store_true',
        help='Do not clear the screen between reports'
    )
    parser.add_argument(
        '--no-color',
        action='store_true',
        help='Disable colored message names'
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    verbosity.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress non-error output'
    )

    return parser.parse_args(argv)


def setup_signal_handlers(app: InspectorApplication):
    """
    Set up signal handlers for graceful shutdown.

    Args:
        app: InspectorApplication instance
    """
    def signal_handler(signum, frame):
        """Handle interrupt signals."""
        logger.info(f"Received signal {signum}")
        app.stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    app = InspectorApplication(args)
    setup_signal_handlers(app)

    try:
        if not app.setup():
            return 1
        return app.run()

    except (OSError, ValueError, ImportError) as e:
        logger.error(f"Fatal error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
