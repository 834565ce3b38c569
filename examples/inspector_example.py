"""
MAVLink Inspector Example

This example demonstrates how to wire the inspector up by hand instead of
through the command-line entry point: listen on a UDP port, decode every
message type with the common dialect and print a report every 2 seconds
for 30 seconds.
"""

import sys
import threading
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from mavlink_inspector.connection_manager import ConnectionManager, ConnectionType
from mavlink_inspector.inspector import Inspector
from mavlink_inspector.schema import load_dialect_schema
from mavlink_inspector.transport import MAVLinkTransport


def main():
    """Main example function."""
    print("=" * 60)
    print("MAVLink Inspector Example")
    print("=" * 60)

    schema = load_dialect_schema('common')
    print(f"\n✓ Loaded {len(schema)} message definitions")

    print("\nListening for MAVLink on UDP port 14550...")
    conn = ConnectionManager(ConnectionType.UDP, host='0.0.0.0', port=14550)

    if not conn.connect():
        print("✗ Failed to bind. Is another program using the port?")
        return

    transport = MAVLinkTransport(conn, schema=schema)
    inspector = Inspector(schema, period_ms=2000, clear_screen=False)
    inspector.attach(transport)
    transport.register_on_discover(lambda sysid: print(f"✓ Discovered system {sysid}"))

    stop = threading.Event()
    timer = threading.Timer(30.0, stop.set)

    transport.start()
    timer.start()
    try:
        inspector.run(stop)
    except KeyboardInterrupt:
        print("\n\nStopped by user")
    finally:
        timer.cancel()
        transport.stop(timeout=2.0)
        conn.disconnect()

    stats = transport.get_stats()
    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    print(f"Packets received:  {stats['total_packets']}")
    print(f"Parse errors:      {stats['parse_errors']}")
    print(f"Systems seen:      {stats['discovered_systems']}")
    print(f"Messages recorded: {inspector.aggregator.total_recorded}")


if __name__ == '__main__':
    main()
