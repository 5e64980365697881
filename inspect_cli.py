#!/usr/bin/env python3
"""
BLE Inspector - terminal front end
Scans for a while, lists what was seen, then inspects one peripheral
"""

import argparse
import logging
import sys
import threading
import time
from typing import List, Optional

from modules.inspector import BluetoothInspector, NotificationHub, create_radio
from modules.inspector.events import (
    CharacteristicAdded,
    Connected,
    Disconnected,
    PeripheralsUpdated,
    SessionFailed,
)
from modules.inspector.scanner import CONNECT_TIMEOUT, DISCOVERY_TIMEOUT, SIMULATION_MODE

logger = logging.getLogger(__name__)


class PeripheralListView:
    """List screen; hands the hub over to the detail view once a connection is up"""

    def __init__(self, hub: NotificationHub, out=print):
        self.hub = hub
        self.out = out
        self.detail_view = None
        self.finished = threading.Event()
        self._last_count = 0

    def __call__(self, event):
        if isinstance(event, PeripheralsUpdated):
            if len(event.peripherals) != self._last_count:
                self._last_count = len(event.peripherals)
                self.out(f"Available Devices: {self._last_count}")
        elif isinstance(event, Connected) and self.detail_view is not None:
            self.out(f"Connected to {event.identity}")
            self.hub.set_observer(self.detail_view)
        elif isinstance(event, SessionFailed):
            self.out(f"Failed: {event.reason}")
            self.finished.set()


class PeripheralDetailView:
    """Detail screen: prints characteristic values as they arrive"""

    def __init__(self, identity: str, out=print):
        self.identity = identity
        self.out = out
        self.finished = threading.Event()

    def __call__(self, event):
        if isinstance(event, CharacteristicAdded):
            self.out(f"  {event.entry.key}: {event.entry.value}")
        elif isinstance(event, (Disconnected, SessionFailed)):
            self.out(f"Session ended: {event.reason}")
            self.finished.set()


def format_peripherals(peripherals) -> List[str]:
    lines = []
    for index, peripheral in enumerate(peripherals):
        lines.append(f"{index:3d}  {peripheral.signal_strength:4d} dBm  "
                     f"{peripheral.name or 'Unnamed'} ({peripheral.identity})")
    return lines


def select_identity(peripherals, choice: str) -> Optional[str]:
    """Resolve a list index or an identity to an identity"""
    for peripheral in peripherals:
        if peripheral.identity.lower() == choice.lower():
            return peripheral.identity
    if choice.isdigit() and int(choice) < len(peripherals):
        return peripherals[int(choice)].identity
    return None


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Scan for BLE peripherals and read their characteristics")
    parser.add_argument('--simulate', action='store_true', default=SIMULATION_MODE,
                        help="use the simulated radio instead of Bluetooth hardware")
    parser.add_argument('--scan-time', type=float, default=5.0,
                        help="seconds to scan before listing (default: 5)")
    parser.add_argument('--inspect-time', type=float, default=10.0,
                        help="seconds to wait for characteristic values (default: 10)")
    parser.add_argument('--device', help="list index or identity to inspect; prompts when omitted")
    parser.add_argument('--connect-timeout', type=float, default=CONNECT_TIMEOUT)
    parser.add_argument('--discovery-timeout', type=float, default=DISCOVERY_TIMEOUT)
    parser.add_argument('-v', '--verbose', action='store_true', help="debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger('bleak').setLevel(logging.WARNING)

    radio = create_radio(simulation=args.simulate, connect_timeout=args.connect_timeout)
    inspector = BluetoothInspector(radio, connect_timeout=args.connect_timeout,
                                   discovery_timeout=args.discovery_timeout)
    list_view = PeripheralListView(inspector.hub)
    inspector.hub.set_observer(list_view)

    try:
        result = inspector.start_scan()
        if not result['success']:
            print(result['error'], file=sys.stderr)
            return 1

        time.sleep(args.scan_time)
        peripherals = inspector.registry.list()
        if not peripherals:
            print("No devices found.")
            return 0
        for line in format_peripherals(peripherals):
            print(line)

        choice = args.device if args.device is not None else input("Select device: ").strip()
        identity = select_identity(peripherals, choice)
        if identity is None:
            print(f"Unknown device: {choice}", file=sys.stderr)
            return 1

        detail_view = PeripheralDetailView(identity)
        list_view.detail_view = detail_view
        inspector.connect(identity)

        deadline = time.monotonic() + args.inspect_time
        while time.monotonic() < deadline:
            if detail_view.finished.is_set() or list_view.finished.is_set():
                break
            time.sleep(0.1)

        session = inspector.session
        print(f"{len(session.characteristics)} readable characteristics ({session.state.value})")
        inspector.disconnect()
        inspector.hub.set_observer(list_view)
        return 0
    except KeyboardInterrupt:
        print("\nExiting...")
        return 130
    finally:
        inspector.shutdown()


if __name__ == '__main__':
    sys.exit(main())
