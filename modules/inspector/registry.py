"""
Device Registry
Deduplicated record of every peripheral seen since the radio started scanning
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .events import NotificationHub, PeripheralIdentity, PeripheralsUpdated

# Configure logging
logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    """Make advertisement values JSON friendly (bytes become hex)"""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class DiscoveredPeripheral:
    identity: PeripheralIdentity
    advertisement_data: Dict[str, Any] = field(default_factory=dict)
    signal_strength: int = 0
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    @property
    def name(self) -> Optional[str]:
        return self.advertisement_data.get('local_name')

    def to_dict(self) -> Dict:
        return {
            'identity': self.identity,
            'name': self.name,
            'rssi': self.signal_strength,
            'advertisement_data': _jsonable(self.advertisement_data),
            'first_seen': self.first_seen.isoformat() if self.first_seen else None,
            'last_seen': self.last_seen.isoformat() if self.last_seen else None
        }


class DeviceRegistry:
    """Tracks discovered peripherals in first-seen order.

    Entries are never removed while scanning; devices go quiet between
    advertisements all the time.
    """

    def __init__(self, radio, hub: NotificationHub):
        self.radio = radio
        self.hub = hub
        self.is_scanning = False
        self.scan_start_time: Optional[datetime] = None
        self._order: List[PeripheralIdentity] = []
        self._peripherals: Dict[PeripheralIdentity, DiscoveredPeripheral] = {}
        self._lock = threading.Lock()
        # separate from _lock; the radio may advertise synchronously from start_scan()
        self._scan_lock = threading.Lock()

    def start_scan(self) -> bool:
        """Start scanning, False if already running.

        Raises RadioUnavailable if the radio cannot scan.
        """
        with self._scan_lock:
            if self.is_scanning:
                logger.debug("Scan already running")
                return False
            logger.info("Starting Bluetooth scan")
            self.radio.start_scan()
            self.is_scanning = True
            self.scan_start_time = datetime.now()
        return True

    def stop_scan(self) -> bool:
        with self._scan_lock:
            if not self.is_scanning:
                return False
            logger.info("Stopping Bluetooth scan")
            self.radio.stop_scan()
            self.is_scanning = False
        return True

    def on_advertisement(self, identity: PeripheralIdentity, advertisement_data: Optional[Dict[str, Any]],
                         signal_strength: int):
        """Record an advertisement, creating the entry on first sight"""
        advertisement_data = dict(advertisement_data or {})
        now = datetime.now()
        with self._lock:
            existing = self._peripherals.get(identity)
            peripheral = DiscoveredPeripheral(
                identity=identity,
                advertisement_data=advertisement_data,
                signal_strength=signal_strength,
                first_seen=existing.first_seen if existing else now,
                last_seen=now
            )
            self._peripherals[identity] = peripheral
            if existing is None:
                self._order.append(identity)
            snapshot = tuple(self._peripherals[i] for i in self._order)

        if existing is None:
            logger.info(f"New peripheral: {peripheral.name or 'Unnamed'} ({identity})")
        self.hub.emit(PeripheralsUpdated(snapshot))

    def list(self) -> List[DiscoveredPeripheral]:
        """Snapshot of all peripherals in first-seen order"""
        with self._lock:
            return [self._peripherals[i] for i in self._order]

    def get(self, identity: PeripheralIdentity) -> Optional[DiscoveredPeripheral]:
        with self._lock:
            return self._peripherals.get(identity)

    def __len__(self):
        with self._lock:
            return len(self._order)

    def __contains__(self, identity):
        with self._lock:
            return identity in self._peripherals
