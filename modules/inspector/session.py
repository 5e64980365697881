"""
Peripheral Session
Drives one peripheral through connect, service discovery, characteristic
discovery and value reads, collecting the decodable values
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .events import (
    CharacteristicAdded,
    CharacteristicEntry,
    Connected,
    Disconnected,
    NotificationHub,
    PeripheralIdentity,
    SessionFailed,
)
from .radio import GattCharacteristic, GattService, RadioAdapter

# Configure logging
logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCOVERING_SERVICES = 'discovering_services'
    DISCOVERING_CHARACTERISTICS = 'discovering_characteristics'
    READING_VALUES = 'reading_values'
    CLOSED = 'closed'
    DISCONNECTED = 'disconnected'


# States in which a timeout guards progress
TIMED_STATES = (
    SessionState.CONNECTING,
    SessionState.DISCOVERING_SERVICES,
    SessionState.DISCOVERING_CHARACTERISTICS,
)

# States in which value reads are accepted
READ_STATES = (
    SessionState.DISCOVERING_CHARACTERISTICS,
    SessionState.READING_VALUES,
)


class PeripheralSession:
    """Inspection lifecycle of a single peripheral.

    Radio failures never escape as exceptions; they become state transitions
    plus a SessionFailed or Disconnected event. Radio commands and events are
    issued after the session lock is released, so an adapter may call back
    synchronously.
    """

    def __init__(self, identity: PeripheralIdentity, radio: RadioAdapter, hub: NotificationHub,
                 connect_timeout: Optional[float] = None, discovery_timeout: Optional[float] = None,
                 timer_factory: Callable = threading.Timer):
        self.identity = identity
        self.radio = radio
        self.hub = hub
        self.connect_timeout = connect_timeout
        self.discovery_timeout = discovery_timeout
        self.failure_reason: Optional[str] = None
        self._timer_factory = timer_factory
        self._timer = None
        self._timer_generation = 0
        self._state = SessionState.IDLE
        self._pending_services: Set[GattService] = set()
        self._entries: List[CharacteristicEntry] = []
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def characteristics(self) -> Tuple[CharacteristicEntry, ...]:
        """Collected entries in the order they were first read"""
        with self._lock:
            return tuple(self._entries)

    @property
    def pending_discoveries(self) -> int:
        with self._lock:
            return len(self._pending_services)

    def _transition(self, new_state: SessionState):
        # caller holds the lock
        logger.debug(f"{self.identity}: {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _arm_timer(self, timeout: Optional[float], reason: str):
        # caller holds the lock
        self._cancel_timer()
        if timeout is None:
            return
        timer = self._timer_factory(timeout, self._on_timeout, args=(self._timer_generation, reason))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self):
        # caller holds the lock
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self, generation: int, reason: str):
        with self._lock:
            if generation != self._timer_generation or self._state not in TIMED_STATES:
                return
            self._timer = None
            self._pending_services.clear()
            self.failure_reason = reason
            self._transition(SessionState.DISCONNECTED)

        logger.warning(f"{reason} for {self.identity}")
        self.radio.disconnect(self.identity)
        self.hub.emit(SessionFailed(self.identity, reason))

    def connect(self) -> bool:
        """Start connecting; also the manual retry path after a failure"""
        with self._lock:
            if self._state not in (SessionState.IDLE, SessionState.DISCONNECTED):
                logger.warning(f"Cannot connect to {self.identity} while {self._state.value}")
                return False
            self.failure_reason = None
            self._transition(SessionState.CONNECTING)
            self._arm_timer(self.connect_timeout, 'Connect timed out')

        logger.info(f"Connecting to {self.identity}")
        self.radio.connect(self.identity, notify_on_connect=True, notify_on_disconnect=True)
        return True

    def on_connected(self):
        with self._lock:
            if self._state != SessionState.CONNECTING:
                logger.debug(f"Ignoring connect event for {self.identity} while {self._state.value}")
                return
            self._transition(SessionState.CONNECTED)
            self._transition(SessionState.DISCOVERING_SERVICES)
            self._arm_timer(self.discovery_timeout, 'Discovery timed out')

        logger.info(f"Connected to {self.identity}, discovering services")
        self.hub.emit(Connected(self.identity))
        self.radio.discover_services(self.identity)

    def on_connection_failed(self, error: Optional[str]):
        with self._lock:
            if self._state != SessionState.CONNECTING:
                return
            self._cancel_timer()
            self.failure_reason = f"Connection failed: {error}"
            self._transition(SessionState.DISCONNECTED)

        logger.error(f"Error connecting to device {self.identity}: {error}")
        self.hub.emit(SessionFailed(self.identity, self.failure_reason))

    def on_services_discovered(self, services: Optional[Iterable[GattService]]):
        services = list(services or [])
        with self._lock:
            if self._state != SessionState.DISCOVERING_SERVICES:
                return
            if services:
                self._pending_services = set(services)
                self._transition(SessionState.DISCOVERING_CHARACTERISTICS)
            else:
                self._cancel_timer()
                self._transition(SessionState.READING_VALUES)

        if not services:
            logger.info(f"No services found on {self.identity}")
            return

        logger.debug(f"{len(services)} services found on {self.identity}")
        for service in services:
            self.radio.discover_characteristics(self.identity, service)

    def on_characteristics_discovered(self, service: GattService,
                                      characteristics: Optional[Iterable[GattCharacteristic]]):
        characteristics = list(characteristics or [])
        with self._lock:
            if self._state != SessionState.DISCOVERING_CHARACTERISTICS:
                return
            if service not in self._pending_services:
                logger.debug(f"Unexpected characteristics for service {service.uuid} on {self.identity}")
                return
            self._pending_services.discard(service)
            if not self._pending_services:
                self._cancel_timer()
                self._transition(SessionState.READING_VALUES)

        if not characteristics:
            logger.warning(f"No characteristics for service {service.uuid} on {self.identity}")
            return

        for characteristic in characteristics:
            self.radio.read_value(self.identity, characteristic)

    def on_value_read(self, characteristic: GattCharacteristic, raw: Optional[bytes]):
        """Keep the first decodable value per characteristic UUID"""
        if raw is None:
            logger.debug(f"No value for {characteristic.uuid} on {self.identity}")
            return
        try:
            value = bytes(raw).decode('utf-8')
        except UnicodeDecodeError:
            logger.debug(f"Skipping non UTF-8 value of {characteristic.uuid} on {self.identity}")
            return

        entry = CharacteristicEntry(key=characteristic.uuid, value=value)
        with self._lock:
            if self._state not in READ_STATES or entry.key in self._keys:
                return
            self._keys.add(entry.key)
            self._entries.append(entry)

        logger.info(f"{self.identity} {entry.key}: {entry.value}")
        self.hub.emit(CharacteristicAdded(self.identity, entry))

    def disconnect(self) -> bool:
        """Close the session; a closed session ignores every later callback"""
        with self._lock:
            if self._state == SessionState.CLOSED:
                return False
            had_link = self._state not in (SessionState.IDLE, SessionState.DISCONNECTED)
            self._cancel_timer()
            self._pending_services.clear()
            self._transition(SessionState.CLOSED)

        if had_link:
            self.radio.disconnect(self.identity)
        logger.info(f"Session for {self.identity} closed")
        return True

    def on_disconnected(self, reason: Optional[str] = None):
        """Link teardown reported by the radio; while connecting it is a failed connection"""
        with self._lock:
            if self._state in (SessionState.IDLE, SessionState.CLOSED, SessionState.DISCONNECTED):
                return
            was_connecting = self._state == SessionState.CONNECTING
            if not was_connecting:
                self._cancel_timer()
                self._pending_services.clear()
                self.failure_reason = reason
                self._transition(SessionState.DISCONNECTED)

        if was_connecting:
            self.on_connection_failed(reason)
            return

        logger.warning(f"Device {self.identity} disconnected ({reason})")
        self.hub.emit(Disconnected(self.identity, reason))

    def to_dict(self) -> Dict:
        with self._lock:
            return {
                'identity': self.identity,
                'state': self._state.value,
                'pending_discoveries': len(self._pending_services),
                'failure_reason': self.failure_reason,
                'characteristics': [e.to_dict() for e in self._entries]
            }
