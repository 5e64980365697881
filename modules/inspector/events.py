"""
Inspector Events
Event kinds and the single-subscriber notification hub
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

# Configure logging
logger = logging.getLogger(__name__)

PeripheralIdentity = str


@dataclass(frozen=True)
class CharacteristicEntry:
    """A decoded characteristic value as shown to the user"""
    key: str
    value: str

    def to_dict(self) -> Dict:
        return {'key': self.key, 'value': self.value}


@dataclass(frozen=True)
class PeripheralsUpdated:
    """Registry changed; carries a snapshot in first-seen order"""
    peripherals: Tuple

    kind = 'peripherals_updated'

    def to_dict(self) -> Dict:
        return {
            'kind': self.kind,
            'count': len(self.peripherals),
            'identities': [p.identity for p in self.peripherals]
        }


@dataclass(frozen=True)
class Connected:
    identity: PeripheralIdentity

    kind = 'connected'

    def to_dict(self) -> Dict:
        return {'kind': self.kind, 'identity': self.identity}


@dataclass(frozen=True)
class CharacteristicAdded:
    identity: PeripheralIdentity
    entry: CharacteristicEntry

    kind = 'characteristic_added'

    def to_dict(self) -> Dict:
        return {'kind': self.kind, 'identity': self.identity, **self.entry.to_dict()}


@dataclass(frozen=True)
class Disconnected:
    """Link torn down by the radio or the peer"""
    identity: PeripheralIdentity
    reason: Optional[str] = None

    kind = 'disconnected'

    def to_dict(self) -> Dict:
        return {'kind': self.kind, 'identity': self.identity, 'reason': self.reason}


@dataclass(frozen=True)
class SessionFailed:
    """Connect error or a connect/discovery timeout"""
    identity: PeripheralIdentity
    reason: str

    kind = 'session_failed'

    def to_dict(self) -> Dict:
        return {'kind': self.kind, 'identity': self.identity, 'reason': self.reason}


Observer = Callable[[object], None]


class NotificationHub:
    """Delivers events to exactly one active observer.

    There is no buffering or replay: events emitted while no observer is set
    are dropped, so a new observer must read the current registry or session
    state when it subscribes.
    """

    def __init__(self):
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()

    @property
    def observer(self) -> Optional[Observer]:
        with self._lock:
            return self._observer

    def set_observer(self, observer: Optional[Observer]):
        """Replace the current observer; the previous one stops receiving events immediately"""
        with self._lock:
            self._observer = observer
        logger.debug(f"Observer set to {observer!r}")

    def emit(self, event):
        """Deliver an event synchronously to the current observer, if any"""
        with self._lock:
            observer = self._observer

        if observer is None:
            logger.debug(f"No observer, dropping {event.kind}")
            return

        try:
            observer(event)
        except Exception as e:
            logger.error(f"Error in observer handling {event.kind}: {e}")


class ActivityLog:
    """Observer that keeps the most recent events for display"""

    def __init__(self, max_items: int = 50):
        self._items = deque(maxlen=max_items)
        self._lock = threading.Lock()

    def __call__(self, event):
        item = event.to_dict()
        item['timestamp'] = datetime.now().isoformat()
        with self._lock:
            self._items.append(item)

    def get_recent(self) -> List[Dict]:
        with self._lock:
            return list(self._items)

    def clear(self):
        with self._lock:
            self._items.clear()
