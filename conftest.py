"""
pytest configuration for the inspector tests.

Provides a radio that records commands without answering them, a timer
factory whose timers only fire when told to, and an event recorder.
"""

import pytest

from modules.inspector.errors import RadioUnavailable
from modules.inspector.events import NotificationHub
from modules.inspector.radio import GattCharacteristic, GattService, RadioAdapter
from modules.inspector.scanner import BluetoothInspector


class FakeRadio(RadioAdapter):
    """Radio that records every command; tests drive the callbacks by hand"""

    def __init__(self, powered: bool = True):
        super().__init__()
        self.powered = powered
        self.commands = []

    def named(self, name):
        return [c for c in self.commands if c[0] == name]

    def start_scan(self):
        if not self.powered:
            raise RadioUnavailable("Bluetooth is powered off")
        self.commands.append(('start_scan',))

    def stop_scan(self):
        self.commands.append(('stop_scan',))

    def connect(self, identity, notify_on_connect=True, notify_on_disconnect=True):
        self.commands.append(('connect', identity, notify_on_connect, notify_on_disconnect))

    def disconnect(self, identity):
        self.commands.append(('disconnect', identity))

    def discover_services(self, identity):
        self.commands.append(('discover_services', identity))

    def discover_characteristics(self, identity, service):
        self.commands.append(('discover_characteristics', identity, service))

    def read_value(self, identity, characteristic):
        self.commands.append(('read_value', identity, characteristic))


class ManualTimer:
    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class ManualTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=()):
        timer = ManualTimer(interval, function, args)
        self.timers.append(timer)
        return timer


class RecordingObserver:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]


def make_service(uuid='svc1', handle=1):
    return GattService(uuid=uuid, handle=handle)


def make_characteristic(uuid='char1', handle=2, service_uuid='svc1'):
    return GattCharacteristic(uuid=uuid, handle=handle, service_uuid=service_uuid)


@pytest.fixture
def radio():
    return FakeRadio()


@pytest.fixture
def hub():
    return NotificationHub()


@pytest.fixture
def observer(hub):
    recorder = RecordingObserver()
    hub.set_observer(recorder)
    return recorder


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def inspector(radio, hub, timers):
    return BluetoothInspector(radio, hub, connect_timeout=10.0, discovery_timeout=15.0, timer_factory=timers)
