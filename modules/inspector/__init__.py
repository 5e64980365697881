"""
BLE Inspector Module
Provides Bluetooth scanning and peripheral inspection functionality
"""

from .errors import InspectorError, RadioUnavailable
from .events import ActivityLog, CharacteristicEntry, NotificationHub
from .radio import BleakRadioAdapter, RadioAdapter, SimulatedRadioAdapter
from .registry import DeviceRegistry, DiscoveredPeripheral
from .session import PeripheralSession, SessionState
from .scanner import BluetoothInspector, create_radio
from .routes import inspector_bp, init_app

__all__ = [
    'ActivityLog', 'BleakRadioAdapter', 'BluetoothInspector', 'CharacteristicEntry',
    'DeviceRegistry', 'DiscoveredPeripheral', 'InspectorError', 'NotificationHub',
    'PeripheralSession', 'RadioAdapter', 'RadioUnavailable', 'SessionState',
    'SimulatedRadioAdapter', 'create_radio', 'init_app', 'inspector_bp'
]
