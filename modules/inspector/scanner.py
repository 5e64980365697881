"""
Bluetooth Inspector
Wires radio callbacks to the device registry and the active peripheral session
"""

import logging
import os
import threading
from typing import Callable, Dict, List, Optional

from .errors import RadioUnavailable
from .events import NotificationHub, PeripheralIdentity
from .radio import MANUAL_DISCONNECT, BleakRadioAdapter, RadioAdapter, SimulatedRadioAdapter
from .registry import DeviceRegistry
from .session import PeripheralSession

# Configure logging
logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = float(os.environ.get('INSPECTOR_CONNECT_TIMEOUT', '10'))
DISCOVERY_TIMEOUT = float(os.environ.get('INSPECTOR_DISCOVERY_TIMEOUT', '15'))

# Development simulation mode
SIMULATION_MODE = os.environ.get('INSPECTOR_SIMULATION', '').lower() in ('1', 'true', 'yes')


def create_radio(simulation: bool = SIMULATION_MODE, connect_timeout: float = CONNECT_TIMEOUT) -> RadioAdapter:
    """Build the radio adapter for this process"""
    if simulation:
        logger.info("Simulation mode enabled - using example peripherals")
        return SimulatedRadioAdapter()
    return BleakRadioAdapter(connect_timeout=connect_timeout)


class BluetoothInspector:
    """Scans for peripherals and inspects one of them at a time"""

    def __init__(self, radio: RadioAdapter, hub: Optional[NotificationHub] = None,
                 connect_timeout: Optional[float] = CONNECT_TIMEOUT,
                 discovery_timeout: Optional[float] = DISCOVERY_TIMEOUT,
                 timer_factory: Callable = threading.Timer):
        self.radio = radio
        self.hub = hub if hub is not None else NotificationHub()
        self.registry = DeviceRegistry(radio, self.hub)
        self.connect_timeout = connect_timeout
        self.discovery_timeout = discovery_timeout
        self.radio_error: Optional[str] = None
        self._timer_factory = timer_factory
        self._session: Optional[PeripheralSession] = None
        self._lock = threading.Lock()

        radio.set_listener(self)
        logger.info("BluetoothInspector initialized")

    @property
    def session(self) -> Optional[PeripheralSession]:
        with self._lock:
            return self._session

    def _session_for(self, identity: PeripheralIdentity) -> Optional[PeripheralSession]:
        session = self.session
        if session is None or session.identity != identity:
            logger.debug(f"No session for {identity}, ignoring callback")
            return None
        return session

    # Radio listener callbacks

    def on_advertisement(self, identity, advertisement_data, signal_strength):
        self.registry.on_advertisement(identity, advertisement_data, signal_strength)

    def on_connection_state_changed(self, identity, connected, error=None):
        if not connected and error == MANUAL_DISCONNECT:
            # teardown of a link we closed; a newer session may share the identity
            logger.debug(f"Ignoring {MANUAL_DISCONNECT} disconnect of {identity}")
            return
        session = self._session_for(identity)
        if session is None:
            return
        if connected:
            session.on_connected()
        else:
            session.on_disconnected(error)

    def on_services_discovered(self, identity, services):
        session = self._session_for(identity)
        if session:
            session.on_services_discovered(services)

    def on_characteristics_discovered(self, identity, service, characteristics):
        session = self._session_for(identity)
        if session:
            session.on_characteristics_discovered(service, characteristics)

    def on_value_read(self, identity, characteristic, value):
        session = self._session_for(identity)
        if session:
            session.on_value_read(characteristic, value)

    # Presentation API

    def start_scan(self) -> Dict:
        """Start scanning; a radio that failed once is reported, not retried"""
        if self.radio_error:
            return {"success": False, "error": self.radio_error, "fatal": True}
        try:
            started = self.registry.start_scan()
        except RadioUnavailable as e:
            self.radio_error = f"Bluetooth radio unavailable: {e}"
            logger.error(self.radio_error)
            return {"success": False, "error": self.radio_error, "fatal": True}
        if not started:
            return {"success": False, "error": "Scanner is already running"}
        return {"success": True, "message": "Scan started"}

    def stop_scan(self) -> Dict:
        if not self.registry.stop_scan():
            return {"success": True, "message": "Scanner already stopped"}
        return {"success": True, "message": "Scan stopped"}

    def get_devices(self) -> List[Dict]:
        return [p.to_dict() for p in self.registry.list()]

    def get_device(self, identity: PeripheralIdentity) -> Optional[Dict]:
        peripheral = self.registry.get(identity)
        return peripheral.to_dict() if peripheral else None

    def connect(self, identity: PeripheralIdentity) -> Dict:
        """Open a session for a discovered peripheral, closing any current one"""
        peripheral = self.registry.get(identity)
        if peripheral is None:
            return {"success": False, "error": "Device not found"}

        session = PeripheralSession(identity, self.radio, self.hub,
                                    connect_timeout=self.connect_timeout,
                                    discovery_timeout=self.discovery_timeout,
                                    timer_factory=self._timer_factory)
        with self._lock:
            previous, self._session = self._session, session

        if previous is not None:
            logger.info(f"Closing session for {previous.identity} to enforce single connection")
            previous.disconnect()

        session.connect()
        return {
            "success": True,
            "message": f"Connecting to {peripheral.name or identity}",
            "session": session.to_dict()
        }

    def retry(self) -> Dict:
        """Reconnect the current session after a failure or a dropped link"""
        session = self.session
        if session is None:
            return {"success": False, "error": "No session"}
        if not session.connect():
            return {"success": False, "error": f"Cannot reconnect while {session.state.value}"}
        return {"success": True, "message": f"Reconnecting to {session.identity}", "session": session.to_dict()}

    def disconnect(self) -> Dict:
        session = self.session
        if session is None:
            return {"success": True, "message": "No active session"}
        if not session.disconnect():
            return {"success": True, "message": "Already disconnected"}
        return {"success": True, "message": "Disconnected successfully"}

    def get_status(self) -> Dict:
        """Get current inspector status"""
        session = self.session
        scan_start_time = self.registry.scan_start_time
        return {
            "is_scanning": self.registry.is_scanning,
            "scan_start_time": scan_start_time.isoformat() if scan_start_time else None,
            "radio_error": self.radio_error,
            "discovered_count": len(self.registry),
            "session": session.to_dict() if session else None,
            "devices": self.get_devices()
        }

    def shutdown(self):
        """Stop scanning, close the session and release the radio"""
        try:
            if self.registry.is_scanning:
                self.registry.stop_scan()
            session = self.session
            if session is not None:
                session.disconnect()
            self.radio.shutdown()
            logger.info("BluetoothInspector shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
