"""
Radio Adapters
Boundary to the platform BLE stack: a Bleak backed adapter for real hardware
and an in-memory simulated adapter for development
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple

from bleak import BleakClient, BleakError, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from .errors import RadioUnavailable

# Configure logging
logger = logging.getLogger(__name__)

SCAN_START_TIMEOUT = 10.0

# Reason given for links torn down by our own disconnect command
MANUAL_DISCONNECT = 'manual'


@dataclass(frozen=True)
class GattService:
    uuid: str
    handle: int


@dataclass(frozen=True)
class GattCharacteristic:
    uuid: str
    handle: int
    service_uuid: str
    properties: Tuple[str, ...] = ('read',)

    @property
    def readable(self) -> bool:
        return 'read' in self.properties


class RadioAdapter(ABC):
    """Commands accepted by the BLE stack.

    Every command is fire-and-forget. Results come back through the listener
    set with set_listener(), which must provide:

        on_advertisement(identity, advertisement_data, signal_strength)
        on_connection_state_changed(identity, connected, error)
        on_services_discovered(identity, services)
        on_characteristics_discovered(identity, service, characteristics)
        on_value_read(identity, characteristic, value)

    Callbacks may arrive on any thread. start_scan() is the only command that
    raises, with RadioUnavailable. A link closed by disconnect() is not
    reported back through on_connection_state_changed.
    """

    def __init__(self):
        self._listener = None

    def set_listener(self, listener):
        self._listener = listener

    def _notify(self, callback_name: str, *args):
        listener = self._listener
        if listener is None:
            return
        try:
            getattr(listener, callback_name)(*args)
        except Exception as e:
            logger.error(f"Error in {callback_name} callback: {e}")

    @abstractmethod
    def start_scan(self):
        pass

    @abstractmethod
    def stop_scan(self):
        pass

    @abstractmethod
    def connect(self, identity: str, notify_on_connect: bool = True, notify_on_disconnect: bool = True):
        pass

    @abstractmethod
    def disconnect(self, identity: str):
        pass

    @abstractmethod
    def discover_services(self, identity: str):
        pass

    @abstractmethod
    def discover_characteristics(self, identity: str, service: GattService):
        pass

    @abstractmethod
    def read_value(self, identity: str, characteristic: GattCharacteristic):
        pass

    def shutdown(self):
        """Release radio resources"""


def advertisement_to_dict(advertisement_data: AdvertisementData) -> Dict:
    """Flatten Bleak advertisement data into a plain mapping"""
    return {
        'local_name': advertisement_data.local_name,
        'manufacturer_data': {k: bytes(v) for k, v in advertisement_data.manufacturer_data.items()},
        'service_data': {k: bytes(v) for k, v in advertisement_data.service_data.items()},
        'service_uuids': list(advertisement_data.service_uuids),
        'tx_power': advertisement_data.tx_power
    }


class BleakRadioAdapter(RadioAdapter):
    """Radio adapter on top of Bleak.

    All BLE coroutines run on one dedicated asyncio loop in a background
    thread so Bleak never sees futures from another loop.
    """

    def __init__(self, connect_timeout: float = 10.0):
        super().__init__()
        self.connect_timeout = connect_timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._scanner: Optional[BleakScanner] = None
        self._clients: Dict[str, BleakClient] = {}
        self._pending: Dict[str, Set[Future]] = {}
        self._closing: Set[str] = set()
        self._lock = threading.Lock()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        """Start and return the adapter loop running in a daemon thread"""
        if self._loop and self._loop.is_running():
            return self._loop

        def loop_runner(loop: asyncio.AbstractEventLoop):
            asyncio.set_event_loop(loop)
            loop.run_forever()

        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(target=loop_runner, args=(self._loop,), daemon=True)
        self._loop_thread.start()
        return self._loop

    def _submit(self, identity: Optional[str], coro) -> Future:
        """Schedule a coroutine on the adapter loop, tracked per identity for cancellation"""
        loop = self._ensure_loop()
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        if identity is not None:
            with self._lock:
                self._pending.setdefault(identity, set()).add(future)

            def _done(f, identity=identity):
                with self._lock:
                    self._pending.get(identity, set()).discard(f)

            future.add_done_callback(_done)
        return future

    def _detection_callback(self, device: BLEDevice, advertisement_data: AdvertisementData):
        """Callback for device detection during scanning"""
        try:
            logger.debug(f"BLE Device discovered: {device.name or 'Unknown'} ({device.address}) RSSI {advertisement_data.rssi}")
            self._notify('on_advertisement', device.address,
                         advertisement_to_dict(advertisement_data), advertisement_data.rssi)
        except Exception as e:
            logger.error(f"Error in detection callback: {e}")

    def start_scan(self):
        try:
            self._submit(None, self._start_scan()).result(timeout=SCAN_START_TIMEOUT)
        except Exception as e:
            logger.error(f"Error starting scan: {e}")
            raise RadioUnavailable(str(e)) from e

    async def _start_scan(self):
        if self._scanner:
            return
        scanner = BleakScanner(detection_callback=self._detection_callback)
        await scanner.start()
        self._scanner = scanner
        logger.info("Bluetooth scan started successfully")

    def stop_scan(self):
        if self._scanner is None:
            return
        try:
            self._submit(None, self._stop_scan()).result(timeout=SCAN_START_TIMEOUT)
        except Exception as e:
            logger.error(f"Error stopping scan: {e}")
            self._scanner = None

    async def _stop_scan(self):
        scanner, self._scanner = self._scanner, None
        if scanner:
            await scanner.stop()
            logger.info("Bluetooth scan stopped successfully")

    def connect(self, identity: str, notify_on_connect: bool = True, notify_on_disconnect: bool = True):
        self._submit(identity, self._connect(identity, notify_on_connect, notify_on_disconnect))

    async def _connect(self, identity: str, notify_on_connect: bool, notify_on_disconnect: bool):
        def disconnected_callback(client: BleakClient):
            with self._lock:
                if self._clients.get(identity) is client:
                    del self._clients[identity]
                closing = identity in self._closing
            if closing:
                # the session that asked for this is already closed
                logger.debug(f"Device {identity} disconnected ({MANUAL_DISCONNECT})")
                return
            logger.warning(f"Device {identity} disconnected unexpectedly")
            if notify_on_disconnect:
                self._notify('on_connection_state_changed', identity, False, 'unexpected')

        client = BleakClient(identity, disconnected_callback=disconnected_callback, timeout=self.connect_timeout)
        try:
            await client.connect()
        except Exception as e:
            logger.error(f"Error connecting to device {identity}: {e}")
            self._notify('on_connection_state_changed', identity, False, str(e) or type(e).__name__)
            return

        with self._lock:
            self._clients[identity] = client
        logger.info(f"Connected to {identity}")
        if notify_on_connect:
            self._notify('on_connection_state_changed', identity, True, None)

    def disconnect(self, identity: str):
        with self._lock:
            stale = list(self._pending.pop(identity, ()))
        for future in stale:
            future.cancel()
        if stale:
            logger.debug(f"Cancelled {len(stale)} outstanding commands for {identity}")
        self._submit(None, self._disconnect(identity))

    async def _disconnect(self, identity: str):
        with self._lock:
            client = self._clients.pop(identity, None)
            if client:
                self._closing.add(identity)
        if client is None:
            return
        try:
            await client.disconnect()
            logger.info(f"Disconnected from {identity}")
        except Exception as e:
            logger.warning(f"Error disconnecting from {identity}: {e}")
        finally:
            with self._lock:
                self._closing.discard(identity)

    def _client(self, identity: str) -> Optional[BleakClient]:
        with self._lock:
            return self._clients.get(identity)

    def discover_services(self, identity: str):
        self._submit(identity, self._discover_services(identity))

    async def _discover_services(self, identity: str):
        client = self._client(identity)
        services = None
        try:
            if client is not None:
                services = [GattService(uuid=s.uuid, handle=s.handle) for s in client.services]
        except BleakError as e:
            logger.warning(f"Service discovery failed for {identity}: {e}")
        if services is None:
            logger.warning(f"No services available for {identity}")
        self._notify('on_services_discovered', identity, services)

    def discover_characteristics(self, identity: str, service: GattService):
        self._submit(identity, self._discover_characteristics(identity, service))

    async def _discover_characteristics(self, identity: str, service: GattService):
        client = self._client(identity)
        characteristics = None
        try:
            bleak_service = client.services.get_service(service.handle) if client is not None else None
        except BleakError as e:
            logger.warning(f"Characteristic discovery failed for {identity}: {e}")
            bleak_service = None
        if bleak_service is not None:
            characteristics = [
                GattCharacteristic(uuid=c.uuid, handle=c.handle, service_uuid=service.uuid,
                                   properties=tuple(c.properties))
                for c in bleak_service.characteristics
            ]
        self._notify('on_characteristics_discovered', identity, service, characteristics)

    def read_value(self, identity: str, characteristic: GattCharacteristic):
        self._submit(identity, self._read_value(identity, characteristic))

    async def _read_value(self, identity: str, characteristic: GattCharacteristic):
        value = None
        client = self._client(identity)
        if client is None:
            logger.debug(f"Read of {characteristic.uuid} skipped, {identity} not connected")
        elif not characteristic.readable:
            logger.debug(f"Characteristic {characteristic.uuid} is not readable")
        else:
            try:
                value = bytes(await client.read_gatt_char(characteristic.handle))
            except Exception as e:
                logger.warning(f"Error reading {characteristic.uuid} from {identity}: {e}")
        self._notify('on_value_read', identity, characteristic, value)

    def shutdown(self):
        """Stop scanning, drop every link and stop the adapter loop"""
        if self._loop is None or not self._loop.is_running():
            return
        self.stop_scan()
        with self._lock:
            identities = list(self._clients)
        for identity in identities:
            try:
                self._submit(None, self._disconnect(identity)).result(timeout=self.connect_timeout)
            except Exception as e:
                logger.warning(f"Error disconnecting from {identity}: {e}")
        self._loop.call_soon_threadsafe(self._loop.stop)
        logger.info("Bleak radio adapter shut down")


@dataclass
class SimulatedPeripheral:
    """A fake advertiser; services map service UUID to characteristic UUID to value.

    A value of None marks a characteristic without the read property.
    """
    address: str
    name: Optional[str]
    rssi: int
    services: Dict[str, Dict[str, Optional[bytes]]] = field(default_factory=dict)
    connectable: bool = True


EXAMPLE_PERIPHERALS = [
    SimulatedPeripheral(
        address='AA:BB:CC:DD:EE:FF',
        name='Thermo Sensor',
        rssi=-45,
        services={
            '0000180a-0000-1000-8000-00805f9b34fb': {
                '00002a29-0000-1000-8000-00805f9b34fb': b'Acme Devices',
                '00002a24-0000-1000-8000-00805f9b34fb': b'TS-100',
                '00002a26-0000-1000-8000-00805f9b34fb': b'1.2.3'
            },
            '0000180f-0000-1000-8000-00805f9b34fb': {
                '00002a19-0000-1000-8000-00805f9b34fb': b'\xff'
            }
        }
    ),
    SimulatedPeripheral(
        address='11:22:33:44:55:66',
        name='Heart Rate Band',
        rssi=-67,
        services={
            '0000180d-0000-1000-8000-00805f9b34fb': {
                '00002a37-0000-1000-8000-00805f9b34fb': None,
                '00002a38-0000-1000-8000-00805f9b34fb': b'\x01'
            },
            '00001800-0000-1000-8000-00805f9b34fb': {
                '00002a00-0000-1000-8000-00805f9b34fb': b'Heart Rate Band'
            }
        }
    ),
    SimulatedPeripheral(address='66:55:44:33:22:11', name=None, rssi=-88, connectable=False)
]


class SimulatedRadioAdapter(RadioAdapter):
    """In-memory radio that answers every command synchronously"""

    def __init__(self, peripherals: Optional[List[SimulatedPeripheral]] = None, powered: bool = True):
        super().__init__()
        if peripherals is None:
            peripherals = EXAMPLE_PERIPHERALS
        self.peripherals: Dict[str, SimulatedPeripheral] = {p.address: replace(p) for p in peripherals}
        self.powered = powered
        self.is_scanning = False
        self._connected: Dict[str, bool] = {}

    def _gatt(self, identity: str) -> List[Tuple[GattService, List[GattCharacteristic]]]:
        handle = 1
        tree = []
        for service_uuid, characteristics in self.peripherals[identity].services.items():
            service = GattService(uuid=service_uuid, handle=handle)
            handle += 1
            chars = []
            for char_uuid, value in characteristics.items():
                properties = ('read',) if value is not None else ('notify',)
                chars.append(GattCharacteristic(uuid=char_uuid, handle=handle,
                                                service_uuid=service_uuid, properties=properties))
                handle += 1
            tree.append((service, chars))
        return tree

    def advertise(self, identity: str, rssi: Optional[int] = None):
        """Deliver one advertisement for a simulated peripheral"""
        peripheral = self.peripherals[identity]
        if rssi is not None:
            peripheral.rssi = rssi
        advertisement_data = {
            'local_name': peripheral.name,
            'manufacturer_data': {},
            'service_data': {},
            'service_uuids': list(peripheral.services),
            'tx_power': None
        }
        self._notify('on_advertisement', identity, advertisement_data, peripheral.rssi)

    def start_scan(self):
        if not self.powered:
            raise RadioUnavailable("Simulated radio is powered off")
        self.is_scanning = True
        logger.info("Simulation mode: delivering example advertisements")
        for identity in list(self.peripherals):
            self.advertise(identity)

    def stop_scan(self):
        self.is_scanning = False

    def connect(self, identity: str, notify_on_connect: bool = True, notify_on_disconnect: bool = True):
        peripheral = self.peripherals.get(identity)
        if peripheral is None or not peripheral.connectable:
            self._notify('on_connection_state_changed', identity, False, 'Peripheral unreachable')
            return
        self._connected[identity] = notify_on_disconnect
        if notify_on_connect:
            self._notify('on_connection_state_changed', identity, True, None)

    def disconnect(self, identity: str):
        if self._connected.pop(identity, None) is not None:
            logger.debug(f"Simulated link to {identity} closed")

    def drop_link(self, identity: str, reason: str = 'unexpected'):
        """Simulate a peer-initiated or radio-initiated disconnection"""
        if identity in self._connected:
            notify = self._connected.pop(identity)
            if notify:
                self._notify('on_connection_state_changed', identity, False, reason)

    def discover_services(self, identity: str):
        if identity not in self._connected:
            self._notify('on_services_discovered', identity, None)
            return
        self._notify('on_services_discovered', identity, [service for service, _ in self._gatt(identity)])

    def discover_characteristics(self, identity: str, service: GattService):
        characteristics = None
        if identity in self._connected:
            for known, chars in self._gatt(identity):
                if known.uuid == service.uuid:
                    characteristics = chars
        self._notify('on_characteristics_discovered', identity, service, characteristics)

    def read_value(self, identity: str, characteristic: GattCharacteristic):
        value = None
        if identity in self._connected:
            value = self.peripherals[identity].services.get(characteristic.service_uuid, {}).get(characteristic.uuid)
        self._notify('on_value_read', identity, characteristic, value)
