"""
Tests for the device registry
"""

import threading

import pytest

from modules.inspector.errors import RadioUnavailable
from modules.inspector.registry import DeviceRegistry

from conftest import FakeRadio


@pytest.fixture
def registry(radio, hub):
    return DeviceRegistry(radio, hub)


def test_repeated_advertisements_listed_once(registry):
    for rssi in (-70, -65, -60, -58):
        registry.on_advertisement('AA:BB', {'local_name': 'Sensor'}, rssi)

    identities = [p.identity for p in registry.list()]
    assert identities.count('AA:BB') == 1
    assert len(registry) == 1


def test_signal_strength_is_last_write(registry):
    registry.on_advertisement('AA:BB', {}, -60)
    registry.on_advertisement('AA:BB', {}, -45)

    assert registry.get('AA:BB').signal_strength == -45
    assert len(registry.list()) == 1


def test_advertisement_data_overwritten(registry):
    registry.on_advertisement('AA:BB', {'local_name': 'Old'}, -60)
    registry.on_advertisement('AA:BB', {'local_name': 'New', 'tx_power': 4}, -61)

    peripheral = registry.get('AA:BB')
    assert peripheral.name == 'New'
    assert peripheral.advertisement_data['tx_power'] == 4


def test_first_seen_order_is_stable(registry):
    for identity in ('C', 'A', 'B', 'A', 'C'):
        registry.on_advertisement(identity, {}, -50)

    assert [p.identity for p in registry.list()] == ['C', 'A', 'B']


def test_first_seen_kept_across_updates(registry):
    registry.on_advertisement('AA:BB', {}, -60)
    first = registry.get('AA:BB')
    registry.on_advertisement('AA:BB', {}, -50)
    second = registry.get('AA:BB')

    assert second.first_seen == first.first_seen
    assert second.last_seen >= first.last_seen


def test_missing_advertisement_data(registry, observer):
    registry.on_advertisement('AA:BB', None, -50)
    registry.on_advertisement('CC:DD', {}, -60)

    assert [p.identity for p in registry.list()] == ['AA:BB', 'CC:DD']
    assert registry.get('AA:BB').advertisement_data == {}
    assert registry.get('AA:BB').name is None
    assert observer.kinds() == ['peripherals_updated'] * 2


def test_get_unknown_identity(registry):
    assert registry.get('nope') is None
    assert 'nope' not in registry


def test_list_is_a_snapshot(registry):
    registry.on_advertisement('A', {}, -50)
    snapshot = registry.list()
    registry.on_advertisement('B', {}, -50)

    assert [p.identity for p in snapshot] == ['A']


def test_each_advertisement_emits_update(registry, observer):
    registry.on_advertisement('A', {}, -50)
    registry.on_advertisement('A', {}, -49)
    registry.on_advertisement('B', {}, -80)

    assert observer.kinds() == ['peripherals_updated'] * 3
    last = observer.events[-1]
    assert [p.identity for p in last.peripherals] == ['A', 'B']
    assert last.peripherals[0].signal_strength == -49


def test_concurrent_advertisements_do_not_duplicate(registry):
    barrier = threading.Barrier(8)

    def advertise(n):
        barrier.wait()
        for i in range(50):
            registry.on_advertisement(f'dev-{i % 5}', {}, -n)

    threads = [threading.Thread(target=advertise, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    identities = [p.identity for p in registry.list()]
    assert sorted(identities) == [f'dev-{i}' for i in range(5)]


def test_to_dict_hex_encodes_bytes(registry):
    registry.on_advertisement('AA:BB', {
        'local_name': 'Tag',
        'manufacturer_data': {76: b'\x02\x15'},
        'service_uuids': ['180f']
    }, -40)

    data = registry.get('AA:BB').to_dict()
    assert data['name'] == 'Tag'
    assert data['rssi'] == -40
    assert data['advertisement_data']['manufacturer_data'] == {'76': '0215'}
    assert data['advertisement_data']['service_uuids'] == ['180f']


def test_start_scan_uses_radio(registry, radio):
    assert registry.start_scan()
    assert not registry.start_scan()

    assert registry.is_scanning
    assert radio.named('start_scan') == [('start_scan',)]

    assert registry.stop_scan()
    assert not registry.stop_scan()
    assert not registry.is_scanning
    assert radio.named('stop_scan') == [('stop_scan',)]


def test_start_scan_radio_unavailable(hub):
    registry = DeviceRegistry(FakeRadio(powered=False), hub)

    with pytest.raises(RadioUnavailable):
        registry.start_scan()
    assert not registry.is_scanning


def test_concurrent_scan_starts_reach_radio_once(hub):
    radio = FakeRadio()
    release = threading.Event()
    start_scan = radio.start_scan

    def slow_start_scan():
        release.wait(timeout=1.0)
        start_scan()

    radio.start_scan = slow_start_scan
    registry = DeviceRegistry(radio, hub)
    results = []
    threads = [threading.Thread(target=lambda: results.append(registry.start_scan())) for _ in range(4)]
    for t in threads:
        t.start()
    release.set()
    for t in threads:
        t.join()

    assert sorted(results) == [False, False, False, True]
    assert radio.named('start_scan') == [('start_scan',)]
