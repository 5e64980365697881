"""
Tests for the notification hub and the activity log observer
"""

from modules.inspector.events import (
    ActivityLog,
    CharacteristicAdded,
    CharacteristicEntry,
    Connected,
    NotificationHub,
    SessionFailed,
)

from conftest import RecordingObserver


def test_emit_without_observer_is_dropped():
    hub = NotificationHub()
    hub.emit(Connected('AA:BB'))  # must not raise
    assert hub.observer is None


def test_emit_reaches_current_observer():
    hub = NotificationHub()
    recorder = RecordingObserver()
    hub.set_observer(recorder)

    hub.emit(Connected('AA:BB'))

    assert recorder.events == [Connected('AA:BB')]


def test_swapped_observer_stops_receiving_immediately():
    hub = NotificationHub()
    list_screen, detail_screen = RecordingObserver(), RecordingObserver()
    hub.set_observer(list_screen)
    hub.emit(Connected('AA:BB'))

    hub.set_observer(detail_screen)
    entry = CharacteristicEntry('char1', 'hello')
    hub.emit(CharacteristicAdded('AA:BB', entry))

    assert list_screen.kinds() == ['connected']
    assert detail_screen.kinds() == ['characteristic_added']


def test_no_replay_for_late_observer():
    hub = NotificationHub()
    hub.emit(Connected('AA:BB'))

    recorder = RecordingObserver()
    hub.set_observer(recorder)

    assert recorder.events == []


def test_clearing_observer():
    hub = NotificationHub()
    recorder = RecordingObserver()
    hub.set_observer(recorder)
    hub.set_observer(None)

    hub.emit(Connected('AA:BB'))

    assert recorder.events == []


def test_failing_observer_does_not_propagate():
    hub = NotificationHub()

    def broken(event):
        raise RuntimeError("render failed")

    hub.set_observer(broken)
    hub.emit(Connected('AA:BB'))


def test_observer_may_swap_itself_out():
    hub = NotificationHub()
    detail = RecordingObserver()

    def list_screen(event):
        hub.set_observer(detail)

    hub.set_observer(list_screen)
    hub.emit(Connected('AA:BB'))
    hub.emit(SessionFailed('AA:BB', 'Discovery timed out'))

    assert detail.kinds() == ['session_failed']


def test_activity_log_keeps_most_recent():
    log = ActivityLog(max_items=2)
    log(Connected('A'))
    log(Connected('B'))
    log(SessionFailed('C', 'Connect timed out'))

    recent = log.get_recent()
    assert [item['identity'] for item in recent] == ['B', 'C']
    assert recent[-1]['kind'] == 'session_failed'
    assert recent[-1]['reason'] == 'Connect timed out'
    assert 'timestamp' in recent[-1]

    log.clear()
    assert log.get_recent() == []


def test_characteristic_added_to_dict():
    event = CharacteristicAdded('AA:BB', CharacteristicEntry('2a29', 'Acme'))
    assert event.to_dict() == {
        'kind': 'characteristic_added',
        'identity': 'AA:BB',
        'key': '2a29',
        'value': 'Acme'
    }
