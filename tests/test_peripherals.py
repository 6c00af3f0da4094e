"""
tests/test_peripherals.py

Unit tests for the peripheral slot state machine and identifier handling.
"""

import pytest

from coordinator.services.peripherals import (
    EventStream,
    PeripheralHandle,
    PeripheralSlot,
    Ready,
    Unconfigured,
    normalize_identifier,
)
from tests.fixtures import (
    TEST_PUMP_ID,
    build_manager,
    build_recording_factory,
)


def _build_slot(log: list, received: list) -> PeripheralSlot:
    return PeripheralSlot("pump", build_recording_factory(log), received.append)


def test_configure_subscribes_once() -> None:
    log: list = []
    received: list = []
    slot = _build_slot(log, received)

    handle = slot.configure(TEST_PUMP_ID)

    assert isinstance(slot.state, Ready)
    assert log == [("subscribe", TEST_PUMP_ID)]
    assert handle.events.subscriber_count == 1

    handle.events.emit({"packet": 1})
    assert received == [{"packet": 1}]


def test_configure_same_identifier_keeps_handle() -> None:
    """Reconfiguring with the active identifier must not resubscribe."""
    log: list = []
    slot = _build_slot(log, [])

    first = slot.configure(TEST_PUMP_ID)
    second = slot.configure(TEST_PUMP_ID)

    assert first is second
    assert log == [("subscribe", TEST_PUMP_ID)]


def test_configure_new_identifier_replaces_handle() -> None:
    """A different identifier unsubscribes the old handle, then subscribes the new one."""
    log: list = []
    slot = _build_slot(log, [])

    old = slot.configure(TEST_PUMP_ID)
    log.clear()
    new = slot.configure("654321")

    assert log == [("unsubscribe", TEST_PUMP_ID), ("subscribe", "654321")]
    assert old.events.subscriber_count == 0
    assert new.events.subscriber_count == 1
    assert slot.identifier == "654321"


def test_deconfigure_is_idempotent() -> None:
    log: list = []
    received: list = []
    slot = _build_slot(log, received)
    handle = slot.configure(TEST_PUMP_ID)

    slot.deconfigure()
    slot.deconfigure()

    assert isinstance(slot.state, Unconfigured)
    assert slot.handle is None
    assert log == [("subscribe", TEST_PUMP_ID), ("unsubscribe", TEST_PUMP_ID)]
    assert handle.events.emit({"packet": 2}) == 0
    assert received == []


def test_normalize_identifier() -> None:
    """Identifiers of the wrong length are silently treated as absent."""
    assert normalize_identifier("123456") == "123456"
    assert normalize_identifier("12345") is None
    assert normalize_identifier("1234567") is None
    assert normalize_identifier("") is None
    assert normalize_identifier(None) is None


def test_configure_pump_twice_does_not_resubscribe() -> None:
    log: list = []
    manager = build_manager(pump_factory=build_recording_factory(log))

    manager.configure_pump(TEST_PUMP_ID)
    handle = manager.pump_slot.handle
    manager.configure_pump(TEST_PUMP_ID)

    assert manager.pump_slot.handle is handle
    assert log == [("subscribe", TEST_PUMP_ID)]


def test_configure_pump_with_different_identifier() -> None:
    log: list = []
    manager = build_manager(pump_factory=build_recording_factory(log))

    manager.configure_pump(TEST_PUMP_ID)
    log.clear()
    manager.configure_pump("654321")

    assert log == [("unsubscribe", TEST_PUMP_ID), ("subscribe", "654321")]


def test_configure_pump_with_malformed_identifier_deconfigures() -> None:
    log: list = []
    manager = build_manager(pump_factory=build_recording_factory(log))
    manager.configure_pump(TEST_PUMP_ID)

    result = manager.configure_pump("12")

    assert result is None
    assert manager.pump_slot.handle is None
    assert log[-1] == ("unsubscribe", TEST_PUMP_ID)


def test_configure_transmitter_is_independent_of_pump() -> None:
    pump_log: list = []
    transmitter_log: list = []
    manager = build_manager(
        pump_factory=build_recording_factory(pump_log),
        transmitter_factory=build_recording_factory(transmitter_log, kind="transmitter"),
    )

    manager.configure_pump(TEST_PUMP_ID)
    manager.configure_transmitter("4XABCD")
    manager.configure_transmitter(None)

    assert pump_log == [("subscribe", TEST_PUMP_ID)]
    assert transmitter_log == [("subscribe", "4XABCD"), ("unsubscribe", "4XABCD")]
    assert manager.pump_slot.handle is not None


class _FailingEventStream(EventStream):
    def subscribe(self, handler) -> int:
        raise ConnectionError("radio link unavailable")


def test_failed_subscribe_leaves_slot_unconfigured() -> None:
    """A handle that cannot be subscribed never becomes the Ready handle."""
    log: list = []
    recording = build_recording_factory(log)

    def factory(identifier: str) -> PeripheralHandle:
        if identifier == TEST_PUMP_ID:
            return recording(identifier)
        handle = PeripheralHandle(identifier, kind="pump")
        handle.events = _FailingEventStream()
        return handle

    slot = PeripheralSlot("pump", factory, [].append)
    old = slot.configure(TEST_PUMP_ID)

    with pytest.raises(ConnectionError):
        slot.configure("654321")

    assert isinstance(slot.state, Unconfigured)
    assert slot.handle is None
    assert old.events.subscriber_count == 0
    assert log == [("subscribe", TEST_PUMP_ID), ("unsubscribe", TEST_PUMP_ID)]
