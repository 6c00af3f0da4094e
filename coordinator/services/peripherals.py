"""
coordinator/services/peripherals.py

Peripheral lifecycle management.
- EventStream: inbound event subscription primitive exposed by a peripheral handle
- PeripheralHandle: connection handle for a configured pump radio link or transmitter
- PeripheralSlot: Unconfigured / Ready(handle) state machine whose single
  transition function owns subscribe/unsubscribe
"""

import itertools
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

import structlog

from coordinator.constants import DEVICE_IDENTIFIER_LENGTH

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Any], None]


class EventStream:
    """Synchronous fan-out of inbound peripheral events to subscribers."""

    def __init__(self) -> None:
        self._handlers: dict[int, EventHandler] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, handler: EventHandler) -> int:
        token = next(self._tokens)
        self._handlers[token] = handler
        return token

    def unsubscribe(self, token: int) -> None:
        self._handlers.pop(token, None)

    def emit(self, event: Any) -> int:
        """Deliver an event to every subscriber. Returns the delivery count."""
        handlers = list(self._handlers.values())
        for handler in handlers:
            handler(event)
        return len(handlers)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)


class PeripheralHandle:
    """Connection handle for a configured peripheral."""

    def __init__(self, identifier: str, kind: str) -> None:
        self.identifier = identifier
        self.kind = kind
        self.events = EventStream()

    def __repr__(self) -> str:
        return f"PeripheralHandle(kind={self.kind!r}, identifier={self.identifier!r})"


H = TypeVar("H", bound=PeripheralHandle)


@dataclass(frozen=True)
class Unconfigured:
    """Slot has no identifier and no handle."""


@dataclass(frozen=True)
class Ready(Generic[H]):
    """Slot holds a handle with exactly one active subscription."""

    handle: H
    subscription: int


SlotState = Union[Unconfigured, Ready]

UNCONFIGURED = Unconfigured()


class PeripheralSlot(Generic[H]):
    """
    Two-state lifecycle for a single peripheral.

    The state can only change through _transition, which unsubscribes the
    outgoing handle and subscribes the incoming one in the same step.
    """

    def __init__(
        self,
        name: str,
        factory: Callable[[str], H],
        handler: EventHandler,
    ) -> None:
        self.name = name
        self._factory = factory
        self._handler = handler
        self._state: SlotState = UNCONFIGURED

    @property
    def state(self) -> SlotState:
        return self._state

    @property
    def handle(self) -> Optional[H]:
        if isinstance(self._state, Ready):
            return self._state.handle
        return None

    @property
    def identifier(self) -> Optional[str]:
        handle = self.handle
        return handle.identifier if handle is not None else None

    def configure(self, identifier: str) -> H:
        """Move to Ready for `identifier`, keeping the handle if it is unchanged."""
        current = self.handle
        if current is not None and current.identifier == identifier:
            logger.debug(
                "peripheral_configure_unchanged",
                peripheral=self.name,
                identifier=identifier,
            )
            return current

        handle = self._factory(identifier)
        self._transition(handle)
        logger.info(
            "peripheral_configured",
            peripheral=self.name,
            identifier=identifier,
            replaced=current is not None,
        )
        return handle

    def deconfigure(self) -> None:
        """Move to Unconfigured. Safe to call when already unconfigured."""
        if isinstance(self._state, Unconfigured):
            return
        self._transition(None)
        logger.info("peripheral_deconfigured", peripheral=self.name)

    def _transition(self, handle: Optional[H]) -> None:
        previous = self._state
        if isinstance(previous, Ready):
            previous.handle.events.unsubscribe(previous.subscription)
            self._state = UNCONFIGURED

        if handle is not None:
            # A failed subscribe leaves the slot Unconfigured
            token = handle.events.subscribe(self._handler)
            self._state = Ready(handle=handle, subscription=token)


def normalize_identifier(identifier: str | None) -> str | None:
    """
    Return the identifier if it has the required length, otherwise None.

    Malformed identifiers are silently treated as absent.
    """
    if identifier is None:
        return None
    if len(identifier) != DEVICE_IDENTIFIER_LENGTH:
        logger.warning(
            "device_identifier_discarded",
            length=len(identifier),
            expected=DEVICE_IDENTIFIER_LENGTH,
        )
        return None
    return identifier
