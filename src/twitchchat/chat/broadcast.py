"""
Re-emitting transport events on the supervisor.

Consumers subscribe to a single emitter, no matter which session an event came from.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, TYPE_CHECKING

from ..constants import CALL, LOGGER_NAME

if TYPE_CHECKING:
    from ..events import EventEmitter
    from .transport import Transport


logger = logging.getLogger(LOGGER_NAME)
AliveCheck = Callable[[], bool]


def _always() -> bool:
    return True


def forward_events(
    source: Transport,
    target: EventEmitter,
    events: Iterable[str],
    *,
    alive: AliveCheck = _always,
) -> None:
    """
    Re-emit every event in `events` from `source` on `target`, name and arguments unchanged.
    Events arriving once `alive()` turns false are dropped.
    """
    for event in events:
        source.on(event, _relay(target, event, alive))


def _relay(target: EventEmitter, event: str, alive: AliveCheck) -> Callable[..., None]:
    def relay(*args: Any) -> None:
        if not alive():
            logger.debug(f"Dropping late '{event}' event from a closed session")
            return
        logger.log(CALL, f"Relaying '{event}' event")
        target.emit(event, *args)
    return relay


class DisconnectSuppressor:
    """
    Forwards at most one "disconnected" event per connected -> disconnected transition.

    The transport emits "disconnected" after every failed reconnect attempt. Only the first
    one is passed on, after which we wait for "connected" before listening again.
    """

    def __init__(
        self, source: Transport, target: EventEmitter, *, alive: AliveCheck = _always
    ):
        self._source = source
        self._target = target
        self._alive = alive
        self.armed: bool = False
        self._pending: Callable[..., Any] | None = None

    def arm(self) -> None:
        self._cancel_pending()
        self.armed = True
        self._pending = self._source.once("disconnected", self._on_disconnected)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._source.off("disconnected", self._pending)
            self._pending = None

    def fire(self, *args: Any) -> bool:
        """
        Forward a disconnect now, unless one was already forwarded for this outage.
        """
        if not self.armed:
            return False
        self.armed = False
        self._cancel_pending()
        self._target.emit("disconnected", *args)
        self._source.once("connected", self._on_connected)
        return True

    def _on_disconnected(self, *args: Any) -> None:
        if self._alive():
            self.fire(*args)

    def _on_connected(self, *args: Any) -> None:
        if self._alive():
            self.arm()
