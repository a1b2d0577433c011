"""
Event plumbing shared by the chat transports and the connection supervisor.

`EventEmitter` is a small synchronous publish/subscribe helper: listeners run
in registration order, on the caller's stack, the moment `emit` is called.
`ChatEvent` is the record handed to consumers reading the unified stream as a queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List


Listener = Callable[..., Any]


@dataclass(frozen=True)
class ChatEvent:
    name: str
    args: tuple[Any, ...] = ()


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, callback: Listener) -> Listener:
        self._listeners.setdefault(event, []).append(callback)
        return callback

    add_listener = on

    def once(self, event: str, callback: Listener) -> Listener:
        """
        Register a listener that removes itself right before its first call.
        The returned wrapper can be passed to `off` to cancel it early.
        """
        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return callback(*args)

        wrapper.__wrapped__ = callback  # type: ignore[attr-defined]
        return self.on(event, wrapper)

    def off(self, event: str, callback: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        for i, listener in enumerate(listeners):
            if listener is callback or getattr(listener, "__wrapped__", None) is callback:
                del listeners[i]
                break
        if not listeners:
            del self._listeners[event]

    remove_listener = off

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        listeners = self._listeners.get(event)
        if not listeners:
            return False
        # snapshot, so listeners can (un)register others while we dispatch
        for listener in tuple(listeners):
            listener(*args)
        return True
