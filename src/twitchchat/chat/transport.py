"""
The capability set the supervisor expects from a chat transport.

`ChatClient` in `websocket.py` is the default implementation;
anything else that behaves the same way can be passed in through a `TransportFactory`.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from .sessions import ClientConfig


class Transport(Protocol):
    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def join(self, channel: str) -> None: ...

    def part(self, channel: str) -> None: ...

    def say(self, channel: str, message: str) -> None: ...

    def whisper(self, username: str, message: str) -> None: ...

    def is_mod(self, channel: str, username: str) -> bool: ...

    def on(self, event: str, callback: Callable[..., Any]) -> Any: ...

    def once(self, event: str, callback: Callable[..., Any]) -> Any: ...

    def off(self, event: str, callback: Callable[..., Any]) -> None: ...

    def remove_all_listeners(self, event: str | None = None) -> None: ...


TransportFactory = Callable[["ClientConfig"], Transport]
