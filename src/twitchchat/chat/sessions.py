"""
Per-role chat sessions.

Three sessions exist at the same time: one reading the channels, one writing to them,
and one dedicated to whispers. They are created and torn down together, as a `SessionSet`.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from dataclasses import dataclass, field
from typing import Any, Iterator, TYPE_CHECKING

from ..constants import LOGGER_NAME, RECONNECT_TIMEOUT, ConnectionMode, Role

if TYPE_CHECKING:
    from .transport import Transport


logger = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class Credential:
    username: str
    password: str

    @property
    def valid(self) -> bool:
        return bool(self.username) and bool(self.password)


@dataclass
class ClientConfig:
    """Everything a transport needs to be constructed."""

    identity: Credential
    channels: list[str] = field(default_factory=list)
    connection_mode: ConnectionMode = ConnectionMode.SHARED_RANDOM
    reconnect_timeout: timedelta = RECONNECT_TIMEOUT
    auto_reconnect: bool = True
    transport_options: dict[str, Any] = field(default_factory=dict)


class Session:
    def __init__(self, role: Role):
        self.role: Role = role
        self.transport: Transport | None = None
        # mirrors what has actually been requested on this transport, in join order
        self.joined_channels: list[str] = []

    def __repr__(self) -> str:
        return f"Session({self.role.value}, live={self.live}, joined={self.joined_channels})"

    @property
    def live(self) -> bool:
        return self.transport is not None

    def attach(self, transport: Transport, channels: list[str]) -> None:
        self.transport = transport
        self.joined_channels = list(channels)

    def close(self) -> None:
        transport = self.transport
        if transport is None:
            return
        # listeners first, so nothing emitted during the disconnect reaches us
        transport.remove_all_listeners()
        transport.disconnect()
        self.transport = None
        self.joined_channels = []
        logger.debug(f"Closed the {self.role.value} session")


class SessionSet:
    """
    All-or-nothing collection of one `Session` per `Role`.

    `generation` is advanced on every teardown. Callbacks bound to a past generation
    belong to transports that no longer exist, and must be ignored.
    """

    def __init__(self) -> None:
        self.generation: int = 0
        self._sessions: dict[Role, Session] = {role: Session(role) for role in Role}

    def __getitem__(self, role: Role) -> Session:
        return self._sessions[role]

    def __iter__(self) -> Iterator[Session]:
        return iter(self._sessions.values())

    @property
    def live(self) -> bool:
        return all(session.live for session in self)

    @property
    def empty(self) -> bool:
        return not any(session.live for session in self)

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def close(self) -> None:
        self.generation += 1
        for session in self:
            session.close()
