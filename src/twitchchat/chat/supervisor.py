"""
Connection supervisor.

Provides a way to interact with the Twitch chat servers. Three sessions are kept:
read, write and whisper. They exist only while the configured credentials look valid,
are kept joined to the configured channels, and their events are re-emitted here
so consumers never have to know which session produced them.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, AsyncIterator, Callable, Literal, TYPE_CHECKING

from ..events import ChatEvent, EventEmitter
from ..exceptions import NotConnected
from ..constants import (
    LOGGER_NAME,
    BAD_LOGIN_REASON,
    READ_EVENTS,
    WHISPER_EVENTS,
    ConnectionMode,
    Role,
)
from .channels import reconcile
from .broadcast import DisconnectSuppressor, forward_events
from .sessions import ClientConfig, Credential, SessionSet

if TYPE_CHECKING:
    from ..settings import Settings
    from .transport import Transport, TransportFactory


logger = logging.getLogger(LOGGER_NAME)


def _default_factory(config: ClientConfig) -> Transport:
    from .websocket import ChatClient
    return ChatClient(config)


class ChatConnection(EventEmitter):
    """
    The single handle consumers talk to.

    Attributes:
    -----------
    ready: bool
        `True` while the read session is connected.
    bad_login: str | Literal[False]
        The disconnect reason, if the last disconnect was caused by invalid credentials.
    """

    def __init__(self, settings: Settings, transport_factory: TransportFactory | None = None):
        super().__init__()
        self.settings: Settings = settings
        self.sessions = SessionSet()
        self.ready: bool = False
        self.bad_login: str | Literal[False] = False
        self._transport_factory: TransportFactory = transport_factory or _default_factory
        self._suppressor: DisconnectSuppressor | None = None
        self._unsubscribe: list[Callable[[], None]] = []
        self._queues: list[asyncio.Queue[ChatEvent]] = []

    # Public interface

    def start(self) -> None:
        if self._unsubscribe:
            # already started
            return
        self._unsubscribe = [
            self.settings.on_credential_change(self._credentials_changed),
            self.settings.on_channels_change(self._channels_changed),
        ]
        if self.credentials_valid():
            self.create()

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        self.destroy()

    def credentials_valid(self) -> bool:
        """
        Returns `True` if the credentials appear valid. Not verified server side.
        """
        return self.settings.credentials_valid()

    def say(self, channel: str, message: str) -> None:
        self._transport(Role.WRITE).say(channel, message)

    def whisper(self, username: str, message: str) -> None:
        self._transport(Role.WHISPER).whisper(username, message)

    def is_mod(self, channel: str, username: str) -> bool:
        return self._transport(Role.WRITE).is_mod(channel, username)

    def emit(self, event: str, *args: Any) -> bool:
        # a failing consumer must not stop the event from reaching the others,
        # nor travel back into the transport that produced it
        listeners = tuple(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception(f"Exception in '{event}' listener")
        if self._queues:
            chat_event = ChatEvent(event, args)
            for queue in self._queues:
                try:
                    queue.put_nowait(chat_event)
                except asyncio.QueueFull:
                    logger.warning(f"Subscriber queue is full, dropping '{event}' event")
        return bool(listeners or self._queues)

    def subscribe(self, maxsize: int = 0) -> asyncio.Queue[ChatEvent]:
        """
        Returns a queue receiving every event from now on.
        A bounded queue that falls behind drops new events instead of blocking the sessions.
        """
        queue: asyncio.Queue[ChatEvent] = asyncio.Queue(maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ChatEvent]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    async def stream(self) -> AsyncIterator[ChatEvent]:
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)

    # Session lifecycle

    def create(self) -> None:
        if not self.credentials_valid():
            logger.warning("Not connecting to chat, the credentials are incomplete")
            return
        self.destroy()
        self.bad_login = False
        generation = self.sessions.generation

        def alive() -> bool:
            return self.sessions.is_current(generation)

        for session in self.sessions:
            config = self._client_config(session.role)
            session.attach(self._transport_factory(config), config.channels)
        read = self._transport(Role.READ)
        forward_events(read, self, READ_EVENTS, alive=alive)
        forward_events(self._transport(Role.WHISPER), self, WHISPER_EVENTS, alive=alive)
        # status first, so consumers see the flags updated when "disconnected" reaches them
        read.on("disconnected", self._guard(generation, self._read_disconnected))
        read.on("connected", self._guard(generation, self._read_connected))
        self._suppressor = DisconnectSuppressor(read, self, alive=alive)
        self._suppressor.arm()
        logger.info("Connecting to chat")
        for session in self.sessions:
            assert session.transport is not None
            session.transport.connect()

    def destroy(self) -> None:
        if self.sessions.empty:
            return
        logger.info("Disconnecting from chat")
        self.sessions.close()
        self._suppressor = None
        self.ready = False

    def sync_channels(self) -> None:
        """
        Makes sure the read and write sessions are joined to the desired channels.
        """
        if not self.sessions.live:
            return
        channels = self.settings.channels
        for role in (Role.READ, Role.WRITE):
            reconcile(self.sessions[role], channels)

    # Callbacks

    def _credentials_changed(self, valid: bool) -> None:
        if valid:
            self.create()
        else:
            self.destroy()

    def _channels_changed(self, channels: list[str]) -> None:
        self.sync_channels()

    def _read_connected(self, *args: Any) -> None:
        logger.info("Connected to chat")
        self.ready = True
        self.bad_login = False

    def _read_disconnected(self, reason: str | None = None, *args: Any) -> None:
        self.ready = False
        if reason != BAD_LOGIN_REASON:
            logger.warning(f"Disconnected from chat: {reason}")
            return
        logger.error(f"Chat login failed: {reason}")
        self.bad_login = reason
        if self._suppressor is not None:
            self._suppressor.fire(reason, *args)
        # invalidating the credentials tears the sessions down through the watcher
        self.settings.identity.password = ""
        if not self.sessions.empty:
            self.destroy()

    # Helpers

    def _guard(self, generation: int, callback: Callable[..., None]) -> Callable[..., None]:
        def guarded(*args: Any) -> None:
            if self.sessions.is_current(generation):
                callback(*args)
        return guarded

    def _transport(self, role: Role) -> Transport:
        transport = self.sessions[role].transport
        if transport is None:
            raise NotConnected()
        return transport

    def _client_config(self, role: Role) -> ClientConfig:
        identity = self.settings.identity
        options: dict[str, Any] = {"debug": False}
        if self.settings.proxy:
            options["proxy"] = self.settings.proxy
        config = ClientConfig(
            identity=Credential(identity.username, identity.password),
            channels=list(self.settings.channels),
            connection_mode=ConnectionMode.SHARED_RANDOM,
            reconnect_timeout=timedelta(seconds=self.settings.reconnect_timeout),
            auto_reconnect=self.settings.reconnect,
            transport_options=options,
        )
        if role is Role.WHISPER:
            config.connection_mode = ConnectionMode.GROUPED
            config.channels = []
        return config
