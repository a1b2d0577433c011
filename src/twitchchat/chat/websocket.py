"""
WebSocket chat transport.

This module implements the transport side of a single chat session, talking IRC
to the Twitch chat servers over a websocket:
- connecting, logging in and reconnecting with a backoff
- keep-alive pings
- joining and leaving channels
- translating IRC messages into events
"""

from __future__ import annotations

import re
import asyncio
import logging
from time import time
from contextlib import aclosing, suppress
from typing import Any, Coroutine, TYPE_CHECKING

import aiohttp

from ..events import EventEmitter
from ..exceptions import LoginFailed, TransportClosed
from ..utils import (
    task_wrapper,
    format_traceback,
    normalize_channel,
    normalize_username,
    ExponentialBackoff,
)
from ..constants import (
    CALL,
    WS_LOGGER_NAME,
    PING_INTERVAL,
    PING_TIMEOUT,
    CHAT_SERVERS,
    BAD_LOGIN_REASON,
    BAD_LOGIN_NOTICES,
)
from .messages import IRCMessage, parse_lines

if TYPE_CHECKING:
    from yarl import URL
    from .sessions import ClientConfig


WSMsgType = aiohttp.WSMsgType
ws_logger = logging.getLogger(WS_LOGGER_NAME)
HOSTED_PATTERN = re.compile(r"^(\w+) is now (?:auto )?hosting you(?: for (?:up to )?(\d+))?")


class ChatClient(EventEmitter):
    def __init__(self, config: ClientConfig):
        super().__init__()
        self.config: ClientConfig = config
        self.username: str = normalize_username(config.identity.username)
        self.url: URL = CHAT_SERVERS[config.connection_mode]
        # channels we want to be in, re-joined on every reconnect
        self.channels: list[str] = [normalize_channel(c) for c in config.channels]
        self.moderators: dict[str, set[str]] = {}
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._session: aiohttp.ClientSession | None = None
        self._handle_task: asyncio.Task[None] | None = None
        # strong references to fire-and-forget tasks, so they aren't collected mid-flight
        self._tasks: set[asyncio.Task[Any]] = set()
        # set when the websocket needs to be closed or reconnect
        self._closed = asyncio.Event()
        self._reconnect_requested = asyncio.Event()
        # set once the server welcomes us
        self._logged_in: bool = False
        # ping timestamps
        self._next_ping: float = time()
        self._max_pong: float = self._next_ping + PING_TIMEOUT.total_seconds()

    def __repr__(self) -> str:
        return f"ChatClient({self.username}, {self.config.connection_mode.value})"

    @property
    def connected(self) -> bool:
        return self._ws is not None and self._logged_in

    # Transport interface

    def connect(self) -> None:
        if self._handle_task is None or self._handle_task.done():
            self._closed.clear()
            self._handle_task = self._spawn(self._handle())

    def disconnect(self) -> None:
        self._closed.set()
        self._reconnect_requested.set()
        ws = self._ws
        if ws is not None:
            self._spawn(task_wrapper(ws.close)())

    def join(self, channel: str) -> None:
        channel = normalize_channel(channel)
        if channel not in self.channels:
            self.channels.append(channel)
        self._send_nowait(f"JOIN {channel}")

    def part(self, channel: str) -> None:
        channel = normalize_channel(channel)
        if channel in self.channels:
            self.channels.remove(channel)
        self.moderators.pop(channel, None)
        self._send_nowait(f"PART {channel}")

    def say(self, channel: str, message: str) -> None:
        channel = normalize_channel(channel)
        if message.startswith("/me "):
            message = f"\x01ACTION {message[4:]}\x01"
        self._send_nowait(f"PRIVMSG {channel} :{message}")

    def whisper(self, username: str, message: str) -> None:
        self._send_nowait(f"PRIVMSG #jtv :/w {normalize_username(username)} {message}")

    def is_mod(self, channel: str, username: str) -> bool:
        return normalize_username(username) in self.moderators.get(normalize_channel(channel), ())

    # Connection handling

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            # already logged by task_wrapper
            task.exception()

    def request_reconnect(self):
        # reset our ping interval, so we send a PING after reconnect right away
        self._next_ping = time()
        self._reconnect_requested.set()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=None, connect=30)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def _backoff_connect(self, ws_url: URL, **kwargs):
        session = await self._get_session()
        backoff = ExponentialBackoff(**kwargs)
        proxy = self.config.transport_options.get("proxy") or None
        for delay in backoff:
            self.emit("connecting", ws_url.host, ws_url.port)
            try:
                async with session.ws_connect(ws_url, proxy=proxy, heartbeat=None) as websocket:
                    yield websocket
                    backoff.reset()
            except (
                asyncio.TimeoutError,
                aiohttp.ClientResponseError,
                aiohttp.ClientConnectionError,
            ) as exc:
                ws_logger.info(
                    f"{self!r} connection problem (sleep: {round(delay)}s)", exc_info=True
                )
                self.emit("disconnected", str(exc) or "Unable to connect.")
                if not self.config.auto_reconnect or self._closed.is_set():
                    break
                with suppress(asyncio.TimeoutError):
                    # wakes up early on a disconnect request
                    await asyncio.wait_for(self._closed.wait(), timeout=delay)
                if self._closed.is_set():
                    break
            except RuntimeError:
                ws_logger.warning(
                    f"{self!r} exiting backoff connect loop because session is closed (RuntimeError)"
                )
                break

    @task_wrapper
    async def _handle(self):
        ws_logger.info(f"{self!r} connecting...")
        maximum = self.config.reconnect_timeout.total_seconds()
        # Connect/Reconnect loop
        connections = self._backoff_connect(self.url, maximum=maximum)
        try:
            async with aclosing(connections):
                async for websocket in connections:
                    if self._closed.is_set() or not await self._serve(websocket):
                        return
                    ws_logger.warning(f"{self!r} reconnecting...")
        except Exception as exc:
            if not self._closed.is_set():
                # the loop is gone for good, nobody else will report it
                self.emit("disconnected", str(exc) or "Connection lost.")
            raise
        finally:
            if self._session is not None:
                await self._session.close()
                self._session = None

    async def _serve(self, websocket: aiohttp.ClientWebSocketResponse) -> bool:
        """
        Run a single connection until it ends. Returns `True` if we should reconnect.
        """
        self._ws = websocket
        self._reconnect_requested.clear()
        reason = "Connection closed."
        try:
            await self._login()
            while not self._reconnect_requested.is_set():
                await self._handle_ping()
                await self._handle_recv()
        except LoginFailed:
            ws_logger.error(f"{self!r} login unsuccessful")
            self.emit("disconnected", BAD_LOGIN_REASON)
            return False
        except TransportClosed as exc:
            if exc.received:
                # server closed the connection, not us - reconnect
                ws_logger.warning(f"{self!r} closed unexpectedly: {websocket.close_code}")
        except Exception as exc:
            ws_logger.exception(f"Exception in {self!r}")
            self.emit("crash", exc)
            reason = str(exc) or reason
        finally:
            self._ws = None
            self._logged_in = False
        if self._closed.is_set():
            # we closed it - exit
            ws_logger.info(f"{self!r} stopped.")
            return False
        self.emit("disconnected", reason)
        return self.config.auto_reconnect

    async def _login(self):
        identity = self.config.identity
        password = identity.password
        if not password.startswith("oauth:"):
            password = f"oauth:{password}"
        await self.send("CAP REQ :twitch.tv/tags twitch.tv/commands")
        await self.send(f"PASS {password}", log_as="PASS oauth:***")
        await self.send(f"NICK {self.username}")

    async def _handle_ping(self):
        if not self._logged_in:
            return
        now = time()
        if now >= self._next_ping:
            self._next_ping = now + PING_INTERVAL.total_seconds()
            self._max_pong = now + PING_TIMEOUT.total_seconds()  # wait for a PONG for up to 10s
            await self.send("PING :tmi.twitch.tv")
        elif now >= self._max_pong:
            # it's been more than 10s and there was no PONG
            ws_logger.warning(f"{self!r} didn't receive a PONG, reconnecting...")
            self.request_reconnect()

    async def _gather_recv(self, messages: list[IRCMessage], timeout: float = 0.5):
        """
        Gather incoming messages over the timeout specified.
        Note that there's no return value - this modifies `messages` in-place.
        """
        ws = self._ws
        assert ws is not None
        while True:
            raw_message: aiohttp.WSMessage = await ws.receive(timeout=timeout)
            ws_logger.debug(f"{self!r} received: {raw_message}")
            if raw_message.type is WSMsgType.TEXT:
                messages.extend(parse_lines(raw_message.data))
            elif raw_message.type is WSMsgType.CLOSE:
                raise TransportClosed(received=True)
            elif raw_message.type is WSMsgType.CLOSED:
                raise TransportClosed(received=False)
            elif raw_message.type is WSMsgType.CLOSING:
                pass  # skip these
            elif raw_message.type is WSMsgType.ERROR:
                ws_logger.error(f"{self!r} error: {format_traceback(raw_message.data)}")
                raise TransportClosed()
            else:
                ws_logger.error(f"{self!r} error: Unknown message: {raw_message}")

    async def _handle_recv(self):
        # listen over 0.5s for incoming messages
        messages: list[IRCMessage] = []
        try:
            with suppress(asyncio.TimeoutError):
                await self._gather_recv(messages, timeout=0.5)
        except TransportClosed:
            # the server often sends a NOTICE right before closing, it has to be seen first
            for message in messages:
                await self.handle_message(message)
            raise
        # process them
        for message in messages:
            await self.handle_message(message)

    async def send(self, line: str, *, log_as: str | None = None):
        ws = self._ws
        if ws is None:
            raise TransportClosed()
        await ws.send_str(f"{line}\r\n")
        ws_logger.debug(f"{self!r} sent: {log_as or line}")

    def _send_nowait(self, line: str) -> None:
        if not self.connected:
            # the channel list is re-joined on connect, everything else is dropped
            ws_logger.info(f"{self!r} not connected, dropping: {line}")
            return
        self._spawn(task_wrapper(self.send)(line))

    # Message dispatch

    async def handle_message(self, message: IRCMessage):
        command = message.command
        if command == "PING":
            await self.send(f"PONG :{message.trailing}")
        elif command == "PONG":
            # move the timestamp to something much later
            self._max_pong = self._next_ping
        elif command == "RECONNECT":
            ws_logger.warning(f"{self!r} requested reconnect.")
            self.request_reconnect()
        elif command == "001":
            self._logged_in = True
            ws_logger.info(f"{self!r} connected.")
            for channel in self.channels:
                await self.send(f"JOIN {channel}")
            self.emit("connected", self.url.host, self.url.port)
        elif command == "NOTICE":
            self._handle_notice(message)
        else:
            handler = getattr(self, f"_on_{command.lower()}", None)
            if handler is not None:
                handler(message)

    def _handle_notice(self, message: IRCMessage):
        text = message.trailing
        if not self._logged_in and any(text.startswith(n) for n in BAD_LOGIN_NOTICES):
            raise LoginFailed(text)
        if message.tags.get("msg-id") == "room_mods":
            # "The moderators of this channel are: a, b, c"
            _, _, names = text.partition(": ")
            self.moderators[message.channel] = {
                normalize_username(name) for name in names.rstrip('.').split(", ") if name
            }
        ws_logger.log(CALL, f"{self!r} notice: {text}")

    def _userstate(self, message: IRCMessage) -> dict[str, Any]:
        userstate: dict[str, Any] = dict(message.tags)
        userstate["username"] = message.nick
        userstate["badges"] = message.badges
        return userstate

    def _track_moderator(self, channel: str, username: str, message: IRCMessage):
        badges = message.badges
        if message.tags.get("mod") == "1" or "broadcaster" in badges or "moderator" in badges:
            self.moderators.setdefault(channel, set()).add(username)
        elif "mod" in message.tags:
            self.moderators.get(channel, set()).discard(username)

    def _on_userstate(self, message: IRCMessage):
        self._track_moderator(message.channel, self.username, message)

    def _on_privmsg(self, message: IRCMessage):
        channel, text, nick = message.channel, message.trailing, message.nick
        if nick == "jtv":
            if (match := HOSTED_PATTERN.match(text)) is not None:
                viewers = int(match.group(2)) if match.group(2) else 0
                self.emit("hosted", channel, match.group(1).lower(), viewers)
            return
        self._track_moderator(channel, nick, message)
        userstate = self._userstate(message)
        is_self = nick == self.username
        if text.startswith("\x01ACTION ") and text.endswith("\x01"):
            userstate["message-type"] = "action"
            self.emit("action", channel, userstate, text[8:-1], is_self)
        else:
            userstate["message-type"] = "chat"
            self.emit("chat", channel, userstate, text, is_self)

    def _on_whisper(self, message: IRCMessage):
        userstate = self._userstate(message)
        userstate["message-type"] = "whisper"
        self.emit("whisper", message.nick, userstate, message.trailing, False)

    def _on_clearchat(self, message: IRCMessage):
        channel = message.channel
        if len(message.params) < 2:
            self.emit("clearchat", channel)
            return
        username = message.trailing
        reason = message.tags.get("ban-reason") or None
        if "ban-duration" in message.tags:
            self.emit("timeout", channel, username, reason, int(message.tags["ban-duration"]))
        else:
            self.emit("ban", channel, username, reason)

    def _on_hosttarget(self, message: IRCMessage):
        channel = message.channel
        target, _, viewers = message.trailing.partition(' ')
        count = int(viewers) if viewers.isdigit() else 0
        if target == '-':
            self.emit("unhost", channel, count)
        else:
            self.emit("hosting", channel, target, count)

    def _on_roomstate(self, message: IRCMessage):
        tags = message.tags
        # a full ROOMSTATE is sent on join, partial ones carry a single changed setting
        if "emote-only" in tags and "followers-only" in tags:
            return
        channel = message.channel
        if "slow" in tags:
            length = int(tags["slow"] or 0)
            self.emit("slowmode", channel, length > 0, length)
        if "subs-only" in tags:
            self.emit("subscriber", channel, tags["subs-only"] == "1")

    def _on_usernotice(self, message: IRCMessage):
        tags = message.tags
        msg_id = tags.get("msg-id")
        channel = message.channel
        username = tags.get("display-name") or tags.get("login", '')
        text = message.trailing if len(message.params) > 1 else None
        userstate = self._userstate(message)
        method = {
            "prime": tags.get("msg-param-sub-plan") == "Prime",
            "plan": tags.get("msg-param-sub-plan"),
            "planName": tags.get("msg-param-sub-plan-name"),
        }
        if msg_id == "sub":
            self.emit("subscription", channel, username, method, text, userstate)
        elif msg_id == "resub":
            months = int(tags.get("msg-param-cumulative-months") or tags.get("msg-param-months") or 0)
            self.emit("subanniversary", channel, username, months, text, userstate)
