from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

import aiohttp
import pytest

from twitchchat.chat import ChatClient, ClientConfig, Credential
from twitchchat.chat.messages import IRCMessage
from twitchchat.constants import BAD_LOGIN_REASON, CHAT_EVENTS, ConnectionMode
from twitchchat.exceptions import LoginFailed

from conftest import record_events


@pytest.fixture
def client() -> ChatClient:
    config = ClientConfig(identity=Credential("Bob", "secret"), channels=["Room", "#other"])
    return ChatClient(config)


def feed(client: ChatClient, line: str) -> None:
    asyncio.run(client.handle_message(IRCMessage.parse(line)))


def test_channels_are_normalized(client):
    assert client.username == "bob"
    assert client.channels == ["#room", "#other"]


def test_join_and_part_while_offline_only_track_channels(client):
    client.join("Third")
    client.part("#room")
    assert client.channels == ["#other", "#third"]
    # nothing to send through, must not raise
    client.say("#other", "hello")
    client.whisper("alice", "psst")


def test_grouped_mode_resolves_a_server():
    config = ClientConfig(
        identity=Credential("bob", "secret"), connection_mode=ConnectionMode.GROUPED
    )
    assert ChatClient(config).url.host == "irc-ws.chat.twitch.tv"


def test_chat_message(client):
    received = record_events(client, *CHAT_EVENTS)
    feed(client, "@display-name=Alice;mod=0 :alice!alice@alice.tmi.twitch.tv PRIVMSG #room :hi")
    assert len(received) == 1
    name, channel, userstate, message, is_self = received[0]
    assert (name, channel, message, is_self) == ("chat", "#room", "hi", False)
    assert userstate["username"] == "alice"
    assert userstate["display-name"] == "Alice"
    assert userstate["message-type"] == "chat"


def test_action_message(client):
    received = record_events(client, "action", "chat")
    feed(client, ":bob!bob@bob.tmi.twitch.tv PRIVMSG #room :\x01ACTION waves\x01")
    assert [(e[0], e[3], e[4]) for e in received] == [("action", "waves", True)]


def test_moderators_are_tracked(client):
    feed(client, "@badges=moderator/1;mod=1 :alice!alice@alice.tmi.twitch.tv PRIVMSG #room :hi")
    feed(client, "@badges=broadcaster/1;mod=0 :room!room@room.tmi.twitch.tv PRIVMSG #room :hi")
    feed(client, "@mod=1 :tmi.twitch.tv USERSTATE #room")
    assert client.is_mod("#room", "Alice")
    assert client.is_mod("room", "room")
    assert client.is_mod("#room", "bob")
    feed(client, "@badges=;mod=0 :alice!alice@alice.tmi.twitch.tv PRIVMSG #room :demoted")
    assert not client.is_mod("#room", "alice")


def test_room_mods_notice(client):
    feed(
        client,
        "@msg-id=room_mods :tmi.twitch.tv NOTICE #room "
        ":The moderators of this channel are: alice, carol",
    )
    assert client.is_mod("#room", "carol")


def test_whisper(client):
    received = record_events(client, "whisper")
    feed(client, "@display-name=Alice :alice!alice@alice.tmi.twitch.tv WHISPER bob :psst")
    name, sender, userstate, message, is_self = received[0]
    assert (sender, message, is_self) == ("alice", "psst", False)
    assert userstate["message-type"] == "whisper"


def test_clearchat_variants(client):
    received = record_events(client, "clearchat", "timeout", "ban")
    feed(client, "@room-id=1 :tmi.twitch.tv CLEARCHAT #room")
    feed(client, "@ban-duration=600 :tmi.twitch.tv CLEARCHAT #room :troll")
    feed(client, ":tmi.twitch.tv CLEARCHAT #room :spammer")
    assert received == [
        ("clearchat", "#room"),
        ("timeout", "#room", "troll", None, 600),
        ("ban", "#room", "spammer", None),
    ]


def test_hosting(client):
    received = record_events(client, "hosting", "unhost", "hosted")
    feed(client, ":tmi.twitch.tv HOSTTARGET #room :other 42")
    feed(client, ":tmi.twitch.tv HOSTTARGET #room :- 0")
    feed(client, ":jtv!jtv@jtv.tmi.twitch.tv PRIVMSG #room :Friend is now hosting you for 7 viewers.")
    assert received == [
        ("hosting", "#room", "other", 42),
        ("unhost", "#room", 0),
        ("hosted", "#room", "friend", 7),
    ]


def test_room_state_changes(client):
    received = record_events(client, "slowmode", "subscriber")
    feed(
        client,
        "@emote-only=0;followers-only=-1;r9k=0;room-id=1;slow=0;subs-only=0 "
        ":tmi.twitch.tv ROOMSTATE #room",
    )
    feed(client, "@room-id=1;slow=30 :tmi.twitch.tv ROOMSTATE #room")
    feed(client, "@room-id=1;subs-only=1 :tmi.twitch.tv ROOMSTATE #room")
    assert received == [
        ("slowmode", "#room", True, 30),
        ("subscriber", "#room", True),
    ]


def test_subscriptions(client):
    received = record_events(client, "subscription", "subanniversary")
    feed(
        client,
        "@msg-id=sub;login=alice;display-name=Alice;msg-param-sub-plan=Prime "
        ":tmi.twitch.tv USERNOTICE #room",
    )
    feed(
        client,
        "@msg-id=resub;login=carol;display-name=Carol;msg-param-cumulative-months=5;"
        "msg-param-sub-plan=1000 :tmi.twitch.tv USERNOTICE #room :five months!",
    )
    sub, resub = received
    assert sub[:3] == ("subscription", "#room", "Alice")
    assert sub[3]["prime"] is True
    assert sub[4] is None
    assert resub[:5] == ("subanniversary", "#room", "Carol", 5, "five months!")


def test_failed_login_notice_raises(client):
    with pytest.raises(LoginFailed):
        feed(client, ":tmi.twitch.tv NOTICE * :Login authentication failed")


def test_regular_notice_does_not_raise(client):
    feed(client, "@msg-id=msg_channel_suspended :tmi.twitch.tv NOTICE #room :This channel is suspended.")


def text(data: str) -> aiohttp.WSMessage:
    return aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, data, None)


def close_frame() -> aiohttp.WSMessage:
    return aiohttp.WSMessage(aiohttp.WSMsgType.CLOSE, 1000, "")


class FakeWebsocket:
    """Plays back the frames it was given, then reports the socket as closed."""

    def __init__(self, *frames: aiohttp.WSMessage):
        self.frames = list(frames)
        self.sent: list[str] = []
        self.close_code = 1000

    async def send_str(self, data: str) -> None:
        self.sent.append(data)

    async def receive(self, timeout: float | None = None) -> aiohttp.WSMessage:
        if self.frames:
            return self.frames.pop(0)
        return aiohttp.WSMessage(aiohttp.WSMsgType.CLOSED, None, None)

    async def close(self) -> None:
        pass


class _Connected:
    def __init__(self, websocket: FakeWebsocket):
        self.websocket = websocket

    async def __aenter__(self) -> FakeWebsocket:
        return self.websocket

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


class FakeSession:
    """
    Hands out the scripted outcomes, one per connection attempt.
    Once they run out, the client is told to stop and the attempt fails.
    """

    def __init__(self, client: ChatClient, *outcomes: FakeWebsocket | Exception):
        self.client = client
        self.outcomes = list(outcomes)
        self.attempts = 0
        self.closed = False

    def ws_connect(self, url: Any, **kwargs: Any) -> _Connected:
        self.attempts += 1
        if not self.outcomes:
            self.client.disconnect()
            raise aiohttp.ClientConnectionError("refused")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _Connected(outcome)

    async def close(self) -> None:
        self.closed = True


def make_client(*, auto_reconnect: bool = True) -> ChatClient:
    config = ClientConfig(
        identity=Credential("Bob", "secret"),
        channels=["Room", "#other"],
        reconnect_timeout=timedelta(0),
        auto_reconnect=auto_reconnect,
    )
    return ChatClient(config)


class TestConnectionLoop:
    def test_rejected_login_reports_once_and_stops_retrying(self):
        client = make_client()
        websocket = FakeWebsocket(
            text(":tmi.twitch.tv NOTICE * :Login authentication failed"), close_frame()
        )
        session = FakeSession(client, websocket)
        client._session = session  # type: ignore[assignment]
        received = record_events(client, "connecting", "connected", "disconnected", "crash")
        asyncio.run(client._handle())
        assert received == [
            ("connecting", "irc-ws.chat.twitch.tv", 443),
            ("disconnected", BAD_LOGIN_REASON),
        ]
        assert session.attempts == 1
        assert session.closed
        assert websocket.sent == [
            "CAP REQ :twitch.tv/tags twitch.tv/commands\r\n",
            "PASS oauth:secret\r\n",
            "NICK bob\r\n",
        ]

    def test_notice_sent_with_the_close_frame_wins(self):
        client = make_client()
        websocket = FakeWebsocket(
            text(":tmi.twitch.tv NOTICE * :Login authentication failed"), close_frame()
        )
        received = record_events(client, "disconnected")
        assert asyncio.run(client._serve(websocket)) is False
        assert received == [("disconnected", BAD_LOGIN_REASON)]

    def test_welcome_joins_channels_and_reports_connected(self):
        client = make_client()
        websocket = FakeWebsocket(text(":tmi.twitch.tv 001 bob :Welcome, GLHF!"), close_frame())
        received = record_events(client, "connected", "disconnected")
        assert asyncio.run(client._serve(websocket)) is True
        assert websocket.sent[3:] == ["JOIN #room\r\n", "JOIN #other\r\n"]
        assert received == [
            ("connected", "irc-ws.chat.twitch.tv", 443),
            ("disconnected", "Connection closed."),
        ]
        assert not client.connected

    def test_every_failed_attempt_reports_a_disconnect(self):
        client = make_client()
        refused = aiohttp.ClientConnectionError("refused")
        session = FakeSession(client, refused, refused)
        client._session = session  # type: ignore[assignment]
        received = record_events(client, "connecting", "disconnected")
        asyncio.run(client._handle())
        assert [event[0] for event in received] == ["connecting", "disconnected"] * 3
        assert received[1] == ("disconnected", "refused")
        assert session.attempts == 3

    def test_no_retries_without_auto_reconnect(self):
        client = make_client(auto_reconnect=False)
        refused = aiohttp.ClientConnectionError("refused")
        session = FakeSession(client, refused, refused)
        client._session = session  # type: ignore[assignment]
        received = record_events(client, "disconnected")
        asyncio.run(client._handle())
        assert received == [("disconnected", "refused")]
        assert session.attempts == 1


def test_sends_are_kept_alive_until_done():
    client = make_client()
    websocket = FakeWebsocket()

    async def scenario():
        client._ws = websocket  # type: ignore[assignment]
        client._logged_in = True
        client.say("#room", "hi")
        assert len(client._tasks) == 1
        await asyncio.gather(*client._tasks)
        # let the done callback run
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert websocket.sent == ["PRIVMSG #room :hi\r\n"]
    assert client._tasks == set()
