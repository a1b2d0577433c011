from __future__ import annotations

from twitchchat.chat import ClientConfig, Credential, DisconnectSuppressor, forward_events
from twitchchat.events import EventEmitter

from conftest import FakeTransport, record_events


def make_pair() -> tuple[FakeTransport, EventEmitter]:
    return FakeTransport(ClientConfig(identity=Credential("bob", "pass"))), EventEmitter()


def test_forwards_name_and_payload_unchanged():
    source, target = make_pair()
    received = record_events(target, "chat", "timeout")
    forward_events(source, target, ["chat", "timeout"])
    userstate = {"username": "alice"}
    source.emit("chat", "#room", userstate, "hello", False)
    source.emit("timeout", "#room", "troll", None, 600)
    assert received == [
        ("chat", "#room", userstate, "hello", False),
        ("timeout", "#room", "troll", None, 600),
    ]
    assert received[0][2] is userstate


def test_only_listed_events_are_forwarded():
    source, target = make_pair()
    received = record_events(target, "chat", "whisper")
    forward_events(source, target, ["whisper"])
    source.emit("chat", "#room", {}, "hello", False)
    source.emit("whisper", "alice", {}, "psst", False)
    assert received == [("whisper", "alice", {}, "psst", False)]


def test_forwarding_stops_when_no_longer_alive():
    source, target = make_pair()
    received = record_events(target, "chat")
    alive = [True]
    forward_events(source, target, ["chat"], alive=lambda: alive[0])
    source.emit("chat", "#room", {}, "one", False)
    alive[0] = False
    source.emit("chat", "#room", {}, "two", False)
    assert [event[3] for event in received] == ["one"]


def test_disconnect_storm_collapses_into_one_event():
    source, target = make_pair()
    received = record_events(target, "disconnected")
    DisconnectSuppressor(source, target).arm()
    for _ in range(5):
        source.emit("disconnected", "Connection closed.")
    assert received == [("disconnected", "Connection closed.")]


def test_reconnect_rearms_the_suppressor():
    source, target = make_pair()
    received = record_events(target, "disconnected")
    DisconnectSuppressor(source, target).arm()
    source.emit("disconnected", "first")
    source.emit("disconnected", "retry failed")
    source.emit("connected", "irc-ws.chat.twitch.tv", 443)
    source.emit("disconnected", "second")
    source.emit("disconnected", "retry failed")
    assert received == [("disconnected", "first"), ("disconnected", "second")]


def test_manual_fire_counts_towards_the_outage():
    source, target = make_pair()
    received = record_events(target, "disconnected")
    suppressor = DisconnectSuppressor(source, target)
    suppressor.arm()
    assert suppressor.fire("Login unsuccessful.")
    assert not suppressor.fire("Login unsuccessful.")
    source.emit("disconnected", "late")
    assert received == [("disconnected", "Login unsuccessful.")]


def test_suppressor_ignores_events_once_dead():
    source, target = make_pair()
    received = record_events(target, "disconnected")
    DisconnectSuppressor(source, target, alive=lambda: False).arm()
    source.emit("disconnected", "gone")
    assert received == []


def test_rearming_keeps_a_single_disconnect_listener():
    source, target = make_pair()
    suppressor = DisconnectSuppressor(source, target)
    suppressor.arm()
    suppressor.fire("Login unsuccessful.")
    assert source.listener_count("disconnected") == 0
    source.emit("connected", "irc-ws.chat.twitch.tv", 443)
    assert source.listener_count("disconnected") == 1
    suppressor.arm()
    assert source.listener_count("disconnected") == 1
