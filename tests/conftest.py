"""Shared fixtures: a fake transport recording calls, and settings stored in a temp dir."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from twitchchat.chat import ChatConnection, ClientConfig
from twitchchat.events import EventEmitter
from twitchchat.settings import Settings


class FakeTransport(EventEmitter):
    """Records every call; events are emitted by the test through `emit`."""

    def __init__(self, config: ClientConfig):
        super().__init__()
        self.config = config
        self.calls: list[tuple[Any, ...]] = []
        self.moderators: set[tuple[str, str]] = set()

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def connect(self) -> None:
        self.calls.append(("connect",))

    def disconnect(self) -> None:
        self.calls.append(("disconnect",))

    def join(self, channel: str) -> None:
        self.calls.append(("join", channel))

    def part(self, channel: str) -> None:
        self.calls.append(("part", channel))

    def say(self, channel: str, message: str) -> None:
        self.calls.append(("say", channel, message))

    def whisper(self, username: str, message: str) -> None:
        self.calls.append(("whisper", username, message))

    def is_mod(self, channel: str, username: str) -> bool:
        return (channel, username) in self.moderators


class TransportRecorder:
    def __init__(self) -> None:
        self.created: list[FakeTransport] = []

    def __call__(self, config: ClientConfig) -> FakeTransport:
        transport = FakeTransport(config)
        self.created.append(transport)
        return transport


@pytest.fixture
def settings_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.delenv("TWITCH_USERNAME", raising=False)
    monkeypatch.delenv("TWITCH_PASSWORD", raising=False)
    return tmp_path / "settings.json"


@pytest.fixture
def settings(settings_path: Path) -> Settings:
    return Settings(path=settings_path)


@pytest.fixture
def recorder() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def connection(settings: Settings, recorder: TransportRecorder) -> ChatConnection:
    connection = ChatConnection(settings, transport_factory=recorder)
    yield connection
    connection.close()


def record_events(emitter: EventEmitter, *names: str) -> list[tuple[Any, ...]]:
    received: list[tuple[Any, ...]] = []
    for name in names:
        emitter.on(name, lambda *args, name=name: received.append((name, *args)))
    return received
