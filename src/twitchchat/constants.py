from __future__ import annotations

import sys
import logging
from enum import Enum
from pathlib import Path
from datetime import timedelta
from typing import Any, Dict

from yarl import URL


# Typing
JsonType = Dict[str, Any]

# Base Paths
if getattr(sys, "frozen", False):
    SELF_PATH = Path(sys.executable).resolve()
else:
    SELF_PATH = Path(sys.argv[0]).resolve()
WORKING_DIR = SELF_PATH.parent
# Other Paths
LOG_PATH = Path(WORKING_DIR, "log.txt")
SETTINGS_PATH = Path(WORKING_DIR, "settings.json")
# Logging
CALL = logging.INFO - 1
logging.addLevelName(CALL, "CALL")
FILE_FORMATTER = logging.Formatter(
    "{asctime}.{msecs:03.0f}:\t{levelname:>7}:\t{message}",
    style='{',
    datefmt="%Y-%m-%d %H:%M:%S",
)
OUTPUT_FORMATTER = logging.Formatter("{levelname}: {message}", style='{', datefmt="%H:%M:%S")
LOGGER_NAME = "TwitchChat"
WS_LOGGER_NAME = f"{LOGGER_NAME}.websocket"
# Connection
PING_INTERVAL = timedelta(minutes=5)
PING_TIMEOUT = timedelta(seconds=10)
RECONNECT_TIMEOUT = timedelta(seconds=10)
# Twitch reports an invalid login with this exact disconnect reason
BAD_LOGIN_REASON = "Login unsuccessful."
BAD_LOGIN_NOTICES = (
    "Login authentication failed",
    "Login unsuccessful",
    "Improperly formatted auth",
    "Invalid NICK",
)


class Role(Enum):
    READ = "read"
    WRITE = "write"
    WHISPER = "whisper"


class ConnectionMode(str, Enum):
    SHARED_RANDOM = "shared-random"
    GROUPED = "grouped"


# Twitch folded the group (whisper) servers into the main chat cluster,
# so both modes currently resolve to the same endpoint.
CHAT_SERVERS: dict[ConnectionMode, URL] = {
    ConnectionMode.SHARED_RANDOM: URL("wss://irc-ws.chat.twitch.tv:443"),
    ConnectionMode.GROUPED: URL("wss://irc-ws.chat.twitch.tv:443"),
}

# Events relayed from the read session. "disconnected" is deduplicated separately.
READ_EVENTS: tuple[str, ...] = (
    "action",
    "chat",
    "clearchat",
    "connected",
    "connecting",
    "crash",
    "hosted",
    "hosting",
    "slowmode",
    "subanniversary",
    "subscriber",
    "subscription",
    "timeout",
    "unhost",
)
WHISPER_EVENTS: tuple[str, ...] = ("whisper",)
# Everything a consumer can observe on the unified stream
CHAT_EVENTS: tuple[str, ...] = (*READ_EVENTS, *WHISPER_EVENTS, "disconnected")
