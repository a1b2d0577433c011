"""
Main application logic for Twitch Chat.

This module contains the main application execution logic,
separated from argument parsing for better modularity.
"""

from __future__ import annotations

import sys
import signal
import asyncio
import logging
import warnings
import traceback
from typing import NoReturn

from .chat import ChatConnection
from .events import ChatEvent
from .settings import Settings
from .cli import parse_arguments
from .constants import (
    FILE_FORMATTER,
    OUTPUT_FORMATTER,
    LOG_PATH,
    LOGGER_NAME,
    WS_LOGGER_NAME,
)


warnings.simplefilter("default", ResourceWarning)


def format_event(event: ChatEvent) -> str:
    name, args = event.name, event.args
    if name in ("chat", "action") and len(args) >= 3:
        channel, userstate, message = args[:3]
        username = userstate.get("display-name") or userstate.get("username")
        if name == "action":
            return f"{channel} * {username} {message}"
        return f"{channel} <{username}> {message}"
    elif name == "whisper" and len(args) >= 3:
        return f"whisper <{args[0]}> {args[2]}"
    return f"[{name}] {' '.join(map(str, args))}".rstrip()


async def print_events(connection: ChatConnection) -> None:
    async for event in connection.stream():
        print(format_event(event), flush=True)
        if event.name == "disconnected" and connection.bad_login:
            print("Login unsuccessful, update the credentials in the settings file.", flush=True)


async def main():
    """Main application entry point."""
    # Parse command line arguments
    args = parse_arguments()

    # Load settings
    try:
        settings = Settings(args)
    except Exception:
        print(
            "There was an error while loading the settings file:\n\n"
            f"{traceback.format_exc()}",
            file=sys.stderr,
        )
        sys.exit(4)

    # Handle logging setup
    if settings.logging_level > logging.DEBUG:
        # redirect the root logger into a NullHandler, effectively ignoring all logging calls
        # that aren't ours. This always runs, unless the main logging level is DEBUG or lower.
        logging.getLogger().addHandler(logging.NullHandler())
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(settings.logging_level)
    console = logging.StreamHandler()
    console.setFormatter(OUTPUT_FORMATTER)
    logger.addHandler(console)
    if settings.log:
        handler = logging.FileHandler(LOG_PATH)
        handler.setFormatter(FILE_FORMATTER)
        logger.addHandler(handler)
    logging.getLogger(WS_LOGGER_NAME).setLevel(settings.debug_ws)

    if not settings.credentials_valid():
        logger.warning("No credentials set, waiting for them to be added to the settings")

    connection = ChatConnection(settings)
    close_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    if sys.platform == "linux":
        loop.add_signal_handler(signal.SIGINT, close_requested.set)
        loop.add_signal_handler(signal.SIGTERM, close_requested.set)
    printer = asyncio.create_task(print_events(connection))
    exit_status = 0
    try:
        connection.start()
        await close_requested.wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception:
        exit_status = 1
        logger.exception("Fatal error encountered")
    finally:
        if sys.platform == "linux":
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)
        print("Exiting...", flush=True)
        connection.close()
        printer.cancel()
        # let the transports finish closing their sockets
        await asyncio.sleep(0.5)
        # save the application state
        settings.save()
    sys.exit(exit_status)


def run_app() -> NoReturn:
    """Run the application with proper setup and cleanup."""
    print(f"{__import__('datetime').datetime.now().strftime('%Y-%m-%d %X')}: Starting: Twitch Chat")

    # SSL trust store injection for Python 3.10+
    if sys.version_info >= (3, 10):
        import truststore
        truststore.inject_into_ssl()

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        # non-linux platforms don't get the signal handlers
        sys.exit(0)
    sys.exit(0)


if __name__ == "__main__":
    run_app()
