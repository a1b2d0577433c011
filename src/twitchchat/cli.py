"""
Command line interface for Twitch Chat.

This module handles argument parsing and provides a clean interface
for command line options.
"""

from __future__ import annotations

import logging
import argparse

from .version import __version__
from .constants import CALL, SELF_PATH


class ParsedArgs(argparse.Namespace):
    """Parsed command line arguments with computed properties."""

    _verbose: int
    _debug_ws: bool
    log: bool

    @property
    def logging_level(self) -> int:
        return {
            0: logging.ERROR,
            1: logging.WARNING,
            2: logging.INFO,
            3: CALL,
            4: logging.DEBUG,
        }[min(self._verbose, 4)]

    @property
    def debug_ws(self) -> int:
        """
        If the debug flag is True, return DEBUG.
        If the main logging level is DEBUG, return INFO to avoid seeing raw messages.
        Otherwise, return NOTSET to inherit the global logging level.
        """
        if self._debug_ws:
            return logging.DEBUG
        elif self._verbose >= 4:
            return logging.INFO
        return logging.NOTSET


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        SELF_PATH.name,
        description="Keeps a supervised connection to the Twitch chat servers.",
    )
    parser.add_argument("--version", action="version", version=f"v{__version__}")
    parser.add_argument("-v", dest="_verbose", action="count", default=0)
    parser.add_argument("--log", action="store_true")
    # debug options
    parser.add_argument("--debug-ws", dest="_debug_ws", action="store_true")
    return parser


def parse_arguments(argv: list[str] | None = None) -> ParsedArgs:
    """Parse command line arguments and return parsed namespace."""
    return build_parser().parse_args(argv, namespace=ParsedArgs())
