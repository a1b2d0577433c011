"""
Twitch Chat - a supervised connection to the Twitch chat servers.

This package keeps read, write and whisper chat sessions alive for a configured
account, keeps them joined to the configured channels, and exposes a single event stream.
"""

from .version import __version__

# Import main classes for easy access
from .app import run_app
from .chat import ChatConnection
from .settings import Settings

def main():
    """Main entry point function."""
    run_app()

__all__ = [
    "__version__",
    "main",
    "run_app",
    "ChatConnection",
    "Settings",
]
