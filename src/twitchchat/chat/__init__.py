"""
Chat module for Twitch Chat.

This module contains all chat connection functionality organized into logical submodules:
- supervisor: The connection handle consumers talk to
- sessions: Per-role sessions, created and destroyed together
- channels: Keeping joined channels in line with the settings
- broadcast: Re-emitting session events on the supervisor
- websocket: The default websocket transport
- messages: IRC message parsing
"""

from .supervisor import ChatConnection
from .channels import reconcile
from .broadcast import DisconnectSuppressor, forward_events
from .sessions import ClientConfig, Credential, Session, SessionSet
from .websocket import ChatClient

__all__ = [
    "ChatConnection",
    "reconcile",
    "DisconnectSuppressor",
    "forward_events",
    "ClientConfig",
    "Credential",
    "Session",
    "SessionSet",
    "ChatClient",
]
