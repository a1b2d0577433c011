from __future__ import annotations


class ChatException(Exception):
    """
    Base exception class for this application.
    """
    def __init__(self, *args: object):
        if args:
            super().__init__(*args)
        else:
            super().__init__("Unknown chat error")


class NotConnected(ChatException):
    """
    Raised when a message is sent while no chat sessions are live.
    """
    def __init__(self, *args: object):
        if args:
            super().__init__(*args)
        else:
            super().__init__("Not connected to the chat server")


class LoginFailed(ChatException):
    """
    Raised inside the transport when the server rejects the credentials.
    """
    def __init__(self, *args: object):
        if args:
            super().__init__(*args)
        else:
            super().__init__("Login unsuccessful")


class TransportClosed(ChatException):
    """
    Raised when the websocket connection has been closed.

    Attributes:
    -----------
    received: bool
        `True` if the closing was caused by our side receiving a close frame, `False` otherwise.
    """
    def __init__(self, *args: object, received: bool = False):
        if args:
            super().__init__(*args)
        else:
            super().__init__("Websocket has been closed")
        self.received: bool = received
