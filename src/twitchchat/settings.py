"""
Settings and configuration watching.

Settings are read from the command line arguments first, and then from the settings file.
Components that need to react to configuration changes register callbacks through
`Settings.on_credential_change` and `Settings.on_channels_change`, instead of polling.
"""

from __future__ import annotations

import os
import logging
from pathlib import Path
from typing import Any, Callable, TypedDict, TYPE_CHECKING

from yarl import URL

from .utils import json_load, json_save
from .constants import LOGGER_NAME, SETTINGS_PATH, RECONNECT_TIMEOUT

if TYPE_CHECKING:
    from .cli import ParsedArgs


logger = logging.getLogger(LOGGER_NAME)
CredentialCallback = Callable[[bool], None]
ChannelsCallback = Callable[[list], None]


class IdentityFile(TypedDict):
    username: str
    password: str


class SettingsFile(TypedDict):
    identity: IdentityFile
    channels: list[str]
    proxy: URL
    reconnect: bool
    reconnect_timeout: float


default_settings: SettingsFile = {
    "identity": {"username": "", "password": ""},
    "channels": [],
    "proxy": URL(),
    "reconnect": True,
    "reconnect_timeout": RECONNECT_TIMEOUT.total_seconds(),
}


class Identity:
    """
    Chat login credentials.

    Assignments to `username` or `password` are reported to the owning settings,
    which decide whether the credentials validity has changed.
    """

    def __init__(
        self,
        username: str = "",
        password: str = "",
        *,
        on_change: Callable[[], None] | None = None,
    ):
        self._username: str = username
        self._password: str = password
        self._on_change = on_change

    def __repr__(self) -> str:
        return f"Identity(username={self._username!r}, password={'*' * bool(self._password)!r})"

    @property
    def username(self) -> str:
        return self._username

    @username.setter
    def username(self, value: str) -> None:
        self._username = value
        self._changed()

    @property
    def password(self) -> str:
        return self._password

    @password.setter
    def password(self, value: str) -> None:
        self._password = value
        self._changed()

    @property
    def valid(self) -> bool:
        # not verified server side
        return bool(self._username) and bool(self._password)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def to_json(self) -> IdentityFile:
        return {"username": self._username, "password": self._password}


class Settings:
    # from args
    log: bool
    # args properties
    debug_ws: int
    logging_level: int
    # from settings file
    identity: Identity
    channels: list[str]
    proxy: URL
    reconnect: bool
    reconnect_timeout: float

    PASSTHROUGH = (
        "_settings",
        "_args",
        "_altered",
        "_path",
        "_credentials_valid",
        "_credential_callbacks",
        "_channels_callbacks",
    )

    def __init__(self, args: ParsedArgs | None = None, *, path: Path = SETTINGS_PATH):
        self._path: Path = path
        self._args: ParsedArgs | None = args
        self._altered: bool = False
        self._credential_callbacks: list[CredentialCallback] = []
        self._channels_callbacks: list[ChannelsCallback] = []
        self._settings: SettingsFile = json_load(path, default_settings)
        identity = self._settings["identity"]
        if not isinstance(identity, Identity):
            self._settings["identity"] = Identity(  # type: ignore[typeddict-item]
                identity["username"], identity["password"], on_change=self._identity_changed
            )
        self.__get_settings_from_env__()
        self._credentials_valid: bool = self.credentials_valid()

    def __get_settings_from_env__(self):
        identity: Identity = self._settings["identity"]  # type: ignore[assignment]
        # set the private fields directly, nobody is watching yet
        if username := os.environ.get("TWITCH_USERNAME"):
            identity._username = username
        if password := os.environ.get("TWITCH_PASSWORD"):
            identity._password = password

    # default logic of reading settings is to check args first, then the settings file
    def __getattr__(self, name: str, /) -> Any:
        if name in self.PASSTHROUGH:
            # passthrough
            return getattr(super(), name)
        elif self._args is not None and hasattr(self._args, name):
            return getattr(self._args, name)
        elif name in self._settings:
            return self._settings[name]  # type: ignore[literal-required]
        return getattr(super(), name)

    def __setattr__(self, name: str, value: Any, /) -> None:
        if name in self.PASSTHROUGH:
            # passthrough
            return super().__setattr__(name, value)
        elif name == "identity":
            self._set_identity(value)
            return
        elif name == "channels":
            self._set_channels(value)
            return
        elif name in self._settings:
            self._settings[name] = value  # type: ignore[literal-required]
            self._altered = True
            return
        raise TypeError(f"{name} is missing a custom setter")

    def __delattr__(self, name: str, /) -> None:
        raise RuntimeError("settings can't be deleted")

    def _set_identity(self, value: Identity | IdentityFile) -> None:
        if isinstance(value, Identity):
            username, password = value.username, value.password
        else:
            username, password = value["username"], value["password"]
        self._settings["identity"] = Identity(  # type: ignore[typeddict-item]
            username, password, on_change=self._identity_changed
        )
        self._identity_changed()

    def _set_channels(self, value: list[str]) -> None:
        if value is self._settings["channels"]:
            # same object, nothing to report
            return
        channels = list(value)
        self._settings["channels"] = channels
        self._altered = True
        logger.debug(f"Desired channels changed: {', '.join(channels) or '<none>'}")
        for callback in tuple(self._channels_callbacks):
            callback(channels)

    def _identity_changed(self) -> None:
        self._altered = True
        valid = self.credentials_valid()
        if valid == self._credentials_valid:
            return
        self._credentials_valid = valid
        logger.info(f"Credentials are now {'valid' if valid else 'invalid'}")
        for callback in tuple(self._credential_callbacks):
            callback(valid)

    def credentials_valid(self) -> bool:
        return self._settings["identity"].valid  # type: ignore[attr-defined]

    def on_credential_change(self, callback: CredentialCallback) -> Callable[[], None]:
        """
        Call `callback(valid)` every time the credentials flip between valid and invalid.
        Returns a callable that removes the subscription.
        """
        self._credential_callbacks.append(callback)
        return lambda: self._unsubscribe(self._credential_callbacks, callback)

    def on_channels_change(self, callback: ChannelsCallback) -> Callable[[], None]:
        """
        Call `callback(channels)` every time a new desired channels list is assigned.
        Returns a callable that removes the subscription.
        """
        self._channels_callbacks.append(callback)
        return lambda: self._unsubscribe(self._channels_callbacks, callback)

    @staticmethod
    def _unsubscribe(callbacks: list[Any], callback: Any) -> None:
        if callback in callbacks:
            callbacks.remove(callback)

    def alter(self) -> None:
        self._altered = True

    def save(self, *, force: bool = False) -> None:
        if self._altered or force:
            json_save(self._path, self._settings, sort=True)
            self._altered = False
