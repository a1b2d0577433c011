from __future__ import annotations

import json
import random
import logging
import traceback
from pathlib import Path
from copy import deepcopy
from functools import wraps
from typing import Any, Callable, Mapping, TypeVar, cast
from collections import abc

from yarl import URL

from .constants import LOGGER_NAME, JsonType


_JSON_T = TypeVar("_JSON_T", bound=Mapping[Any, Any])
logger = logging.getLogger(LOGGER_NAME)


def format_traceback(exc: BaseException, **kwargs: Any) -> str:
    """
    Like `traceback.print_exc` but returns a string. Uses the passed-in exception.
    Any additional `**kwargs` are passed to the underlaying `traceback.format_exception`.
    """
    return ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__, **kwargs))


def normalize_channel(channel: str) -> str:
    channel = channel.strip().lower()
    if not channel.startswith('#'):
        channel = f"#{channel}"
    return channel


def normalize_username(username: str) -> str:
    return username.strip().lstrip('#').lower()


def task_wrapper(afunc: abc.Callable[..., abc.Coroutine[Any, Any, Any]] | None = None):
    """
    Log every unexpected exception raised inside of a background task, then re-raise it,
    so the task ends up failed instead of looking finished.
    """
    def decorator(
        afunc: abc.Callable[..., abc.Coroutine[Any, Any, Any]]
    ) -> abc.Callable[..., abc.Coroutine[Any, Any, Any]]:
        @wraps(afunc)
        async def wrapper(*args, **kwargs):
            try:
                await afunc(*args, **kwargs)
            except Exception:
                logger.exception(f"Exception in {afunc.__name__} task")
                raise
        return wrapper
    if afunc is None:
        return decorator
    return decorator(afunc)


class ExponentialBackoff:
    def __init__(
        self,
        *,
        base: float = 2,
        variance: float | tuple[float, float] = 0.1,
        shift: float = -1,
        maximum: float = 300,
    ):
        if base <= 1:
            raise ValueError("Base has to be greater than 1")
        self.steps: int = 0
        self.base: float = float(base)
        self.shift: float = float(shift)
        self.maximum: float = float(maximum)
        self.variance_min: float
        self.variance_max: float
        if isinstance(variance, tuple):
            self.variance_min, self.variance_max = variance
        else:
            self.variance_min = 1 - variance
            self.variance_max = 1 + variance

    def __iter__(self) -> abc.Iterator[float]:
        return self

    def __next__(self) -> float:
        value: float = (
            pow(self.base, self.steps)
            * random.uniform(self.variance_min, self.variance_max)
            + self.shift
        )
        if value > self.maximum:
            return self.maximum
        # only step up if we haven't hit the maximum yet
        self.steps += 1
        return max(0.0, value)

    def reset(self) -> None:
        self.steps = 0


SERIALIZE_ENV: dict[str, Callable[[Any], object]] = {
    "set": set,
    "URL": URL,
}


def _serialize(obj: Any) -> Any:
    # convert data
    d: int | str | float | list[Any] | JsonType
    if isinstance(obj, set):
        d = list(obj)
    elif isinstance(obj, URL):
        d = str(obj)
    elif hasattr(obj, "to_json"):
        # objects that know their own plain representation, without a type marker
        return obj.to_json()
    else:
        raise TypeError(obj)
    # store with type
    return {
        "__type": type(obj).__name__,
        "data": d,
    }


def _remove_missing(base_vars: JsonType, vars: JsonType) -> None:
    # NOTE: this modifies base_vars in place
    for k in list(base_vars.keys()):
        if k not in vars:
            del base_vars[k]
        elif isinstance(base_vars[k], dict) and isinstance(vars[k], dict):
            _remove_missing(base_vars[k], vars[k])


def _merge_vars(base_vars: JsonType, vars: JsonType) -> None:
    # NOTE: this modifies base_vars in place
    for k, v in vars.items():
        if k not in base_vars:
            base_vars[k] = v
        elif isinstance(v, dict):
            if isinstance(base_vars[k], dict):
                _merge_vars(base_vars[k], v)
            elif base_vars[k] is Ellipsis:
                # unspecified base, use the passed in var
                base_vars[k] = v
            else:
                raise RuntimeError(f"Var is a dict, base is not: '{k}'")
        elif isinstance(base_vars[k], dict):
            raise RuntimeError(f"Base is a dict, var is not: '{k}'")
        else:
            # simple overwrite
            base_vars[k] = v
    # ensure none of the vars are ellipsis (unset value)
    for k, v in base_vars.items():
        if v is Ellipsis:
            raise RuntimeError(f"Unspecified variable: '{k}'")


def json_load(path: Path, defaults: _JSON_T, *, merge: bool = True) -> _JSON_T:
    defaults_dict: JsonType = deepcopy(dict(defaults))
    if path.exists():
        with open(path, 'r', encoding="utf8") as file:
            combined: JsonType = json.load(
                file,
                object_hook=lambda d: (
                    SERIALIZE_ENV[d["__type"]](d["data"]) if "__type" in d else d
                ),
            )
        if merge:
            _remove_missing(combined, defaults_dict)
            _merge_vars(defaults_dict, combined)
            combined = defaults_dict
    else:
        combined = defaults_dict
    return cast(_JSON_T, combined)


def json_save(path: Path, contents: Mapping[Any, Any], *, sort: bool = False) -> None:
    with open(path, 'w', encoding="utf8") as file:
        json.dump(contents, file, default=_serialize, sort_keys=sort, indent=4)
