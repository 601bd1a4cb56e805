"""Utilities module."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Type, TypeVar, cast, overload

from yarl import URL

_LOGGER = logging.getLogger(__name__)
_T = TypeVar("_T")
_E = TypeVar("_E", bound=Enum)

REDACTED = "**REDACTED**"
REDACT_FIELDS = [
    "auth_key",
    "authKey",
    "credential",
    "password",
    "token",
    "username",
    "usernameFragment",
]


@overload
def redact(data: Mapping) -> dict: ...


@overload
def redact(data: _T) -> _T: ...


def redact(data: _T) -> _T:
    """Redact sensitive data in a dict."""
    if not isinstance(data, (Mapping, list)):
        return data

    if isinstance(data, list):
        return cast(_T, [redact(val) for val in data])

    redacted = {**data}

    for key, value in redacted.items():
        if value is None:
            continue
        if isinstance(value, str) and not value:
            continue
        if key in REDACT_FIELDS:
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact(value)
        elif isinstance(value, list):
            redacted[key] = [redact(item) for item in value]

    return cast(_T, redacted)


def redact_url(url: str | URL) -> str:
    """Return a url without its query string, which may carry credentials."""
    return str(URL(url).with_query(None))


def first_value(
    data: Mapping | None,
    keys: Iterable,
    default: Any | None = None,
    return_none: bool = False,
) -> Any | None:
    """Return the first valid key's value."""
    if not data:
        return default
    for key in keys:
        if key in data and ((value := data[key]) is not None or return_none):
            return value
    return default


def to_enum(value: Any, typ: Type[_E], log_warning: bool = True) -> _E | None:
    """Get the corresponding enum member from a value."""
    if value is None:
        return None
    if isinstance(value, typ):
        return value
    try:
        return typ(value)
    except ValueError:
        if log_warning:
            _LOGGER.warning("Value '%s' not found in enum %s", value, typ.__name__)
    except (AttributeError, TypeError):
        _LOGGER.error("Provided class %s is not a valid Enum", typ)
    return None


async def cancel_task(*tasks: asyncio.Task | None) -> None:
    """Cancel task(s)."""
    for task in tasks:
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
