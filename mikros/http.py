"""State handed to HTTP handlers and helpers to read request headers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from aiohttp import web

from mikros.context import Context
from mikros.errors import ServiceError


@dataclass
class ServiceState:
    """What every HTTP handler can reach through its application.

    ``context`` is always available; ``app_state`` holds the object the
    service was built with, if any.
    """

    context: Context
    app_state: Any = None


STATE_KEY = web.AppKey("mikros.service_state", ServiceState)


def _is_visible(value: str) -> bool:
    return all(char == "\t" or " " <= char <= "~" for char in value)


def _header(headers: Mapping[Any, Any], key: str) -> str | None:
    value = headers.get(key)
    if value is None:
        wanted = key.lower()
        value = next(
            (v for k, v in headers.items() if isinstance(k, str) and k.lower() == wanted),
            None,
        )
    if isinstance(value, bytes):
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str) or not _is_visible(value):
        return None
    return value


def header_to_bool(ctx: Context, headers: Mapping[Any, Any], key: str) -> bool:
    """Read a header as a boolean: 'true'/'1' or 'false'/'0', in any case."""
    value = _header(headers, key)
    if value is None:
        raise ServiceError.internal(ctx, f"missing header {key}")
    lowered = value.lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise ServiceError.internal(ctx, f"invalid header value {value}")


def header_to_string(ctx: Context, headers: Mapping[Any, Any], key: str) -> str:
    """Read a header as a string."""
    value = _header(headers, key)
    if value is None:
        raise ServiceError.internal(ctx, f"missing header {key}")
    return value