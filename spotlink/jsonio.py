"""Reading request bodies and query-string values."""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Mapping
from typing import Any

from spotlink.records import add_error

MAX_BODY_BYTES = 1_048_576 * 10

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class BadRequestError(Exception):
    """The request carried input that cannot be used."""


class _BadConstant(ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name


def _reject_constant(name: str) -> Any:
    raise _BadConstant(name)


def _byte_offset(text: str, pos: int) -> int:
    return len(text[:pos].encode("utf-8"))


def _matches(value: Any, expected: Any) -> bool:
    if value is None or expected is object:
        return True
    if isinstance(expected, tuple):
        return any(_matches(value, option) for option in expected)
    if expected is bool:
        return isinstance(value, bool)
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if expected is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, expected)


def read_json(
    body: bytes | str,
    fields: Mapping[str, Any] | None = None,
    max_bytes: int = MAX_BODY_BYTES,
) -> Any:
    """Decode a request body holding exactly one JSON value.

    When ``fields`` maps the permitted keys to their expected Python types,
    the body must be an object using only those keys, each with a value of
    its type (or null). Problems raise BadRequestError.
    """
    raw = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    if len(raw) > max_bytes:
        raise BadRequestError(f"body must not be larger than {max_bytes} bytes")
    text = raw.decode("utf-8", errors="replace")

    start = len(text) - len(text.lstrip())
    if start == len(text):
        raise BadRequestError("body must not be empty")

    decoder = json.JSONDecoder(parse_constant=_reject_constant)
    try:
        value, end = decoder.raw_decode(text, start)
    except _BadConstant as exc:
        offset = _byte_offset(text, text.find(exc.name, start)) + 1
        raise BadRequestError(
            f"body contains badly-formed JSON (at character {offset})"
        ) from None
    except json.JSONDecodeError as exc:
        if exc.pos >= len(text.rstrip()) or exc.msg.startswith("Unterminated string"):
            raise BadRequestError("body contains badly-formed JSON") from None
        offset = _byte_offset(text, exc.pos) + 1
        raise BadRequestError(
            f"body contains badly-formed JSON (at character {offset})"
        ) from None

    if fields is not None:
        value = _check_fields(value, fields, _byte_offset(text, end))

    if text[end:].strip():
        raise BadRequestError("body must only contain a single JSON value")
    return value


def _check_fields(value: Any, fields: Mapping[str, Any], offset: int) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise BadRequestError(f"body contains  incorrect JSON type (at character {offset}")
    for key, item in value.items():
        if key not in fields:
            raise BadRequestError(f'body contains unknown key "{key}"')
        if not _matches(item, fields[key]):
            raise BadRequestError(f'body contains incorrect JSON type for field "{key}"')
    return value


def read_id_param(value: str) -> uuid.UUID:
    """Parse a route id as a UUID."""
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        raise BadRequestError("invalid id parameter") from None


def _first(query: Mapping[str, Any], key: str) -> str:
    value = query.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return next(iter(value), "")


def read_string(query: Mapping[str, Any], key: str, default: str) -> str:
    """First value of ``key`` in the query, or ``default`` when it is empty."""
    return _first(query, key) or default


def read_csv(query: Mapping[str, Any], key: str, default: list[str]) -> list[str]:
    """Comma-separated values of ``key``, or ``default`` when it is empty."""
    text = _first(query, key)
    if not text:
        return default
    return text.split(",")


def read_int(query: Mapping[str, Any], key: str, default: int, errors: dict[str, str]) -> int:
    """Integer value of ``key``; records an error in ``errors`` when malformed."""
    text = _first(query, key)
    if not text:
        return default
    if _INTEGER.fullmatch(text):
        number = int(text)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    add_error(errors, key, "must be an integer")
    return default