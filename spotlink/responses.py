"""JSON responses and the standard error replies of the API."""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from http import HTTPStatus
from typing import Any

# Reason phrases as the API has always sent them; newer Python renamed these.
_PHRASES = {
    413: "Request Entity Too Large",
    416: "Requested Range Not Satisfiable",
    422: "Unprocessable Entity",
}


def _status_text(status: int) -> str:
    if status in _PHRASES:
        return _PHRASES[status]
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def _default(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


def _encode(data: Any) -> bytes:
    text = json.dumps(
        data, default=_default, sort_keys=True, ensure_ascii=False, separators=(",", ":")
    )
    for char, escape in (("&", "\\u0026"), ("<", "\\u003c"), (">", "\\u003e"),
                         ("\u2028", "\\u2028"), ("\u2029", "\\u2029")):
        text = text.replace(char, escape)
    return (text + "\n").encode("utf-8")


@dataclass
class Response:
    """An HTTP reply: status code, headers and body bytes."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


def write_json(status: int, data: Mapping[str, Any],
               headers: Mapping[str, str] | None = None) -> Response:
    """Build a JSON response with the given status and extra headers."""
    body = _encode(dict(data))
    merged = dict(headers or {})
    merged["Content-Type"] = "application/json"
    merged["Status"] = _status_text(status)
    return Response(status=status, headers=merged, body=body)


def error_response(status: int, message: Any) -> Response:
    """Build an error reply whose body is {"error": message}."""
    return write_json(status, {"error": message})


def server_error_response() -> Response:
    return error_response(
        int(HTTPStatus.INTERNAL_SERVER_ERROR),
        "the server encountered a problem and could not process your request",
    )


def not_found_response() -> Response:
    return error_response(int(HTTPStatus.NOT_FOUND), "the requested resource could not be found")


def method_not_allowed_response(method: str) -> Response:
    return error_response(
        int(HTTPStatus.METHOD_NOT_ALLOWED),
        f"the {method} method is not supported for this resource",
    )


def bad_request_response(message: Any) -> Response:
    return error_response(int(HTTPStatus.BAD_REQUEST), str(message))


def failed_validation_response(errors: Mapping[str, str]) -> Response:
    return error_response(int(HTTPStatus.UNPROCESSABLE_ENTITY), dict(errors))


def edit_conflict_response() -> Response:
    return error_response(
        int(HTTPStatus.CONFLICT),
        "unable to update the record due to an edit conflict, please try again",
    )


def rate_limit_exceeded_response() -> Response:
    return error_response(int(HTTPStatus.TOO_MANY_REQUESTS), "rate limit exceeded")


def invalid_credentials_response() -> Response:
    return error_response(int(HTTPStatus.UNAUTHORIZED), "invalid authentication credentials")


def invalid_authentication_token_response() -> Response:
    response = error_response(
        int(HTTPStatus.UNAUTHORIZED),
        "invalid or missing authentication token",
    )
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


def authentication_required_response() -> Response:
    return error_response(
        int(HTTPStatus.UNAUTHORIZED), "you must be authenticated to access this resource"
    )


def inactive_account_response() -> Response:
    return error_response(
        int(HTTPStatus.FORBIDDEN),
        "your user account must be activated before you can access this resource",
    )


def not_permitted_response() -> Response:
    return error_response(
        int(HTTPStatus.FORBIDDEN),
        "your user account does not have the necessary permissions to access this resource",
    )