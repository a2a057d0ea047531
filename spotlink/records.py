"""Shared record errors and helpers for collecting validation messages."""

from __future__ import annotations

from collections.abc import Mapping


class _DataError(Exception):
    """Base for data-layer errors that carry a fixed default message."""

    default_message = ""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class RecordNotFoundError(_DataError):
    """No record matched the lookup."""

    default_message = "record not found"


class EditConflictError(_DataError):
    """A record changed between reading and updating it."""

    default_message = "edit conflict"


class FailedValidationError(Exception):
    """Input failed validation; ``errors`` maps field names to messages."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__(self.errors)

    def __str__(self) -> str:
        return "".join(f"{field}: {message}\n" for field, message in self.errors.items())


def add_error(errors: dict[str, str], key: str, message: str) -> None:
    """Record ``message`` for ``key`` unless that key already has one."""
    errors.setdefault(key, message)


def check(errors: dict[str, str], ok: bool, key: str, message: str) -> None:
    """Record ``message`` for ``key`` when ``ok`` is false."""
    if not ok:
        add_error(errors, key, message)