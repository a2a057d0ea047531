"""Saving uploaded PDFs and avatars, and locating files to serve."""

from __future__ import annotations

import base64
import binascii
import logging
import posixpath
import uuid
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE = 5 * 1024 * 1024
NO_KEY = "no key"

_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".pdf": "application/pdf",
}

_AVATAR_CACHE = "public, max-age=604800"
_NO_STORE = "no-store"


class UploadError(Exception):
    """Uploaded content was rejected."""


@dataclass(frozen=True)
class ServedFile:
    """A file ready to be sent, with the headers that go with it."""

    path: Path
    content_type: str
    cache_control: str


def is_pdf(data: bytes) -> bool:
    return data.startswith(b"%PDF-")


def content_type_for(path: str | Path) -> str:
    """Media type for a file name, by its extension."""
    return _CONTENT_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


def clean_id(value: str) -> str | None:
    """Normalise a file id; None when it is empty or names a path."""
    cleaned = posixpath.normpath(value.strip()) if value.strip() else "."
    if cleaned == "." or "/" in cleaned or "\\" in cleaned:
        return None
    return cleaned


def _decode(input_base64: str) -> bytes:
    text = input_base64.replace("\r", "").replace("\n", "")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise UploadError("illegal base64 data") from None


def _write_new(directory: str | Path, extension: str, data: bytes) -> str:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    unique = str(uuid.uuid4())
    (directory / (unique + extension)).write_bytes(data)
    return unique


def save_pdf(input_base64: str, uploads_dir: str | Path) -> str:
    """Store a base64-encoded PDF and return the id it was saved under."""
    data = _decode(input_base64)
    if not is_pdf(data):
        raise UploadError("invalid pdf file")
    if len(data) > MAX_UPLOAD_SIZE:
        raise UploadError("pdf file size must be less than 5MB")
    return _write_new(uploads_dir, ".pdf", data)


def _image_extension(data: bytes) -> str | None:
    if data.startswith(b"\xff\xd8\xff"):
        return ".jpg"
    if data.startswith(b"\x89PNG"):
        return ".png"
    if data.startswith(b"GIF8"):
        return ".gif"
    return None


def save_avatar(input_base64: str, avatars_dir: str | Path) -> str:
    """Store a base64-encoded JPEG, PNG or GIF; an empty input yields ``"no key"``."""
    if input_base64 == "":
        return NO_KEY
    data = _decode(input_base64)
    if len(data) < 8:
        raise UploadError("invalid image file")
    extension = _image_extension(data)
    if extension is None:
        raise UploadError("invalid image file")
    if len(data) > MAX_UPLOAD_SIZE:
        raise UploadError("image file size must be less than 5MB")
    return _write_new(avatars_dir, extension, data)


def avatar_data_uri(avatar_id: str, avatars_dir: str | Path) -> str:
    """The stored avatar as a data URI; empty when there is no avatar id."""
    if avatar_id in ("", NO_KEY):
        return ""
    directory = Path(avatars_dir)
    path = next(
        (candidate for candidate in (directory / (avatar_id + ext) for ext in (".jpg", ".png", ".gif"))
         if candidate.exists()),
        None,
    )
    if path is None:
        raise FileNotFoundError(f"avatar file not found for ID: {avatar_id}")
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{content_type_for(path)};base64,{encoded}"


def find_avatar(avatar_id: str, avatars_dir: str | Path) -> ServedFile | None:
    """Locate an avatar, falling back to ``default.png``; None when neither exists."""
    cleaned = clean_id(avatar_id)
    if cleaned is None:
        return None
    directory = Path(avatars_dir)
    path = next(
        (candidate for candidate in
         (directory / (cleaned + ext) for ext in (".jpg", ".jpeg", ".png", ".gif"))
         if candidate.exists()),
        None,
    )
    if path is None:
        logger.info("Avatar not found for ID: %s, using default", cleaned)
        path = directory / "default.png"
        if not path.exists():
            return None
    return ServedFile(path, content_type_for(path), _AVATAR_CACHE)


def find_pdf(pdf_id: str, uploads_dir: str | Path) -> ServedFile | None:
    """Locate a stored PDF by id; None when it does not exist."""
    cleaned = clean_id(pdf_id)
    if cleaned is None:
        return None
    path = Path(uploads_dir) / (cleaned + ".pdf")
    if not path.exists():
        return None
    return ServedFile(path, "application/pdf", _NO_STORE)


def find_file(file_type: str, file_id: str, uploads_root: str | Path) -> ServedFile | None:
    """Locate a file of an allowed type (``avatars`` or ``pdfs``) under ``uploads_root``."""
    kind = clean_id(file_type)
    if kind is None or clean_id(file_id) is None:
        return None
    root = Path(uploads_root)
    if kind == "avatars":
        return find_avatar(file_id, root / "avatars")
    if kind == "pdfs":
        return find_pdf(file_id, root)
    return None