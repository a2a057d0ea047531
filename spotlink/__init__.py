"""Parking service API: SQLite-backed models, validation, uploads, middleware and a WSGI app."""

__version__ = "1.0.0"
__all__ = [
    "app",
    "filters",
    "jsonio",
    "middleware",
    "notifications",
    "parking_lots",
    "records",
    "responses",
    "uploads",
]