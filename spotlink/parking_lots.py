"""Parking lots: record type, validation and storage."""

from __future__ import annotations

import math
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from spotlink.filters import Filters, Metadata, calculate_metadata
from spotlink.records import EditConflictError, RecordNotFoundError, check

_EARTH_RADIUS_KM = 6371


@dataclass
class ParkingLot:
    name: str
    address: str
    latitude: float
    longitude: float
    total_spots: int
    hourly_rate: float
    open_time: str
    close_time: str
    owner_id: uuid.UUID
    daily_rate: float | None = None
    monthly_rate: float | None = None
    is_active: bool = False
    id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping of the parking lot."""
        return {
            "id": str(self.id) if self.id is not None else None,
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "total_spots": self.total_spots,
            "hourly_rate": self.hourly_rate,
            "daily_rate": self.daily_rate,
            "monthly_rate": self.monthly_rate,
            "open_time": self.open_time,
            "close_time": self.close_time,
            "is_active": self.is_active,
            "owner_id": str(self.owner_id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }


def validate_parking_lot(lot: ParkingLot) -> dict[str, str]:
    """Return validation errors for ``lot``; empty when valid."""
    errors: dict[str, str] = {}
    check(errors, lot.name != "", "name", "must be provided")
    check(errors, len(lot.name.encode("utf-8")) <= 100, "name",
          "must not be more than 100 characters long")

    check(errors, lot.address != "", "address", "must be provided")
    check(errors, len(lot.address.encode("utf-8")) <= 255, "address",
          "must not be more than 255 characters long")

    check(errors, -90 <= lot.latitude <= 90, "latitude", "must be between -90 and 90")
    check(errors, -180 <= lot.longitude <= 180, "longitude", "must be between -180 and 180")

    check(errors, lot.total_spots > 0, "total_spots", "must be greater than zero")
    check(errors, lot.total_spots <= 10000, "total_spots", "must not exceed 10,000")

    check(errors, lot.hourly_rate >= 0, "hourly_rate", "must not be negative")
    check(errors, lot.hourly_rate <= 1000, "hourly_rate", "must not exceed 1000")

    if lot.daily_rate is not None:
        check(errors, lot.daily_rate >= 0, "daily_rate", "must not be negative")
        check(errors, lot.daily_rate <= 10000, "daily_rate", "must not exceed 10,000")

    if lot.monthly_rate is not None:
        check(errors, lot.monthly_rate >= 0, "monthly_rate", "must not be negative")
        check(errors, lot.monthly_rate <= 100000, "monthly_rate", "must not exceed 100,000")

    check(errors, lot.open_time != "", "open_time", "must be provided")
    check(errors, lot.close_time != "", "close_time", "must be provided")
    return errors


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres between two points given in degrees."""
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    cos_angle = (
        math.cos(lat1_r) * math.cos(lat2_r) * math.cos(math.radians(lng2) - math.radians(lng1))
        + math.sin(lat1_r) * math.sin(lat2_r)
    )
    return _EARTH_RADIUS_KM * math.acos(max(-1.0, min(1.0, cos_angle)))


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS parking_lots (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        address TEXT NOT NULL,
        latitude REAL NOT NULL,
        longitude REAL NOT NULL,
        total_spots INTEGER NOT NULL,
        hourly_rate REAL NOT NULL,
        daily_rate REAL,
        monthly_rate REAL,
        open_time TEXT NOT NULL,
        close_time TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        owner_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS parking_spots (
        id TEXT PRIMARY KEY,
        parking_lot_id TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        is_occupied INTEGER NOT NULL DEFAULT 0,
        is_reserved INTEGER NOT NULL DEFAULT 0
    )
    """,
)

_COLUMNS = (
    "id, name, address, latitude, longitude, total_spots, hourly_rate, daily_rate, "
    "monthly_rate, open_time, close_time, is_active, owner_id, created_at, updated_at, version"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def _from_row(row: tuple) -> ParkingLot:
    (lot_id, name, address, latitude, longitude, total_spots, hourly_rate, daily_rate,
     monthly_rate, open_time, close_time, is_active, owner_id, created_at, updated_at,
     version) = row
    return ParkingLot(
        id=uuid.UUID(lot_id),
        name=name,
        address=address,
        latitude=latitude,
        longitude=longitude,
        total_spots=total_spots,
        hourly_rate=hourly_rate,
        daily_rate=daily_rate,
        monthly_rate=monthly_rate,
        open_time=open_time,
        close_time=close_time,
        is_active=bool(is_active),
        owner_id=uuid.UUID(owner_id),
        created_at=datetime.fromisoformat(created_at),
        updated_at=datetime.fromisoformat(updated_at),
        version=version,
    )


class ParkingLotModel:
    """Stores parking lots in an SQLite database connection."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db
        self._db.create_function("haversine_km", 4, haversine_km, deterministic=True)
        with self._db:
            for statement in _SCHEMA:
                self._db.execute(statement)

    def insert(self, lot: ParkingLot) -> None:
        """Store ``lot`` and fill in its id, timestamps and version."""
        new_id = uuid.uuid4()
        created = _now()
        with self._db:
            self._db.execute(
                f"INSERT INTO parking_lots ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)",
                (
                    str(new_id), lot.name, lot.address, lot.latitude, lot.longitude,
                    lot.total_spots, lot.hourly_rate, lot.daily_rate, lot.monthly_rate,
                    lot.open_time, lot.close_time, int(lot.is_active), str(lot.owner_id),
                    _timestamp(created), _timestamp(created),
                ),
            )
        lot.id = new_id
        lot.created_at = created
        lot.updated_at = created
        lot.version = 1

    def get(self, lot_id: uuid.UUID) -> ParkingLot:
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM parking_lots WHERE id = ?", (str(lot_id),)
        ).fetchone()
        if row is None:
            raise RecordNotFoundError()
        return _from_row(row)

    def _page(self, query: str, args: tuple, filters: Filters,
              extra_columns: int = 0) -> tuple[list[ParkingLot], Metadata]:
        rows = self._db.execute(query, args).fetchall()
        total_records = rows[0][0] if rows else 0
        end = len(rows[0]) - extra_columns if rows else 0
        lots = [_from_row(row[1:end]) for row in rows]
        return lots, calculate_metadata(total_records, filters.page, filters.page_size)

    def get_all(self, filters: Filters) -> tuple[list[ParkingLot], Metadata]:
        """Active lots, one page at a time."""
        query = (
            f"SELECT count(*) OVER (), {_COLUMNS} FROM parking_lots "
            "WHERE is_active = 1 "
            f"ORDER BY {filters.sort_column()} {filters.sort_direction()}, id ASC "
            "LIMIT ? OFFSET ?"
        )
        return self._page(query, (filters.limit(), filters.offset()), filters)

    def get_by_owner(self, owner_id: uuid.UUID,
                     filters: Filters) -> tuple[list[ParkingLot], Metadata]:
        query = (
            f"SELECT count(*) OVER (), {_COLUMNS} FROM parking_lots "
            "WHERE owner_id = ? "
            f"ORDER BY {filters.sort_column()} {filters.sort_direction()}, id ASC "
            "LIMIT ? OFFSET ?"
        )
        return self._page(query, (str(owner_id), filters.limit(), filters.offset()), filters)

    def search_by_location(self, lat: float, lng: float, radius_km: float,
                           filters: Filters) -> tuple[list[ParkingLot], Metadata]:
        """Active lots within ``radius_km`` of a point, nearest first."""
        query = (
            f"SELECT count(*) OVER (), {_COLUMNS}, distance FROM ("
            f"SELECT {_COLUMNS}, haversine_km(?, ?, latitude, longitude) AS distance "
            "FROM parking_lots WHERE is_active = 1"
            ") WHERE distance <= ? "
            f"ORDER BY distance ASC, {filters.sort_column()} {filters.sort_direction()} "
            "LIMIT ? OFFSET ?"
        )
        args = (lat, lng, radius_km, filters.limit(), filters.offset())
        return self._page(query, args, filters, extra_columns=1)

    def update(self, lot: ParkingLot) -> None:
        """Save ``lot`` if its version is current; raise EditConflictError otherwise."""
        updated = _now()
        with self._db:
            cursor = self._db.execute(
                "UPDATE parking_lots SET name = ?, address = ?, latitude = ?, longitude = ?, "
                "total_spots = ?, hourly_rate = ?, daily_rate = ?, monthly_rate = ?, "
                "open_time = ?, close_time = ?, is_active = ?, updated_at = ?, "
                "version = version + 1 WHERE id = ? AND version = ?",
                (
                    lot.name, lot.address, lot.latitude, lot.longitude, lot.total_spots,
                    lot.hourly_rate, lot.daily_rate, lot.monthly_rate, lot.open_time,
                    lot.close_time, int(lot.is_active), _timestamp(updated),
                    str(lot.id), lot.version,
                ),
            )
        if cursor.rowcount == 0:
            raise EditConflictError()
        lot.updated_at = updated
        lot.version += 1

    def delete(self, lot_id: uuid.UUID) -> None:
        with self._db:
            cursor = self._db.execute("DELETE FROM parking_lots WHERE id = ?", (str(lot_id),))
        if cursor.rowcount == 0:
            raise RecordNotFoundError()

    def get_available_spots(self, lot_id: uuid.UUID) -> int:
        """Number of active spots in the lot that are neither occupied nor reserved."""
        (count,) = self._db.execute(
            "SELECT COUNT(*) FROM parking_spots WHERE parking_lot_id = ? "
            "AND is_active = 1 AND is_occupied = 0 AND is_reserved = 0",
            (str(lot_id),),
        ).fetchone()
        return count