import sqlite3
import uuid

import pytest

from spotlink.filters import Filters
from spotlink.parking_lots import (
    ParkingLot,
    ParkingLotModel,
    haversine_km,
    validate_parking_lot,
)
from spotlink.records import EditConflictError, RecordNotFoundError

OWNER = uuid.uuid4()


def make_lot(name="Central", latitude=0.0, longitude=0.0, owner=OWNER, is_active=True, **kw):
    return ParkingLot(
        name=name,
        address="1 Main Street",
        latitude=latitude,
        longitude=longitude,
        total_spots=10,
        hourly_rate=2.5,
        open_time="08:00",
        close_time="20:00",
        owner_id=owner,
        is_active=is_active,
        **kw,
    )


@pytest.fixture
def model():
    db = sqlite3.connect(":memory:")
    yield ParkingLotModel(db)
    db.close()


def sort_filters(sort="name"):
    return Filters(page=1, page_size=20, sort=sort, sort_safelist=["id", "name", "-name"])


def test_valid_lot_has_no_errors():
    assert validate_parking_lot(make_lot()) == {}


def test_validation_messages():
    lot = make_lot(name="", latitude=91.0, longitude=-181.0)
    lot.address = ""
    lot.total_spots = 0
    lot.hourly_rate = -1
    lot.open_time = ""
    lot.close_time = ""
    errors = validate_parking_lot(lot)
    assert errors == {
        "name": "must be provided",
        "address": "must be provided",
        "latitude": "must be between -90 and 90",
        "longitude": "must be between -180 and 180",
        "total_spots": "must be greater than zero",
        "hourly_rate": "must not be negative",
        "open_time": "must be provided",
        "close_time": "must be provided",
    }


def test_validation_upper_limits():
    lot = make_lot(name="x" * 101, daily_rate=10001.0, monthly_rate=100001.0)
    lot.total_spots = 10001
    lot.hourly_rate = 1001
    errors = validate_parking_lot(lot)
    assert errors["name"] == "must not be more than 100 characters long"
    assert errors["total_spots"] == "must not exceed 10,000"
    assert errors["hourly_rate"] == "must not exceed 1000"
    assert errors["daily_rate"] == "must not exceed 10,000"
    assert errors["monthly_rate"] == "must not exceed 100,000"


def test_name_length_counts_bytes():
    assert "name" in validate_parking_lot(make_lot(name="é" * 51))
    assert "name" not in validate_parking_lot(make_lot(name="x" * 100))


def test_negative_optional_rates():
    errors = validate_parking_lot(make_lot(daily_rate=-1.0, monthly_rate=-1.0))
    assert errors["daily_rate"] == "must not be negative"
    assert errors["monthly_rate"] == "must not be negative"


def test_haversine_same_point_is_zero():
    assert haversine_km(51.5, -0.1, 51.5, -0.1) == pytest.approx(0.0, abs=1e-6)


def test_haversine_symmetric_and_proportional():
    assert haversine_km(10, 20, 30, 40) == pytest.approx(haversine_km(30, 40, 10, 20))
    assert haversine_km(0, 0, 2, 0) == pytest.approx(2 * haversine_km(0, 0, 1, 0))


def test_insert_and_get_round_trip(model):
    lot = make_lot(daily_rate=15.0)
    model.insert(lot)
    assert lot.version == 1
    fetched = model.get(lot.id)
    assert fetched == lot


def test_get_missing_raises(model):
    with pytest.raises(RecordNotFoundError):
        model.get(uuid.uuid4())


def test_update_bumps_version_and_detects_conflict(model):
    lot = make_lot()
    model.insert(lot)
    stale = model.get(lot.id)
    lot.name = "Renamed"
    model.update(lot)
    assert lot.version == 2
    assert model.get(lot.id).name == "Renamed"
    with pytest.raises(EditConflictError):
        model.update(stale)


def test_delete(model):
    lot = make_lot()
    model.insert(lot)
    model.delete(lot.id)
    with pytest.raises(RecordNotFoundError):
        model.get(lot.id)
    with pytest.raises(RecordNotFoundError):
        model.delete(lot.id)


def test_get_all_returns_active_sorted(model):
    for name in ["Bravo", "Alpha", "Charlie"]:
        model.insert(make_lot(name=name))
    model.insert(make_lot(name="Hidden", is_active=False))
    lots, metadata = model.get_all(sort_filters("-name"))
    assert [lot.name for lot in lots] == ["Charlie", "Bravo", "Alpha"]
    assert metadata.total_records == 3
    assert metadata.current_page == 1


def test_get_all_empty_gives_empty_metadata(model):
    lots, metadata = model.get_all(sort_filters())
    assert lots == []
    assert metadata.to_dict() == {}


def test_get_by_owner(model):
    other = uuid.uuid4()
    model.insert(make_lot(name="Mine"))
    model.insert(make_lot(name="Mine too", is_active=False))
    model.insert(make_lot(name="Theirs", owner=other))
    lots, metadata = model.get_by_owner(OWNER, sort_filters())
    assert [lot.name for lot in lots] == ["Mine", "Mine too"]
    assert metadata.total_records == 2


def test_search_by_location_filters_and_orders(model):
    model.insert(make_lot(name="Far", latitude=5.0))
    model.insert(make_lot(name="Near", latitude=0.5))
    model.insert(make_lot(name="Here", latitude=0.0))
    model.insert(make_lot(name="Closed", latitude=0.0, is_active=False))
    lots, metadata = model.search_by_location(0.0, 0.0, 100.0, sort_filters())
    assert [lot.name for lot in lots] == ["Here", "Near"]
    assert metadata.total_records == 2


def test_available_spots(model):
    lot = make_lot()
    model.insert(lot)
    rows = [(0, 0), (1, 0), (0, 1)]
    with model._db:
        for occupied, reserved in rows:
            model._db.execute(
                "INSERT INTO parking_spots (id, parking_lot_id, is_occupied, is_reserved) "
                "VALUES (?, ?, ?, ?)",
                (str(uuid.uuid4()), str(lot.id), occupied, reserved),
            )
    assert model.get_available_spots(lot.id) == 1
    assert model.get_available_spots(uuid.uuid4()) == 0


def test_to_dict_keys():
    lot = make_lot()
    data = lot.to_dict()
    assert data["owner_id"] == str(OWNER)
    assert data["daily_rate"] is None
    assert data["open_time"] == "08:00"