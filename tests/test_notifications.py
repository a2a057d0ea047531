import sqlite3
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from spotlink.filters import Filters
from spotlink.notifications import (
    Notification,
    NotificationModel,
    NotificationType,
    validate_notification,
)
from spotlink.records import RecordNotFoundError

SAFELIST = ["id", "title", "created_at", "-id", "-title", "-created_at"]


@pytest.fixture
def model():
    connection = sqlite3.connect(":memory:")
    yield NotificationModel(connection)
    connection.close()


def note(user_id, title="Reminder", message="Your reservation starts soon", **kwargs):
    return Notification(
        user_id=user_id,
        type=kwargs.pop("type", NotificationType.RESERVATION_REMINDER),
        title=title,
        message=message,
        **kwargs,
    )


def test_type_enum_values():
    assert NotificationType("payment_due") is NotificationType.PAYMENT_DUE
    assert note(uuid.uuid4()).type == "reservation_reminder"


def test_validate_valid_notification():
    assert validate_notification(note(uuid.uuid4())) == {}


def test_validate_missing_title_and_message():
    errors = validate_notification(note(uuid.uuid4(), title="", message=""))
    assert errors["title"] == "must be provided"
    assert errors["message"] == "must be provided"


def test_validate_lengths():
    errors = validate_notification(note(uuid.uuid4(), title="t" * 101, message="m" * 501))
    assert errors["title"] == "must not be more than 100 characters long"
    assert errors["message"] == "must not be more than 500 characters long"


def test_validate_bad_type():
    errors = validate_notification(note(uuid.uuid4(), type="party"))
    assert errors == {"type": "must be a valid notification type"}


def test_insert_and_get_round_trip(model):
    user_id = uuid.uuid4()
    original = note(user_id, data='{"spot": "A1"}')
    model.insert(original)
    assert original.id is not None
    fetched = model.get(original.id)
    assert fetched == original
    assert fetched.to_dict()["user_id"] == str(user_id)


def test_get_missing_raises(model):
    with pytest.raises(RecordNotFoundError):
        model.get(uuid.uuid4())


def test_get_all_for_user_sorted_and_paged(model):
    user_id = uuid.uuid4()
    for title in ["Charlie", "Alpha", "Bravo"]:
        model.insert(note(user_id, title=title))
    model.insert(note(uuid.uuid4(), title="Other user"))

    filters = Filters(page=1, page_size=2, sort="title", sort_safelist=SAFELIST)
    items, metadata = model.get_all_for_user(user_id, filters)
    assert [n.title for n in items] == ["Alpha", "Bravo"]
    assert metadata.total_records == 3
    assert metadata.last_page == 2

    filters = Filters(page=2, page_size=2, sort="-title", sort_safelist=SAFELIST)
    items, _ = model.get_all_for_user(user_id, filters)
    assert [n.title for n in items] == ["Alpha"]


def test_get_all_for_user_empty(model):
    filters = Filters(page=1, page_size=10, sort="id", sort_safelist=SAFELIST)
    items, metadata = model.get_all_for_user(uuid.uuid4(), filters)
    assert items == []
    assert metadata.to_dict() == {}


def test_unread_and_mark_as_read(model):
    user_id = uuid.uuid4()
    first, second = note(user_id), note(user_id, is_read=True)
    model.insert(first)
    model.insert(second)
    assert model.get_unread_count_for_user(user_id) == 1
    assert [n.id for n in model.get_unread_for_user(user_id, 10)] == [first.id]

    model.mark_as_read(first.id)
    assert model.get(first.id).is_read is True
    assert model.get_unread_for_user(user_id, 10) == []


def test_mark_as_read_missing_raises(model):
    with pytest.raises(RecordNotFoundError):
        model.mark_as_read(uuid.uuid4())


def test_mark_all_as_read_for_user(model):
    user_id = uuid.uuid4()
    other_id = uuid.uuid4()
    for owner in (user_id, user_id, other_id):
        model.insert(note(owner))
    model.mark_all_as_read_for_user(user_id)
    assert model.get_unread_count_for_user(user_id) == 0
    assert model.get_unread_count_for_user(other_id) == 1


def test_delete(model):
    notification = note(uuid.uuid4())
    model.insert(notification)
    model.delete(notification.id)
    with pytest.raises(RecordNotFoundError):
        model.get(notification.id)
    with pytest.raises(RecordNotFoundError):
        model.delete(notification.id)


def test_delete_all_for_user(model):
    user_id = uuid.uuid4()
    kept = note(uuid.uuid4())
    model.insert(note(user_id))
    model.insert(kept)
    model.delete_all_for_user(user_id)
    assert model.get_unread_count_for_user(user_id) == 0
    assert model.get(kept.id) == kept


def test_delete_old_notifications(model):
    notification = note(uuid.uuid4())
    model.insert(notification)
    now = datetime.now(timezone.utc)
    model.delete_old_notifications(now - timedelta(days=1))
    assert model.get(notification.id).id == notification.id
    model.delete_old_notifications(now + timedelta(days=1))
    with pytest.raises(RecordNotFoundError):
        model.get(notification.id)


def test_bulk_insert(model):
    user_id = uuid.uuid4()
    batch = [note(user_id, title=f"n{i}") for i in range(4)]
    model.bulk_insert(batch)
    assert model.get_unread_count_for_user(user_id) == len(batch)


def test_bulk_insert_is_atomic(model):
    user_id = uuid.uuid4()
    batch = [note(user_id), note(None)]
    with pytest.raises(sqlite3.IntegrityError):
        model.bulk_insert(batch)
    assert model.get_unread_count_for_user(user_id) == 0