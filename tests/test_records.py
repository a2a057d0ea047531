from spotlink.records import (
    EditConflictError,
    FailedValidationError,
    RecordNotFoundError,
    add_error,
    check,
)


def test_add_error_keeps_first_message():
    errors = {}
    add_error(errors, "email", "must be provided")
    add_error(errors, "email", "must be a valid email address")
    assert errors == {"email": "must be provided"}


def test_check_adds_only_on_failure():
    errors = {}
    check(errors, True, "title", "must be provided")
    assert errors == {}
    check(errors, False, "title", "must be provided")
    assert errors == {"title": "must be provided"}


def test_check_does_not_overwrite_existing():
    errors = {}
    check(errors, False, "page_size", "must be greater than zero")
    check(errors, False, "page_size", "must be a maximum of 100")
    assert errors["page_size"] == "must be greater than zero"


def test_failed_validation_error_str_lists_fields():
    exc = FailedValidationError({"title": "must be provided"})
    assert str(exc) == "title: must be provided\n"
    assert exc.errors == {"title": "must be provided"}


def test_failed_validation_error_copies_mapping():
    source = {"a": "x"}
    exc = FailedValidationError(source)
    source["b"] = "y"
    assert exc.errors == {"a": "x"}


def test_default_messages():
    assert str(RecordNotFoundError()) == "record not found"
    assert str(EditConflictError()) == "edit conflict"
    assert str(RecordNotFoundError("custom")) == "custom"


def test_failed_validation_error_lists_every_field():
    errors = {}
    check(errors, False, "title", "must be provided")
    check(errors, False, "message", "must be provided")
    exc = FailedValidationError(errors)
    assert sorted(str(exc).splitlines()) == [
        "message: must be provided",
        "title: must be provided",
    ]


def test_failed_validation_error_built_from_checked_errors():
    errors = {}
    check(errors, True, "title", "must be provided")
    check(errors, False, "type", "must be a valid notification type")
    exc = FailedValidationError(errors)
    assert exc.errors == {"type": "must be a valid notification type"}
    assert str(exc) == "type: must be a valid notification type\n"