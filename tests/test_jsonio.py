import uuid

import pytest

from spotlink.jsonio import (
    BadRequestError,
    read_csv,
    read_id_param,
    read_int,
    read_json,
    read_string,
)

FIELDS = {"email": str, "count": int, "ratio": float, "flag": bool}


def test_read_json_returns_object():
    body = b'{"email": "user@example.com", "count": 3}'
    assert read_json(body, FIELDS) == {"email": "user@example.com", "count": 3}


def test_read_json_without_fields_returns_any_value():
    assert read_json("[1, 2, 3]") == [1, 2, 3]


def test_empty_body_is_rejected():
    with pytest.raises(BadRequestError, match="body must not be empty"):
        read_json(b"   ")


def test_truncated_body_is_badly_formed():
    with pytest.raises(BadRequestError) as info:
        read_json(b'{"email": "x"')
    assert str(info.value) == "body contains badly-formed JSON"


def test_syntax_error_reports_position():
    with pytest.raises(BadRequestError) as info:
        read_json(b'{"email": x}')
    assert str(info.value).startswith("body contains badly-formed JSON (at character ")


def test_unknown_key_is_rejected():
    with pytest.raises(BadRequestError) as info:
        read_json(b'{"nickname": "a"}', FIELDS)
    assert str(info.value) == 'body contains unknown key "nickname"'


def test_wrong_type_for_field():
    with pytest.raises(BadRequestError) as info:
        read_json(b'{"count": "three"}', FIELDS)
    assert str(info.value) == 'body contains incorrect JSON type for field "count"'


def test_bool_is_not_an_int():
    with pytest.raises(BadRequestError, match="incorrect JSON type for field"):
        read_json(b'{"count": true}', FIELDS)


def test_integer_accepted_for_float_field_and_null_for_any():
    assert read_json(b'{"ratio": 2, "email": null}', FIELDS) == {"ratio": 2, "email": None}


def test_non_object_with_fields_is_rejected():
    with pytest.raises(BadRequestError, match="incorrect JSON type"):
        read_json(b"[1]", FIELDS)


def test_multiple_values_rejected():
    with pytest.raises(BadRequestError) as info:
        read_json(b"{} {}")
    assert str(info.value) == "body must only contain a single JSON value"


def test_body_too_large():
    with pytest.raises(BadRequestError) as info:
        read_json(b'{"email": "abcdef"}', FIELDS, max_bytes=5)
    assert str(info.value) == "body must not be larger than 5 bytes"


def test_nan_constant_rejected():
    with pytest.raises(BadRequestError, match="badly-formed JSON"):
        read_json(b'{"ratio": NaN}', FIELDS)


def test_read_id_param_round_trip():
    value = uuid.uuid4()
    assert read_id_param(str(value)) == value


def test_read_id_param_invalid():
    with pytest.raises(BadRequestError, match="invalid id parameter"):
        read_id_param("not-a-uuid")


def test_read_string_and_default():
    query = {"sort": ["-make"], "empty": [""]}
    assert read_string(query, "sort", "id") == "-make"
    assert read_string(query, "empty", "id") == "id"
    assert read_string(query, "missing", "id") == "id"


def test_read_csv():
    query = {"tags": ["a,b,c"]}
    assert read_csv(query, "tags", []) == ["a", "b", "c"]
    assert read_csv(query, "other", ["x"]) == ["x"]


def test_read_int_valid_and_default():
    errors = {}
    assert read_int({"page": ["7"]}, "page", 1, errors) == 7
    assert read_int({}, "page", 1, errors) == 1
    assert errors == {}


@pytest.mark.parametrize("text", ["abc", "1.5", " 3", "1_000", "99999999999999999999"])
def test_read_int_invalid_records_error(text):
    errors = {}
    assert read_int({"page": [text]}, "page", 1, errors) == 1
    assert errors == {"page": "must be an integer"}