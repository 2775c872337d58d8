import uuid
from datetime import datetime, timedelta, timezone

import pytest

from ensemble.errors import DecodeError, ErrorCode, UnexpectedNullError
from ensemble.values import (
    Boolean,
    Bytes,
    CellKind,
    Float,
    Integer,
    Json,
    Nullable,
    Text,
    Timestamp,
    Uuid,
    classify_cell,
    decode_value,
)


def test_classify_cell_checks_bool_before_int() -> None:
    assert classify_cell(True) is CellKind.BOOLEAN
    assert classify_cell(1) is CellKind.INTEGER
    assert classify_cell(None) is CellKind.NULL
    assert classify_cell({"a": 1}) is CellKind.DOCUMENT


def test_classify_cell_rejects_unknown_types() -> None:
    with pytest.raises(DecodeError):
        classify_cell(object())


@pytest.mark.parametrize(
    "field_type,value",
    [
        (Integer(), -42),
        (Integer(8, unsigned=True), 255),
        (Float(), 1.5),
        (Text(), "héllo"),
        (Boolean(), True),
        (Json(), {"tags": ["a", "b"], "n": 1}),
        (Bytes(), b"\x00\x01"),
        (Uuid(), uuid.UUID("12345678-1234-4234-8234-123456789abc")),
        (Timestamp(), datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)),
        (Nullable(Text()), None),
        (Nullable(Integer(32)), 7),
    ],
)
def test_encode_then_decode_returns_the_value(field_type, value) -> None:
    assert field_type.decode(field_type.encode(value)) == value


def test_null_into_non_nullable_raises_unexpected_null() -> None:
    with pytest.raises(UnexpectedNullError) as excinfo:
        Text().decode(None)
    assert excinfo.value.code == ErrorCode.UNEXPECTED_NULL


def test_nullable_decodes_null_to_none() -> None:
    assert Nullable(Integer()).decode(None) is None


def test_kind_mismatch_raises_decode_error() -> None:
    with pytest.raises(DecodeError):
        Text().decode(12)
    with pytest.raises(DecodeError):
        Integer().decode("12")


def test_integer_range_is_checked_both_ways() -> None:
    small = Integer(8)
    with pytest.raises(DecodeError):
        small.decode(200)
    with pytest.raises(ValueError):
        small.encode(-129)
    with pytest.raises(TypeError):
        small.encode(True)
    with pytest.raises(ValueError):
        Integer(12)


def test_decode_value_names_the_column() -> None:
    with pytest.raises(DecodeError) as excinfo:
        decode_value(Integer(), "abc", "age")
    assert excinfo.value.column == "age"
    assert "age" in str(excinfo.value)


def test_decode_value_keeps_null_error_type() -> None:
    with pytest.raises(UnexpectedNullError) as excinfo:
        decode_value(Text(), None, "name")
    assert excinfo.value.column == "name"


def test_boolean_accepts_zero_and_one_only() -> None:
    assert Boolean().decode(0) is False
    assert Boolean().decode(1) is True
    with pytest.raises(DecodeError):
        Boolean().decode(2)


def test_float_rejects_non_finite_values() -> None:
    assert Float().decode(3) == 3.0
    with pytest.raises(ValueError):
        Float().encode(float("nan"))


def test_timestamp_normalizes_to_utc() -> None:
    naive = datetime(2024, 1, 1, 8, 0)
    assert Timestamp().decode(naive) == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
    parsed = Timestamp().decode("2024-01-01T08:00:00Z")
    assert parsed.tzinfo is not None
    assert parsed == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
    shifted = Timestamp().decode("2024-01-01T10:00:00+02:00")
    assert shifted.utcoffset() == timedelta(0)
    assert shifted.hour == 8


def test_timestamp_requires_timezone_on_encode() -> None:
    with pytest.raises(ValueError):
        Timestamp().encode(datetime(2024, 1, 1))
    with pytest.raises(DecodeError):
        Timestamp().decode("yesterday")


def test_uuid_decodes_text_and_bytes() -> None:
    value = uuid.uuid4()
    assert Uuid().decode(str(value)) == value
    assert Uuid().decode(value.bytes) == value
    assert Uuid().encode(value) == str(value)
    with pytest.raises(DecodeError):
        Uuid().decode(b"short")


def test_uuid_generate_honours_version() -> None:
    assert Uuid(1).generate().version == 1
    assert Uuid(4).generate().version == 4


def test_json_encoding_is_compact() -> None:
    assert Json().encode({"a": [1, 2]}) == '{"a":[1,2]}'
    with pytest.raises(ValueError):
        Json().encode({"bad": object()})
    with pytest.raises(DecodeError):
        Json().decode("{not json")


def test_nullable_cannot_be_nested() -> None:
    with pytest.raises(TypeError):
        Nullable(Nullable(Text()))
    assert Nullable(Text()).base == Text()


def test_non_nullable_encode_rejects_none() -> None:
    with pytest.raises(ValueError):
        Text().encode(None)
    assert Nullable(Text()).encode(None) is None
