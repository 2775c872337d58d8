"""Field types and the cell <-> value conversion table."""

from __future__ import annotations

import enum
import json
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from .errors import DecodeError, UnexpectedNullError


class CellKind(enum.Enum):
    """Tagged variant describing the shape of a raw driver cell."""

    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BYTES = "bytes"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    DOCUMENT = "document"


def classify_cell(raw: Any) -> CellKind:
    if raw is None:
        return CellKind.NULL
    # bool before int: bool is an int subclass
    if isinstance(raw, bool):
        return CellKind.BOOLEAN
    if isinstance(raw, int):
        return CellKind.INTEGER
    if isinstance(raw, float):
        return CellKind.FLOAT
    if isinstance(raw, str):
        return CellKind.TEXT
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return CellKind.BYTES
    if isinstance(raw, datetime):
        return CellKind.TIMESTAMP
    if isinstance(raw, uuid.UUID):
        return CellKind.UUID
    if isinstance(raw, (dict, list)):
        return CellKind.DOCUMENT
    raise DecodeError(f"unsupported cell value of type {type(raw).__name__}")


def utc_now() -> datetime:
    """Return the current instant in the internal timestamp representation."""
    return datetime.now(timezone.utc)


Converter = Callable[[Any], Any]


class FieldType:
    """Base class for column value types.

    Subclasses fill ``_conversions`` with one converter per accepted
    :class:`CellKind`; any other kind is a type mismatch.
    """

    name = "field"
    nullable = False

    def __init__(self) -> None:
        self._conversions: Dict[CellKind, Converter] = {}

    def decode(self, raw: Any) -> Any:
        kind = classify_cell(raw)
        if kind is CellKind.NULL:
            if self.nullable:
                return None
            raise UnexpectedNullError(f"NULL is not valid for non-nullable {self.name}")
        converter = self._conversions.get(kind)
        if converter is None:
            raise DecodeError(f"cannot decode {kind.value} cell as {self.name}")
        return converter(raw)

    def encode(self, value: Any) -> Any:
        if value is None:
            if self.nullable:
                return None
            raise ValueError(f"None is not valid for non-nullable {self.name}")
        return self._encode(value)

    def _encode(self, value: Any) -> Any:
        raise NotImplementedError

    @property
    def base(self) -> "FieldType":
        return self

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self._identity() == other._identity()  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self._identity()))

    def _identity(self) -> tuple:
        return ()

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Integer(FieldType):
    name = "integer"

    def __init__(self, bits: int = 64, *, unsigned: bool = False) -> None:
        super().__init__()
        if bits not in (8, 16, 32, 64):
            raise ValueError("integer width must be 8, 16, 32 or 64 bits")
        self.bits = bits
        self.unsigned = unsigned
        if unsigned:
            self.min_value = 0
            self.max_value = (1 << bits) - 1
        else:
            self.min_value = -(1 << (bits - 1))
            self.max_value = (1 << (bits - 1)) - 1
        self._conversions = {CellKind.INTEGER: self._from_int}

    def _from_int(self, raw: int) -> int:
        if raw < self.min_value or raw > self.max_value:
            raise DecodeError(f"{raw} is out of range for {self._label()}")
        return raw

    def _encode(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{self._label()} requires an int, got {type(value).__name__}")
        if value < self.min_value or value > self.max_value:
            raise ValueError(f"{value} is out of range for {self._label()}")
        return value

    def _label(self) -> str:
        return f"{'u' if self.unsigned else 'i'}{self.bits}"

    def _identity(self) -> tuple:
        return (self.bits, self.unsigned)

    def __repr__(self) -> str:
        return f"Integer({self.bits}, unsigned={self.unsigned})"


class Float(FieldType):
    name = "float"

    def __init__(self) -> None:
        super().__init__()
        self._conversions = {
            CellKind.FLOAT: float,
            CellKind.INTEGER: float,
        }

    def _encode(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"float field requires a number, got {type(value).__name__}")
        if math.isnan(value) or math.isinf(value):
            raise ValueError("float value must be finite")
        return float(value)


class Text(FieldType):
    name = "text"

    def __init__(self) -> None:
        super().__init__()
        self._conversions = {CellKind.TEXT: str}

    def _encode(self, value: Any) -> str:
        if not isinstance(value, str):
            raise TypeError(f"text field requires a str, got {type(value).__name__}")
        return value


class Boolean(FieldType):
    name = "boolean"

    def __init__(self) -> None:
        super().__init__()
        self._conversions = {
            CellKind.BOOLEAN: bool,
            CellKind.INTEGER: self._from_int,
        }

    @staticmethod
    def _from_int(raw: int) -> bool:
        # SQLite and MySQL store booleans as 0/1
        if raw not in (0, 1):
            raise DecodeError(f"integer {raw} is not a boolean")
        return bool(raw)

    def _encode(self, value: Any) -> bool:
        if not isinstance(value, bool):
            raise TypeError(f"boolean field requires a bool, got {type(value).__name__}")
        return value


class Timestamp(FieldType):
    """Instant normalised to a timezone-aware UTC datetime."""

    name = "timestamp"

    def __init__(self) -> None:
        super().__init__()
        self._conversions = {
            CellKind.TIMESTAMP: self._from_datetime,
            CellKind.TEXT: self._from_text,
        }

    @staticmethod
    def _from_datetime(raw: datetime) -> datetime:
        if raw.tzinfo is None or raw.tzinfo.utcoffset(raw) is None:
            return raw.replace(tzinfo=timezone.utc)
        return raw.astimezone(timezone.utc)

    @classmethod
    def _from_text(cls, raw: str) -> datetime:
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as err:
            raise DecodeError(f"'{raw}' is not an ISO-8601 timestamp") from err
        return cls._from_datetime(parsed)

    def _encode(self, value: Any) -> datetime:
        if not isinstance(value, datetime):
            raise TypeError(f"timestamp field requires a datetime, got {type(value).__name__}")
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("timestamp value must include timezone info")
        return value.astimezone(timezone.utc)


class Uuid(FieldType):
    name = "uuid"

    def __init__(self, version: int = 4) -> None:
        super().__init__()
        self.version = version
        self._conversions = {
            CellKind.UUID: lambda raw: raw,
            CellKind.TEXT: self._from_text,
            CellKind.BYTES: self._from_bytes,
        }

    @staticmethod
    def _from_text(raw: str) -> uuid.UUID:
        try:
            return uuid.UUID(raw)
        except ValueError as err:
            raise DecodeError(f"'{raw}' is not a UUID") from err

    @staticmethod
    def _from_bytes(raw: Union[bytes, bytearray, memoryview]) -> uuid.UUID:
        buf = bytes(raw)
        if len(buf) != 16:
            raise DecodeError(f"UUID bytes must be 16 long, got {len(buf)}")
        return uuid.UUID(bytes=buf)

    def generate(self) -> uuid.UUID:
        if self.version == 1:
            return uuid.uuid1()
        if self.version == 4:
            return uuid.uuid4()
        raise ValueError(f"cannot generate UUID version {self.version}")

    def _encode(self, value: Any) -> str:
        if isinstance(value, str):
            value = self._from_text(value)
        if not isinstance(value, uuid.UUID):
            raise TypeError(f"uuid field requires a UUID, got {type(value).__name__}")
        return str(value)

    def _identity(self) -> tuple:
        return (self.version,)

    def __repr__(self) -> str:
        return f"Uuid(version={self.version})"


class Json(FieldType):
    name = "json"

    def __init__(self) -> None:
        super().__init__()
        self._conversions = {
            CellKind.TEXT: self._from_text,
            CellKind.BYTES: lambda raw: self._from_text(bytes(raw).decode("utf-8")),
            CellKind.DOCUMENT: lambda raw: raw,
        }

    @staticmethod
    def _from_text(raw: str) -> Any:
        try:
            return json.loads(raw)
        except ValueError as err:
            raise DecodeError("cell does not contain valid JSON") from err

    def _encode(self, value: Any) -> str:
        try:
            return json.dumps(value, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as err:
            raise ValueError(f"value is not JSON serializable: {err}") from err


class Bytes(FieldType):
    name = "bytes"

    def __init__(self) -> None:
        super().__init__()
        self._conversions = {CellKind.BYTES: bytes}

    def _encode(self, value: Any) -> bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"bytes field requires bytes, got {type(value).__name__}")
        return bytes(value)


class Nullable(FieldType):
    """Wrap a field type so NULL decodes to ``None``."""

    nullable = True

    def __init__(self, inner: FieldType) -> None:
        super().__init__()
        if not isinstance(inner, FieldType):
            raise TypeError("Nullable() requires a field type")
        if isinstance(inner, Nullable):
            raise TypeError("Nullable() cannot wrap another Nullable")
        self.inner = inner
        self.name = f"nullable {inner.name}"

    @property
    def base(self) -> FieldType:
        return self.inner

    def decode(self, raw: Any) -> Any:
        if raw is None:
            return None
        return self.inner.decode(raw)

    def _encode(self, value: Any) -> Any:
        return self.inner.encode(value)

    def _identity(self) -> tuple:
        return (self.inner,)

    def __repr__(self) -> str:
        return f"Nullable({self.inner!r})"


def decode_value(field_type: FieldType, raw: Any, column: Optional[str] = None) -> Any:
    try:
        return field_type.decode(raw)
    except DecodeError as err:
        if column is None:
            raise
        raise err.for_column(column) from err
