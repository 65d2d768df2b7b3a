from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
import math
import re
from typing import Any

from sqlalchemy import JSON, REAL, BigInteger, Boolean, DateTime, Double, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeEngine


_I32_MIN, _I32_MAX = -(2**31), 2**31 - 1
_I64_MIN, _I64_MAX = -(2**63), 2**63 - 1
_F32_MAX = 3.4028234663852886e38
# Any number of fraction digits is valid RFC 3339; fromisoformat wants 3 or 6.
_SECONDS_FRACTION = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


class ColumnType(str, Enum):
    """Closed set of scalar kinds a column may declare."""

    BOOL = "bool"
    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    STRING = "string"
    TIMESTAMP = "timestamp"
    JSON = "json"


# Friendly spellings accepted in schema files; they resolve to the canonical kinds.
_ALIASES: dict[str, ColumnType] = {
    "boolean": ColumnType.BOOL,
    "integer": ColumnType.I64,
    "float": ColumnType.F64,
    "text": ColumnType.STRING,
}


class CoercionError(ValueError):
    # Raised when a JSON value's shape is not accepted by a column kind.
    def __init__(self, actual_shape: str) -> None:
        super().__init__(actual_shape)
        self.actual_shape = actual_shape


def parse_type_token(token: Any) -> ColumnType | None:
    # Resolve a schema type token; None means the token is not recognized.
    if not isinstance(token, str):
        return None
    normalized = token.strip().lower()
    try:
        return ColumnType(normalized)
    except ValueError:
        return _ALIASES.get(normalized)


def json_shape(value: Any) -> str:
    # Describe a decoded JSON value without echoing its content.
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def coerce(column_type: ColumnType, value: Any) -> Any:
    """Convert a non-null JSON value into the typed value bound for ``column_type``.

    Raises ``CoercionError`` carrying the offending JSON shape when the value is
    not acceptable. Null handling belongs to the caller because it depends on the
    column's nullability, not on its kind.
    """
    if column_type is ColumnType.BOOL:
        if isinstance(value, bool):
            return value
        raise CoercionError(json_shape(value))
    if column_type is ColumnType.I32:
        return _coerce_int(value, _I32_MIN, _I32_MAX)
    if column_type is ColumnType.I64:
        return _coerce_int(value, _I64_MIN, _I64_MAX)
    if column_type is ColumnType.F32:
        return _coerce_float(value, _F32_MAX)
    if column_type is ColumnType.F64:
        return _coerce_float(value, None)
    if column_type is ColumnType.STRING:
        if isinstance(value, str):
            return value
        raise CoercionError(json_shape(value))
    if column_type is ColumnType.TIMESTAMP:
        return _coerce_timestamp(value)
    if column_type is ColumnType.JSON:
        return value
    raise AssertionError(f"unhandled column type {column_type!r}")


def sql_type(column_type: ColumnType) -> TypeEngine:
    # Parameter encoding used when binding values of each kind.
    if column_type is ColumnType.BOOL:
        return Boolean()
    if column_type is ColumnType.I32:
        return Integer()
    if column_type is ColumnType.I64:
        return BigInteger()
    if column_type is ColumnType.F32:
        return REAL()
    if column_type is ColumnType.F64:
        return Double()
    if column_type is ColumnType.STRING:
        return String()
    if column_type is ColumnType.TIMESTAMP:
        return DateTime(timezone=True)
    if column_type is ColumnType.JSON:
        # JSON null would otherwise be stored for absent values instead of SQL NULL.
        return JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")
    raise AssertionError(f"unhandled column type {column_type!r}")


def _coerce_int(value: Any, lower: int, upper: int) -> int:
    # bool is an int subclass in Python but a distinct JSON shape.
    if isinstance(value, bool) or not isinstance(value, int):
        raise CoercionError(json_shape(value))
    if not lower <= value <= upper:
        raise CoercionError("integer (out of range)")
    return value


def _coerce_float(value: Any, limit: float | None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CoercionError(json_shape(value))
    try:
        result = float(value)
    except OverflowError as exc:
        raise CoercionError("number (out of range)") from exc
    if not math.isfinite(result):
        raise CoercionError("number (not finite)")
    if limit is not None and abs(result) > limit:
        raise CoercionError("number (out of range)")
    return result


def _coerce_timestamp(value: Any) -> datetime:
    # Numbers are UNIX seconds (fraction allowed); strings must be RFC 3339.
    if isinstance(value, bool):
        raise CoercionError(json_shape(value))
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise CoercionError("number (not finite)")
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise CoercionError("number (out of range)") from exc
    if isinstance(value, str):
        return _parse_rfc3339(value)
    raise CoercionError(json_shape(value))


def _parse_rfc3339(value: str) -> datetime:
    text = value.strip()
    # RFC 3339 requires a full date, a time and an explicit offset.
    if len(text) < 20 or text[10] not in "Tt ":
        raise CoercionError("string (not RFC 3339)")
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    text = _SECONDS_FRACTION.sub(_six_digit_fraction, text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise CoercionError("string (not RFC 3339)") from exc
    if parsed.tzinfo is None:
        raise CoercionError("string (not RFC 3339)")
    return parsed


def _six_digit_fraction(match: re.Match) -> str:
    # Pad or truncate to microseconds.
    return f"{match.group(1)}.{(match.group(2) + '000000')[:6]}"
