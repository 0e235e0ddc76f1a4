"""
Value Coercion

The single rule set used to turn stored or sidecar values into output values,
one coercer per data type:

- text:    trimmed; an empty string is absent
- boolean: false is a real value; only a missing value is absent
- int:     truncated toward zero; exactly 0 is ABSENT
- decimal: a magnitude below the configured epsilon is ABSENT
- enum:    the resolved label (or code) as trimmed text

The numeric rules are a storage convention, not arithmetic: value records
have no separate "is set" flag, so a zero integer or a ~0 decimal stands for
"not set". An attribute whose true value is 0 cannot be expressed as a
catalog value; use the sidecar document with a text hint instead.

Write-time validation lives here too so that readers and writers agree on
what each data type accepts.
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Union

from vehicle_specs.config import get_settings
from vehicle_specs.database.models import DataType
from vehicle_specs.errors import ValidationError

settings = get_settings()

Scalar = Union[bool, int, float, str]

_TRUE_WORDS = {"1", "true", "yes", "y", "on"}
_FALSE_WORDS = {"0", "false", "no", "n", "off"}


def _to_decimal(raw: Any) -> Optional[Decimal]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        number = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def parse_boolean(raw: Any) -> Optional[bool]:
    """Interpret common boolean spellings; None when not recognizable"""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float, Decimal)):
        if raw == 1:
            return True
        if raw == 0:
            return False
        return None
    word = str(raw).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return None


def coerce_int(raw: Any) -> Optional[int]:
    number = _to_decimal(raw)
    if number is None:
        return None
    value = int(number)  # truncates toward zero
    return value if value != 0 else None


def coerce_decimal(raw: Any) -> Optional[float]:
    number = _to_decimal(raw)
    if number is None:
        return None
    value = float(number)
    if abs(value) < settings.catalog.numeric_epsilon:
        return None
    return value


def coerce_boolean(raw: Any) -> Optional[bool]:
    return parse_boolean(raw)


def coerce_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


_COERCERS: Dict[DataType, Callable[[Any], Optional[Scalar]]] = {
    DataType.INT: coerce_int,
    DataType.DECIMAL: coerce_decimal,
    DataType.BOOLEAN: coerce_boolean,
    DataType.TEXT: coerce_text,
    DataType.ENUM: coerce_text,
}


def as_data_type(value: Any, default: Optional[DataType] = None) -> Optional[DataType]:
    """Parse a loosely-typed data type hint; unknown hints yield the default"""
    if isinstance(value, DataType):
        return value
    if value is None:
        return default
    try:
        return DataType(str(value).strip().lower())
    except ValueError:
        return default


def coerce(data_type: DataType, raw: Any) -> Optional[Scalar]:
    """
    Coerce a raw value for output.

    Returns:
        The output value, or None when the value counts as absent
    """
    return _COERCERS[data_type](raw)


def canonical_value(value: Optional[Scalar]) -> str:
    """
    Deterministic serialization used for equality in difference detection.

    180 and 180.0 serialize identically; None and False do not.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
        if number == number.to_integral_value():
            return str(int(number))
        return format(number.normalize(), "f")
    return json.dumps(str(value), ensure_ascii=False)


def slots_for_write(data_type: DataType, raw: Any, code: str) -> Dict[str, Any]:
    """
    Validate a raw value against a data type and map it onto value slots.

    Enum values are resolved by the catalog, not here.

    Raises:
        ValidationError: The value does not fit the data type
    """
    slots: Dict[str, Any] = {
        "value_numeric": None,
        "value_text": None,
        "value_boolean": None,
        "value_enum_id": None,
    }

    if data_type == DataType.BOOLEAN:
        parsed = parse_boolean(raw)
        if parsed is None:
            raise ValidationError(f"Attribute {code} expects a boolean, got {raw!r}", code=code, value=raw)
        slots["value_boolean"] = parsed
    elif data_type in (DataType.INT, DataType.DECIMAL):
        number = _to_decimal(raw)
        if number is None:
            raise ValidationError(f"Attribute {code} expects a number, got {raw!r}", code=code, value=raw)
        if data_type == DataType.INT and number != number.to_integral_value():
            raise ValidationError(f"Attribute {code} expects an integer, got {raw!r}", code=code, value=raw)
        slots["value_numeric"] = float(number)
    elif data_type == DataType.TEXT:
        text = coerce_text(raw)
        if text is None:
            raise ValidationError(f"Attribute {code} expects non-empty text", code=code, value=raw)
        slots["value_text"] = text
    else:
        raise ValidationError(f"Attribute {code} is an enum; write it through its vocabulary", code=code, value=raw)

    return slots
