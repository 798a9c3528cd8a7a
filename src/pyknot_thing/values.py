"""Typed value coercion: put thresholds, limits and samples in the slot named by a value type."""

import math
from typing import Any

from .errors import ValidationError
from .storage import ConfigSource, ScalarKind
from .types import TypedValue, ValueType

_STORAGE_KIND: dict[ValueType, ScalarKind] = {
    ValueType.INT: ScalarKind.INT,
    ValueType.UINT: ScalarKind.UINT,
    ValueType.INT64: ScalarKind.INT64,
    ValueType.UINT64: ScalarKind.UINT64,
    ValueType.FLOAT: ScalarKind.FLOAT,
    ValueType.BOOL: ScalarKind.BOOL,
}

_INT_RANGES: dict[ValueType, tuple[int, int]] = {
    ValueType.INT: (-(2**31), 2**31 - 1),
    ValueType.UINT: (0, 2**32 - 1),
    ValueType.INT64: (-(2**63), 2**63 - 1),
    ValueType.UINT64: (0, 2**64 - 1),
}


def _value_type(value_type: int) -> ValueType:
    try:
        vt = ValueType(value_type)
    except ValueError:
        raise ValidationError("value_type", f"Unknown value type: {value_type!r}") from None
    if vt == ValueType.RAW:
        raise ValidationError("value_type", "Raw values have no typed slot")
    return vt


def coerce_limit(value_type: int, raw: Any) -> TypedValue:
    """
    Return raw as a TypedValue in the slot for value_type.

    The slot always comes from value_type, never from the type of raw. Integers must be
    integral and fit the slot width; booleans accept True/False or 0/1. RAW and unknown
    value types raise ValidationError.
    """
    vt = _value_type(value_type)

    if vt == ValueType.BOOL:
        if isinstance(raw, bool):
            return TypedValue(vt, raw)
        if isinstance(raw, int) and raw in (0, 1):
            return TypedValue(vt, bool(raw))
        raise ValidationError("limit", f"Not a bool value: {raw!r}")

    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValidationError("limit", f"Not a numeric value for {vt.name}: {raw!r}")

    if vt == ValueType.FLOAT:
        if not math.isfinite(raw):
            raise ValidationError("limit", f"Not a finite value: {raw!r}")
        return TypedValue(vt, float(raw))

    if isinstance(raw, float) and not raw.is_integer():
        raise ValidationError("limit", f"Not an integral value for {vt.name}: {raw!r}")
    num = int(raw)
    lo, hi = _INT_RANGES[vt]
    if not lo <= num <= hi:
        raise ValidationError("limit", f"{vt.name} value out of range {lo}..{hi}: {num}")
    return TypedValue(vt, num)


def read_limit(source: ConfigSource, group: str, key: str, value_type: int) -> TypedValue | None:
    """Read group/key with the storage kind matching value_type; None if absent or unreadable."""
    vt = _value_type(value_type)
    raw = source.read(group, key, _STORAGE_KIND[vt])
    if raw is None:
        return None
    try:
        return coerce_limit(vt, raw)
    except ValidationError:
        # nan/inf parse as float but are not usable limits
        return None


def write_limit(source: ConfigSource, group: str, key: str, limit: TypedValue) -> None:
    """Write limit with the storage kind matching its value type."""
    vt = _value_type(limit.value_type)
    source.write(group, key, _STORAGE_KIND[vt], limit.value)
