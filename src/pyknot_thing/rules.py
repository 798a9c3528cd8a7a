"""Validation rules for schemas, event settings and bit-size/value-type pairings. No state."""

from typing import NamedTuple

from .types import (
    EVENT_FLAG_MASK,
    UNIT_NOT_APPLICABLE,
    UNIT_SYMBOLS,
    EventFlag,
    TypedValue,
    TypeId,
    ValueType,
)

NUMERIC_VALUE_TYPES = frozenset(
    {ValueType.INT, ValueType.UINT, ValueType.INT64, ValueType.UINT64, ValueType.FLOAT}
)

_NOT_APPLICABLE = frozenset({UNIT_NOT_APPLICABLE})


class SchemaRule(NamedTuple):
    """Value types and units accepted for one type id."""

    value_types: frozenset[ValueType]
    units: frozenset[int]


def _basic_rule(type_id: TypeId) -> SchemaRule:
    return SchemaRule(NUMERIC_VALUE_TYPES, frozenset(range(1, len(UNIT_SYMBOLS[type_id]) + 1)))


SCHEMA_TABLE: dict[TypeId, SchemaRule] = {
    TypeId.NONE: SchemaRule(frozenset(ValueType), _NOT_APPLICABLE),
    **{type_id: _basic_rule(type_id) for type_id in UNIT_SYMBOLS},
    TypeId.PRESENCE: SchemaRule(frozenset({ValueType.BOOL}), _NOT_APPLICABLE),
    TypeId.SWITCH: SchemaRule(frozenset({ValueType.BOOL}), _NOT_APPLICABLE),
    TypeId.COMMAND: SchemaRule(frozenset({ValueType.RAW}), _NOT_APPLICABLE),
    TypeId.ANALOG: SchemaRule(NUMERIC_VALUE_TYPES, _NOT_APPLICABLE),
}

BIT_SIZE_TABLE: dict[int, frozenset[ValueType]] = {
    1: frozenset({ValueType.BOOL}),
    8: frozenset({ValueType.BOOL, ValueType.INT, ValueType.UINT}),
    16: frozenset({ValueType.INT, ValueType.UINT}),
    32: frozenset({ValueType.INT, ValueType.UINT, ValueType.FLOAT}),
    64: frozenset({ValueType.INT64, ValueType.UINT64, ValueType.FLOAT}),
}

_THRESHOLDS = EventFlag.LOWER_THRESHOLD | EventFlag.UPPER_THRESHOLD


def schema_is_valid(type_id: int, value_type: int, unit: int) -> bool:
    """True if (type_id, value_type, unit) is an entry of SCHEMA_TABLE."""
    try:
        rule = SCHEMA_TABLE[TypeId(type_id)]
        vt = ValueType(value_type)
    except ValueError:
        return False
    return vt in rule.value_types and unit in rule.units


def _limit_matches(limit: TypedValue | None, value_type: ValueType) -> bool:
    return limit is not None and limit.value_type == value_type


def event_is_valid(
    flags: int,
    value_type: int,
    time_sec: int | None,
    lower: TypedValue | None,
    upper: TypedValue | None,
) -> bool:
    """
    True if an event configuration is acceptable for value_type.

    Rejects unknown flag bits, thresholds on RAW payloads, a TIME flag without a positive
    time_sec, a threshold flag whose limit is missing or typed for another value type, and
    lower >= upper when both thresholds are set.
    """
    flags = int(flags)
    if flags & ~int(EVENT_FLAG_MASK):
        return False
    try:
        vt = ValueType(value_type)
    except ValueError:
        return False

    if vt == ValueType.RAW and flags & _THRESHOLDS:
        return False

    if flags & EventFlag.TIME and (time_sec is None or time_sec <= 0):
        return False

    if flags & EventFlag.LOWER_THRESHOLD and not _limit_matches(lower, vt):
        return False
    if flags & EventFlag.UPPER_THRESHOLD and not _limit_matches(upper, vt):
        return False

    if flags & _THRESHOLDS == _THRESHOLDS and lower is not None and upper is not None:
        if lower.value >= upper.value:
            return False

    return True


def bit_size_is_valid(bit_size: int, value_type: int) -> bool:
    """True if bit_size can carry value_type on the field bus."""
    allowed = BIT_SIZE_TABLE.get(bit_size)
    if allowed is None:
        return False
    try:
        return ValueType(value_type) in allowed
    except ValueError:
        return False
