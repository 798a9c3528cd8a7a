"""ConfigCommand: an already-decoded remote configuration command for one data item."""

from dataclasses import dataclass
from typing import Any, Mapping

from .errors import ValidationError
from .types import Event, EventFlag, Schema, ValueType
from .values import coerce_limit


def _field(mapping: Mapping[str, Any], key: str, kind: type, where: str) -> Any:
    if key not in mapping:
        raise ValidationError(key, f"Missing {where}.{key}")
    value = mapping[key]
    if kind is int and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValidationError(key, f"{where}.{key} must be an integer, got {value!r}")
    if kind is str and not isinstance(value, str):
        raise ValidationError(key, f"{where}.{key} must be a string, got {value!r}")
    return value


@dataclass(frozen=True)
class ConfigCommand:
    """New schema and event settings for sensor_id. An UNREGISTERED event leaves events alone."""

    sensor_id: int
    schema: Schema
    event: Event

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConfigCommand":
        """
        Build a command from a decoded cloud payload:

            {"sensorId": 0,
             "schema": {"typeId": 5, "unit": 1, "valueType": 2, "name": "temp"},
             "event": {"change": true, "timeSec": 10, "lowerThreshold": 0, "upperThreshold": 40}}

        Without "event" the command is UNREGISTERED. Limits are typed by schema.valueType.
        """
        sensor_id = _field(payload, "sensorId", int, "config")
        raw_schema = payload.get("schema")
        if not isinstance(raw_schema, Mapping):
            raise ValidationError("schema", "Missing config.schema")

        value_type = _field(raw_schema, "valueType", int, "schema")
        try:
            value_type = ValueType(value_type)
        except ValueError:
            raise ValidationError("valueType", f"Unknown value type: {value_type}") from None

        schema = Schema(
            name=_field(raw_schema, "name", str, "schema"),
            value_type=value_type,
            unit=_field(raw_schema, "unit", int, "schema"),
            type_id=_field(raw_schema, "typeId", int, "schema"),
        )

        raw_event = payload.get("event")
        if raw_event is None:
            return cls(sensor_id=sensor_id, schema=schema, event=Event(flags=EventFlag.UNREGISTERED))
        if not isinstance(raw_event, Mapping):
            raise ValidationError("event", "config.event must be an object")

        flags = EventFlag.NONE
        lower = upper = None
        time_sec = None
        change = raw_event.get("change")
        if change is not None and not isinstance(change, bool):
            raise ValidationError("change", f"event.change must be a boolean, got {change!r}")
        if change:
            flags |= EventFlag.CHANGE
        if raw_event.get("timeSec") is not None:
            time_sec = _field(raw_event, "timeSec", int, "event")
            flags |= EventFlag.TIME
        if raw_event.get("lowerThreshold") is not None:
            lower = coerce_limit(value_type, raw_event["lowerThreshold"])
            flags |= EventFlag.LOWER_THRESHOLD
        if raw_event.get("upperThreshold") is not None:
            upper = coerce_limit(value_type, raw_event["upperThreshold"])
            flags |= EventFlag.UPPER_THRESHOLD

        event = Event(flags=flags, lower_limit=lower, upper_limit=upper, time_sec=time_sec)
        return cls(sensor_id=sensor_id, schema=schema, event=event)
