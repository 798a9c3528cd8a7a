"""Updater: apply a remote configuration command to one data item in memory and in the device source."""

import logging
from dataclasses import replace
from typing import Callable

from . import keys
from .command import ConfigCommand
from .errors import NotFoundError, PartialFailureError, StorageIOError, ValidationError
from .rules import bit_size_is_valid, event_is_valid, schema_is_valid
from .settings import DeviceSettings
from .storage import ConfigSource, ConfigStore
from .thing import Thing
from .types import DATA_NAME_LEN, DataItem, Event, EventFlag, Schema, ValueType
from .values import coerce_limit, write_limit

logger = logging.getLogger(__name__)

_THRESHOLDS = EventFlag.LOWER_THRESHOLD | EventFlag.UPPER_THRESHOLD


def _retype_event(item: DataItem, value_type: ValueType) -> Event:
    """Existing event of item with its thresholds moved to value_type; ValidationError if they do not fit."""
    event = item.event
    try:
        lower = None if event.lower_limit is None else coerce_limit(value_type, event.lower_limit.value)
        upper = None if event.upper_limit is None else coerce_limit(value_type, event.upper_limit.value)
    except ValidationError as e:
        raise ValidationError(
            "event", f"Thresholds of data item {item.sensor_id} cannot be kept as {value_type.name}: {e}"
        ) from None
    if not event_is_valid(event.flags, value_type, event.time_sec, lower, upper):
        raise ValidationError(
            "event", f"Event settings of data item {item.sensor_id} are not valid for {value_type.name}"
        )
    return replace(event, lower_limit=lower, upper_limit=upper)


def validate_command(thing: Thing, command: ConfigCommand) -> Event:
    """
    Raise ValidationError if the command would leave the data item unloadable.

    Returns the event the data item ends up with. That is the command's event, except
    when an UNREGISTERED command changes the value type of an item with thresholds:
    the kept thresholds are then re-typed for the new value type.
    """
    schema = command.schema
    if not schema.name or len(schema.name) >= DATA_NAME_LEN:
        raise ValidationError("name", f"Data item name must be 1..{DATA_NAME_LEN - 1} characters")
    if not schema_is_valid(schema.type_id, schema.value_type, schema.unit):
        raise ValidationError(
            "schema",
            f"Incompatible schema: type id {schema.type_id:#06x}, "
            f"value type {int(schema.value_type)}, unit {schema.unit}",
        )

    event = command.event
    if not event.unregistered and not event_is_valid(
        event.flags, schema.value_type, event.time_sec, event.lower_limit, event.upper_limit
    ):
        raise ValidationError("event", f"Invalid event settings ({event.flags!r})")

    item = thing.data_items.get(command.sensor_id)
    if item is None:
        return event
    if item.addressing is not None:
        if not bit_size_is_valid(item.addressing.value_type_size, schema.value_type):
            raise ValidationError(
                "value_type",
                f"Bit size {item.addressing.value_type_size} cannot carry {schema.value_type.name}",
            )
    if event.unregistered and item.schema.value_type != schema.value_type and item.event.flags & _THRESHOLDS:
        return _retype_event(item, schema.value_type)
    return event


def find_data_item_group(source: ConfigSource, sensor_id: int) -> str | None:
    """Return the group whose stored SensorId equals sensor_id, reading each group from storage."""
    for group in keys.data_item_groups(source.groups()):
        if source.read_int(group, keys.SENSOR_ID) == sensor_id:
            return group
    return None


def _attempt(failures: dict[str, BaseException], field: str, op: Callable[[], None]) -> None:
    try:
        op()
    except StorageIOError as e:
        logger.error("Failed to set %s: %s", field, e)
        failures[field] = e


def _remover(source: ConfigSource, group: str) -> Callable[[str], Callable[[], None]]:
    def remove(key: str) -> Callable[[], None]:
        return lambda: source.remove_key(group, key)

    return remove


def _persist_schema(
    source: ConfigSource, group: str, schema: Schema, failures: dict[str, BaseException]
) -> None:
    _attempt(failures, "type_id", lambda: source.write_int(group, keys.SCHEMA_TYPE_ID, int(schema.type_id)))
    _attempt(failures, "unit", lambda: source.write_int(group, keys.SCHEMA_UNIT, schema.unit))
    _attempt(
        failures, "value_type", lambda: source.write_int(group, keys.SCHEMA_VALUE_TYPE, int(schema.value_type))
    )
    _attempt(failures, "name", lambda: source.write_string(group, keys.SCHEMA_NAME, schema.name))


def _persist_event(
    source: ConfigSource, group: str, event: Event, failures: dict[str, BaseException]
) -> None:
    """Write keys for set flags; remove keys of cleared flags when present."""
    remove = _remover(source, group)

    if event.flags & EventFlag.TIME and event.time_sec is not None:
        time_sec = event.time_sec
        _attempt(failures, "time_sec", lambda: source.write_int(group, keys.EVENT_TIME_SEC, time_sec))
    else:
        _attempt(failures, "time_sec", remove(keys.EVENT_TIME_SEC))

    if event.flags & EventFlag.CHANGE:
        _attempt(failures, "change", lambda: source.write_int(group, keys.EVENT_CHANGE, keys.EVENT_CHANGE_TRUE))
    else:
        _attempt(failures, "change", remove(keys.EVENT_CHANGE))

    _persist_limits(source, group, event, failures)


def _persist_limits(
    source: ConfigSource, group: str, event: Event, failures: dict[str, BaseException]
) -> None:
    remove = _remover(source, group)

    lower = event.lower_limit
    if event.flags & EventFlag.LOWER_THRESHOLD and lower is not None:
        _attempt(failures, "lower_limit", lambda: write_limit(source, group, keys.EVENT_LOWER_THRESHOLD, lower))
    else:
        _attempt(failures, "lower_limit", remove(keys.EVENT_LOWER_THRESHOLD))

    upper = event.upper_limit
    if event.flags & EventFlag.UPPER_THRESHOLD and upper is not None:
        _attempt(failures, "upper_limit", lambda: write_limit(source, group, keys.EVENT_UPPER_THRESHOLD, upper))
    else:
        _attempt(failures, "upper_limit", remove(keys.EVENT_UPPER_THRESHOLD))


def apply_remote_config(
    thing: Thing,
    store: ConfigStore,
    settings: DeviceSettings,
    command: ConfigCommand,
    *,
    missing_ok: bool = False,
) -> DataItem | None:
    """
    Apply command to its data item in the thing and in the device source.

    The command is validated before anything changes. The device source is scanned for
    the group holding command.sensor_id; if there is none, NotFoundError is raised (or
    None is returned when missing_ok is set). Otherwise the in-memory item is updated,
    then every schema key and, unless the event is UNREGISTERED, every event key is
    written independently. An UNREGISTERED command that changes the value type
    rewrites the kept thresholds in the new type. PartialFailureError is raised
    after all writes were attempted if any of them failed.
    """
    event = validate_command(thing, command)

    failures: dict[str, BaseException] = {}
    with store.open(settings.device_path) as source:
        group = find_data_item_group(source, command.sensor_id)
        if group is None:
            if missing_ok:
                logger.warning("Sensor id %d not found in %s, command ignored", command.sensor_id, source.name)
                return None
            raise NotFoundError(command.sensor_id, f"Sensor id {command.sensor_id} not found in {source.name}")

        item = thing.data_items.update_config(command.sensor_id, command.schema, event)

        _persist_schema(source, group, command.schema, failures)
        if not command.event.unregistered:
            _persist_event(source, group, event, failures)
        elif not event.unregistered:
            _persist_limits(source, group, event, failures)

    if failures:
        logger.error("Data item %d only partially stored: %s", command.sensor_id, ", ".join(failures))
        raise PartialFailureError(failures)

    logger.debug("Applied configuration to data item %d [%s]", command.sensor_id, group)
    return item
