"""Tests for applying remote configuration commands to a loaded thing and its device source."""

from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from conftest import DEVICE_CONF, write_conf
from pyknot_thing import keys
from pyknot_thing.command import ConfigCommand
from pyknot_thing.errors import NotFoundError, PartialFailureError, StorageIOError, ValidationError
from pyknot_thing.loader import load_thing
from pyknot_thing.settings import DeviceSettings
from pyknot_thing.storage import ConfigSource, IniConfigSource, IniConfigStore, ScalarKind
from pyknot_thing.thing import Thing
from pyknot_thing.types import Event, EventFlag, Schema, TypedValue, TypeId, ValueType
from pyknot_thing.updater import apply_remote_config, find_data_item_group


@pytest.fixture
def thing(store: IniConfigStore, settings: DeviceSettings) -> Thing:
    return load_thing(store, settings)


def stored(settings: DeviceSettings, group: str) -> dict[str, str]:
    with IniConfigStore().open(settings.device_path) as source:
        assert isinstance(source, IniConfigSource)
        return dict(source._parser.items(group))


def temperature_command(**event_kwargs: Any) -> ConfigCommand:
    schema = Schema(name="boiler_temp", value_type=ValueType.INT, unit=2, type_id=TypeId.TEMPERATURE)
    return ConfigCommand(sensor_id=0, schema=schema, event=Event(**event_kwargs))


def test_apply_updates_memory_and_storage(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    command = temperature_command(
        flags=EventFlag.LOWER_THRESHOLD | EventFlag.UPPER_THRESHOLD | EventFlag.CHANGE,
        lower_limit=TypedValue(ValueType.INT, -10),
        upper_limit=TypedValue(ValueType.INT, 90),
    )
    item = apply_remote_config(thing, store, settings, command)

    assert item is thing.data_items.lookup(0)
    assert item.schema == command.schema
    assert item.event == command.event

    values = stored(settings, "DataItem_0")
    assert values[keys.SCHEMA_NAME] == "boiler_temp"
    assert values[keys.SCHEMA_VALUE_TYPE] == "1"
    assert values[keys.SCHEMA_UNIT] == "2"
    assert values[keys.SCHEMA_TYPE_ID] == "5"
    assert values[keys.EVENT_LOWER_THRESHOLD] == "-10"
    assert values[keys.EVENT_UPPER_THRESHOLD] == "90"
    assert values[keys.EVENT_CHANGE] == "1"
    # TIME is no longer set, so its key is gone
    assert keys.EVENT_TIME_SEC not in values
    # Addressing is never touched
    assert values[keys.REG_ADDRESS] == "100"


def test_applied_schema_reloads_identically(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    command = temperature_command(flags=EventFlag.TIME, time_sec=60)
    apply_remote_config(thing, store, settings, command)

    reloaded = load_thing(store, settings)
    item = reloaded.data_items.lookup(0)
    assert item.schema == command.schema
    assert item.event == Event(flags=EventFlag.TIME, time_sec=60)


def test_unregistered_event_leaves_event_keys(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    schema = Schema(name="temp_k", value_type=ValueType.FLOAT, unit=3, type_id=TypeId.TEMPERATURE)
    command = ConfigCommand(sensor_id=0, schema=schema, event=Event(flags=EventFlag.UNREGISTERED))
    before = thing.data_items.lookup(0).event

    apply_remote_config(thing, store, settings, command)

    assert thing.data_items.lookup(0).schema == schema
    assert thing.data_items.lookup(0).event == before
    values = stored(settings, "DataItem_0")
    assert values[keys.SCHEMA_UNIT] == "3"
    assert values[keys.EVENT_LOWER_THRESHOLD] == "0.0"
    assert values[keys.EVENT_UPPER_THRESHOLD] == "40.0"
    assert values[keys.EVENT_TIME_SEC] == "10"


def test_unregistered_event_retypes_kept_thresholds(
    thing: Thing, store: IniConfigStore, settings: DeviceSettings
) -> None:
    schema = Schema(name="temp_int", value_type=ValueType.INT, unit=1, type_id=TypeId.TEMPERATURE)
    command = ConfigCommand(sensor_id=0, schema=schema, event=Event(flags=EventFlag.UNREGISTERED))

    item = apply_remote_config(thing, store, settings, command)

    assert item is not None
    assert item.event == Event(
        flags=EventFlag.TIME | EventFlag.LOWER_THRESHOLD | EventFlag.UPPER_THRESHOLD,
        lower_limit=TypedValue(ValueType.INT, 0),
        upper_limit=TypedValue(ValueType.INT, 40),
        time_sec=10,
    )
    values = stored(settings, "DataItem_0")
    assert values[keys.EVENT_LOWER_THRESHOLD] == "0"
    assert values[keys.EVENT_UPPER_THRESHOLD] == "40"
    assert values[keys.EVENT_TIME_SEC] == "10"

    reloaded = load_thing(store, settings).data_items.lookup(0)
    assert reloaded.schema == schema
    assert reloaded.event == item.event


def test_unregistered_event_rejects_thresholds_that_do_not_fit(
    store: IniConfigStore, settings: DeviceSettings
) -> None:
    device = Path(settings.device_path)
    write_conf(device, DEVICE_CONF.replace("UpperThreshold=40.0", "UpperThreshold=40.5"))
    thing = load_thing(store, settings)
    before = device.read_text(encoding="utf-8")
    item_before = thing.data_items.lookup(0)
    schema_before, event_before = item_before.schema, item_before.event

    schema = Schema(name="temp_int", value_type=ValueType.INT, unit=1, type_id=TypeId.TEMPERATURE)
    command = ConfigCommand(sensor_id=0, schema=schema, event=Event(flags=EventFlag.UNREGISTERED))
    with pytest.raises(ValidationError) as exc_info:
        apply_remote_config(thing, store, settings, command)

    assert exc_info.value.field == "event"
    assert thing.data_items.lookup(0).schema == schema_before
    assert thing.data_items.lookup(0).event == event_before
    assert device.read_text(encoding="utf-8") == before


def test_cleared_flags_remove_keys(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    schema = Schema(name="valve", value_type=ValueType.BOOL, unit=0, type_id=TypeId.SWITCH)
    command = ConfigCommand(sensor_id=1, schema=schema, event=Event(flags=EventFlag.NONE))

    apply_remote_config(thing, store, settings, command)

    values = stored(settings, "DataItem_1")
    for key in (keys.EVENT_CHANGE, keys.EVENT_TIME_SEC, keys.EVENT_LOWER_THRESHOLD, keys.EVENT_UPPER_THRESHOLD):
        assert key not in values
    assert thing.data_items.lookup(1).event.flags == EventFlag.NONE


def test_group_is_found_by_stored_sensor_id(store: IniConfigStore, settings: DeviceSettings) -> None:
    with store.open(settings.device_path) as source:
        assert find_data_item_group(source, 1) == "DataItem_1"
        assert find_data_item_group(source, 7) is None


def test_unknown_sensor_id_raises(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    before = Path(settings.device_path).read_text(encoding="utf-8")
    command = ConfigCommand(
        sensor_id=7,
        schema=Schema(name="x", value_type=ValueType.INT, unit=1, type_id=TypeId.VOLTAGE),
        event=Event(flags=EventFlag.UNREGISTERED),
    )
    with pytest.raises(NotFoundError) as exc_info:
        apply_remote_config(thing, store, settings, command)
    assert exc_info.value.sensor_id == 7
    assert Path(settings.device_path).read_text(encoding="utf-8") == before


def test_unknown_sensor_id_missing_ok(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    command = ConfigCommand(
        sensor_id=7,
        schema=Schema(name="x", value_type=ValueType.INT, unit=1, type_id=TypeId.VOLTAGE),
        event=Event(flags=EventFlag.UNREGISTERED),
    )
    assert apply_remote_config(thing, store, settings, command, missing_ok=True) is None


@pytest.mark.parametrize(
    "command",
    [
        ConfigCommand(0, Schema("t", ValueType.BOOL, 1, TypeId.TEMPERATURE), Event()),
        ConfigCommand(0, Schema("", ValueType.INT, 1, TypeId.TEMPERATURE), Event()),
        ConfigCommand(0, Schema("t", ValueType.INT, 1, TypeId.TEMPERATURE), Event(EventFlag.TIME, time_sec=0)),
        # Register is 32 bits wide, too small for INT64
        ConfigCommand(0, Schema("t", ValueType.INT64, 1, TypeId.TEMPERATURE), Event()),
    ],
)
def test_invalid_command_changes_nothing(
    thing: Thing, store: IniConfigStore, settings: DeviceSettings, command: ConfigCommand
) -> None:
    before = Path(settings.device_path).read_text(encoding="utf-8")
    schema_before = thing.data_items.lookup(0).schema
    with pytest.raises(ValidationError):
        apply_remote_config(thing, store, settings, command)
    assert thing.data_items.lookup(0).schema == schema_before
    assert Path(settings.device_path).read_text(encoding="utf-8") == before


def test_failed_field_does_not_stop_others(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    real_write = ConfigSource.write

    def flaky_write(self: ConfigSource, group: str, key: str, kind: ScalarKind, value: Any) -> None:
        if key in (keys.SCHEMA_UNIT, keys.EVENT_TIME_SEC):
            raise StorageIOError("disk full", source=self.name, group=group, key=key)
        real_write(self, group, key, kind, value)

    command = temperature_command(flags=EventFlag.TIME | EventFlag.CHANGE, time_sec=30)
    with patch.object(IniConfigSource, "write", flaky_write):
        with pytest.raises(PartialFailureError) as exc_info:
            apply_remote_config(thing, store, settings, command)

    assert exc_info.value.fields == ["unit", "time_sec"]
    values = stored(settings, "DataItem_0")
    assert values[keys.SCHEMA_NAME] == "boiler_temp"
    assert values[keys.SCHEMA_VALUE_TYPE] == "1"
    assert values[keys.SCHEMA_UNIT] == "1"
    assert values[keys.EVENT_TIME_SEC] == "10"
    assert values[keys.EVENT_CHANGE] == "1"
    assert keys.EVENT_LOWER_THRESHOLD not in values
    # Memory reflects the command even though some keys could not be stored
    assert thing.data_items.lookup(0).schema == command.schema


def test_missing_device_source_raises_io_error(thing: Thing, store: IniConfigStore, settings: DeviceSettings) -> None:
    Path(settings.device_path).unlink()
    with pytest.raises(StorageIOError):
        apply_remote_config(thing, store, settings, temperature_command())
