"""Loader: build a Thing from the device, cloud and credentials sources, all-or-nothing per source."""

import logging
from dataclasses import dataclass, field

from . import keys
from .errors import PyKnotThingError, ValidationError
from .rules import bit_size_is_valid, event_is_valid, schema_is_valid
from .settings import DeviceSettings
from .storage import ConfigSource, ConfigStore
from .thing import DataItemRegistry, Driver, Thing, TransportSlave
from .types import (
    DATA_NAME_LEN,
    DEVICE_NAME_LEN,
    DRIVER_LOGIN_LEN,
    DRIVER_MAX_ID,
    DRIVER_MIN_ID,
    DRIVER_NAME_TYPE_LEN,
    DRIVER_PASSWORD_LEN,
    DRIVER_PROTOCOL_LEN,
    DRIVER_SECURITY_LEN,
    IDENTIFIER_LEN,
    IDENTIFIER_TYPE_LEN,
    PATH_LEN,
    TAG_NAME_LEN,
    THING_ID_LEN,
    TOKEN_LEN,
    Addressing,
    DataItem,
    Event,
    EventFlag,
    Schema,
    TypedValue,
    ValueType,
)
from .values import read_limit

logger = logging.getLogger(__name__)


# ============================================================================
# Field readers
# ============================================================================


def _required_string(source: ConfigSource, group: str, key: str, max_len: int | None = None) -> str:
    """Non-empty string shorter than max_len."""
    value = source.read_string(group, key)
    if not value:
        raise ValidationError(key, f"Missing or empty {key}", group=group)
    if max_len is not None and len(value) >= max_len:
        raise ValidationError(key, f"{key} must be shorter than {max_len} characters", group=group)
    return value


def _optional_string(source: ConfigSource, group: str, key: str, max_len: int) -> str | None:
    value = source.read_string(group, key)
    if value is not None and len(value) >= max_len:
        raise ValidationError(key, f"{key} must be shorter than {max_len} characters", group=group)
    return value


def _required_int(source: ConfigSource, group: str, key: str) -> int:
    value = source.read_int(group, key)
    if value is None:
        raise ValidationError(key, f"Missing or malformed {key}", group=group)
    return value


def _non_negative_int(source: ConfigSource, group: str, key: str, *, required: bool = False) -> int:
    value = source.read_int(group, key)
    if value is None:
        if required or source.has_key(group, key):
            raise ValidationError(key, f"Missing or malformed {key}", group=group)
        return 0
    if value < 0:
        raise ValidationError(key, f"{key} must be >= 0, got {value}", group=group)
    return value


# ============================================================================
# Device source
# ============================================================================


@dataclass
class _DeviceProperties:
    name: str
    transport_slave: TransportSlave
    driver: Driver
    data_items: DataItemRegistry = field(default_factory=DataItemRegistry)


def _read_driver(source: ConfigSource) -> Driver:
    group = keys.THING_GROUP
    protocol = _required_string(source, group, keys.DRIVER_PROTOCOL, DRIVER_PROTOCOL_LEN)
    name_type = _optional_string(source, group, keys.DRIVER_NAME_TYPE, DRIVER_NAME_TYPE_LEN)
    login = _optional_string(source, group, keys.DRIVER_LOGIN, DRIVER_LOGIN_LEN)
    password = _optional_string(source, group, keys.DRIVER_PASSWORD, DRIVER_PASSWORD_LEN)
    security = _optional_string(source, group, keys.DRIVER_SECURITY, DRIVER_SECURITY_LEN)

    driver_id = _required_int(source, group, keys.DRIVER_ID)
    if not DRIVER_MIN_ID <= driver_id <= DRIVER_MAX_ID:
        raise ValidationError(
            keys.DRIVER_ID, f"Id must be in {DRIVER_MIN_ID}..{DRIVER_MAX_ID}, got {driver_id}", group=group
        )
    endianness = _non_negative_int(source, group, keys.DRIVER_ENDIANNESS)

    return Driver(
        protocol=protocol,
        id=driver_id,
        endianness=endianness,
        name_type=name_type,
        login=login,
        password=password,
        security=security,
    )


def _read_sensor_id(source: ConfigSource, group: str, total: int, registry: DataItemRegistry) -> int:
    sensor_id = _required_int(source, group, keys.SENSOR_ID)
    if not 0 <= sensor_id < total:
        raise ValidationError(
            keys.SENSOR_ID, f"SensorId {sensor_id} out of range 0..{total - 1}", group=group
        )
    if sensor_id in registry:
        raise ValidationError(keys.SENSOR_ID, f"Duplicate SensorId {sensor_id}", group=group)
    return sensor_id


def _read_schema(source: ConfigSource, group: str) -> Schema:
    name = _required_string(source, group, keys.SCHEMA_NAME, DATA_NAME_LEN)
    value_type = _required_int(source, group, keys.SCHEMA_VALUE_TYPE)
    unit = _required_int(source, group, keys.SCHEMA_UNIT)
    type_id = _required_int(source, group, keys.SCHEMA_TYPE_ID)

    if not schema_is_valid(type_id, value_type, unit):
        raise ValidationError(
            "schema",
            f"Incompatible schema: type id {type_id:#06x}, value type {value_type}, unit {unit}",
            group=group,
        )
    return Schema(name=name, value_type=ValueType(value_type), unit=unit, type_id=type_id)


def _read_threshold(
    source: ConfigSource, group: str, key: str, value_type: ValueType
) -> TypedValue | None:
    if not source.has_key(group, key):
        return None
    if value_type == ValueType.RAW:
        logger.warning("[%s] %s ignored: thresholds are not supported for raw values", group, key)
        return None
    limit = read_limit(source, group, key, value_type)
    if limit is None:
        logger.warning("[%s] %s ignored: not a valid %s value", group, key, value_type.name)
    return limit


def _read_event(source: ConfigSource, group: str, schema: Schema) -> Event:
    flags = EventFlag.NONE

    lower = _read_threshold(source, group, keys.EVENT_LOWER_THRESHOLD, schema.value_type)
    if lower is not None:
        flags |= EventFlag.LOWER_THRESHOLD

    upper = _read_threshold(source, group, keys.EVENT_UPPER_THRESHOLD, schema.value_type)
    if upper is not None:
        flags |= EventFlag.UPPER_THRESHOLD

    time_sec = source.read_int(group, keys.EVENT_TIME_SEC)
    if time_sec is not None:
        flags |= EventFlag.TIME

    change = source.read_int(group, keys.EVENT_CHANGE)
    if change:
        flags |= EventFlag.CHANGE

    if not event_is_valid(flags, schema.value_type, time_sec, lower, upper):
        raise ValidationError("event", f"Invalid event settings ({flags!r})", group=group)

    return Event(flags=flags, lower_limit=lower, upper_limit=upper, time_sec=time_sec)


def _read_addressing(source: ConfigSource, group: str, schema: Schema) -> Addressing:
    namespace = _non_negative_int(source, group, keys.NAMESPACE_INDEX)
    identifier_type = _optional_string(source, group, keys.IDENTIFIER_TYPE, IDENTIFIER_TYPE_LEN)
    identifier = _optional_string(source, group, keys.IDENTIFIER, IDENTIFIER_LEN)
    tag_name = _optional_string(source, group, keys.TAG_NAME, TAG_NAME_LEN)
    path = _optional_string(source, group, keys.PATH, PATH_LEN)
    element_size = _non_negative_int(source, group, keys.ELEMENT_SIZE)
    reg_addr = _non_negative_int(source, group, keys.REG_ADDRESS, required=True)
    bit_offset = _non_negative_int(source, group, keys.BIT_OFFSET)
    bit_size = _non_negative_int(source, group, keys.VALUE_TYPE_SIZE, required=True)

    if not bit_size_is_valid(bit_size, schema.value_type):
        raise ValidationError(
            keys.VALUE_TYPE_SIZE,
            f"Bit size {bit_size} cannot carry {schema.value_type.name}",
            group=group,
        )

    return Addressing(
        reg_addr=reg_addr,
        value_type_size=bit_size,
        bit_offset=bit_offset,
        element_size=element_size,
        namespace=namespace,
        identifier_type=identifier_type,
        identifier=identifier,
        tag_name=tag_name,
        path=path,
    )


def _read_data_items(source: ConfigSource) -> DataItemRegistry:
    """Parse every DataItem group; any invalid group fails the whole batch."""
    groups = keys.data_item_groups(source.groups())
    total = len(groups)
    registry = DataItemRegistry()

    for group in groups:
        sensor_id = _read_sensor_id(source, group, total, registry)
        schema = _read_schema(source, group)
        event = _read_event(source, group, schema)
        addressing = _read_addressing(source, group, schema)
        registry.add(DataItem(sensor_id=sensor_id, schema=schema, event=event, addressing=addressing))
        logger.debug("Loaded data item %d (%s) from [%s]", sensor_id, schema.name, group)

    return registry


def _read_device(source: ConfigSource) -> _DeviceProperties:
    group = keys.THING_GROUP
    name = _required_string(source, group, keys.THING_NAME, DEVICE_NAME_LEN)
    url = _required_string(source, group, keys.DRIVER_URL)
    driver = _read_driver(source)
    return _DeviceProperties(
        name=name,
        transport_slave=TransportSlave(slave_id=driver.id, url=url),
        driver=driver,
        data_items=_read_data_items(source),
    )


def load_device_properties(thing: Thing, store: ConfigStore, name: str) -> None:
    """Load thing name, transport/driver properties and data items from the device source."""
    with store.open(name) as source:
        props = _read_device(source)

    thing.name = props.name
    thing.transport_slave = props.transport_slave
    thing.driver = props.driver
    thing.data_items = props.data_items
    thing.count = len(props.data_items)


# ============================================================================
# Cloud and credentials sources
# ============================================================================


def load_cloud_properties(thing: Thing, store: ConfigStore, name: str) -> None:
    """Load the message-bus endpoint and the user token from the cloud source."""
    with store.open(name) as source:
        url = _required_string(source, keys.CLOUD_GROUP, keys.CLOUD_URL)
        user_token = _required_string(source, keys.CLOUD_GROUP, keys.USER_TOKEN)

    thing.cloud_endpoint_url = url
    thing.credentials.user_token = user_token


def load_credentials(thing: Thing, store: ConfigStore, name: str) -> None:
    """Load thing id/token; both may be absent or empty until the thing is registered."""
    group = keys.CREDENTIALS_GROUP
    with store.open(name) as source:
        thing_id = source.read_string(group, keys.CREDENTIALS_THING_ID)
        thing_token = source.read_string(group, keys.CREDENTIALS_THING_TOKEN)

    if thing_id and len(thing_id) > THING_ID_LEN:
        raise ValidationError(keys.CREDENTIALS_THING_ID, f"Id longer than {THING_ID_LEN} characters", group=group)
    if thing_token and len(thing_token) > TOKEN_LEN:
        raise ValidationError(keys.CREDENTIALS_THING_TOKEN, f"Token longer than {TOKEN_LEN} characters", group=group)

    thing.set_credentials(thing_id or None, thing_token or None)


def load_thing(store: ConfigStore, settings: DeviceSettings, thing: Thing | None = None) -> Thing:
    """
    Build a Thing from the device, cloud and credentials sources, in that order.

    A source is applied to the thing only after all of its fields parsed. The first
    StorageIOError or ValidationError aborts the load; sources applied before it stay on
    the thing but thing.loaded remains False. An existing thing is reset first.
    """
    if thing is None:
        thing = Thing()
    else:
        thing.reset()

    steps = (
        ("device", load_device_properties, settings.device_path),
        ("cloud", load_cloud_properties, settings.cloud_path),
        ("credentials", load_credentials, settings.credentials_path),
    )
    for label, step, name in steps:
        try:
            step(thing, store, name)
        except PyKnotThingError as e:
            logger.error("Failed to load %s properties from %s: %s", label, name, e)
            raise

    thing.loaded = True
    logger.info("Loaded thing %r with %d data items", thing.name, thing.count)
    return thing
