"""Core data model: value/type/unit enums, event flags, typed values, schema, event, addressing and DataItem."""

from dataclasses import dataclass, field
from enum import IntEnum, IntFlag

# Protocol limits. *_NAME_LEN values are exclusive upper bounds, the others inclusive.
DEVICE_NAME_LEN = 64
DATA_NAME_LEN = 64
THING_ID_LEN = 16
TOKEN_LEN = 40

DRIVER_MIN_ID = 1
DRIVER_MAX_ID = 247

DRIVER_PROTOCOL_LEN = 16
DRIVER_NAME_TYPE_LEN = 32
DRIVER_LOGIN_LEN = 64
DRIVER_PASSWORD_LEN = 64
DRIVER_SECURITY_LEN = 64

IDENTIFIER_TYPE_LEN = 16
IDENTIFIER_LEN = 64
TAG_NAME_LEN = 64
PATH_LEN = 128


class ValueType(IntEnum):
    """Value types a data item can carry."""

    INT = 1
    FLOAT = 2
    BOOL = 3
    RAW = 4
    INT64 = 5
    UINT = 6
    UINT64 = 7


class TypeId(IntEnum):
    """Logical sensor types. Basic types carry a physical unit; logic types do not."""

    NONE = 0x0000
    VOLTAGE = 0x0001
    CURRENT = 0x0002
    RESISTANCE = 0x0003
    POWER = 0x0004
    TEMPERATURE = 0x0005
    RELATIVE_HUMIDITY = 0x0006
    LUMINOSITY = 0x0007
    TIME = 0x0008
    MASS = 0x0009
    PRESSURE = 0x000A
    DISTANCE = 0x000B
    ANGLE = 0x000C
    VOLUME = 0x000D
    AREA = 0x000E
    RAIN = 0x000F
    DENSITY = 0x0010
    LATITUDE = 0x0011
    LONGITUDE = 0x0012
    SPEED = 0x0013
    VOLUMEFLOW = 0x0014
    ENERGY = 0x0015
    PRESENCE = 0xFFF1
    SWITCH = 0xFFF2
    COMMAND = 0xFFF3
    ANALOG = 0xFFF4


UNIT_NOT_APPLICABLE = 0

# Unit n (n >= 1) of a basic type is UNIT_SYMBOLS[type_id][n - 1].
UNIT_SYMBOLS: dict[TypeId, tuple[str, ...]] = {
    TypeId.VOLTAGE: ("V", "mV", "kV"),
    TypeId.CURRENT: ("A", "mA"),
    TypeId.RESISTANCE: ("Ohm",),
    TypeId.POWER: ("W", "kW", "MW"),
    TypeId.TEMPERATURE: ("C", "F", "K"),
    TypeId.RELATIVE_HUMIDITY: ("%",),
    TypeId.LUMINOSITY: ("lm", "cd", "lx"),
    TypeId.TIME: ("s", "ms", "us"),
    TypeId.MASS: ("kg", "g", "lb", "oz"),
    TypeId.PRESSURE: ("Pa", "psi", "bar"),
    TypeId.DISTANCE: ("m", "cm", "mm", "mi"),
    TypeId.ANGLE: ("rad", "deg"),
    TypeId.VOLUME: ("l", "ml", "fl oz", "gal"),
    TypeId.AREA: ("m2", "ha", "ac"),
    TypeId.RAIN: ("mm/h",),
    TypeId.DENSITY: ("kg/m3",),
    TypeId.LATITUDE: ("deg",),
    TypeId.LONGITUDE: ("deg",),
    TypeId.SPEED: ("m/s", "cm/s", "km/h", "mi/h"),
    TypeId.VOLUMEFLOW: ("m3/s", "ft3/s", "l/s", "gal/min"),
    TypeId.ENERGY: ("J", "Nm", "Wh", "kWh"),
}


def unit_symbol(type_id: int, unit: int) -> str:
    """Return a display symbol for unit of type_id ("" when not applicable, "?" when unknown)."""
    if unit == UNIT_NOT_APPLICABLE:
        return ""
    try:
        symbols = UNIT_SYMBOLS[TypeId(type_id)]
    except (ValueError, KeyError):
        return "?"
    if 1 <= unit <= len(symbols):
        return symbols[unit - 1]
    return "?"


class EventFlag(IntFlag):
    """Event configuration bits. UNREGISTERED marks a command that leaves event fields alone."""

    NONE = 0x00
    TIME = 0x01
    LOWER_THRESHOLD = 0x02
    UPPER_THRESHOLD = 0x04
    CHANGE = 0x08
    UNREGISTERED = 0x10


EVENT_FLAG_MASK = (
    EventFlag.TIME
    | EventFlag.LOWER_THRESHOLD
    | EventFlag.UPPER_THRESHOLD
    | EventFlag.CHANGE
    | EventFlag.UNREGISTERED
)

_SLOT_TYPES: dict[ValueType, type] = {
    ValueType.INT: int,
    ValueType.UINT: int,
    ValueType.INT64: int,
    ValueType.UINT64: int,
    ValueType.FLOAT: float,
    ValueType.BOOL: bool,
}


@dataclass(frozen=True)
class TypedValue:
    """A threshold, limit or sample held in the slot selected by its value type."""

    value_type: ValueType
    value: int | float | bool

    def __post_init__(self) -> None:
        slot = _SLOT_TYPES.get(self.value_type)
        if slot is None:
            raise ValueError(f"value type {self.value_type!r} has no typed slot")
        if slot is not bool and isinstance(self.value, bool):
            raise ValueError(f"bool stored in {self.value_type.name} slot")
        if not isinstance(self.value, slot):
            raise ValueError(f"{type(self.value).__name__} stored in {self.value_type.name} slot")


@dataclass(frozen=True)
class Schema:
    """Type/unit/value-type descriptor of a data item's payload."""

    name: str
    value_type: ValueType
    unit: int
    type_id: int


@dataclass(frozen=True)
class Event:
    """Threshold/time/change notification settings for a data item."""

    flags: EventFlag = EventFlag.NONE
    lower_limit: TypedValue | None = None
    upper_limit: TypedValue | None = None
    time_sec: int | None = None

    @property
    def unregistered(self) -> bool:
        return bool(self.flags & EventFlag.UNREGISTERED)


@dataclass(frozen=True)
class Addressing:
    """Field-bus addressing of a data item; bit size is checked against the schema value type."""

    reg_addr: int
    value_type_size: int
    bit_offset: int = 0
    element_size: int = 0
    namespace: int = 0
    identifier_type: str | None = None
    identifier: str | None = None
    tag_name: str | None = None
    path: str | None = None


@dataclass
class DataItem:
    """One monitored sensor/actuator point."""

    sensor_id: int
    schema: Schema
    event: Event = field(default_factory=Event)
    addressing: Addressing | None = None
    value: TypedValue | None = None
