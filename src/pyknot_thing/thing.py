"""Thing model: identity, credentials, transport/driver properties, cloud endpoint and the data item registry."""

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Iterator

from .errors import NotFoundError, ValidationError
from .types import DataItem, Event, EventFlag, Schema, TypedValue
from .values import coerce_limit

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """Thing id/token issued by the cloud plus the user token; empty until provisioned."""

    thing_id: str | None = None
    thing_token: str | None = None
    user_token: str | None = None


@dataclass(frozen=True)
class TransportSlave:
    """Field-bus endpoint of the slave device."""

    slave_id: int
    url: str


@dataclass(frozen=True)
class Driver:
    protocol: str
    id: int
    endianness: int = 0
    name_type: str | None = None
    login: str | None = None
    password: str | None = None
    security: str | None = None


class DataItemRegistry:
    """
    Data items keyed by sensor id. Entries are added only while loading;
    afterwards only their configuration and last value change.
    """

    def __init__(self) -> None:
        self._by_sensor_id: dict[int, DataItem] = {}

    def add(self, item: DataItem) -> None:
        """Register item; raise ValidationError if its sensor id is already registered."""
        if item.sensor_id in self._by_sensor_id:
            raise ValidationError("sensor_id", f"Duplicate sensor id: {item.sensor_id}")
        self._by_sensor_id[item.sensor_id] = item

    def lookup(self, sensor_id: int) -> DataItem:
        """Return the item for sensor_id; raise NotFoundError if not registered."""
        if sensor_id not in self._by_sensor_id:
            raise NotFoundError(sensor_id)
        return self._by_sensor_id[sensor_id]

    def get(self, sensor_id: int) -> DataItem | None:
        return self._by_sensor_id.get(sensor_id)

    def update_config(self, sensor_id: int, schema: Schema, event: Event) -> DataItem:
        """Replace schema, and event unless it is UNREGISTERED, of an existing item."""
        item = self.lookup(sensor_id)
        item.schema = schema
        if not event.unregistered:
            item.event = event
        logger.debug("Updated data item %d in memory (event %s)", sensor_id,
                     "kept" if event.unregistered else "replaced")
        return item

    def update_value(self, sensor_id: int, raw: Any) -> TypedValue:
        """Store the last sample read by the field-bus transport, typed by the item's value type."""
        item = self.lookup(sensor_id)
        item.value = coerce_limit(item.schema.value_type, raw)
        return item.value

    def clear(self) -> None:
        self._by_sensor_id.clear()

    def __contains__(self, sensor_id: object) -> bool:
        return sensor_id in self._by_sensor_id

    def __len__(self) -> int:
        return len(self._by_sensor_id)

    def __iter__(self) -> Iterator[DataItem]:
        for sensor_id in sorted(self._by_sensor_id):
            yield self._by_sensor_id[sensor_id]


@dataclass
class Thing:
    """
    Aggregate root of the managed device. Built by the loader, then mutated by the
    updater and credential manager. No internal locking: callers serialize access.
    """

    name: str = ""
    credentials: Credentials = field(default_factory=Credentials)
    transport_slave: TransportSlave | None = None
    driver: Driver | None = None
    cloud_endpoint_url: str | None = None
    data_items: DataItemRegistry = field(default_factory=DataItemRegistry)
    count: int = 0
    loaded: bool = False

    @property
    def id(self) -> str:
        return self.credentials.thing_id or ""

    @property
    def token(self) -> str:
        return self.credentials.thing_token or ""

    @property
    def registered(self) -> bool:
        """True once the thing holds both an id and a token."""
        return bool(self.credentials.thing_id and self.credentials.thing_token)

    def set_credentials(self, thing_id: str | None, thing_token: str | None) -> None:
        self.credentials = replace(self.credentials, thing_id=thing_id, thing_token=thing_token)

    def clear_thing_id(self) -> None:
        self.credentials = replace(self.credentials, thing_id=None)

    def clear_thing_token(self) -> None:
        self.credentials = replace(self.credentials, thing_token=None)

    def reset(self) -> None:
        """Drop everything owned by the thing (process shutdown or before a reload)."""
        self.name = ""
        self.credentials = Credentials()
        self.transport_slave = None
        self.driver = None
        self.cloud_endpoint_url = None
        self.data_items.clear()
        self.count = 0
        self.loaded = False

    def to_dict(self) -> dict[str, Any]:
        """Plain read view of the thing; secrets are left out."""
        return {
            "name": self.name,
            "id": self.id,
            "registered": self.registered,
            "loaded": self.loaded,
            "cloud_endpoint_url": self.cloud_endpoint_url,
            "transport_slave": asdict(self.transport_slave) if self.transport_slave else None,
            "driver": _driver_dict(self.driver),
            "count": self.count,
            "data_items": [_data_item_dict(item) for item in self.data_items],
        }


def _driver_dict(driver: Driver | None) -> dict[str, Any] | None:
    if driver is None:
        return None
    out = asdict(driver)
    out.pop("password")
    return out


def _limit(limit: TypedValue | None) -> int | float | bool | None:
    return None if limit is None else limit.value


def _data_item_dict(item: DataItem) -> dict[str, Any]:
    event = item.event
    return {
        "sensor_id": item.sensor_id,
        "schema": {
            "name": item.schema.name,
            "type_id": int(item.schema.type_id),
            "value_type": item.schema.value_type.name,
            "unit": item.schema.unit,
        },
        "event": {
            "flags": [flag.name for flag in EventFlag if flag and flag in event.flags],
            "time_sec": event.time_sec,
            "lower_limit": _limit(event.lower_limit),
            "upper_limit": _limit(event.upper_limit),
        },
        "addressing": asdict(item.addressing) if item.addressing else None,
        "value": _limit(item.value),
    }
