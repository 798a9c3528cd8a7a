"""pyknot-thing: configuration and state synchronization for a field-bus to cloud gateway thing."""

__version__ = "0.1.0"

from .command import ConfigCommand
from .credentials import clear_credentials, store_credentials
from .errors import NotFoundError, PartialFailureError, PyKnotThingError, StorageIOError, ValidationError
from .loader import load_thing
from .rules import bit_size_is_valid, event_is_valid, schema_is_valid
from .settings import DeviceSettings
from .storage import ConfigSource, ConfigStore, IniConfigStore, ScalarKind
from .thing import Credentials, DataItemRegistry, Driver, Thing, TransportSlave
from .types import Addressing, DataItem, Event, EventFlag, Schema, TypedValue, TypeId, ValueType
from .updater import apply_remote_config
from .values import coerce_limit

__all__ = [
    "__version__",
    "ConfigCommand",
    "clear_credentials",
    "store_credentials",
    "NotFoundError",
    "PartialFailureError",
    "PyKnotThingError",
    "StorageIOError",
    "ValidationError",
    "load_thing",
    "bit_size_is_valid",
    "event_is_valid",
    "schema_is_valid",
    "DeviceSettings",
    "ConfigSource",
    "ConfigStore",
    "IniConfigStore",
    "ScalarKind",
    "Credentials",
    "DataItemRegistry",
    "Driver",
    "Thing",
    "TransportSlave",
    "Addressing",
    "DataItem",
    "Event",
    "EventFlag",
    "Schema",
    "TypedValue",
    "TypeId",
    "ValueType",
    "apply_remote_config",
    "coerce_limit",
]
