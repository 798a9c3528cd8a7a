"""Group and key names used in the device, cloud and credentials configuration sources."""

THING_GROUP = "Thing"
CLOUD_GROUP = "Cloud"
CREDENTIALS_GROUP = "Credentials"

DATA_ITEM_GROUP_PREFIX = "DataItem_"

# [Thing]
THING_NAME = "Name"
DRIVER_URL = "Url"
DRIVER_ID = "Id"
DRIVER_PROTOCOL = "Protocol"
DRIVER_NAME_TYPE = "NameType"
DRIVER_LOGIN = "Login"
DRIVER_PASSWORD = "Password"
DRIVER_SECURITY = "Security"
DRIVER_ENDIANNESS = "Endianness"

# [Cloud]
CLOUD_URL = "RabbitMqUrl"
USER_TOKEN = "UserToken"

# [Credentials]
CREDENTIALS_THING_ID = "Id"
CREDENTIALS_THING_TOKEN = "Token"

# [DataItem_<n>] schema
SENSOR_ID = "SensorId"
SCHEMA_NAME = "Name"
SCHEMA_VALUE_TYPE = "ValueType"
SCHEMA_UNIT = "Unit"
SCHEMA_TYPE_ID = "TypeId"

# [DataItem_<n>] event
EVENT_LOWER_THRESHOLD = "LowerThreshold"
EVENT_UPPER_THRESHOLD = "UpperThreshold"
EVENT_TIME_SEC = "TimeSec"
EVENT_CHANGE = "Change"
EVENT_CHANGE_TRUE = 1

# [DataItem_<n>] addressing
REG_ADDRESS = "RegisterAddress"
BIT_OFFSET = "BitOffset"
VALUE_TYPE_SIZE = "ValueTypeSize"
ELEMENT_SIZE = "ElementSize"
NAMESPACE_INDEX = "NamespaceIndex"
IDENTIFIER_TYPE = "IdentifierType"
IDENTIFIER = "Identifier"
TAG_NAME = "TagName"
PATH = "Path"


def is_data_item_group(group: str) -> bool:
    return group.startswith(DATA_ITEM_GROUP_PREFIX)


def data_item_groups(groups: list[str]) -> list[str]:
    """Data item groups in storage order (not necessarily sensor id order)."""
    return [g for g in groups if is_data_item_group(g)]
