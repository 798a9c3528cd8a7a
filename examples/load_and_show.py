#!/usr/bin/env python3
"""Example: load a thing from its configuration sources and list its data items."""

import sys

from pyknot_thing import DeviceSettings, IniConfigStore, load_thing
from pyknot_thing.errors import StorageIOError, ValidationError


def main() -> None:
    # Paths come from KNOT_THING_DEVICE / KNOT_THING_CLOUD / KNOT_THING_CREDENTIALS or /etc/knot
    settings = DeviceSettings.from_env()

    try:
        thing = load_thing(IniConfigStore(), settings)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)
    except StorageIOError as e:
        print(f"Storage error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"{thing.name}: {thing.count} data items, registered={thing.registered}")
    for item in thing.data_items:
        print(f"  {item.sensor_id}: {item.schema.name} ({item.schema.value_type.name})")


if __name__ == "__main__":
    main()
