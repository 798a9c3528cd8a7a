#!/usr/bin/env python3
"""Example: switch a temperature data item to Kelvin and report every 30 seconds."""

import sys

from pyknot_thing import ConfigCommand, DeviceSettings, IniConfigStore, apply_remote_config, load_thing
from pyknot_thing.errors import NotFoundError, PartialFailureError, StorageIOError, ValidationError


def main() -> None:
    settings = DeviceSettings.from_env()
    store = IniConfigStore()

    command = ConfigCommand.from_dict(
        {
            "sensorId": 0,  # change to your sensor id
            "schema": {"typeId": 5, "unit": 3, "valueType": 2, "name": "temperature"},
            "event": {"timeSec": 30, "upperThreshold": 350.0},
        }
    )

    try:
        thing = load_thing(store, settings)
        item = apply_remote_config(thing, store, settings, command)
        print(f"Updated {item.sensor_id}: {item.schema.name}, events {item.event.flags!r}")
    except PartialFailureError as e:
        print(f"Partially applied, failed fields: {', '.join(e.fields)}", file=sys.stderr)
        sys.exit(1)
    except (ValidationError, NotFoundError) as e:
        print(f"Rejected: {e}", file=sys.stderr)
        sys.exit(1)
    except StorageIOError as e:
        print(f"Storage error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
