"""Names of the three configuration sources, with environment overrides."""

import os
from dataclasses import dataclass

DEFAULT_DEVICE_SOURCE = "/etc/knot/device.conf"
DEFAULT_CLOUD_SOURCE = "/etc/knot/cloud.conf"
DEFAULT_CREDENTIALS_SOURCE = "/etc/knot/credentials.conf"

ENV_DEVICE = "KNOT_THING_DEVICE"
ENV_CLOUD = "KNOT_THING_CLOUD"
ENV_CREDENTIALS = "KNOT_THING_CREDENTIALS"


@dataclass(frozen=True)
class DeviceSettings:
    """Source names are opaque to the core; the ConfigStore decides what they mean."""

    device_path: str = DEFAULT_DEVICE_SOURCE
    cloud_path: str = DEFAULT_CLOUD_SOURCE
    credentials_path: str = DEFAULT_CREDENTIALS_SOURCE

    @classmethod
    def from_env(cls) -> "DeviceSettings":
        return cls(
            device_path=os.environ.get(ENV_DEVICE, DEFAULT_DEVICE_SOURCE),
            cloud_path=os.environ.get(ENV_CLOUD, DEFAULT_CLOUD_SOURCE),
            credentials_path=os.environ.get(ENV_CREDENTIALS, DEFAULT_CREDENTIALS_SOURCE),
        )
