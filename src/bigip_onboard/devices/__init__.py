"""Gateways to device management APIs."""
from .base import (
    ClusterOperations,
    DeviceConfig,
    DeviceGateway,
    DeviceInfo,
    OnboardOperations,
)
from .bigip import BigIpDevice, LicensePoolError

__all__ = [
    "ClusterOperations",
    "DeviceConfig",
    "DeviceGateway",
    "DeviceInfo",
    "OnboardOperations",
    "BigIpDevice",
    "LicensePoolError",
]

# Device type registry
DEVICE_TYPES = {
    "bigip": BigIpDevice,
}


def create_device(device_id: str, config: dict) -> DeviceGateway:
    """Factory function to create gateway instances."""
    config = dict(config)
    device_type = config.pop("type", "bigip").lower()
    if device_type not in DEVICE_TYPES:
        raise ValueError(f"Unknown device type: {device_type}")

    device_class = DEVICE_TYPES[device_type]
    config.setdefault("name", device_id)
    return device_class(device_id, DeviceConfig(**config))
