"""Device inventory and runtime settings."""
from .inventory import DeviceInventory
from .settings import OnboardSettings

__all__ = ["DeviceInventory", "OnboardSettings"]
