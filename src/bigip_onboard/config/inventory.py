"""Device inventory management from YAML configuration."""
import logging
from pathlib import Path
from typing import Optional

import yaml

from ..devices import DeviceGateway, create_device
from .settings import OnboardSettings

logger = logging.getLogger(__name__)


class DeviceInventory:
    """Manages the device inventory loaded from YAML config.

    ```yaml
    defaults:
      username: admin
      password_env: BIGIP_PASSWORD

    devices:
      bigip1:
        host: 10.0.0.11
      bigip2:
        host: 10.0.0.12
        port: 8443

    onboard:
      revoke_settle_delay: 90
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._devices: dict[str, DeviceGateway] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the devices.yaml config file."""
        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "bigip-onboard" / "devices.yaml",
            Path("/etc/bigip-onboard/devices.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find devices.yaml. Create one in ./configs/devices.yaml"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        # Apply defaults
        defaults = self._config.get("defaults", {})
        for device_id, device_config in self._config.get("devices", {}).items():
            if device_config is None:
                device_config = self._config["devices"][device_id] = {}
            for key, value in defaults.items():
                if key not in device_config:
                    device_config[key] = value

    def get_device_ids(self) -> list[str]:
        """Get all device IDs."""
        return list(self._config.get("devices", {}).keys())

    def get_device_config(self, device_id: str) -> dict:
        """Get raw config for a device."""
        devices = self._config.get("devices", {})
        if device_id not in devices:
            raise KeyError(f"Unknown device: {device_id}")
        return devices[device_id]

    def get_device(self, device_id: str) -> DeviceGateway:
        """Get or create a gateway for a device."""
        if device_id not in self._devices:
            config = self.get_device_config(device_id)
            self._devices[device_id] = create_device(device_id, config)
        return self._devices[device_id]

    def get_all_devices(self) -> dict[str, DeviceGateway]:
        """Get all gateways."""
        for device_id in self.get_device_ids():
            self.get_device(device_id)
        return self._devices

    def get_onboard_settings(self) -> OnboardSettings:
        """Timing settings from the onboard block, with environment overrides."""
        return OnboardSettings.load(self._config.get("onboard"))

    async def close_all(self) -> None:
        """Close all device connections."""
        for device in self._devices.values():
            if device.is_connected:
                await device.disconnect()
        self._devices.clear()
