"""Base gateway abstraction for a single device's management API."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..utils.connection import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class DeviceConfig:
    """Connection settings for a managed device."""
    name: str
    host: str = "localhost"
    port: Optional[int] = None  # probed (8443, then 443) when unset
    username: str = "admin"
    password: Optional[str] = None
    password_env: str = "BIGIP_PASSWORD"
    timeout: int = 30
    verify_ssl: bool = False
    product: str = "BIG-IP"

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")


@dataclass
class DeviceInfo:
    """Identity of the device behind a gateway."""
    hostname: str
    management_address: str
    version: str
    product: str = "BIG-IP"


class ClusterOperations(ABC):
    """Device service clustering verbs."""

    @abstractmethod
    async def config_sync_ip(self, address: str, retry_policy: Optional[RetryPolicy] = None) -> None:
        """Set the local config-sync address ('none' disables it)."""

    @abstractmethod
    async def are_in_trust_group(self, devices: list[str]) -> list[str]:
        """Return the subset of hostnames that are already in the trust domain."""

    @abstractmethod
    async def create_device_group(
        self,
        name: str,
        group_type: str,
        devices: list[str],
        options: Optional[dict[str, Any]] = None,
    ) -> None:
        """Create (or update) a device group with the given devices."""

    @abstractmethod
    async def sync(self, direction: str, group_name: str) -> None:
        """Run a config sync ('to-group' or 'from-group')."""

    @abstractmethod
    async def sync_complete(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        connected_devices: Optional[list[str]] = None,
    ) -> None:
        """Wait until config sync has settled."""

    @abstractmethod
    async def has_device_group(self, name: str) -> bool:
        pass

    @abstractmethod
    async def add_to_device_group(self, hostname: str, group_name: str) -> None:
        pass

    @abstractmethod
    async def remove_from_device_group(self, hostnames: list[str], group_name: str) -> None:
        pass

    @abstractmethod
    async def add_to_trust(
        self,
        hostname: str,
        management_address: str,
        username: str,
        password: str,
    ) -> None:
        """Add a device to this device's trust domain."""

    @abstractmethod
    async def join_cluster(
        self,
        group_name: str,
        remote_host: str,
        remote_username: str,
        remote_password: str,
        is_local: bool = False,
        sync_comp_devices: Optional[list[str]] = None,
    ) -> None:
        """Establish trust with remote_host and join its device group.

        This is a single combined operation: trust, group membership and
        the initial sync are all handled here.
        """


class OnboardOperations(ABC):
    """Onboarding verbs (db variables, identity, licensing)."""

    @abstractmethod
    async def set_db_vars(self, db_vars: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def hostname(self, hostname: str) -> None:
        pass

    @abstractmethod
    async def password(self, user: str, new_password: str, old_password: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def license(
        self,
        registration_key: Optional[str] = None,
        add_on_keys: Optional[list[str]] = None,
        overwrite: bool = False,
    ) -> None:
        pass

    @abstractmethod
    async def license_via_bigiq(
        self,
        bigiq_host: str,
        bigiq_user: Optional[str],
        bigiq_password: Optional[str],
        pool: str,
        hypervisor: Optional[str] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> None:
        pass

    @abstractmethod
    async def revoke_license_via_bigiq(
        self,
        bigiq_host: str,
        bigiq_user: Optional[str],
        bigiq_password: Optional[str],
        pool: str,
        options: Optional[dict[str, Any]] = None,
    ) -> None:
        pass


class DeviceGateway(ABC):
    """Request/response access to one device's management API.

    Retries and backoff are the gateway's job: every verb accepts an
    optional RetryPolicy and only raises once that policy is exhausted.
    """

    cluster: ClusterOperations
    onboard: OnboardOperations

    def __init__(self, device_id: str, config: DeviceConfig):
        self.device_id = device_id
        self.config = config
        self._connected = False

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> Optional[int]:
        return self.config.port

    @property
    def user(self) -> str:
        return self.config.username

    @property
    def password(self) -> str:
        return self.config.get_password()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def is_bigiq(self) -> bool:
        return self.config.product == "BIG-IQ"

    # Connection management
    @abstractmethod
    async def connect(self) -> bool:
        """Establish a session with the device."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session."""

    def set_host(self, address: str) -> None:
        """Point subsequent requests at a new address."""
        logger.info(f"Gateway {self.device_id} now targets {address}")
        self.config.host = address

    async def reinitialize(self, user: str, password: str) -> None:
        """Swap credentials, e.g. after changing our own user's password."""
        self.config.username = user
        self.config.password = password
        if self._connected:
            await self.disconnect()
        await self.connect()

    # Generic verbs
    @abstractmethod
    async def list(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        pass

    @abstractmethod
    async def create(
        self,
        path: str,
        body: dict[str, Any],
        params: Optional[dict[str, Any]] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        pass

    @abstractmethod
    async def modify(
        self,
        path: str,
        body: dict[str, Any],
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        pass

    @abstractmethod
    async def replace(
        self,
        path: str,
        body: dict[str, Any],
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        pass

    @abstractmethod
    async def delete(self, path: str, retry_policy: Optional[RetryPolicy] = None) -> Any:
        pass

    @abstractmethod
    async def create_or_modify(
        self,
        path: str,
        body: dict[str, Any],
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        """Modify the named object under path if it exists, create it otherwise."""

    # Device-level verbs
    @abstractmethod
    async def device_info(self) -> DeviceInfo:
        pass

    @abstractmethod
    async def active(self) -> None:
        """Wait until the device reports an active (licensed) state."""

    @abstractmethod
    async def save(self) -> None:
        """Save the running configuration."""

    @abstractmethod
    async def ready(self) -> None:
        """Wait until the device accepts configuration again."""

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
