"""BIG-IP gateway over iControl REST.

All verbs are thin wrappers around httpx requests to ``/mgmt{path}``. Each
request runs under a RetryPolicy; the reconcilers above never retry writes
themselves.
"""
import asyncio
import logging
from typing import Any, Optional

import httpx

from .base import (
    ClusterOperations,
    DeviceConfig,
    DeviceGateway,
    DeviceInfo,
    OnboardOperations,
)
from ..utils.connection import (
    LONG_RETRY,
    MEDIUM_RETRY,
    NO_RETRY,
    SHORT_RETRY,
    RetryPolicy,
    try_until,
    with_retry,
)
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

CANDIDATE_PORTS = (8443, 443)
DEVICE_INFO_PATH = "/shared/identified-devices/config/device-info"
BIGIQ_ASSIGN_PATH = "/cm/device/tasks/licensing/pool/member-management"

# Failover states that mean the device is licensed and running
ACTIVE_STATES = ("ACTIVE", "STANDBY", "FORCED OFFLINE")


class LicensePoolError(Exception):
    """The license pool rejected an assign or revoke task."""
    pass


def _object_path(path: str, name: str, partition: Optional[str] = None) -> str:
    if partition:
        return f"{path}/~{partition}~{name}"
    return f"{path}/{name}"


def _first_description(stats: dict[str, Any], key: str) -> Optional[str]:
    """Walk the nestedStats envelope that iControl uses for status endpoints."""
    for entry in (stats.get("entries") or {}).values():
        nested = (entry.get("nestedStats") or {}).get("entries") or {}
        value = nested.get(key)
        if value and "description" in value:
            return value["description"]
    return None


async def probe_port(host: str, timeout: float = 5) -> int:
    """Find the management port: 8443 on single-NIC devices, 443 otherwise."""
    for port in CANDIDATE_PORTS:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except (OSError, asyncio.TimeoutError):
            continue
        writer.close()
        await writer.wait_closed()
        return port
    raise ConnectionError(f"Could not determine device port for {host}")


class BigIpDevice(DeviceGateway):
    """BIG-IP handler using iControl REST."""

    def __init__(
        self,
        device_id: str,
        config: DeviceConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        default_retry: RetryPolicy = SHORT_RETRY,
    ):
        super().__init__(device_id, config)
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._client_host: Optional[str] = None
        self.default_retry = default_retry
        self.cluster = BigIpCluster(self)
        self.onboard = BigIpOnboard(self)

    @classmethod
    async def for_host(
        cls,
        host: str,
        username: str,
        password: str,
        port: Optional[int] = None,
    ) -> "BigIpDevice":
        """Build and connect a gateway for another device (a peer or ourselves by address)."""
        device = cls(host, DeviceConfig(name=host, host=host, port=port,
                                        username=username, password=password))
        await device.connect()
        return device

    @property
    def base_url(self) -> str:
        return f"https://{self.host}:{self.port}"

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    @timed("connect")
    async def connect(self) -> bool:
        """Open an authenticated HTTP session to the device."""
        logger.info(f"Connecting to BIG-IP {self.device_id} at {self.host}")
        if self.config.port is None and self._transport is None:
            self.config.port = await probe_port(self.host)
        if self.config.port is None:
            self.config.port = 443

        if self._http is not None:
            await self._http.aclose()
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(self.user, self.password),
            verify=self.config.verify_ssl,
            timeout=httpx.Timeout(self.config.timeout),
            transport=self._transport,
        )
        self._client_host = self.host
        self._connected = True
        return True

    async def disconnect(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        self._connected = False
        logger.info(f"Disconnected from {self.device_id}")

    async def _client(self) -> httpx.AsyncClient:
        # set_host() only records the new address; rebuild lazily
        if self._http is None or self._client_host != self.host:
            await self.connect()
        if self._http is None:
            raise ConnectionError(f"Not connected to {self.device_id}")
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        policy = retry_policy or self.default_retry

        async def _send() -> Any:
            client = await self._client()
            resp = await client.request(method, f"/mgmt{path}", json=body, params=params)
            resp.raise_for_status()
            if not resp.content:
                return None
            data = resp.json()
            if method == "GET" and isinstance(data, dict) and "items" in data:
                return data["items"]
            return data

        logger.debug(f"{method} {path}")
        return await try_until(policy, _send, exceptions=(httpx.HTTPError,))

    async def list(self, path, params=None, retry_policy=None):
        return await self._request("GET", path, params=params, retry_policy=retry_policy)

    async def create(self, path, body, params=None, retry_policy=None):
        return await self._request("POST", path, body=body, params=params, retry_policy=retry_policy)

    async def modify(self, path, body, retry_policy=None):
        return await self._request("PATCH", path, body=body, retry_policy=retry_policy)

    async def replace(self, path, body, retry_policy=None):
        return await self._request("PUT", path, body=body, retry_policy=retry_policy)

    async def delete(self, path, retry_policy=None):
        return await self._request("DELETE", path, retry_policy=retry_policy)

    async def exists(self, path: str) -> bool:
        try:
            await self.list(path, retry_policy=NO_RETRY)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return False
            raise
        return True

    async def create_or_modify(self, path, body, retry_policy=None):
        object_path = _object_path(path, body["name"], body.get("partition"))
        if await self.exists(object_path):
            update = {k: v for k, v in body.items() if k not in ("name", "partition")}
            return await self.modify(object_path, update, retry_policy=retry_policy)
        return await self.create(path, body, retry_policy=retry_policy)

    async def device_info(self) -> DeviceInfo:
        info = await self.list(DEVICE_INFO_PATH)
        return DeviceInfo(
            hostname=info["hostname"],
            management_address=info["managementAddress"],
            version=info["version"],
            product=info.get("product", "BIG-IP"),
        )

    @timed("active")
    async def active(self) -> None:
        async def _check() -> None:
            status = _first_description(await self.list("/tm/cm/failover-status", retry_policy=NO_RETRY),
                                        "status")
            if status not in ACTIVE_STATES:
                raise RuntimeError(f"Device is not active (status {status})")

        await try_until(LONG_RETRY, _check)

    async def save(self) -> None:
        await self.create("/tm/sys/config", {"command": "save"})

    @timed("ready")
    async def ready(self) -> None:
        async def _check() -> None:
            ready = await self.list("/tm/sys/ready", retry_policy=NO_RETRY)
            nested = ready["entries"]
            for entry in nested.values():
                for name, value in entry["nestedStats"]["entries"].items():
                    if value.get("description") != "yes":
                        raise RuntimeError(f"Device not ready: {name}")

        await try_until(LONG_RETRY, _check, exceptions=(httpx.HTTPError, RuntimeError, KeyError))


class BigIpCluster(ClusterOperations):
    """Clustering verbs for a BigIpDevice."""

    def __init__(self, device: BigIpDevice):
        self.device = device

    async def _device_path(self) -> str:
        info = await self.device.device_info()
        return f"/tm/cm/device/~Common~{info.hostname}"

    async def config_sync_ip(self, address, retry_policy=None):
        await self.device.modify(await self._device_path(), {"configsyncIp": address},
                                 retry_policy=retry_policy)

    async def are_in_trust_group(self, devices):
        trust = await self.device.list("/tm/cm/trust-domain/~Common~Root")
        trusted = {ca.split("/")[-1] for ca in (trust or {}).get("caDevices", [])}
        return [d for d in devices if d in trusted]

    async def create_device_group(self, name, group_type, devices, options=None):
        options = options or {}
        body = {
            "name": name,
            "type": group_type,
            "devices": devices,
            "autoSync": "enabled" if options.get("autoSync") else "disabled",
            "saveOnAutoSync": options.get("saveOnAutoSync", False),
            "networkFailover": "enabled" if options.get("networkFailover") else "disabled",
            "fullLoadOnSync": options.get("fullLoadOnSync", False),
            "asmSync": "enabled" if options.get("asmSync") else "disabled",
        }
        if await self.has_device_group(name):
            existing = await self.device.list(f"/tm/cm/device-group/~Common~{name}/devices")
            names = [d["name"] for d in existing or []]
            body["devices"] = names + [d for d in devices if d not in names]
            del body["name"]
            await self.device.modify(f"/tm/cm/device-group/~Common~{name}", body)
        else:
            await self.device.create("/tm/cm/device-group", body)

    async def sync(self, direction, group_name):
        await self.device.create(
            "/tm/cm",
            {"command": "run", "utilCmdArgs": f"config-sync {direction} {group_name}"},
        )

    async def sync_complete(self, retry_policy=None, connected_devices=None):
        async def _check() -> None:
            status = await self.device.list("/tm/cm/sync-status", retry_policy=NO_RETRY)
            color = _first_description(status, "color")
            if color != "green":
                raise RuntimeError(f"Sync not complete (color {color})")

        await try_until(retry_policy or MEDIUM_RETRY, _check)

    async def has_device_group(self, name):
        groups = await self.device.list("/tm/cm/device-group")
        return any(group["name"] == name for group in groups or [])

    async def add_to_device_group(self, hostname, group_name):
        path = f"/tm/cm/device-group/~Common~{group_name}/devices"
        devices = await self.device.list(path)
        if any(d["name"] == hostname for d in devices or []):
            return
        await self.device.create(path, {"name": hostname})

    async def remove_from_device_group(self, hostnames, group_name):
        path = f"/tm/cm/device-group/~Common~{group_name}/devices"
        for hostname in hostnames:
            await self.device.delete(f"{path}/~Common~{hostname}")

    async def add_to_trust(self, hostname, management_address, username, password):
        trusted = await self.are_in_trust_group([hostname])
        if trusted:
            logger.info(f"{hostname} is already in the trust domain")
            return
        await self.device.create(
            "/tm/cm/add-to-trust",
            {
                "command": "run",
                "name": "Root",
                "caDevice": True,
                "device": management_address,
                "deviceName": hostname,
                "username": username,
                "password": password,
            },
        )

    async def join_cluster(
        self,
        group_name,
        remote_host,
        remote_username,
        remote_password,
        is_local=False,
        sync_comp_devices=None,
    ):
        local = await self.device.device_info()
        remote = await BigIpDevice.for_host(remote_host, remote_username, remote_password)
        try:
            await remote.cluster.add_to_trust(
                local.hostname, local.management_address, self.device.user, self.device.password
            )
            await self.sync_complete(MEDIUM_RETRY)
            await remote.cluster.add_to_device_group(local.hostname, group_name)
            await remote.cluster.sync("to-group", group_name)
            await self.sync_complete(MEDIUM_RETRY, connected_devices=sync_comp_devices)
        finally:
            await remote.disconnect()


class BigIpOnboard(OnboardOperations):
    """Onboarding verbs for a BigIpDevice."""

    def __init__(self, device: BigIpDevice):
        self.device = device

    async def set_db_vars(self, db_vars):
        for name, value in db_vars.items():
            await self.device.modify(f"/tm/sys/db/{name}", {"value": str(value)})

    async def hostname(self, hostname):
        info = await self.device.device_info()
        if info.hostname == hostname:
            return
        await self.device.modify("/tm/sys/global-settings", {"hostname": hostname})
        await self.device.create(
            "/tm/cm/device",
            {"command": "mv", "name": info.hostname, "target": hostname},
        )

    async def password(self, user, new_password, old_password=None):
        if user == "root":
            await self.device.create(
                "/shared/authn/root",
                {"oldPassword": old_password, "newPassword": new_password},
            )
        else:
            await self.device.modify(f"/tm/auth/user/{user}", {"password": new_password})

    async def license(self, registration_key=None, add_on_keys=None, overwrite=False):
        if not overwrite:
            try:
                current = await self.device.list("/tm/sys/license", retry_policy=NO_RETRY)
            except httpx.HTTPStatusError:
                current = None
            current_key = _first_description(current or {}, "registrationKey")
            if current_key and current_key == registration_key and not add_on_keys:
                logger.info("Device already licensed with this registration key")
                return
        body: dict[str, Any] = {"command": "install"}
        if registration_key:
            body["registrationKey"] = registration_key
        if add_on_keys:
            body["addOnKeys"] = add_on_keys
        await self.device.create("/tm/sys/license", body, retry_policy=MEDIUM_RETRY)

    async def _bigiq_task(self, bigiq_host, user, password, body, options):
        port = options.get("bigIqMgmtPort") or 443
        scheme = "http" if port == 8100 else "https"
        auth = None if port == 8100 else httpx.BasicAuth(user or "", password or "")
        async with httpx.AsyncClient(
            base_url=f"{scheme}://{bigiq_host}:{port}",
            auth=auth,
            verify=False,
            timeout=httpx.Timeout(self.device.config.timeout),
            transport=self.device._transport,
        ) as client:
            resp = await client.post(f"/mgmt{BIGIQ_ASSIGN_PATH}", json=body)
            resp.raise_for_status()
            task_id = resp.json()["id"]

            async def _check() -> None:
                status = await client.get(f"/mgmt{BIGIQ_ASSIGN_PATH}/{task_id}")
                status.raise_for_status()
                state = status.json().get("status")
                if state == "FAILED":
                    raise LicensePoolError(status.json().get("errorMessage", "license task failed"))
                if state != "FINISHED":
                    raise RuntimeError(f"License task {task_id} is {state}")

            await try_until(MEDIUM_RETRY, _check, exceptions=(RuntimeError, httpx.TransportError))

    async def license_via_bigiq(self, bigiq_host, bigiq_user, bigiq_password, pool,
                                hypervisor=None, options=None):
        options = options or {}
        address = options.get("bigIpMgmtAddress")
        if not address:
            address = (await self.device.device_info()).management_address
        body = {
            "licensePoolName": pool,
            "command": "assign",
            "address": address,
            "assignmentType": "MANAGED" if options.get("noUnreachable") else "UNREACHABLE",
            "hypervisor": hypervisor,
            "skuKeyword1": options.get("skuKeyword1"),
            "skuKeyword2": options.get("skuKeyword2"),
            "unitOfMeasure": options.get("unitOfMeasure"),
            "overwrite": options.get("overwrite", False),
            "user": self.device.user,
            "password": self.device.password,
        }
        body = {k: v for k, v in body.items() if v is not None}
        await self._bigiq_task(bigiq_host, bigiq_user, bigiq_password, body, options)

    async def revoke_license_via_bigiq(self, bigiq_host, bigiq_user, bigiq_password, pool,
                                       options=None):
        options = options or {}
        info = await self.device.device_info()
        body = {
            "licensePoolName": pool,
            "command": "revoke",
            "address": info.management_address,
            "assignmentType": "MANAGED" if options.get("noUnreachable") else "UNREACHABLE",
            "user": self.device.user,
            "password": self.device.password,
        }
        await self._bigiq_task(bigiq_host, bigiq_user, bigiq_password, body, options)
