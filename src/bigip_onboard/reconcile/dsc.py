"""Cluster reconciler: device service clustering settings.

Order matters: addresses first (config sync, failover), then trust and
device groups, then traffic groups, MAC masquerade and mirroring.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..declaration.schema import DeviceGroupConfig, DeviceTrustConfig, MacMasqueradeConfig
from ..devices.base import DeviceInfo
from ..utils.connection import SHORT_RETRY, RetryPolicy, try_until
from ..utils.logging_config import timed_section
from .constants import PATHS
from .context import ReconcileContext
from .errors import OnboardError, wrap_error
from .util import check_dns_resolution, is_ip, minimize_ip, strip_cidr

logger = logging.getLogger(__name__)

# Sync after creating a group is best effort: members may still be joining
CREATE_GROUP_SYNC_RETRY = RetryPolicy(max_retries=3, retry_interval=10)


def derive_masquerade_mac(mac: str) -> str:
    """Set the locally administered bit (0x02) of the first octet.

    'fa:16:3e:4b:44:99' -> 'f8:16:3e:4b:44:99'
    """
    return f"{mac[0]}{int(mac[1], 16) ^ 2:x}{mac[2:]}"


class ClusterReconciler:
    """Applies config-sync, failover, trust, device groups, traffic groups,
    MAC masquerade and mirror IP settings."""

    def __init__(self, context: ReconcileContext):
        self.ctx = context
        self.gateway = context.gateway
        self.cluster = context.gateway.cluster
        self.common = context.common
        self.current = context.current
        self._device_info: Optional[DeviceInfo] = None

    async def process(self) -> None:
        """Run every phase in order.

        Raises:
            OnboardError: on the first failing phase
        """
        task_id = self.ctx.task_id
        logger.info(f"[{task_id}] Processing DSC declaration")
        phases: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("dsc.config_sync", self._config_sync),
            ("dsc.failover_unicast", self._failover_unicast),
            ("dsc.failover_multicast", self._failover_multicast),
            ("dsc.trust_and_groups", self._trust_and_groups),
            ("dsc.traffic_groups", self._traffic_groups),
            ("dsc.mac_masquerade", self._mac_masquerade),
            ("dsc.mirror_ip", self._mirror_ip),
        ]
        try:
            for name, phase in phases:
                logger.debug(f"[{task_id}] Checking {name}")
                async with timed_section(name, device_id=task_id):
                    await phase()
        except OnboardError as e:
            logger.error(f"[{task_id}] Error processing DSC declaration: {e}")
            raise
        except Exception as e:
            logger.error(f"[{task_id}] Error processing DSC declaration: {e}")
            raise wrap_error("Error processing DSC declaration", e) from e

        logger.info(f"[{task_id}] Done processing DSC declaration")

    async def device_info(self) -> DeviceInfo:
        if self._device_info is None:
            self._device_info = await self.gateway.device_info()
        return self._device_info

    async def _device_path(self) -> str:
        return f"{PATHS.Device}/~Common~{(await self.device_info()).hostname}"

    # --- Addresses ---

    async def _config_sync(self) -> None:
        config_sync = self.common.config_sync
        if config_sync is None or config_sync == self.current.config_sync:
            return
        # the address may have come through a pointer to a self IP with a CIDR
        await self.cluster.config_sync_ip(strip_cidr(config_sync.configsync_ip), SHORT_RETRY)

    async def _failover_unicast(self) -> None:
        unicast = self.common.failover_unicast
        if unicast is None or unicast == self.current.failover_unicast:
            return
        body: dict[str, Any]
        if not unicast.address_ports:
            body = {"unicastAddress": "none"}
        else:
            body = {
                "unicastAddress": [
                    {"ip": strip_cidr(item.address), "port": item.port}
                    for item in unicast.address_ports
                ],
            }
        try:
            await self.gateway.modify(await self._device_path(), body)
        except Exception as e:
            logger.error(f"Error setting failover unicast address: {e}")
            raise

    async def _failover_multicast(self) -> None:
        multicast = self.common.failover_multicast
        if multicast is None or multicast == self.current.failover_multicast:
            return
        await self.gateway.modify(await self._device_path(), {
            "multicastInterface": multicast.interface,
            "multicastIp": multicast.address,
            "multicastPort": multicast.port,
        })

    async def _mirror_ip(self) -> None:
        mirror = self.common.mirror_ip
        if mirror is None or mirror == self.current.mirror_ip:
            return
        await self.gateway.modify(await self._device_path(), {
            "mirrorIp": strip_cidr(mirror.primary_ip),
            "mirrorSecondaryIp": strip_cidr(mirror.secondary_ip),
        })

    # --- Trust and device groups ---

    async def _trust_and_groups(self) -> None:
        """Join a cluster in one step when both trust and groups are declared.

        Otherwise establish trust on its own, then create or join each group.
        """
        trust = self.common.device_trust
        groups = self.common.device_groups

        if trust is not None and groups:
            try:
                for group in groups:
                    await self._join_or_create(trust, group)
            except Exception as e:
                logger.error(f"Error creating/joining device trust/group: {e}")
                raise
            return

        try:
            await self._device_trust()
            for group in groups:
                members, owner = await self.convert_to_hostnames(group.members, group.owner)
                await self._device_group(group, members, owner)
        except Exception as e:
            logger.error(f"Error handling device trust and group: {e}")
            raise

    async def _join_or_create(self, trust: DeviceTrustConfig, group: DeviceGroupConfig) -> None:
        members, owner = await self.convert_to_hostnames(group.members, group.owner)
        info = await self.device_info()
        if info.hostname == owner:
            is_authority = True
        else:
            is_authority = await self.is_remote_host(info, trust.remote_host)

        if is_authority:
            # The joining side's join_cluster covers trust for both ends
            await self._device_group(group, members, owner)
        else:
            logger.debug("Passing off to join cluster")
            await self._join_cluster(trust, group, members)

    async def _join_cluster(
        self,
        trust: DeviceTrustConfig,
        group: DeviceGroupConfig,
        members: list[str],
    ) -> None:
        await self.gateway.reinitialize(trust.local_username, trust.local_password)
        await check_dns_resolution(trust.remote_host)
        await self.cluster.join_cluster(
            group.name,
            trust.remote_host,
            trust.remote_username,
            trust.remote_password,
            False,
            sync_comp_devices=members,
        )
        synced_members, _ = await self.convert_to_hostnames(group.members, group.owner)
        await self.prune_device_group(group.name, synced_members)

    async def _device_trust(self) -> None:
        """Ask the authority host to add us to its trust domain."""
        trust = self.common.device_trust
        if trust is None:
            return

        info = await self.device_info()
        if await self.is_remote_host(info, trust.remote_host):
            return

        try:
            await check_dns_resolution(trust.remote_host)
            remote = await self.ctx.gateway_factory(
                trust.remote_host, trust.remote_username, trust.remote_password
            )
            try:
                await remote.cluster.add_to_trust(
                    info.hostname,
                    info.management_address,
                    trust.local_username,
                    trust.local_password,
                )
            finally:
                await remote.disconnect()
            await self.cluster.sync_complete()
        except Exception as e:
            logger.error(f"Could not add to remote trust: {e}")
            raise

    async def _device_group(self, group: DeviceGroupConfig, members: list[str], owner: str) -> None:
        info = await self.device_info()
        try:
            if info.hostname == owner:
                await self._create_device_group(group, members)
            else:
                await self._wait_for_device_group(group.name)
                await self.cluster.add_to_device_group(info.hostname, group.name)
                await self.prune_device_group(group.name, members)
        except Exception as e:
            logger.error(f"Error handling device group: {e}")
            raise

    async def _create_device_group(self, group: DeviceGroupConfig, members: list[str]) -> None:
        hostname = (await self.device_info()).hostname
        existing: list[str] = []
        if await self.cluster.has_device_group(group.name):
            existing = await self._group_devices(group.name)

        # Only members that already trust us can be placed in the group
        devices = await self.cluster.are_in_trust_group(members)
        added = [d for d in devices if d not in existing and d != hostname]

        await self.cluster.create_device_group(
            group.name,
            group.type,
            devices,
            {
                "autoSync": group.auto_sync,
                "saveOnAutoSync": group.save_on_auto_sync,
                "networkFailover": group.network_failover,
                "fullLoadOnSync": group.full_load_on_sync,
                "asmSync": group.asm_sync,
            },
        )
        pruned = await self.prune_device_group(group.name, members)
        if added or pruned:
            await self.cluster.sync("to-group", group.name)
        await self.cluster.sync_complete(CREATE_GROUP_SYNC_RETRY, connected_devices=members)

    async def _wait_for_device_group(self, name: str) -> None:
        """The owner may create the group after we come up, so poll for it."""
        async def _check() -> None:
            if not await self.cluster.has_device_group(name):
                raise OnboardError(f"Device group {name} does not exist on this device.")

        await try_until(SHORT_RETRY, _check, exceptions=(OnboardError,))

    async def _group_devices(self, name: str) -> list[str]:
        devices = await self.gateway.list(f"{PATHS.DeviceGroup}/~Common~{name}/devices")
        if not isinstance(devices, list):
            return []
        return [device["name"] for device in devices]

    async def prune_device_group(self, name: str, members: list[str]) -> bool:
        """Remove group devices that are not in members; True if any were removed."""
        if not members:
            return False
        to_remove = [d for d in await self._group_devices(name) if d not in members]
        if not to_remove:
            return False
        logger.info(f"Removing {to_remove} from device group {name}")
        await self.cluster.remove_from_device_group(to_remove, name)
        return True

    async def convert_to_hostnames(
        self,
        members: Optional[list[str]],
        owner: Optional[str],
    ) -> tuple[list[str], str]:
        """Map member and owner IPs to device hostnames.

        The clustering API only knows hostnames. Members whose IP matches no
        known device are dropped; an unmatched owner is returned unchanged.
        """
        members = members or []
        owner = owner or ""

        inventory: list[dict[str, Any]] = []
        if any(is_ip(m) for m in members) or is_ip(owner):
            inventory = await self.gateway.list(PATHS.Device) or []

        def convert(address: str) -> str:
            if not is_ip(address):
                return address
            wanted = minimize_ip(address)
            for device in inventory:
                known = (
                    minimize_ip(strip_cidr(device.get("configsyncIp") or "")),
                    minimize_ip(strip_cidr(device.get("managementIp") or "")),
                )
                if wanted in known:
                    return device["name"]
            return address

        converted = [convert(m) for m in members]
        return [m for m in converted if not is_ip(m)], convert(owner)

    async def is_remote_host(self, info: DeviceInfo, remote_host: str) -> bool:
        """True when this device is the one named by remote_host (the authority)."""
        if remote_host in (info.hostname, info.management_address):
            return True
        wanted = minimize_ip(remote_host)
        self_ips = await self.gateway.list(PATHS.SelfIp)
        return any(
            minimize_ip(strip_cidr(self_ip.get("address", ""))) == wanted
            for self_ip in self_ips or []
        )

    # --- Traffic groups and MAC masquerade ---

    async def _traffic_groups(self) -> None:
        groups = [g for g in self.common.traffic_groups if g not in self.current.traffic_groups]
        await asyncio.gather(*(
            self.gateway.create_or_modify(PATHS.TrafficGroup, {
                "name": group.name,
                "partition": "Common",
                "autoFailbackEnabled": "true" if group.auto_failback_enabled else "false",
                "autoFailbackTime": group.auto_failback_time,
                "failoverMethod": group.failover_method,
                "haLoadFactor": group.ha_load_factor,
                "haOrder": [f"/Common/{host}" for host in group.ha_order],
            })
            for group in groups
        ))

    async def _mac_masquerade(self) -> None:
        entries = [m for m in self.common.mac_masquerades if m not in self.current.mac_masquerades]
        if not entries:
            return
        interfaces: Optional[list[dict[str, Any]]] = None
        for entry in entries:
            if entry.source_interface and interfaces is None:
                interfaces = await self.gateway.list(PATHS.Interface) or []
            mac = self.masquerade_mac(entry, interfaces or [])
            await self.gateway.modify(
                f"{PATHS.TrafficGroup}/~Common~{entry.traffic_group}", {"mac": mac}
            )

    def masquerade_mac(self, entry: MacMasqueradeConfig, interfaces: list[dict[str, Any]]) -> str:
        if not entry.source_interface:
            # rollback declarations carry the MAC that was in place
            return entry.mac or "none"
        match = next((i for i in interfaces if i.get("name") == entry.source_interface), None)
        if match is None or not match.get("macAddress"):
            raise OnboardError("Cannot find MAC for given interface")
        return derive_masquerade_mac(match["macAddress"])
