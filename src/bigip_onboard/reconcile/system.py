"""Settings reconciler: everything that is not device service clustering.

Phases run strictly in order; later phases rely on earlier ones (DHCP must
stop owning an option before we write it, DNS must be in place before NTP
servers are resolved, and so on).
"""
import asyncio
import base64
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional

from ..crypto import decrypt_command
from ..declaration.schema import (
    ManagementIpConfig,
    ManagementRouteConfig,
    SnmpTrapDestinationConfig,
    SnmpUserConfig,
    SystemConfig,
    UserConfig,
)
from ..utils.connection import MEDIUM_RETRY, NO_RETRY, try_until
from ..utils.logging_config import timed_section
from .constants import (
    DEFAULT_ROUTE_NETWORKS,
    DEVICE_CERT_PATH,
    DEVICE_KEY_PATH,
    DHCP_OPTION_HOSTNAME,
    DHCP_OPTION_NAME_SERVERS,
    DHCP_OPTION_NTP,
    DHCP_OPTION_SEARCH,
    DHCP_SENTINEL,
    DUAL_STACK_DHCP_MODES,
    EVENTS,
    GUI_AUDIT_MIN_VERSION,
    PATHS,
    PLATFORMS,
    ROOT_SSH_DIR,
    SNMP_PASSWORD_DEFAULT_MIN_VERSION,
    SUPERUSER_KEY_MARKER,
)
from .context import HandlerStatus, ReconcileContext
from .errors import OnboardError, PreconditionError, wrap_error
from .licensing import handle_license
from .rollback import RollbackLedger
from .util import (
    check_dns_resolution,
    execute_bash_command_remote,
    get_current_platform,
    is_ipv4,
    needs_update,
    version_at_least,
)

logger = logging.getLogger(__name__)


def _enabled(value: Optional[bool]) -> str:
    return "enabled" if value else "disabled"


def _compact(body: dict[str, Any]) -> dict[str, Any]:
    """Drop unset fields so the device keeps its defaults."""
    return {k: v for k, v in body.items() if v is not None}


def _is_dhcp(description: Optional[str]) -> bool:
    return bool(description) and DHCP_SENTINEL in description


def route_network(network: Optional[str]) -> Optional[str]:
    """Give a bare route network its host prefix (/32 or /128)."""
    if not network or network in DEFAULT_ROUTE_NETWORKS or "/" in network:
        return network
    return f"{network}/32" if is_ipv4(network) else f"{network}/128"


def _normalized_route(route: ManagementRouteConfig) -> ManagementRouteConfig:
    return replace(route, network=route_network(route.network))


class SettingsReconciler:
    """Applies DB variables, management networking, DNS/NTP, certificates,
    system settings, users, licensing, SNMP, syslog, services and disk."""

    def __init__(self, context: ReconcileContext):
        self.ctx = context
        self.gateway = context.gateway
        self.common = context.common
        self.current = context.current
        self.status = HandlerStatus(rollback_info=context.state.rollback_info)
        self.version: Optional[str] = None
        self._platform: Optional[str] = None

    async def process(self) -> HandlerStatus:
        """Run every phase in order.

        Returns:
            HandlerStatus with the reboot flag and the rollback info

        Raises:
            OnboardError: on the first failing phase
        """
        task_id = self.ctx.task_id
        logger.info(f"[{task_id}] Processing system declaration")
        phases: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("system.version", self._fetch_version),
            ("system.db_vars", self._db_vars),
            ("system.dhcp_options", self._dhcp_options),
            ("system.management_dhcp", self._management_dhcp),
            ("system.management_ip", self._management_ip),
            ("system.management_routes", self._management_routes),
            ("system.dns", self._dns),
            ("system.ntp", self._ntp),
            ("system.certificate", self._device_certificate),
            ("system.settings", self._system),
            ("system.users", self._users),
            ("system.license", self._license),
            ("system.snmp", self._snmp),
            ("system.syslog", self._syslog),
            ("system.traffic_control", self._traffic_control),
            ("system.httpd", self._httpd),
            ("system.sshd", self._sshd),
            ("system.disk", self._disk),
        ]
        try:
            for name, phase in phases:
                logger.debug(f"[{task_id}] Checking {name}")
                async with timed_section(name, device_id=task_id):
                    await phase()
        except OnboardError as e:
            logger.error(f"[{task_id}] Error processing system declaration: {e}")
            raise
        except Exception as e:
            logger.error(f"[{task_id}] Error processing system declaration: {e}")
            raise wrap_error("Error processing system declaration", e) from e

        logger.info(f"[{task_id}] Done processing system declaration")
        return self.status

    async def _bash(self, command: str) -> str:
        return await execute_bash_command_remote(self.gateway, command)

    async def platform(self) -> str:
        if self._platform is None:
            self._platform = await get_current_platform()
        return self._platform

    async def _fetch_version(self) -> None:
        self.version = (await self.gateway.device_info()).version

    async def _db_vars(self) -> None:
        changed = {
            name: value
            for name, value in self.common.db_variables.items()
            if self.current.db_variables.get(name) != value
        }
        if changed:
            await self.gateway.onboard.set_db_vars(changed)

    # --- DHCP ---

    def _dhcp_options_to_disable(self) -> list[str]:
        options = []
        if self.common.ntp and self.common.ntp.servers:
            options.append(DHCP_OPTION_NTP)
        if self.common.dns:
            if self.common.dns.name_servers:
                options.append(DHCP_OPTION_NAME_SERVERS)
            if self.common.dns.search:
                options.append(DHCP_OPTION_SEARCH)
        if self.common.declared_hostname:
            options.append(DHCP_OPTION_HOSTNAME)
        return options

    async def _dhcp_options(self) -> None:
        """Stop dhclient from overwriting values we are about to write."""
        to_disable = self._dhcp_options_to_disable()
        if not to_disable:
            return

        dhcp_config = await self.gateway.list(PATHS.ManagementDhcpConfig)
        current_options = (dhcp_config or {}).get("requestOptions")
        if not current_options:
            return
        new_options = [option for option in current_options if option not in to_disable]
        if len(new_options) == len(current_options):
            return

        await self.gateway.modify(PATHS.ManagementDhcpConfig, {"requestOptions": new_options})

        global_settings = await self.gateway.list(PATHS.System)
        if (global_settings or {}).get("mgmtDhcp") == "disabled":
            return
        await self._restart_dhclient()

    async def _restart_dhclient(self) -> None:
        await self.gateway.create(PATHS.DhclientService, {"command": "restart", "name": "dhclient"})

        async def _running() -> None:
            stats = await self.gateway.list(PATHS.DhclientStats, retry_policy=NO_RETRY)
            raw = ((stats or {}).get("apiRawValues") or {}).get("apiAnonymous")
            if raw and "running" in raw:
                return
            raise RuntimeError(f"dhclient status is {raw}" if raw else "Unable to read dhclient status")

        await try_until(MEDIUM_RETRY, _running)

    def resolve_management_dhcp(self) -> Optional[str]:
        """Vote on the management DHCP mode; None means nobody cares.

        DHCP-looking entries vote 'enabled', explicit static entries vote
        'disabled', and a disagreement resolves to 'disabled'.
        """
        ip_vote = None
        if self.common.management_ips:
            dhcp = all(_is_dhcp(ip.description) for ip in self.common.management_ips)
            ip_vote = "enabled" if dhcp else "disabled"

        route_vote = None
        system = self.common.system or SystemConfig()
        if system.preserve_orig_dhcp_routes:
            route_vote = "enabled"
        elif self.common.management_routes:
            dhcp = any(not r.name or _is_dhcp(r.description) for r in self.common.management_routes)
            route_vote = "enabled" if dhcp else "disabled"

        votes = {vote for vote in (ip_vote, route_vote) if vote}
        if not votes:
            return None
        if len(votes) > 1:
            return "disabled"
        return votes.pop()

    async def _management_dhcp(self) -> None:
        mode = self.resolve_management_dhcp()
        if mode is None:
            return
        global_settings = await self.gateway.list(PATHS.System)
        current_mode = (global_settings or {}).get("mgmtDhcp")
        if current_mode in DUAL_STACK_DHCP_MODES:
            logger.info(f"Management DHCP is {current_mode}, leaving it alone")
            return
        if current_mode != mode:
            await self.gateway.modify(PATHS.System, {"mgmtDhcp": mode})

    # --- Management address and routes ---

    async def _management_ip(self) -> None:
        for ip in self.common.management_ips:
            if _is_dhcp(ip.description):
                continue
            await self._apply_management_ip(ip)

    async def _apply_management_ip(self, ip: ManagementIpConfig) -> None:
        current = next(
            (c for c in self.current.management_ips if c.address == ip.address), None
        )
        if current == ip:
            return

        path = f"{PATHS.ManagementIp}/{ip.name.replace('/', '~')}"
        if current is not None and current.name == ip.name:
            await self.gateway.modify(path, {"description": ip.description or ""})
            return

        remote = self.gateway.host != "localhost"
        if current is not None:
            # Same address, different mask: the device sees an update as a duplicate
            if remote:
                raise PreconditionError(
                    "Cannot change the management IP mask when running remotely"
                )
            await self.gateway.delete(f"{PATHS.ManagementIp}/{current.name.replace('/', '~')}")

        await self.gateway.create(
            PATHS.ManagementIp, _compact({"name": ip.name, "description": ip.description})
        )
        if remote:
            self.gateway.set_host(ip.address)

    async def _management_routes(self) -> None:
        routes = [r for r in self.common.management_routes if r.name and not _is_dhcp(r.description)]
        if not routes:
            return
        try:
            await asyncio.gather(*(self._apply_route(route) for route in routes))
        except Exception as e:
            logger.error(f"Error creating management routes: {e}")
            raise

    async def _apply_route(self, route: ManagementRouteConfig) -> None:
        network = route_network(route.network)
        current_routes = {r.name: r for r in self.current.management_routes if r.name}
        existing = current_routes.get(route.name)
        if existing is not None and _normalized_route(existing) == _normalized_route(route):
            return

        # Routes are keyed by name, so a rename is delete + create
        for old in current_routes.values():
            if old.name != route.name and route_network(old.network) == network:
                await self.gateway.delete(f"{PATHS.ManagementRoute}/~Common~{old.name}")

        body = _compact({
            "name": route.name,
            "partition": "Common",
            "gateway": route.gw,
            "network": network,
            "mtu": route.mtu,
            "type": route.type,
            "description": route.description,
        })

        if existing is not None and route_network(existing.network) != network:
            if await self.platform() != PLATFORMS.BIGIP:
                raise PreconditionError("Cannot update network property when running remotely")
            await self.gateway.delete(f"{PATHS.ManagementRoute}/~Common~{route.name}")
            await self.gateway.create(PATHS.ManagementRoute, body, retry_policy=MEDIUM_RETRY)
            return

        await self.gateway.create_or_modify(PATHS.ManagementRoute, body, retry_policy=MEDIUM_RETRY)

    # --- DNS / NTP ---

    async def _dns(self) -> None:
        dns = self.common.dns
        if dns is None or dns == self.current.dns:
            return
        await self.gateway.replace(PATHS.DNS, {"name-servers": dns.name_servers, "search": dns.search})

    async def _ntp(self) -> None:
        ntp = self.common.ntp
        if ntp is None or ntp == self.current.ntp:
            return
        await asyncio.gather(*(check_dns_resolution(server) for server in ntp.servers))
        await self.gateway.replace(PATHS.NTP, _compact({"servers": ntp.servers, "timezone": ntp.timezone}))

    # --- Device certificate ---

    async def _device_certificate(self) -> None:
        """Compare against the files on disk; they are the only source of truth."""
        ledger = RollbackLedger(self.ctx.state.rollback_info, self.gateway)
        cert = self.common.device_certificate

        if cert is None:
            if ledger.has_pending():
                await ledger.restore()
                self.status.reboot_required = True
                return
            restored = False
            for path in (DEVICE_CERT_PATH, DEVICE_KEY_PATH):
                restored = await ledger.restore_original(path) or restored
            if restored:
                self.status.reboot_required = True
            return

        if ledger.has_pending():
            # An interrupted task may have left half-written files behind
            await ledger.restore()
            self.status.reboot_required = True

        current_cert = await self._bash(f"cat {DEVICE_CERT_PATH}")
        cert_changed = current_cert.strip() != cert.certificate.strip()
        key_changed = False
        if cert.private_key is not None:
            current_key = await self._bash(f"cat {DEVICE_KEY_PATH}")
            key_changed = current_key.strip() != cert.private_key.strip()

        if not cert_changed and not key_changed:
            logger.debug("Device certificate unchanged")
            return

        if cert_changed:
            await ledger.ensure_original(DEVICE_CERT_PATH)
            await ledger.backup(DEVICE_CERT_PATH)
            encoded = base64.b64encode(cert.certificate.encode("utf-8")).decode("ascii")
            await self._bash(f" echo '{encoded}' | base64 -d > {DEVICE_CERT_PATH}")

        if key_changed:
            await ledger.ensure_original(DEVICE_KEY_PATH)
            await ledger.backup(DEVICE_KEY_PATH)
            tokens = await self.ctx.codec.encrypt(cert.private_key, self.gateway, self.ctx.task_id)
            await self._bash(decrypt_command(tokens, DEVICE_KEY_PATH))

        # httpd has no clean reload for a new certificate
        self.status.reboot_required = True

    # --- System settings ---

    async def _system(self) -> None:
        writes = []
        hostname = self.common.declared_hostname
        if needs_update(hostname, self.current.declared_hostname):
            writes.append(self.gateway.onboard.hostname(hostname))

        system = self.common.system
        if system is not None:
            current = self.current.system or SystemConfig()
            global_settings: dict[str, Any] = {}
            if needs_update(system.console_inactivity_timeout, current.console_inactivity_timeout):
                global_settings["consoleInactivityTimeout"] = system.console_inactivity_timeout
            if (needs_update(system.gui_audit_log, current.gui_audit_log)
                    and version_at_least(self.version, GUI_AUDIT_MIN_VERSION)):
                global_settings["guiAudit"] = _enabled(system.gui_audit_log)
            if global_settings:
                writes.append(self.gateway.modify(PATHS.System, global_settings))

            if needs_update(system.cli_inactivity_timeout, current.cli_inactivity_timeout):
                writes.append(self.gateway.modify(
                    PATHS.CLI, {"idleTimeout": system.cli_inactivity_timeout // 60}
                ))

            update: dict[str, Any] = {}
            if needs_update(system.auto_phonehome, current.auto_phonehome):
                update["autoPhonehome"] = _enabled(system.auto_phonehome)
            if needs_update(system.auto_check, current.auto_check):
                update["autoCheck"] = _enabled(system.auto_check)
            if update:
                writes.append(self.gateway.modify(PATHS.SoftwareUpdate, update))

            if needs_update(system.tmsh_audit_log, current.tmsh_audit_log):
                writes.append(self.gateway.modify(
                    PATHS.DbConfigAuditing,
                    {"value": "enable" if system.tmsh_audit_log else "disable"},
                ))
            if needs_update(system.mcp_audit_log, current.mcp_audit_log):
                writes.append(self.gateway.modify(PATHS.McpdLogSettings, {"audit": system.mcp_audit_log}))

        await asyncio.gather(*writes)

    # --- Users ---

    async def _users(self) -> None:
        await asyncio.gather(*(self._apply_user(user) for user in self.common.users))

    async def _apply_user(self, user: UserConfig) -> None:
        if user.user_type == "root" and user.name == "root":
            await self._root_user(user)
        elif user.user_type == "regular":
            await self._regular_user(user)
        else:
            logger.warning(
                f"{user.name} has userType {user.user_type}. "
                "Only the root user can have userType root."
            )

    async def _root_user(self, user: UserConfig) -> None:
        if user.new_password:
            await self.gateway.onboard.password("root", user.new_password, user.old_password)
        if not user.keys:
            return

        authorized_keys = f"{ROOT_SSH_DIR}/authorized_keys"
        existing = await self._bash(f"cat {authorized_keys}")
        superuser_keys = [
            line for line in existing.split("\n") if line.endswith(SUPERUSER_KEY_MARKER)
        ]
        keys = "\n".join(superuser_keys + user.keys)
        # leading space keeps the command out of bash history
        await self._bash(f" echo '{keys}' > {authorized_keys}")

    async def _regular_user(self, user: UserConfig) -> None:
        path = PATHS.BigIqUser if self.gateway.is_bigiq() else PATHS.User
        body: dict[str, Any] = {"name": user.name}
        if user.password:
            body["password"] = user.password
        if user.shell:
            body["shell"] = user.shell
        if user.partition_access:
            body["partition-access"] = [
                {"name": partition, "role": access.get("role")}
                for partition, access in user.partition_access.items()
            ]

        try:
            await self.gateway.create_or_modify(path, body)
            # Our own password just changed underneath the session
            if user.name == self.gateway.user and user.password:
                await self.gateway.reinitialize(user.name, user.password)
        except Exception as e:
            logger.error(f"Error creating/updating user: {e}")
            raise

        if not user.keys:
            return
        ssh_dir = f"/home/{user.name}/.ssh"
        keys = "\n".join(user.keys)
        await self._bash("; ".join([
            f" mkdir -p {ssh_dir}",
            f"echo '{keys}' > {ssh_dir}/authorized_keys",
            f"chown -R {user.name}:webusers {ssh_dir}",
            f"chmod -R 700 {ssh_dir}",
            f"chmod 600 {ssh_dir}/authorized_keys",
        ]))

    async def _license(self) -> None:
        await handle_license(self.ctx)

    # --- SNMP ---

    def snmp_user_body(self, user: SnmpUserConfig) -> dict[str, Any]:
        """Passwords default to 'none' on 14.0+; older devices reject the field."""
        default = "none" if version_at_least(self.version, SNMP_PASSWORD_DEFAULT_MIN_VERSION) else None
        return _compact({
            "name": user.name,
            "username": user.name,
            "oidSubset": user.oid,
            "access": user.access,
            "authProtocol": user.auth_protocol or "none",
            "authPassword": user.auth_password or default,
            "privacyProtocol": user.privacy_protocol or "none",
            "privacyPassword": user.privacy_password or default,
        })

    async def _snmp(self) -> None:
        agent = self.common.snmp_agent
        if agent is not None and agent != self.current.snmp_agent:
            await self.gateway.modify(PATHS.SnmpAgent, {
                "sysContact": agent.contact,
                "sysLocation": agent.location,
                "allowedAddresses": agent.allow_list,
            })

        events = self.common.snmp_trap_events
        if events is not None and events != self.current.snmp_trap_events:
            await self.gateway.modify(PATHS.SnmpTrapEvents, {
                "agentTrap": _enabled(events.agent_start_stop),
                "authTrap": _enabled(events.authentication),
                "bigipTraps": _enabled(events.device),
            })

        users = [u for u in self.common.snmp_users if u not in self.current.snmp_users]
        await asyncio.gather(*(
            self.gateway.create_or_modify(PATHS.SnmpUser, self.snmp_user_body(u)) for u in users
        ))

        communities = [
            c for c in self.common.snmp_communities if c not in self.current.snmp_communities
        ]
        await asyncio.gather(*(
            self.gateway.create_or_modify(PATHS.SnmpCommunity, _compact({
                "name": c.name,
                "communityName": c.name,
                "oidSubset": c.oid,
                "access": c.access,
                "source": c.source,
                "ipv6": _enabled(c.ipv6),
            }))
            for c in communities
        ))

        destinations = [
            d for d in self.common.snmp_trap_destinations
            if d not in self.current.snmp_trap_destinations
        ]
        await asyncio.gather(*(
            self.gateway.create_or_modify(PATHS.SnmpTrapDestination, self._trap_body(d))
            for d in destinations
        ))

    def _trap_body(self, destination: SnmpTrapDestinationConfig) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": destination.name,
            "host": destination.destination,
            "port": destination.port,
            "version": destination.version,
            "community": destination.community,
            "securityName": destination.security_name,
            "engineId": destination.engine_id,
            "network": "mgmt" if destination.network in ("mgmt", "management") else "other",
        }
        if destination.auth_protocol:
            body["authProtocol"] = destination.auth_protocol
            body["authPassword"] = destination.auth_password
            body["securityLevel"] = "auth-no-privacy"
        if destination.privacy_protocol:
            body["privacyProtocol"] = destination.privacy_protocol
            body["privacyPassword"] = destination.privacy_password
            body["securityLevel"] = "auth-privacy"
        return _compact(body)

    # --- Syslog and services ---

    async def _syslog(self) -> None:
        servers = self.common.syslog_remote_servers
        if not servers or servers == self.current.syslog_remote_servers:
            return
        await self.gateway.modify(PATHS.Syslog, {
            "remoteServers": [
                _compact({
                    "name": s.name,
                    "host": s.host,
                    "localIp": s.local_ip,
                    "remotePort": s.remote_port,
                })
                for s in servers
            ],
        })

    async def _traffic_control(self) -> None:
        tc = self.common.traffic_control
        if tc is None or tc == self.current.traffic_control:
            return
        body = _compact({
            "acceptIpOptions": _enabled(tc.accept_ip_options),
            "acceptIpSourceRoute": _enabled(tc.accept_ip_source_route),
            "allowIpSourceRoute": _enabled(tc.allow_ip_source_route),
            "continueMatching": _enabled(tc.continue_matching),
            "maxIcmpRate": tc.max_icmp_rate,
            "portFindLinear": tc.max_port_find_linear,
            "portFindRandom": tc.max_port_find_random,
            "maxRejectRate": tc.max_reject_rate,
            "maxRejectRateTimeout": tc.max_reject_rate_timeout,
            "minPathMtu": tc.min_path_mtu,
            "pathMtuDiscovery": _enabled(tc.path_mtu_discovery),
            "portFindThresholdWarning": _enabled(tc.port_find_threshold_warning),
            "portFindThresholdTrigger": tc.port_find_threshold_trigger,
            "portFindThresholdTimeout": tc.port_find_threshold_timeout,
            "rejectUnmatched": _enabled(tc.reject_unmatched),
        })
        try:
            await self.gateway.modify(PATHS.TrafficControl, body)
        except Exception as e:
            logger.error(f"Error modifying traffic control settings: {e}")
            raise wrap_error("Error modifying traffic control settings", e) from e

    async def _httpd(self) -> None:
        httpd = self.common.httpd
        if httpd is None or httpd == self.current.httpd:
            return
        # Users write 'all', the device stores 'All'
        allow = [("All" if item == "all" else item) for item in httpd.allow] or None
        body = _compact({
            "allow": allow,
            "authPamIdleTimeout": httpd.auth_pam_idle_timeout,
            "maxClients": httpd.max_clients,
            "sslCiphersuite": ":".join(httpd.ssl_ciphersuite) or None,
            "sslProtocol": httpd.ssl_protocol,
        })
        try:
            await self.gateway.modify(PATHS.HTTPD, body)
        except Exception as e:
            logger.error(f"Error modifying HTTPD settings: {e}")
            raise wrap_error("Error modifying HTTPD settings", e) from e

    def sshd_include(self) -> str:
        """The sshd_config fragment for settings the REST object has no field for."""
        sshd = self.common.sshd
        lines = []
        if sshd.ciphers:
            lines.append(f"Ciphers {','.join(sshd.ciphers)}")
        if sshd.login_grace_time:
            lines.append(f"LoginGraceTime {sshd.login_grace_time}")
        if sshd.macs:
            lines.append(f"MACs {','.join(sshd.macs)}")
        if sshd.max_auth_tries:
            lines.append(f"MaxAuthTries {sshd.max_auth_tries}")
        if sshd.max_startups:
            lines.append(f"MaxStartups {sshd.max_startups}")
        if sshd.protocol:
            lines.append(f"Protocol {sshd.protocol}")
        return "".join(f"{line}\n" for line in lines)

    async def _sshd(self) -> None:
        sshd = self.common.sshd
        if sshd is None or sshd == self.current.sshd:
            return
        body = _compact({
            "allow": sshd.allow or None,
            "banner": _enabled(bool(sshd.banner)),
            "bannerText": sshd.banner,
            "include": self.sshd_include(),
            "inactivityTimeout": sshd.inactivity_timeout,
        })
        try:
            await self.gateway.modify(PATHS.SSHD, body)
        except Exception as e:
            logger.error(f"Error modifying SSHD settings: {e}")
            raise wrap_error("Error modifying SSHD settings", e) from e

    # --- Disk ---

    async def _disk(self) -> None:
        """Grow the application data volume, then reboot and wait."""
        disk = self.common.disk
        if disk is None:
            return
        current_size = self.current.disk.application_data if self.current.disk else None
        if current_size is not None and disk.application_data <= current_size:
            raise PreconditionError(
                f"Disk.applicationData ({disk.application_data}) must be larger "
                f"than the current size ({current_size})"
            )

        await self.gateway.modify(f"{PATHS.Disk}/~appdata", {"newSize": disk.application_data})
        await self.gateway.save()
        self.ctx.events.emit(EVENTS.REBOOT_NOW, self.ctx.task_id)

        if await self.platform() == PLATFORMS.BIGIP:
            # We are on the box that is rebooting; the restart ends this task
            await self.ctx.events.wait_for_process_exit()
        else:
            await asyncio.sleep(self.ctx.settings.reboot_settle_delay)
            await self.gateway.ready()
