"""Parser for onboarding declarations.

Converts the raw JSON declaration into the parsed ``Common`` tree and then into
a strongly-typed CommonDeclaration. The current-config snapshot uses the same
parsed shape and is run through the same builder.
"""
import base64
import binascii
import copy
import logging
from typing import Any, Optional

from .schema import (
    CommonDeclaration,
    ConfigSyncConfig,
    Declaration,
    DeviceCertificateConfig,
    DeviceGroupConfig,
    DeviceTrustConfig,
    DiskConfig,
    DNSConfig,
    FailoverMulticastConfig,
    FailoverUnicastConfig,
    HTTPDConfig,
    LicenseConfig,
    MacMasqueradeConfig,
    ManagementIpConfig,
    ManagementRouteConfig,
    MirrorIpConfig,
    NTPConfig,
    PoolLicense,
    RegKeyLicense,
    RevokeTarget,
    SnmpAgentConfig,
    SnmpCommunityConfig,
    SnmpTrapDestinationConfig,
    SnmpTrapEventsConfig,
    SnmpUserConfig,
    SSHDConfig,
    SyslogRemoteServerConfig,
    SystemConfig,
    TrafficControlConfig,
    TrafficGroupConfig,
    UnicastAddress,
    UserConfig,
)

logger = logging.getLogger(__name__)

# Classes that appear at most once and are stored without a name level
NAMELESS_CLASSES = (
    "DbVariables",
    "DNS",
    "NTP",
    "License",
    "ConfigSync",
    "FailoverUnicast",
    "FailoverMulticast",
    "DeviceTrust",
    "SnmpAgent",
    "SnmpTrapEvents",
    "System",
    "TrafficControl",
    "HTTPD",
    "SSHD",
    "Disk",
    "MirrorIp",
)

# Top-level keys of a device declaration that are not class instances
RESERVED_KEYS = ("class", "schemaVersion", "label", "async", "result", "controls")


class ParseError(Exception):
    """Error parsing a declaration."""
    pass


def resolve_pointer(root: Any, pointer: str) -> Any:
    """Follow a JSON pointer ('/Common/internalSelf/address') through dicts and lists.

    Raises:
        KeyError: the pointer does not resolve
    """
    node = root
    for token in pointer.lstrip("/").split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        if isinstance(node, list):
            try:
                node = node[int(token)]
            except (ValueError, IndexError) as e:
                raise KeyError(pointer) from e
        elif isinstance(node, dict) and token in node:
            node = node[token]
        else:
            raise KeyError(pointer)
    return node


def dereference(node: Any, root: dict[str, Any]) -> Any:
    """Replace string values that are JSON pointers with the string they point at.

    A pointer that does not resolve to a string leaves the original value.
    """
    if isinstance(node, dict):
        return {key: dereference(value, root) for key, value in node.items()}
    if isinstance(node, list):
        return [dereference(value, root) for value in node]
    if isinstance(node, str) and node.startswith("/") and len(node) > 1:
        try:
            target = resolve_pointer(root, node)
        except KeyError:
            return node
        if isinstance(target, str):
            return target
    return node


def _pem(value: Any) -> Optional[str]:
    """Certificates and keys come as PEM text or {"base64": ...}."""
    if value is None:
        return None
    if isinstance(value, dict):
        encoded = value.get("base64")
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ParseError(f"Invalid base64 certificate data: {e}")
    return str(value)


def _named(section: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    return list((section or {}).values())


class DeclarationParser:
    """Parse declarations into the parsed tree and the typed model."""

    def parse(self, raw: dict[str, Any]) -> Declaration:
        """
        Parse a declaration.

        Accepts either a full request ({"class": "DO", "declaration": {...}})
        or a device declaration ({"class": "Device", "Common": {...}}).

        Raises:
            ParseError: If the declaration has no Common partition
        """
        device = raw.get("declaration", raw) if raw.get("class") == "DO" else raw
        if not isinstance(device, dict) or not isinstance(device.get("Common"), dict):
            raise ParseError("Declaration must contain a Common object")

        device = dereference(copy.deepcopy(device), device)
        parsed = {"Common": self.flatten(device["Common"])}
        return Declaration(common=self.build_common(parsed["Common"]), parsed=parsed)

    def flatten(self, common: dict[str, Any]) -> dict[str, Any]:
        """Key class instances by class (and name) instead of by declaration label."""
        parsed: dict[str, Any] = {}
        for key, value in common.items():
            if key in RESERVED_KEYS:
                continue
            if not isinstance(value, dict) or "class" not in value:
                # plain properties such as the legacy 'hostname'
                parsed[key] = value
                continue

            class_name = value["class"]
            props = {k: v for k, v in value.items() if k != "class"}
            if "remark" in props:
                props["description"] = props.pop("remark")

            if class_name in NAMELESS_CLASSES:
                parsed[class_name] = props
            elif class_name == "ManagementIp":
                address = props.pop("address", key)
                parsed.setdefault(class_name, {})[address] = {"name": address, **props}
            else:
                parsed.setdefault(class_name, {})[key] = {"name": key, **props}
        return parsed

    def build_common(self, parsed: Optional[dict[str, Any]]) -> CommonDeclaration:
        """Build the typed model from a parsed Common tree."""
        parsed = parsed or {}
        return CommonDeclaration(
            hostname=parsed.get("hostname"),
            db_variables=dict(parsed.get("DbVariables") or {}),
            dns=self._parse_dns(parsed.get("DNS")),
            ntp=self._parse_ntp(parsed.get("NTP")),
            system=self._parse_system(parsed.get("System")),
            management_ips=[
                ManagementIpConfig(name=ip["name"], description=ip.get("description"))
                for ip in _named(parsed.get("ManagementIp"))
            ],
            management_routes=[self._parse_route(r) for r in _named(parsed.get("ManagementRoute"))],
            device_certificate=self._parse_certificate(parsed.get("DeviceCertificate")),
            users=[self._parse_user(u) for u in _named(parsed.get("User"))],
            license=self._parse_license(parsed.get("License")),
            snmp_agent=self._parse_snmp_agent(parsed.get("SnmpAgent")),
            snmp_trap_events=self._parse_trap_events(parsed.get("SnmpTrapEvents")),
            snmp_users=[self._parse_snmp_user(u) for u in _named(parsed.get("SnmpUser"))],
            snmp_communities=[
                SnmpCommunityConfig(
                    name=c["name"],
                    oid=c.get("oid"),
                    access=c.get("access"),
                    source=c.get("source"),
                    ipv6=bool(c.get("ipv6", False)),
                )
                for c in _named(parsed.get("SnmpCommunity"))
            ],
            snmp_trap_destinations=[
                self._parse_trap_destination(d) for d in _named(parsed.get("SnmpTrapDestination"))
            ],
            syslog_remote_servers=[
                SyslogRemoteServerConfig(
                    name=s["name"],
                    host=s.get("host"),
                    local_ip=s.get("localIp"),
                    remote_port=s.get("remotePort"),
                )
                for s in _named(parsed.get("SyslogRemoteServer"))
            ],
            traffic_control=self._parse_traffic_control(parsed.get("TrafficControl")),
            httpd=self._parse_httpd(parsed.get("HTTPD")),
            sshd=self._parse_sshd(parsed.get("SSHD")),
            disk=self._parse_disk(parsed.get("Disk")),
            config_sync=self._parse_config_sync(parsed.get("ConfigSync")),
            failover_unicast=self._parse_unicast(parsed.get("FailoverUnicast")),
            failover_multicast=self._parse_multicast(parsed.get("FailoverMulticast")),
            device_trust=self._parse_device_trust(parsed.get("DeviceTrust")),
            device_groups=[self._parse_device_group(g) for g in _named(parsed.get("DeviceGroup"))],
            traffic_groups=[self._parse_traffic_group(g) for g in _named(parsed.get("TrafficGroup"))],
            mac_masquerades=[
                MacMasqueradeConfig(
                    name=m["name"],
                    source_interface=(m.get("source") or {}).get("interface"),
                    traffic_group=m.get("trafficGroup", "traffic-group-1"),
                    mac=m.get("mac"),
                )
                for m in _named(parsed.get("MAC_Masquerade"))
            ],
            mirror_ip=self._parse_mirror_ip(parsed.get("MirrorIp")),
        )

    def _parse_dns(self, config: Optional[dict[str, Any]]) -> Optional[DNSConfig]:
        if config is None:
            return None
        return DNSConfig(
            name_servers=list(config.get("nameServers") or []),
            search=list(config.get("search") or []),
        )

    def _parse_ntp(self, config: Optional[dict[str, Any]]) -> Optional[NTPConfig]:
        if config is None:
            return None
        return NTPConfig(servers=list(config.get("servers") or []), timezone=config.get("timezone"))

    def _parse_system(self, config: Optional[dict[str, Any]]) -> Optional[SystemConfig]:
        if config is None:
            return None
        return SystemConfig(
            hostname=config.get("hostname"),
            console_inactivity_timeout=config.get("consoleInactivityTimeout"),
            cli_inactivity_timeout=config.get("cliInactivityTimeout"),
            auto_phonehome=config.get("autoPhonehome"),
            auto_check=config.get("autoCheck"),
            tmsh_audit_log=config.get("tmshAuditLog"),
            gui_audit_log=config.get("guiAuditLog"),
            mcp_audit_log=config.get("mcpAuditLog"),
            preserve_orig_dhcp_routes=config.get("preserveOrigDhcpRoutes"),
        )

    def _parse_route(self, config: dict[str, Any]) -> ManagementRouteConfig:
        return ManagementRouteConfig(
            name=config.get("name"),
            gw=config.get("gw"),
            network=config.get("network"),
            mtu=config.get("mtu"),
            type=config.get("type"),
            description=config.get("description"),
        )

    def _parse_certificate(
        self,
        section: Optional[dict[str, Any]],
    ) -> Optional[DeviceCertificateConfig]:
        """Only one device certificate can be installed; the first one wins."""
        certs = _named(section)
        if not certs:
            return None
        if len(certs) > 1:
            logger.warning(f"Only one DeviceCertificate is supported, using {certs[0]['name']}")
        cert = certs[0]
        certificate = _pem(cert.get("certificate"))
        if not certificate:
            raise ParseError(f"DeviceCertificate {cert['name']} has no certificate")
        return DeviceCertificateConfig(
            name=cert["name"],
            certificate=certificate,
            private_key=_pem(cert.get("privateKey")),
        )

    def _parse_user(self, config: dict[str, Any]) -> UserConfig:
        return UserConfig(
            name=config["name"],
            user_type=config.get("userType", "regular"),
            password=config.get("password"),
            old_password=config.get("oldPassword"),
            new_password=config.get("newPassword"),
            shell=config.get("shell"),
            partition_access=dict(config.get("partitionAccess") or {}),
            keys=list(config.get("keys") or []),
        )

    def _parse_license(self, config: Optional[dict[str, Any]]) -> Optional[LicenseConfig]:
        """Reg-key and license-pool licensing are separate variants."""
        if config is None:
            return None

        license_type = config.get("licenseType")
        if license_type == "regKey" or (
            license_type is None and (config.get("regKey") or config.get("addOnKeys"))
        ):
            return RegKeyLicense(
                reg_key=config.get("regKey"),
                add_on_keys=list(config.get("addOnKeys") or []),
                overwrite=bool(config.get("overwrite", False)),
            )

        pool = PoolLicense(
            license_pool=config.get("licensePool"),
            bigiq_host=config.get("bigIqHost"),
            bigiq_username=config.get("bigIqUsername"),
            bigiq_password=config.get("bigIqPassword"),
            bigiq_password_uri=config.get("bigIqPasswordUri"),
            sku_keyword1=config.get("skuKeyword1"),
            sku_keyword2=config.get("skuKeyword2"),
            unit_of_measure=config.get("unitOfMeasure"),
            hypervisor=config.get("hypervisor"),
            reachable=bool(config.get("reachable", False)),
            bigip_username=config.get("bigIpUsername"),
            bigip_password=config.get("bigIpPassword"),
            overwrite=bool(config.get("overwrite", False)),
        )

        revoke_from = config.get("revokeFrom")
        if isinstance(revoke_from, str):
            # Same BIG-IQ, different pool
            pool.revoke_from = RevokeTarget(
                license_pool=revoke_from,
                bigiq_host=pool.bigiq_host,
                bigiq_username=pool.bigiq_username,
                bigiq_password=pool.bigiq_password,
                bigiq_password_uri=pool.bigiq_password_uri,
                reachable=pool.reachable,
                bigip_password=pool.bigip_password,
            )
        elif isinstance(revoke_from, dict):
            if not revoke_from.get("licensePool"):
                raise ParseError("revokeFrom requires a licensePool")
            pool.revoke_from = RevokeTarget(
                license_pool=revoke_from["licensePool"],
                bigiq_host=revoke_from.get("bigIqHost"),
                bigiq_username=revoke_from.get("bigIqUsername"),
                bigiq_password=revoke_from.get("bigIqPassword"),
                bigiq_password_uri=revoke_from.get("bigIqPasswordUri"),
                reachable=bool(revoke_from.get("reachable", False)),
                bigip_password=revoke_from.get("bigIpPassword"),
            )
        return pool

    def _parse_snmp_agent(self, config: Optional[dict[str, Any]]) -> Optional[SnmpAgentConfig]:
        if config is None:
            return None
        return SnmpAgentConfig(
            contact=config.get("contact", ""),
            location=config.get("location", ""),
            allow_list=list(config.get("allowList") or []),
        )

    def _parse_trap_events(
        self,
        config: Optional[dict[str, Any]],
    ) -> Optional[SnmpTrapEventsConfig]:
        if config is None:
            return None
        return SnmpTrapEventsConfig(
            agent_start_stop=bool(config.get("agentStartStop", True)),
            authentication=bool(config.get("authentication", False)),
            device=bool(config.get("device", True)),
        )

    def _parse_snmp_user(self, config: dict[str, Any]) -> SnmpUserConfig:
        auth = config.get("authentication") or {}
        privacy = config.get("privacy") or {}
        return SnmpUserConfig(
            name=config["name"],
            oid=config.get("oid"),
            access=config.get("access"),
            auth_protocol=auth.get("protocol"),
            auth_password=auth.get("password"),
            privacy_protocol=privacy.get("protocol"),
            privacy_password=privacy.get("password"),
        )

    def _parse_trap_destination(self, config: dict[str, Any]) -> SnmpTrapDestinationConfig:
        auth = config.get("authentication") or {}
        privacy = config.get("privacy") or {}
        return SnmpTrapDestinationConfig(
            name=config["name"],
            version=config.get("version"),
            destination=config.get("destination"),
            port=config.get("port"),
            network=config.get("network"),
            community=config.get("community"),
            security_name=config.get("securityName"),
            engine_id=config.get("engineId"),
            auth_protocol=auth.get("protocol"),
            auth_password=auth.get("password"),
            privacy_protocol=privacy.get("protocol"),
            privacy_password=privacy.get("password"),
        )

    def _parse_traffic_control(
        self,
        config: Optional[dict[str, Any]],
    ) -> Optional[TrafficControlConfig]:
        if config is None:
            return None
        return TrafficControlConfig(
            accept_ip_options=bool(config.get("acceptIpOptions", False)),
            accept_ip_source_route=bool(config.get("acceptIpSourceRoute", False)),
            allow_ip_source_route=bool(config.get("allowIpSourceRoute", False)),
            continue_matching=bool(config.get("continueMatching", False)),
            max_icmp_rate=config.get("maxIcmpRate"),
            max_port_find_linear=config.get("maxPortFindLinear"),
            max_port_find_random=config.get("maxPortFindRandom"),
            max_reject_rate=config.get("maxRejectRate"),
            max_reject_rate_timeout=config.get("maxRejectRateTimeout"),
            min_path_mtu=config.get("minPathMtu"),
            path_mtu_discovery=bool(config.get("pathMtuDiscovery", True)),
            port_find_threshold_warning=bool(config.get("portFindThresholdWarning", True)),
            port_find_threshold_trigger=config.get("portFindThresholdTrigger"),
            port_find_threshold_timeout=config.get("portFindThresholdTimeout"),
            reject_unmatched=bool(config.get("rejectUnmatched", True)),
        )

    def _parse_httpd(self, config: Optional[dict[str, Any]]) -> Optional[HTTPDConfig]:
        if not config:
            return None
        return HTTPDConfig(
            allow=list(config.get("allow") or []),
            auth_pam_idle_timeout=config.get("authPamIdleTimeout"),
            max_clients=config.get("maxClients"),
            ssl_ciphersuite=list(config.get("sslCiphersuite") or []),
            ssl_protocol=config.get("sslProtocol"),
        )

    def _parse_sshd(self, config: Optional[dict[str, Any]]) -> Optional[SSHDConfig]:
        if config is None:
            return None
        return SSHDConfig(
            allow=list(config.get("allow") or []),
            banner=config.get("banner"),
            ciphers=list(config.get("ciphers") or []),
            inactivity_timeout=config.get("inactivityTimeout"),
            login_grace_time=config.get("loginGraceTime"),
            macs=list(config.get("MACS") or []),
            max_auth_tries=config.get("maxAuthTries"),
            max_startups=config.get("maxStartups"),
            protocol=config.get("protocol"),
        )

    def _parse_disk(self, config: Optional[dict[str, Any]]) -> Optional[DiskConfig]:
        if not config or config.get("applicationData") is None:
            return None
        try:
            return DiskConfig(application_data=int(config["applicationData"]))
        except (TypeError, ValueError):
            raise ParseError(f"Invalid Disk.applicationData: {config['applicationData']}")

    def _parse_config_sync(self, config: Optional[dict[str, Any]]) -> Optional[ConfigSyncConfig]:
        if config is None:
            return None
        return ConfigSyncConfig(configsync_ip=config.get("configsyncIp") or "none")

    def _parse_unicast(self, config: Optional[dict[str, Any]]) -> Optional[FailoverUnicastConfig]:
        if config is None:
            return None
        if config.get("addressPorts"):
            addresses = [
                UnicastAddress(address=item["address"], port=item.get("port", 1026))
                for item in config["addressPorts"]
            ]
        elif config.get("address") and config["address"] != "none":
            addresses = [UnicastAddress(address=config["address"], port=config.get("port", 1026))]
        else:
            addresses = []
        return FailoverUnicastConfig(address_ports=addresses)

    def _parse_multicast(
        self,
        config: Optional[dict[str, Any]],
    ) -> Optional[FailoverMulticastConfig]:
        if config is None:
            return None
        return FailoverMulticastConfig(
            interface=config.get("interface") or "none",
            address=config.get("address") or "any6",
            port=config.get("port") or 0,
        )

    def _parse_device_trust(self, config: Optional[dict[str, Any]]) -> Optional[DeviceTrustConfig]:
        if config is None:
            return None
        try:
            return DeviceTrustConfig(
                local_username=config["localUsername"],
                local_password=config["localPassword"],
                remote_host=config["remoteHost"],
                remote_username=config["remoteUsername"],
                remote_password=config["remotePassword"],
            )
        except KeyError as e:
            raise ParseError(f"DeviceTrust is missing {e.args[0]}")

    def _parse_device_group(self, config: dict[str, Any]) -> DeviceGroupConfig:
        return DeviceGroupConfig(
            name=config["name"],
            type=config.get("type", "sync-only"),
            owner=config.get("owner") or "",
            members=list(config.get("members") or []),
            auto_sync=bool(config.get("autoSync", False)),
            save_on_auto_sync=bool(config.get("saveOnAutoSync", False)),
            network_failover=bool(config.get("networkFailover", False)),
            full_load_on_sync=bool(config.get("fullLoadOnSync", False)),
            asm_sync=bool(config.get("asmSync", False)),
        )

    def _parse_traffic_group(self, config: dict[str, Any]) -> TrafficGroupConfig:
        return TrafficGroupConfig(
            name=config["name"],
            auto_failback_enabled=bool(config.get("autoFailbackEnabled", False)),
            auto_failback_time=config.get("autoFailbackTime", 60),
            failover_method=config.get("failoverMethod", "ha-order"),
            ha_load_factor=config.get("haLoadFactor", 1),
            ha_order=list(config.get("haOrder") or []),
        )

    def _parse_mirror_ip(self, config: Optional[dict[str, Any]]) -> Optional[MirrorIpConfig]:
        if config is None:
            return None
        return MirrorIpConfig(
            primary_ip=config.get("primaryIp") or "any6",
            secondary_ip=config.get("secondaryIp") or "any6",
        )
