"""Typed declaration classes.

Both the incoming declaration and the current-config snapshot are parsed into
these dataclasses, so reconcilers compare typed values instead of probing
dict keys.
"""
from dataclasses import dataclass, field
from typing import Any, Optional, Union


# --- System settings ---

@dataclass
class DNSConfig:
    name_servers: list[str] = field(default_factory=list)
    search: list[str] = field(default_factory=list)


@dataclass
class NTPConfig:
    servers: list[str] = field(default_factory=list)
    timezone: Optional[str] = None


@dataclass
class SystemConfig:
    """Global device settings (the System class)."""
    hostname: Optional[str] = None
    console_inactivity_timeout: Optional[int] = None
    cli_inactivity_timeout: Optional[int] = None  # seconds
    auto_phonehome: Optional[bool] = None
    auto_check: Optional[bool] = None
    tmsh_audit_log: Optional[bool] = None
    gui_audit_log: Optional[bool] = None
    mcp_audit_log: Optional[str] = None
    preserve_orig_dhcp_routes: Optional[bool] = None


@dataclass
class ManagementIpConfig:
    """Management address, named by '<address>/<mask>'."""
    name: str
    description: Optional[str] = None

    @property
    def address(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def mask(self) -> Optional[str]:
        parts = self.name.split("/", 1)
        return parts[1] if len(parts) == 2 else None


@dataclass
class ManagementRouteConfig:
    name: Optional[str]
    gw: Optional[str] = None
    network: Optional[str] = None
    mtu: Optional[int] = None
    type: Optional[str] = None
    description: Optional[str] = None


@dataclass
class DeviceCertificateConfig:
    name: str
    certificate: str
    private_key: Optional[str] = None


@dataclass
class UserConfig:
    name: str
    user_type: str
    password: Optional[str] = None
    old_password: Optional[str] = None
    new_password: Optional[str] = None
    shell: Optional[str] = None
    partition_access: dict[str, dict[str, Any]] = field(default_factory=dict)
    keys: list[str] = field(default_factory=list)


# --- Licensing ---

@dataclass
class RegKeyLicense:
    """License installed from a registration key."""
    reg_key: Optional[str] = None
    add_on_keys: list[str] = field(default_factory=list)
    overwrite: bool = False


@dataclass
class RevokeTarget:
    """Where to revoke a pool license from before relicensing."""
    license_pool: str
    bigiq_host: Optional[str] = None
    bigiq_username: Optional[str] = None
    bigiq_password: Optional[str] = None
    bigiq_password_uri: Optional[str] = None
    reachable: bool = False
    bigip_password: Optional[str] = None


@dataclass
class PoolLicense:
    """License assigned from a BIG-IQ license pool."""
    license_pool: Optional[str] = None
    bigiq_host: Optional[str] = None
    bigiq_username: Optional[str] = None
    bigiq_password: Optional[str] = None
    bigiq_password_uri: Optional[str] = None
    sku_keyword1: Optional[str] = None
    sku_keyword2: Optional[str] = None
    unit_of_measure: Optional[str] = None
    hypervisor: Optional[str] = None
    reachable: bool = False
    bigip_username: Optional[str] = None
    bigip_password: Optional[str] = None
    overwrite: bool = False
    revoke_from: Optional[RevokeTarget] = None


LicenseConfig = Union[RegKeyLicense, PoolLicense]


# --- SNMP / syslog / services ---

@dataclass
class SnmpAgentConfig:
    contact: str = ""
    location: str = ""
    allow_list: list[str] = field(default_factory=list)


@dataclass
class SnmpTrapEventsConfig:
    agent_start_stop: bool = True
    authentication: bool = False
    device: bool = True


@dataclass
class SnmpUserConfig:
    name: str
    oid: Optional[str] = None
    access: Optional[str] = None
    auth_protocol: Optional[str] = None
    auth_password: Optional[str] = None
    privacy_protocol: Optional[str] = None
    privacy_password: Optional[str] = None


@dataclass
class SnmpCommunityConfig:
    name: str
    oid: Optional[str] = None
    access: Optional[str] = None
    source: Optional[str] = None
    ipv6: bool = False


@dataclass
class SnmpTrapDestinationConfig:
    name: str
    version: Optional[str] = None
    destination: Optional[str] = None
    port: Optional[int] = None
    network: Optional[str] = None
    community: Optional[str] = None
    security_name: Optional[str] = None
    engine_id: Optional[str] = None
    auth_protocol: Optional[str] = None
    auth_password: Optional[str] = None
    privacy_protocol: Optional[str] = None
    privacy_password: Optional[str] = None


@dataclass
class SyslogRemoteServerConfig:
    name: str
    host: Optional[str] = None
    local_ip: Optional[str] = None
    remote_port: Optional[int] = None


@dataclass
class TrafficControlConfig:
    accept_ip_options: bool = False
    accept_ip_source_route: bool = False
    allow_ip_source_route: bool = False
    continue_matching: bool = False
    max_icmp_rate: Optional[int] = None
    max_port_find_linear: Optional[int] = None
    max_port_find_random: Optional[int] = None
    max_reject_rate: Optional[int] = None
    max_reject_rate_timeout: Optional[int] = None
    min_path_mtu: Optional[int] = None
    path_mtu_discovery: bool = True
    port_find_threshold_warning: bool = True
    port_find_threshold_trigger: Optional[int] = None
    port_find_threshold_timeout: Optional[int] = None
    reject_unmatched: bool = True


@dataclass
class HTTPDConfig:
    allow: list[str] = field(default_factory=list)
    auth_pam_idle_timeout: Optional[int] = None
    max_clients: Optional[int] = None
    ssl_ciphersuite: list[str] = field(default_factory=list)
    ssl_protocol: Optional[str] = None


@dataclass
class SSHDConfig:
    allow: list[str] = field(default_factory=list)
    banner: Optional[str] = None
    ciphers: list[str] = field(default_factory=list)
    inactivity_timeout: Optional[int] = None
    login_grace_time: Optional[int] = None
    macs: list[str] = field(default_factory=list)
    max_auth_tries: Optional[int] = None
    max_startups: Optional[str] = None
    protocol: Optional[int] = None


@dataclass
class DiskConfig:
    application_data: int  # KB


# --- Device service clustering ---

@dataclass
class ConfigSyncConfig:
    configsync_ip: str = "none"


@dataclass
class UnicastAddress:
    address: str
    port: int = 1026


@dataclass
class FailoverUnicastConfig:
    address_ports: list[UnicastAddress] = field(default_factory=list)


@dataclass
class FailoverMulticastConfig:
    interface: str = "none"
    address: str = "any6"
    port: int = 0


@dataclass
class DeviceTrustConfig:
    local_username: str
    local_password: str
    remote_host: str
    remote_username: str
    remote_password: str


@dataclass
class DeviceGroupConfig:
    name: str
    type: str = "sync-only"
    owner: str = ""
    members: list[str] = field(default_factory=list)
    auto_sync: bool = False
    save_on_auto_sync: bool = False
    network_failover: bool = False
    full_load_on_sync: bool = False
    asm_sync: bool = False


@dataclass
class TrafficGroupConfig:
    name: str
    auto_failback_enabled: bool = False
    auto_failback_time: int = 60
    failover_method: str = "ha-order"
    ha_load_factor: int = 1
    ha_order: list[str] = field(default_factory=list)


@dataclass
class MacMasqueradeConfig:
    name: str
    source_interface: Optional[str] = None
    traffic_group: str = "traffic-group-1"
    mac: Optional[str] = None  # already-derived value, carried by rollback declarations


@dataclass
class MirrorIpConfig:
    primary_ip: str = "any6"
    secondary_ip: str = "any6"


# --- Whole declaration ---

@dataclass
class CommonDeclaration:
    """Everything declared for the Common partition."""
    hostname: Optional[str] = None
    db_variables: dict[str, Any] = field(default_factory=dict)
    dns: Optional[DNSConfig] = None
    ntp: Optional[NTPConfig] = None
    system: Optional[SystemConfig] = None
    management_ips: list[ManagementIpConfig] = field(default_factory=list)
    management_routes: list[ManagementRouteConfig] = field(default_factory=list)
    device_certificate: Optional[DeviceCertificateConfig] = None
    users: list[UserConfig] = field(default_factory=list)
    license: Optional[LicenseConfig] = None
    snmp_agent: Optional[SnmpAgentConfig] = None
    snmp_trap_events: Optional[SnmpTrapEventsConfig] = None
    snmp_users: list[SnmpUserConfig] = field(default_factory=list)
    snmp_communities: list[SnmpCommunityConfig] = field(default_factory=list)
    snmp_trap_destinations: list[SnmpTrapDestinationConfig] = field(default_factory=list)
    syslog_remote_servers: list[SyslogRemoteServerConfig] = field(default_factory=list)
    traffic_control: Optional[TrafficControlConfig] = None
    httpd: Optional[HTTPDConfig] = None
    sshd: Optional[SSHDConfig] = None
    disk: Optional[DiskConfig] = None
    config_sync: Optional[ConfigSyncConfig] = None
    failover_unicast: Optional[FailoverUnicastConfig] = None
    failover_multicast: Optional[FailoverMulticastConfig] = None
    device_trust: Optional[DeviceTrustConfig] = None
    device_groups: list[DeviceGroupConfig] = field(default_factory=list)
    traffic_groups: list[TrafficGroupConfig] = field(default_factory=list)
    mac_masquerades: list[MacMasqueradeConfig] = field(default_factory=list)
    mirror_ip: Optional[MirrorIpConfig] = None

    @property
    def declared_hostname(self) -> Optional[str]:
        """System.hostname wins over the legacy top-level hostname."""
        if self.system and self.system.hostname:
            return self.system.hostname
        return self.hostname


@dataclass
class Declaration:
    """A parsed declaration plus the parsed tree it came from."""
    common: CommonDeclaration
    parsed: dict[str, Any] = field(default_factory=dict)
