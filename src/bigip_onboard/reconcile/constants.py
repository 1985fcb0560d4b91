"""Constants shared by the reconcilers."""


class PATHS:
    """iControl REST paths (relative to /mgmt)."""
    DNS = "/tm/sys/dns"
    NTP = "/tm/sys/ntp"
    SelfIp = "/tm/net/self"
    Device = "/tm/cm/device"
    DeviceGroup = "/tm/cm/device-group"
    TrafficGroup = "/tm/cm/traffic-group"
    ManagementIp = "/tm/sys/management-ip"
    ManagementRoute = "/tm/sys/management-route"
    ManagementDhcpConfig = "/tm/sys/management-dhcp/sys-mgmt-dhcp-config"
    DhclientService = "/tm/sys/service"
    DhclientStats = "/tm/sys/service/dhclient/stats"
    System = "/tm/sys/global-settings"
    CLI = "/tm/cli/global-settings"
    SoftwareUpdate = "/tm/sys/software/update"
    DbConfigAuditing = "/tm/sys/db/config.auditing"
    McpdLogSettings = "/tm/sys/daemon-log-settings/mcpd"
    User = "/tm/auth/user"
    BigIqUser = "/shared/authz/users"
    SnmpAgent = "/tm/sys/snmp"
    SnmpTrapEvents = "/tm/sys/snmp"
    SnmpUser = "/tm/sys/snmp/users"
    SnmpCommunity = "/tm/sys/snmp/communities"
    SnmpTrapDestination = "/tm/sys/snmp/traps"
    Syslog = "/tm/sys/syslog"
    TrafficControl = "/tm/ltm/global-settings/traffic-control"
    HTTPD = "/tm/sys/httpd"
    SSHD = "/tm/sys/sshd"
    Disk = "/tm/sys/disk/directory"
    Interface = "/tm/net/interface"
    Bash = "/tm/util/bash"


class EVENTS:
    """In-process events exchanged with an external supervisor."""
    LICENSE_WILL_BE_REVOKED = "LICENSE_WILL_BE_REVOKED"
    READY_FOR_REVOKE = "READY_FOR_REVOKE"
    REBOOT_NOW = "REBOOT_NOW"


class PLATFORMS:
    BIGIP = "BIG-IP"
    BIGIQ = "BIG-IQ"
    CONTAINER = "CONTAINER"


# Description the device puts on DHCP-assigned management IPs and routes
DHCP_SENTINEL = "configured-by-dhcp"

# Dual-stack DHCP modes are never changed here
DUAL_STACK_DHCP_MODES = ("dhcpv4", "dhcpv6")

# dhclient request options owned by DHCP until disabled
DHCP_OPTION_NTP = "ntp-servers"
DHCP_OPTION_NAME_SERVERS = "domain-name-servers"
DHCP_OPTION_SEARCH = "domain-name"  # dhclient calls the search list 'domain-name'
DHCP_OPTION_HOSTNAME = "host-name"

DEFAULT_ROUTE_NETWORKS = ("default", "default-inet6")

DEVICE_CERT_PATH = "/config/httpd/conf/ssl.crt/server.crt"
DEVICE_KEY_PATH = "/config/httpd/conf/ssl.key/server.key"
BACKUP_SUFFIX = ".DO.bak"
ORIGINAL_SUFFIX = ".DO.orig"

ROOT_SSH_DIR = "/root/.ssh"
SUPERUSER_KEY_MARKER = " Host Processor Superuser"

# Versions at which optional fields are accepted by the device
GUI_AUDIT_MIN_VERSION = "14.0"
SNMP_PASSWORD_DEFAULT_MIN_VERSION = "14.0"
