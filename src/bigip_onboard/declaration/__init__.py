"""Declaration parsing.

Turns the JSON declaration into a typed model:

    from bigip_onboard.declaration import DeclarationParser

    declaration = DeclarationParser().parse({
        "class": "Device",
        "Common": {
            "myDns": {"class": "DNS", "nameServers": ["8.8.8.8"]},
        },
    })
    declaration.common.dns.name_servers  # ['8.8.8.8']
"""

from .parser import DeclarationParser, ParseError, dereference, resolve_pointer
from .schema import (
    CommonDeclaration,
    Declaration,
    DeviceGroupConfig,
    DeviceTrustConfig,
    LicenseConfig,
    PoolLicense,
    RegKeyLicense,
    RevokeTarget,
)

__all__ = [
    # Parser
    "DeclarationParser",
    "ParseError",
    "dereference",
    "resolve_pointer",
    # Schema classes
    "CommonDeclaration",
    "Declaration",
    "DeviceGroupConfig",
    "DeviceTrustConfig",
    "LicenseConfig",
    "PoolLicense",
    "RegKeyLicense",
    "RevokeTarget",
]
