"""Helpers shared by the settings and cluster reconcilers."""
import asyncio
import ipaddress
import logging
import re
import socket
from typing import Any, Optional

import httpx

from ..devices.base import DeviceGateway
from ..utils.connection import MEDIUM_RETRY, SHORT_RETRY, RetryPolicy, try_until
from .constants import PATHS, PLATFORMS
from .errors import ResolutionError

logger = logging.getLogger(__name__)

LOCAL_DEVICE_INFO_URL = "http://localhost:8100/shared/identified-devices/config/device-info"

_ROUTE_DOMAIN = re.compile(r"%\d+$")


def strip_cidr(address: str) -> str:
    """'1.2.3.4/24' -> '1.2.3.4'."""
    return address.split("/", 1)[0]


def split_route_domain(address: str) -> tuple[str, str]:
    match = _ROUTE_DOMAIN.search(address)
    if not match:
        return address, ""
    return address[:match.start()], match.group(0)


def is_ip(value: Any) -> bool:
    """True for IPv4/IPv6 addresses, optionally with a %route-domain suffix."""
    if not isinstance(value, str) or not value:
        return False
    address, _ = split_route_domain(value)
    try:
        ipaddress.ip_address(address)
    except ValueError:
        return False
    return True


def is_ipv4(value: str) -> bool:
    address, _ = split_route_domain(strip_cidr(value))
    try:
        return ipaddress.ip_address(address).version == 4
    except ValueError:
        return False


def minimize_ip(value: Optional[str]) -> Optional[str]:
    """Canonical (compressed) form of an address so textual variants compare equal."""
    if not value or not is_ip(value):
        return value
    address, route_domain = split_route_domain(value)
    return f"{ipaddress.ip_address(address).compressed}{route_domain}"


def version_at_least(version: Optional[str], minimum: str) -> bool:
    """Compare dotted device versions numerically ('14.1.0.3' >= '14.0')."""
    def parts(v: str) -> tuple[int, ...]:
        numbers = []
        for piece in v.split("."):
            match = re.match(r"\d+", piece)
            numbers.append(int(match.group(0)) if match else 0)
        return tuple(numbers)

    if not version:
        return False
    return parts(version) >= parts(minimum)


def needs_update(declared: Any, current: Any) -> bool:
    """Diff-before-write: only declared values that differ from current state are applied."""
    return declared is not None and declared != current


async def check_dns_resolution(address: str, policy: RetryPolicy = MEDIUM_RETRY) -> bool:
    """Confirm a hostname resolves. IP addresses pass without a lookup.

    Raises:
        ResolutionError: once the retry policy is exhausted
    """
    if is_ip(address):
        return True

    async def _lookup() -> bool:
        loop = asyncio.get_running_loop()
        await loop.getaddrinfo(address, None)
        return True

    try:
        return await try_until(policy, _lookup, exceptions=(socket.gaierror, OSError))
    except OSError as e:
        raise ResolutionError(address, e) from e


async def execute_bash_command_remote(gateway: DeviceGateway, command: str) -> str:
    """Run a bash command on the device and return its output."""
    response = await gateway.create(
        PATHS.Bash,
        {"command": "run", "utilCmdArgs": f'-c "{command}"'},
        retry_policy=SHORT_RETRY,
    )
    return (response or {}).get("commandResult", "") or ""


async def get_current_platform() -> str:
    """Determine where we are running: BIG-IP, BIG-IQ or a container."""
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(10)) as client:
            resp = await client.get(LOCAL_DEVICE_INFO_URL)
            resp.raise_for_status()
            device_info = resp.json()
    except httpx.HTTPError as e:
        logger.warning(f"Error detecting current platform: {e}")
        raise

    platform = PLATFORMS.CONTAINER
    for slot in (device_info or {}).get("slots") or []:
        if slot.get("isActive") and slot.get("product"):
            platform = slot["product"]
            break
    logger.info(f"Platform: {platform}")
    return platform
