"""Licensing: registration keys, license pools and the revoke/relicense flow.

Pool licensing runs as::

    Idle -> [revokeFrom] -> [reachable: wait for READY_FOR_REVOKE] -> revoke
         -> [reachable: settle delay] -> [licensePool] -> assign -> active check
"""
import asyncio
import logging
from typing import Any, Optional

from ..declaration.schema import PoolLicense, RegKeyLicense, RevokeTarget
from ..devices.base import DeviceGateway
from .constants import PLATFORMS
from .context import ReconcileContext
from .errors import wrap_error
from .util import check_dns_resolution, get_current_platform

logger = logging.getLogger(__name__)

LOCAL_BIGIQ_PORT = 8100


def bigiq_management_port(platform: str, bigiq_host: Optional[str]) -> Optional[int]:
    """Licensing from the BIG-IQ we run on goes through the unauthenticated local port."""
    if platform == PLATFORMS.BIGIQ and (not bigiq_host or bigiq_host == "localhost"):
        return LOCAL_BIGIQ_PORT
    return None


async def handle_license(ctx: ReconcileContext) -> None:
    """Apply the declared License, if any.

    All failures surface as 'Error licensing: <cause>'.
    """
    license = ctx.common.license
    if license is None:
        return
    if license == ctx.current.license:
        logger.info("License unchanged, skipping")
        return

    try:
        if isinstance(license, RegKeyLicense):
            await _license_reg_key(ctx, license)
        else:
            await _license_pool(ctx, license)
    except Exception as e:
        logger.error(f"Error licensing: {e}")
        raise wrap_error("Error licensing", e) from e


async def _license_reg_key(ctx: ReconcileContext, license: RegKeyLicense) -> None:
    await ctx.gateway.onboard.license(
        registration_key=license.reg_key,
        add_on_keys=license.add_on_keys,
        overwrite=license.overwrite,
    )
    await ctx.gateway.active()


async def _license_pool(ctx: ReconcileContext, license: PoolLicense) -> None:
    if license.bigiq_host:
        await check_dns_resolution(license.bigiq_host)
    platform = await get_current_platform()

    gateway = await _licensing_gateway(ctx, license, platform)
    try:
        if license.revoke_from:
            await _revoke(ctx, gateway, license, license.revoke_from, platform)

        if license.license_pool:
            # Off-box we know our address is reachable; on-box let the pool API work it out
            bigip_mgmt_address = gateway.host if platform != PLATFORMS.BIGIP else None
            options: dict[str, Any] = {
                "bigIpMgmtAddress": bigip_mgmt_address,
                "bigIqMgmtPort": bigiq_management_port(platform, license.bigiq_host),
                "passwordIsUri": bool(license.bigiq_password_uri),
                "skuKeyword1": license.sku_keyword1,
                "skuKeyword2": license.sku_keyword2,
                "unitOfMeasure": license.unit_of_measure,
                "noUnreachable": license.reachable,
                "overwrite": license.overwrite,
            }
            await gateway.onboard.license_via_bigiq(
                license.bigiq_host or "localhost",
                license.bigiq_username,
                license.bigiq_password or license.bigiq_password_uri,
                license.license_pool,
                license.hypervisor,
                options,
            )
            # A revoke-only request leaves the device unlicensed (OFFLINE), so no active check
            await ctx.gateway.active()
    finally:
        if gateway is not ctx.gateway:
            await gateway.disconnect()


async def _licensing_gateway(
    ctx: ReconcileContext,
    license: PoolLicense,
    platform: str,
) -> DeviceGateway:
    """On the device itself our host may be 'localhost', which BIG-IQ cannot reach.

    In that case reconnect through the real management address with the
    credentials given for the reachable API.
    """
    if platform != PLATFORMS.BIGIP or not license.reachable:
        return ctx.gateway

    info = await ctx.gateway.device_info()
    logger.info(f"Using management address {info.management_address} for reachable licensing")
    return await ctx.gateway_factory(
        info.management_address,
        license.bigip_username,
        license.bigip_password,
        port=ctx.gateway.port,
    )


async def _revoke(
    ctx: ReconcileContext,
    gateway: DeviceGateway,
    license: PoolLicense,
    target: RevokeTarget,
    platform: str,
) -> None:
    if target.reachable:
        # Let a supervisor prepare for us briefly losing our identity
        await ctx.events.wait_for_revoke_ready(
            ctx.task_id,
            target.bigip_password,
            target.bigiq_password,
            timeout=ctx.settings.revoke_ready_timeout,
        )

    logger.info(f"Revoking license from pool {target.license_pool}")
    await gateway.onboard.revoke_license_via_bigiq(
        target.bigiq_host or "localhost",
        target.bigiq_username,
        target.bigiq_password or target.bigiq_password_uri,
        target.license_pool,
        {
            "bigIqMgmtPort": bigiq_management_port(platform, target.bigiq_host),
            "passwordIsUri": bool(target.bigiq_password_uri),
            "noUnreachable": license.reachable,
        },
    )

    if target.reachable:
        # Revoking restarts the management services
        logger.info(f"Waiting {ctx.settings.revoke_settle_delay}s after revoke")
        await asyncio.sleep(ctx.settings.revoke_settle_delay)
