"""Onboard engine - runs a declaration against one device.

Provides a single entry point for:
1. Parsing the declaration and the current-config snapshot
2. Applying system settings (SettingsReconciler)
3. Applying clustering settings (ClusterReconciler)
"""
import logging
import uuid
from typing import Any, Optional

from ..config.inventory import DeviceInventory
from ..config.settings import OnboardSettings
from ..declaration.parser import DeclarationParser
from ..devices.base import DeviceGateway
from .context import GatewayFactory, HandlerStatus, ReconcileContext, TaskState
from .dsc import ClusterReconciler
from .events import EventBus
from .system import SettingsReconciler

logger = logging.getLogger(__name__)


class OnboardEngine:
    """
    Reconcile a device against a declaration.

    Usage:
        engine = OnboardEngine(gateway)
        status = await engine.onboard(declaration, current_config=last_known)
        if status.reboot_required:
            ...

    Concurrent runs against the same device are not supported; callers
    serialize them.
    """

    def __init__(
        self,
        gateway: DeviceGateway,
        events: Optional[EventBus] = None,
        settings: Optional[OnboardSettings] = None,
        gateway_factory: Optional[GatewayFactory] = None,
    ):
        self.gateway = gateway
        self.events = events or EventBus()
        self.settings = settings or OnboardSettings.load()
        self.gateway_factory = gateway_factory
        self.parser = DeclarationParser()

    @classmethod
    def from_inventory(cls, inventory: DeviceInventory, device_id: str, **kwargs: Any) -> "OnboardEngine":
        """Build an engine for a device listed in devices.yaml."""
        return cls(
            inventory.get_device(device_id),
            settings=inventory.get_onboard_settings(),
            **kwargs,
        )

    async def onboard(
        self,
        declaration: dict[str, Any],
        task_id: Optional[str] = None,
        current_config: Optional[dict[str, Any]] = None,
        rollback_info: Optional[dict[str, Any]] = None,
    ) -> HandlerStatus:
        """
        Apply a declaration.

        Args:
            declaration: Raw declaration (DO request or Device declaration)
            task_id: Id used in logs and events (generated if omitted)
            current_config: Last recorded device config, {"Common": {...}} in parsed shape
            rollback_info: Rollback info left by a previous task, updated in place

        Returns:
            HandlerStatus with reboot flag and rollback info

        Raises:
            ParseError: If the declaration cannot be parsed
            OnboardError: If a phase fails
        """
        parsed = self.parser.parse(declaration)
        current = None
        if current_config is not None:
            current = self.parser.build_common(current_config.get("Common"))

        state = TaskState(
            id=task_id or uuid.uuid4().hex,
            current_config=current,
            rollback_info=rollback_info if rollback_info is not None else {},
        )
        context = ReconcileContext(
            declaration=parsed,
            gateway=self.gateway,
            events=self.events,
            state=state,
            settings=self.settings,
        )
        if self.gateway_factory is not None:
            context.gateway_factory = self.gateway_factory

        logger.info(f"[{state.id}] Onboarding {self.gateway.host}")
        status = await SettingsReconciler(context).process()
        await ClusterReconciler(context).process()
        logger.info(f"[{state.id}] Onboarding complete (reboot required: {status.reboot_required})")
        return status
