"""State carried through one reconciliation pass."""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..config.settings import OnboardSettings
from ..crypto import DeviceSecretCodec
from ..declaration.schema import CommonDeclaration, Declaration
from ..devices.base import DeviceGateway
from ..devices.bigip import BigIpDevice
from .events import EventBus

# (host, username, password, port) -> connected gateway
GatewayFactory = Callable[..., Awaitable[DeviceGateway]]


@dataclass
class TaskState:
    """Per-request state: task id, last recorded device config, rollback ledger."""
    id: str
    current_config: Optional[CommonDeclaration] = None
    rollback_info: dict[str, Any] = field(default_factory=dict)

    @property
    def current(self) -> CommonDeclaration:
        return self.current_config or CommonDeclaration()


@dataclass
class HandlerStatus:
    """Result returned by the settings reconciler."""
    reboot_required: bool = False
    rollback_info: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReconcileContext:
    """Everything a phase needs, passed explicitly instead of shared on self."""
    declaration: Declaration
    gateway: DeviceGateway
    events: EventBus
    state: TaskState
    settings: OnboardSettings = field(default_factory=OnboardSettings)
    codec: DeviceSecretCodec = field(default_factory=DeviceSecretCodec)
    gateway_factory: GatewayFactory = BigIpDevice.for_host

    @property
    def common(self) -> CommonDeclaration:
        return self.declaration.common

    @property
    def current(self) -> CommonDeclaration:
        return self.state.current

    @property
    def task_id(self) -> str:
        return self.state.id
