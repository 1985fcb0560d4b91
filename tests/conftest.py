"""Shared fixtures: a fake gateway and a context builder."""
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from bigip_onboard.config.settings import OnboardSettings
from bigip_onboard.declaration.parser import DeclarationParser
from bigip_onboard.devices.base import DeviceInfo
from bigip_onboard.reconcile.constants import PATHS
from bigip_onboard.reconcile.context import ReconcileContext, TaskState
from bigip_onboard.reconcile.events import EventBus

GATEWAY_VERBS = (
    "connect",
    "disconnect",
    "reinitialize",
    "list",
    "create",
    "modify",
    "replace",
    "delete",
    "create_or_modify",
    "active",
    "save",
    "ready",
)


def make_gateway(
    host: str = "localhost",
    hostname: str = "bigip1.example.com",
    management_address: str = "10.0.0.1",
    version: str = "14.1.0",
    user: str = "admin",
) -> MagicMock:
    """A DeviceGateway stand-in whose verbs are AsyncMocks returning None."""
    gateway = MagicMock()
    gateway.host = host
    gateway.port = 443
    gateway.user = user
    gateway.password = "admin-pass"
    gateway.is_bigiq = MagicMock(return_value=False)
    gateway.set_host = MagicMock()
    for verb in GATEWAY_VERBS:
        setattr(gateway, verb, AsyncMock(return_value=None))
    gateway.device_info = AsyncMock(
        return_value=DeviceInfo(
            hostname=hostname,
            management_address=management_address,
            version=version,
        )
    )
    gateway.cluster = AsyncMock()
    gateway.onboard = AsyncMock()
    return gateway


def make_context(
    gateway: Any,
    common: dict[str, Any],
    current: Optional[dict[str, Any]] = None,
    rollback_info: Optional[dict[str, Any]] = None,
    events: Optional[EventBus] = None,
    settings: Optional[OnboardSettings] = None,
) -> ReconcileContext:
    """Build a context from a raw Common block and a parsed current-config Common."""
    parser = DeclarationParser()
    declaration = parser.parse({"class": "Device", "Common": common})
    state = TaskState(
        id="task-1",
        current_config=parser.build_common(current) if current is not None else None,
        rollback_info=rollback_info if rollback_info is not None else {},
    )
    return ReconcileContext(
        declaration=declaration,
        gateway=gateway,
        events=events or EventBus(),
        state=state,
        settings=settings or OnboardSettings(
            revoke_ready_timeout=30, revoke_settle_delay=0, reboot_settle_delay=0
        ),
    )


@pytest.fixture
def gateway():
    return make_gateway()


def calls_to(mock: AsyncMock, path: str) -> list:
    """Calls whose first positional argument is path."""
    return [c for c in mock.call_args_list if c.args and c.args[0] == path]


def bash_commands(gateway: MagicMock) -> list[str]:
    """Commands sent through the remote bash endpoint, in order."""
    return [c.args[1]["utilCmdArgs"] for c in calls_to(gateway.create, PATHS.Bash)]


def respond_by_path(
    responses: Optional[dict[str, Any]] = None,
    bash: Optional[dict[str, str]] = None,
):
    """side_effect answering by path; bash commands are matched by substring."""
    responses = responses or {}

    async def _respond(path, *args, **kwargs):
        if path == PATHS.Bash:
            command = args[0]["utilCmdArgs"]
            for fragment, output in (bash or {}).items():
                if fragment in command:
                    return {"commandResult": output}
            return {"commandResult": ""}
        return responses.get(path)

    return _respond
