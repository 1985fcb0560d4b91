"""Timing knobs for the reconcilers."""
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "ONBOARD_"


@dataclass
class OnboardSettings:
    """Delays and timeouts used while onboarding.

    Defaults can be overridden by an ``onboard:`` block in devices.yaml and
    then by ONBOARD_<FIELD> environment variables.
    """
    revoke_ready_timeout: float = 30  # wait for READY_FOR_REVOKE
    revoke_settle_delay: float = 120  # after revoking a reachable license
    reboot_settle_delay: float = 60  # before polling a rebooted remote device

    @classmethod
    def load(cls, overrides: Optional[dict[str, Any]] = None) -> "OnboardSettings":
        settings = cls()
        for f in fields(cls):
            value = (overrides or {}).get(f.name)
            env_value = os.environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if env_value is not None:
                value = env_value
            if value is None:
                continue
            try:
                setattr(settings, f.name, float(value))
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid value for {f.name}: {value!r}")
        return settings
