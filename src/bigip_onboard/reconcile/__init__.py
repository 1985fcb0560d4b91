"""Reconciliation of device state against a declaration.

Usage:
    from bigip_onboard.reconcile import OnboardEngine

    engine = OnboardEngine(gateway)
    status = await engine.onboard({
        "class": "Device",
        "Common": {
            "myNtp": {"class": "NTP", "servers": ["0.pool.ntp.org"]},
        },
    })
"""

from .context import HandlerStatus, ReconcileContext, TaskState
from .dsc import ClusterReconciler, derive_masquerade_mac
from .engine import OnboardEngine
from .errors import (
    OnboardError,
    PreconditionError,
    ResolutionError,
    RevokeTimeoutError,
    wrap_error,
)
from .events import EventBus
from .rollback import RollbackLedger
from .system import SettingsReconciler

__all__ = [
    # Main engine
    "OnboardEngine",
    # Reconcilers
    "SettingsReconciler",
    "ClusterReconciler",
    "derive_masquerade_mac",
    # State
    "HandlerStatus",
    "ReconcileContext",
    "TaskState",
    "EventBus",
    "RollbackLedger",
    # Errors
    "OnboardError",
    "PreconditionError",
    "ResolutionError",
    "RevokeTimeoutError",
    "wrap_error",
]
