"""Backup bookkeeping for files overwritten on the device."""
import logging
from typing import Any

from ..devices.base import DeviceGateway
from .constants import BACKUP_SUFFIX, ORIGINAL_SUFFIX
from .errors import OnboardError
from .util import execute_bash_command_remote

logger = logging.getLogger(__name__)

BACKUP_OK = "backup-ok"


class RollbackLedger:
    """Copy-before-overwrite records kept in the task's rollback info.

    Records live at ``rollback_info["systemHandler"]["deviceCertificate"]["files"]``
    as ``{"from": backup, "to": original}``. Records that already exist when
    the ledger is created belong to an earlier task that may not have
    finished, so they are treated as pending.
    """

    def __init__(self, rollback_info: dict[str, Any], gateway: DeviceGateway):
        self.gateway = gateway
        section = rollback_info.setdefault("systemHandler", {}).setdefault("deviceCertificate", {})
        self.files: list[dict[str, str]] = section.setdefault("files", [])
        self._pending = list(self.files)

    def has_pending(self) -> bool:
        return bool(self._pending)

    async def backup(self, path: str) -> None:
        """Copy path to its .DO.bak sibling and record it.

        A failed copy propagates, so the caller never overwrites without a
        safety copy.
        """
        backup_path = f"{path}{BACKUP_SUFFIX}"
        result = await execute_bash_command_remote(
            self.gateway, f"cp -f {path} {backup_path} && echo {BACKUP_OK}"
        )
        if BACKUP_OK not in result:
            raise OnboardError(f"Failed to back up {path}: {result.strip()}")
        self.files.append({"from": backup_path, "to": path})
        logger.debug(f"Backed up {path} to {backup_path}")

    async def restore(self) -> None:
        """Reverse every pending copy, dropping each record once it is consumed."""
        for record in list(self._pending):
            await execute_bash_command_remote(
                self.gateway, f"cp -f {record['from']} {record['to']}"
            )
            self._pending.remove(record)
            self.files.remove(record)
            logger.info(f"Restored {record['to']} from {record['from']}")

    async def ensure_original(self, path: str) -> None:
        """Keep a one-time copy of the factory file under .DO.orig."""
        original = f"{path}{ORIGINAL_SUFFIX}"
        await execute_bash_command_remote(
            self.gateway, f"if [ ! -f {original} ]; then cp {path} {original}; fi"
        )

    async def restore_original(self, path: str) -> bool:
        """Put the .DO.orig copy back if it differs; returns True if anything changed."""
        original = f"{path}{ORIGINAL_SUFFIX}"
        result = await execute_bash_command_remote(
            self.gateway,
            f"if [ -f {original} ] && ! cmp -s {original} {path}; "
            f"then cp -f {original} {path}; echo restored; fi",
        )
        restored = "restored" in result
        if restored:
            logger.info(f"Restored {path} from {original}")
        return restored
