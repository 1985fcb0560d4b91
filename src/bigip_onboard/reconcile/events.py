"""In-process events between the reconcilers and an external supervisor."""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

from .constants import EVENTS
from .errors import RevokeTimeoutError

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventBus:
    """Minimal pub/sub with one-shot listeners.

    Listeners run synchronously inside emit(). ``process_exit`` is set only by
    a process shutdown hook; awaiting it means "wait until we are restarted".
    """

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._once: dict[str, list[Listener]] = defaultdict(list)
        self.process_exit = asyncio.Event()

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def once(self, event: str, listener: Listener) -> None:
        self._once[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        for registry in (self._listeners, self._once):
            if listener in registry[event]:
                registry[event].remove(listener)

    def emit(self, event: str, *args: Any) -> int:
        """Deliver an event; returns how many listeners received it."""
        once = self._once.pop(event, [])
        listeners = list(self._listeners[event]) + once
        logger.debug(f"Emitting {event} to {len(listeners)} listener(s)")
        for listener in listeners:
            listener(*args)
        return len(listeners)

    async def wait_for_revoke_ready(
        self,
        task_id: str,
        bigip_password: Optional[str],
        bigiq_password: Optional[str],
        timeout: float = 30,
    ) -> None:
        """Announce an imminent revoke and block until READY_FOR_REVOKE arrives.

        The listener is registered before announcing, so a supervisor that
        answers from inside its LICENSE_WILL_BE_REVOKED handler is not missed.

        Raises:
            RevokeTimeoutError: nobody signalled readiness within timeout
        """
        loop = asyncio.get_running_loop()
        ready: asyncio.Future = loop.create_future()

        def _on_ready(*_: Any) -> None:
            if not ready.done():
                ready.set_result(None)

        self.once(EVENTS.READY_FOR_REVOKE, _on_ready)
        self.emit(EVENTS.LICENSE_WILL_BE_REVOKED, task_id, bigip_password, bigiq_password)
        try:
            await asyncio.wait_for(ready, timeout)
        except asyncio.TimeoutError:
            self.off(EVENTS.READY_FOR_REVOKE, _on_ready)
            raise RevokeTimeoutError() from None

    async def wait_for_process_exit(self) -> None:
        """Block until the process is restarted underneath us."""
        logger.info("Waiting for process restart")
        await self.process_exit.wait()
