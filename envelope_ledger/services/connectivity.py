"""
Connectivity Monitor

DESIGN DECISION: Connectivity is an explicit state machine object,
injected into the engine and the reconciler, rather than a global
"is online" flag read from wherever.

States are ONLINE and OFFLINE. Subscribers are only notified on a real
transition, so repeated set_online() calls don't trigger repeated
replays.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog


logger = structlog.get_logger(__name__)

Handler = Callable[[], Awaitable[None]]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ConnectivityMonitor:
    """Tracks online/offline state and emits transition events."""

    def __init__(self, online: bool = True):
        self._state = ConnectivityState.ONLINE if online else ConnectivityState.OFFLINE
        self._handlers: dict[ConnectivityState, list[Handler]] = {
            ConnectivityState.ONLINE: [],
            ConnectivityState.OFFLINE: [],
        }

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state == ConnectivityState.ONLINE

    def subscribe(self, event: ConnectivityState, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def unsubscribe(self, event: ConnectivityState, handler: Handler) -> None:
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    async def set_online(self) -> None:
        await self._transition(ConnectivityState.ONLINE)

    async def set_offline(self) -> None:
        await self._transition(ConnectivityState.OFFLINE)

    async def _transition(self, new_state: ConnectivityState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        logger.info("connectivity_changed", state=new_state.value)
        for handler in list(self._handlers[new_state]):
            await handler()

    async def watch(
        self,
        probe: Probe,
        interval: float,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Poll `probe` every `interval` seconds and drive transitions.

        A probe that raises counts as offline. Runs until `stop` is set.
        """
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                reachable = await probe()
            except Exception as e:
                logger.warning("connectivity_probe_failed", error=str(e))
                reachable = False
            await (self.set_online() if reachable else self.set_offline())
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
