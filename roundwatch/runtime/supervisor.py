from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from roundwatch.infra.telemetry import RuntimeEventLogger


@dataclass
class LoopHealth:
    name: str
    restarts: int = 0
    last_error: str = ""
    alive: bool = False


class LoopSupervisor:
    """Restarts a crashed async loop with bounded backoff."""

    def __init__(
        self,
        *,
        base_delay: float = 2.0,
        max_delay: float = 20.0,
        max_restarts: int | None = None,
        events: RuntimeEventLogger | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_restarts = max_restarts
        self.events = events
        self.sleep = sleep
        self.health: dict[str, LoopHealth] = {}

    def _emit(self, event: str, **fields: Any) -> None:
        if self.events is not None:
            self.events.emit(event, **fields)

    async def run_forever(self, name: str, fn: Callable[[], Awaitable[None]], log) -> None:
        h = self.health.setdefault(name, LoopHealth(name=name))
        delay = self.base_delay
        while True:
            h.alive = True
            try:
                await fn()
                log.warning("loop %s exited cleanly; restarting", name)
            except asyncio.CancelledError:
                h.alive = False
                raise
            except Exception as exc:
                h.last_error = str(exc)
                log.exception("loop %s crashed: %s", name, exc)
            h.alive = False
            h.restarts += 1
            self._emit("loop.restart", name=name, restarts=h.restarts, error=h.last_error)
            if self.max_restarts is not None and h.restarts > self.max_restarts:
                raise RuntimeError(f"loop {name} restarted {h.restarts - 1} times, giving up")
            await self.sleep(delay)
            delay = min(self.max_delay, max(self.base_delay, delay * 1.5))
