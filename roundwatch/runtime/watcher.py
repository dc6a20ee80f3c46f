from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

from roundwatch.data.round_store import RoundStore
from roundwatch.domain.models import SNAPSHOT_WINDOWS, SnapshotType, SnapshotWindow
from roundwatch.domain.odds import calculate_implied_multiples
from roundwatch.infra.telemetry import RuntimeEventLogger


def _empty_attempts() -> dict[SnapshotType, set[int]]:
    return {w.snapshot_type: set() for w in SNAPSHOT_WINDOWS}


@dataclass
class WatcherState:
    """Process-lifetime bookkeeping. The store stays authoritative for what exists."""

    last_seen_epoch: int | None = None
    attempted: dict[SnapshotType, set[int]] = field(default_factory=_empty_attempts)

    def was_attempted(self, snapshot_type: SnapshotType, epoch: int) -> bool:
        return epoch in self.attempted.setdefault(snapshot_type, set())

    def mark_attempted(self, snapshot_type: SnapshotType, epoch: int) -> None:
        self.attempted.setdefault(snapshot_type, set()).add(epoch)

    def prune(self, cap: int) -> int:
        """Drop the lowest epochs from each attempt set above ``cap``; returns how many."""
        dropped = 0
        for seen in self.attempted.values():
            excess = len(seen) - cap
            if excess > 0:
                for epoch in sorted(seen)[:excess]:
                    seen.discard(epoch)
                dropped += excess
        return dropped


@dataclass
class TickResult:
    epoch: int
    time_until_lock: int | None = None
    finalized: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    captured: list[SnapshotType] = field(default_factory=list)


class LiveWatcher:
    """Polls the prediction contract, finalizing closed rounds and capturing pre-lock snapshots."""

    def __init__(
        self,
        source,
        store: RoundStore,
        *,
        poll_interval: float = 1.0,
        attempt_cap: int = 100,
        max_catchup_epochs: int = 12,
        error_backoff_factor: float = 2.0,
        windows: Sequence[SnapshotWindow] = SNAPSHOT_WINDOWS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        events: RuntimeEventLogger | None = None,
        log: logging.Logger | None = None,
        on_round: Callable[[int], None] | None = None,
        on_snapshot: Callable[[int, SnapshotType], None] | None = None,
    ):
        self.source = source
        self.store = store
        self.poll_interval = float(poll_interval)
        self.attempt_cap = max(1, int(attempt_cap))
        self.max_catchup_epochs = max(1, int(max_catchup_epochs))
        self.error_backoff_factor = float(error_backoff_factor)
        self.windows = tuple(windows)
        self.clock = clock
        self.sleep = sleep
        self.events = events
        self.log = log or logging.getLogger("roundwatch.watcher")
        self.on_round = on_round
        self.on_snapshot = on_snapshot
        self.state = WatcherState()

    def _emit(self, event: str, **fields: Any) -> None:
        if self.events is not None:
            self.events.emit(event, **fields)

    def _call_hook(self, name: str, hook: Callable[..., Any], *args: Any) -> None:
        try:
            hook(*args)
        except Exception as exc:
            self.log.error("%s hook failed args=%s err=%s", name, args, exc)
            self._emit("hook.error", hook=name, error=str(exc))

    async def _io(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    async def start(self) -> int:
        epoch = int(await self._io(self.source.get_current_epoch))
        self.state.last_seen_epoch = epoch
        self.log.info("watcher start epoch=%s poll=%.2fs", epoch, self.poll_interval)
        self._emit("watcher.start", epoch=epoch, poll_interval=self.poll_interval)
        return epoch

    async def tick(self) -> TickResult:
        current = int(await self._io(self.source.get_current_epoch))
        if self.state.last_seen_epoch is None:
            self.state.last_seen_epoch = current
        result = TickResult(epoch=current)

        last_seen = self.state.last_seen_epoch
        if current > last_seen:
            self.log.info("new epoch=%s previous=%s", current, last_seen)
            await self._finalize(range(last_seen, current), result)
            self.state.last_seen_epoch = current

        try:
            await self._capture_snapshots(current, result)
        except Exception as exc:
            self.log.warning("snapshot check failed epoch=%s err=%s", current, exc)
            self._emit("snapshot.error", epoch=current, error=str(exc))

        dropped = self.state.prune(self.attempt_cap)
        if dropped:
            self.log.debug("pruned attempt sets dropped=%s", dropped)
        return result

    async def _finalize(self, epochs: range, result: TickResult) -> None:
        pending = list(epochs)
        if len(pending) > self.max_catchup_epochs:
            result.skipped = pending[: -self.max_catchup_epochs]
            pending = pending[-self.max_catchup_epochs :]
            self.log.warning(
                "epoch gap too wide, not finalizing epochs=%s..%s count=%s",
                result.skipped[0],
                result.skipped[-1],
                len(result.skipped),
            )
            self._emit("epoch.gap", first=result.skipped[0], last=result.skipped[-1], count=len(result.skipped))

        for epoch in pending:
            try:
                rnd = await self._io(self.source.get_round, epoch)
                self.store.upsert_round(rnd)
            except Exception as exc:
                result.failed.append(epoch)
                self.log.error("round store failed epoch=%s err=%s", epoch, exc)
                self._emit("round.failed", epoch=epoch, error=str(exc))
                continue
            result.finalized.append(epoch)
            self.log.info("round stored epoch=%s oracle_called=%s", epoch, rnd.oracle_called)
            self._emit("round.stored", epoch=epoch, oracle_called=bool(rnd.oracle_called))
            if self.on_round is not None:
                self._call_hook("on_round", self.on_round, epoch)

    async def _capture_snapshots(self, epoch: int, result: TickResult) -> None:
        rnd = await self._io(self.source.get_round, epoch)
        time_until_lock = int(rnd.lock_timestamp) - int(self.clock())
        result.time_until_lock = time_until_lock

        for window in self.windows:
            kind = window.snapshot_type
            if not window.contains(time_until_lock):
                continue
            if self.state.was_attempted(kind, epoch):
                continue
            if self.store.has_snapshot(epoch, kind):
                self.state.mark_attempted(kind, epoch)
                continue

            odds = calculate_implied_multiples(rnd.total_amount, rnd.bull_amount, rnd.bear_amount)
            self.store.upsert_snapshot(
                epoch,
                rnd.total_amount,
                rnd.bull_amount,
                rnd.bear_amount,
                odds.implied_up,
                odds.implied_down,
                kind,
            )
            self.state.mark_attempted(kind, epoch)
            result.captured.append(kind)
            self.log.info(
                "snapshot stored epoch=%s type=%s lock_in=%ss up=%s down=%s",
                epoch,
                kind.value,
                time_until_lock,
                _fmt_multiple(odds.implied_up),
                _fmt_multiple(odds.implied_down),
            )
            self._emit(
                "snapshot.stored",
                epoch=epoch,
                type=kind.value,
                lock_in=time_until_lock,
                implied_up=odds.implied_up,
                implied_down=odds.implied_down,
            )
            if self.on_snapshot is not None:
                self._call_hook("on_snapshot", self.on_snapshot, epoch, kind)

    async def run(self, *, max_ticks: int | None = None) -> None:
        """Poll forever (or ``max_ticks`` times); a failed tick backs off instead of exiting."""
        if self.state.last_seen_epoch is None:
            await self.start()
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            ticks += 1
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.log.exception("watcher tick failed: %s", exc)
                self._emit("tick.error", error=str(exc))
                await self.sleep(self.poll_interval * self.error_backoff_factor)
                continue
            await self.sleep(self.poll_interval)


def _fmt_multiple(value: float | None) -> str:
    return "none" if value is None else f"{value:.3f}"
