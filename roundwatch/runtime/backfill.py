from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from roundwatch.data.round_store import RoundStore
from roundwatch.domain.models import RoundData
from roundwatch.infra.telemetry import RuntimeEventLogger

T = TypeVar("T")

LATEST = "latest"


@dataclass
class BackfillReport:
    requested: int = 0
    stored: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    pending: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def parse_epoch_arg(raw: str) -> int | str:
    value = str(raw).strip().lower()
    if value == LATEST:
        return LATEST
    try:
        epoch = int(value)
    except ValueError as exc:
        raise ValueError(f"epoch must be a number or 'latest', got {raw!r}") from exc
    if epoch < 0:
        raise ValueError(f"epoch must be non-negative, got {epoch}")
    return epoch


def resolve_range(start: int | str, end: int | str, current_epoch: int) -> tuple[int, int]:
    lo = current_epoch if start == LATEST else int(start)
    hi = current_epoch if end == LATEST else int(end)
    if lo > hi:
        raise ValueError(f"invalid range: from ({lo}) > to ({hi})")
    return lo, hi


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_delay: float,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    last_err: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except Exception as exc:
            last_err = exc
            if attempt < max_retries:
                await sleep(base_delay * (2**attempt))
    if last_err is None:
        raise RuntimeError("retry_with_backoff needs max_retries >= 0")
    raise last_err


class Backfiller:
    """Fetches historical rounds with bounded concurrency and per-epoch retry."""

    def __init__(
        self,
        source,
        store: RoundStore,
        *,
        concurrency: int = 6,
        max_retries: int = 5,
        retry_base_delay_ms: int = 200,
        progress_every: int = 100,
        events: RuntimeEventLogger | None = None,
        log: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.source = source
        self.store = store
        self.concurrency = max(1, int(concurrency))
        self.max_retries = max(0, int(max_retries))
        self.base_delay = max(0, int(retry_base_delay_ms)) / 1000.0
        self.progress_every = max(1, int(progress_every))
        self.events = events
        self.log = log or logging.getLogger("roundwatch.backfill")
        self.sleep = sleep

    async def _fetch(self, epoch: int) -> RoundData:
        loop = asyncio.get_running_loop()

        async def once() -> RoundData:
            return await loop.run_in_executor(None, lambda: self.source.get_round(epoch))

        return await retry_with_backoff(once, max_retries=self.max_retries, base_delay=self.base_delay, sleep=self.sleep)

    async def _run(self, epochs: list[int], handle: Callable[[RoundData, BackfillReport], None]) -> BackfillReport:
        report = BackfillReport(requested=len(epochs))
        sem = asyncio.Semaphore(self.concurrency)
        done = 0

        async def one(epoch: int) -> None:
            nonlocal done
            async with sem:
                try:
                    rnd = await self._fetch(epoch)
                    handle(rnd, report)
                except Exception as exc:
                    report.failed[epoch] = str(exc)
                    self.log.error("backfill failed epoch=%s err=%s", epoch, exc)
                    if self.events is not None:
                        self.events.emit("backfill.failed", epoch=epoch, error=str(exc))
                done += 1
                if done % self.progress_every == 0 or done == report.requested:
                    self.log.info("progress %s/%s (%.1f%%)", done, report.requested, 100.0 * done / report.requested)

        await asyncio.gather(*(one(e) for e in epochs))
        report.stored.sort()
        report.pending.sort()
        return report

    def _store(self, rnd: RoundData, report: BackfillReport) -> None:
        self.store.upsert_round(rnd)
        report.stored.append(int(rnd.epoch))

    def _store_if_settled(self, rnd: RoundData, report: BackfillReport) -> None:
        if not rnd.oracle_called:
            report.pending.append(int(rnd.epoch))
            return
        self._store(rnd, report)

    async def backfill(self, start: int, end: int) -> BackfillReport:
        epochs = list(range(int(start), int(end) + 1))
        self.log.info(
            "backfill start epochs=%s..%s rounds=%s concurrency=%s retries=%s",
            start,
            end,
            len(epochs),
            self.concurrency,
            self.max_retries,
        )
        report = await self._run(epochs, self._store)
        self.log.info("backfill complete stored=%s failed=%s", len(report.stored), len(report.failed))
        return report

    async def resettle(self, limit: int | None = None) -> BackfillReport:
        """Re-read rounds stored before the oracle settled them."""
        epochs = self.store.unsettled_epochs(limit)
        if not epochs:
            self.log.info("resettle: no unsettled rounds")
            return BackfillReport()
        self.log.info("resettle start rounds=%s first=%s last=%s", len(epochs), epochs[0], epochs[-1])
        report = await self._run(epochs, self._store_if_settled)
        self.log.info(
            "resettle complete settled=%s still_pending=%s failed=%s",
            len(report.stored),
            len(report.pending),
            len(report.failed),
        )
        return report
