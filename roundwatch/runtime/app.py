from __future__ import annotations

import asyncio

from roundwatch.config import Settings
from roundwatch.data import RoundStore, Web3RoundSource, export_table
from roundwatch.data.round_store import StoreStats
from roundwatch.infra import RuntimeEventLogger, get_logger
from roundwatch.runtime.backfill import Backfiller, BackfillReport, resolve_range
from roundwatch.runtime.supervisor import LoopSupervisor
from roundwatch.runtime.watcher import LiveWatcher


class App:
    """Top-level wiring of data source, store and runtime loops."""

    def __init__(self, settings: Settings, *, source=None, store: RoundStore | None = None):
        self.settings = settings
        self.log = get_logger("roundwatch", settings.log_level)
        self.events = RuntimeEventLogger(settings.data_dir)
        self.source = source or Web3RoundSource(
            settings.rpc_urls,
            settings.contract_address,
            timeout=settings.rpc_timeout,
        )
        self.store = store or RoundStore(settings.db_path)

    def build_watcher(self) -> LiveWatcher:
        return LiveWatcher(
            self.source,
            self.store,
            poll_interval=self.settings.poll_interval,
            attempt_cap=self.settings.attempt_cap,
            max_catchup_epochs=self.settings.max_catchup_epochs,
            events=self.events,
            log=get_logger("roundwatch.watcher", self.settings.log_level),
        )

    def build_backfiller(self, concurrency: int | None = None) -> Backfiller:
        return Backfiller(
            self.source,
            self.store,
            concurrency=concurrency or self.settings.concurrency,
            max_retries=self.settings.max_retries,
            retry_base_delay_ms=self.settings.retry_base_delay_ms,
            events=self.events,
            log=get_logger("roundwatch.backfill", self.settings.log_level),
        )

    async def run_live(self) -> None:
        self.log.info(
            "starting live watcher contract=%s rpc=%s db=%s poll=%sms",
            self.settings.contract_address,
            self.settings.rpc_urls[0],
            self.settings.db_path,
            self.settings.poll_interval_ms,
        )
        watcher = self.build_watcher()
        supervisor = LoopSupervisor(events=self.events)
        await supervisor.run_forever("watcher", watcher.run, self.log)

    async def run_backfill(self, start: int | str, end: int | str, *, concurrency: int | None = None) -> BackfillReport:
        current = await asyncio.get_running_loop().run_in_executor(None, self.source.get_current_epoch)
        lo, hi = resolve_range(start, end, int(current))
        return await self.build_backfiller(concurrency).backfill(lo, hi)

    async def run_resettle(self, limit: int | None = None) -> BackfillReport:
        return await self.build_backfiller().resettle(limit)

    def export(self, table: str, out: str, *, human: bool = False, dates: bool = False) -> int:
        n = export_table(self.store, table, out, human=human, dates=dates)
        self.log.info("exported table=%s rows=%s path=%s", table, n, out)
        return n

    def stats(self) -> tuple[StoreStats, int | None]:
        try:
            current = int(self.source.get_current_epoch())
        except Exception as exc:
            self.log.warning("current epoch unavailable err=%s", exc)
            current = None
        return self.store.stats(), current


def format_stats(stats: StoreStats, current_epoch: int | None) -> str:
    def pct(n: int) -> str:
        return f"{(100.0 * n / stats.total_rounds):.1f}%" if stats.total_rounds else "n/a"

    lines = [
        "=== Database Statistics ===",
        f"Current on-chain epoch: {current_epoch if current_epoch is not None else 'unavailable'}",
        f"Total rounds stored:    {stats.total_rounds}",
        f"Total snapshots:        {stats.total_snapshots}",
    ]
    for kind, n in sorted(stats.snapshots_by_type.items()):
        lines.append(f"  {kind:<20}{n}")
    lines += [
        "Winner breakdown:",
        f"  UP wins:              {stats.up_wins} ({pct(stats.up_wins)})",
        f"  DOWN wins:            {stats.down_wins} ({pct(stats.down_wins)})",
        f"  DRAW (house):         {stats.draws} ({pct(stats.draws)})",
        f"  UNKNOWN (pending):    {stats.unknown} ({pct(stats.unknown)})",
    ]
    return "\n".join(lines)
