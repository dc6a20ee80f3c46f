from .backfill import Backfiller, BackfillReport
from .supervisor import LoopSupervisor
from .watcher import LiveWatcher, TickResult, WatcherState

__all__ = ["Backfiller", "BackfillReport", "LoopSupervisor", "LiveWatcher", "TickResult", "WatcherState"]
