from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Winner(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    DRAW = "DRAW"
    UNKNOWN = "UNKNOWN"


class SnapshotType(str, Enum):
    T_MINUS_20S = "T_MINUS_20S"
    T_MINUS_8S = "T_MINUS_8S"
    T_MINUS_4S = "T_MINUS_4S"
    # legacy rows only; never captured by the live watcher
    T_MINUS_25S = "T_MINUS_25S"


@dataclass(frozen=True)
class SnapshotWindow:
    """Countdown window before lock: ``lower < time_until_lock <= upper``."""

    snapshot_type: SnapshotType
    lower: int
    upper: int

    def contains(self, time_until_lock: int) -> bool:
        return self.lower < time_until_lock <= self.upper

    @property
    def width(self) -> int:
        return self.upper - self.lower


# Ordered outward from lock; the windows must not overlap.
SNAPSHOT_WINDOWS: tuple[SnapshotWindow, ...] = (
    SnapshotWindow(SnapshotType.T_MINUS_4S, lower=2, upper=6),
    SnapshotWindow(SnapshotType.T_MINUS_8S, lower=6, upper=10),
    SnapshotWindow(SnapshotType.T_MINUS_20S, lower=17, upper=22),
)


@dataclass(frozen=True)
class RoundData:
    """One ``rounds(epoch)`` read from the prediction contract. Amounts are wei."""

    epoch: int
    start_timestamp: int
    lock_timestamp: int
    close_timestamp: int
    lock_price: int
    close_price: int
    total_amount: int
    bull_amount: int
    bear_amount: int
    reward_base_cal_amount: int
    reward_amount: int
    oracle_called: bool
    lock_oracle_id: int = 0
    close_oracle_id: int = 0


@dataclass(frozen=True)
class ImpliedMultiples:
    implied_up: float | None
    implied_down: float | None


@dataclass(frozen=True)
class Snapshot:
    epoch: int
    snapshot_type: SnapshotType
    taken_at: int
    total_amount: int
    bull_amount: int
    bear_amount: int
    implied_up: float | None
    implied_down: float | None
