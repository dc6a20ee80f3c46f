from __future__ import annotations

from dataclasses import replace

from roundwatch.data.round_store import RoundStore
from roundwatch.domain.models import RoundData

NOW = 1_700_000_000
BNB = 10**18


def make_round(epoch: int, *, lock: int = NOW + 200, **overrides) -> RoundData:
    rnd = RoundData(
        epoch=epoch,
        start_timestamp=lock - 300,
        lock_timestamp=lock,
        close_timestamp=lock + 300,
        lock_price=30_000_000_000,
        close_price=30_100_000_000,
        total_amount=10 * BNB,
        bull_amount=6 * BNB,
        bear_amount=4 * BNB,
        reward_base_cal_amount=6 * BNB,
        reward_amount=97 * BNB // 10,
        oracle_called=True,
    )
    return replace(rnd, **overrides)


class FakeSource:
    """In-memory round source; ``failures`` maps epoch -> remaining failures."""

    def __init__(self, current: int, rounds: dict[int, RoundData] | None = None):
        self.current = current
        self.rounds = dict(rounds or {})
        self.failures: dict[int, int] = {}
        self.calls: list[int] = []

    def get_current_epoch(self) -> int:
        return self.current

    def get_round(self, epoch: int) -> RoundData:
        self.calls.append(epoch)
        left = self.failures.get(epoch, 0)
        if left:
            self.failures[epoch] = left - 1
            raise ConnectionError(f"rpc timeout epoch={epoch}")
        return self.rounds.get(epoch) or make_round(epoch)


class RecordingStore(RoundStore):
    def __init__(self, path: str, **kw):
        super().__init__(path, **kw)
        self.ops: list[tuple] = []

    def upsert_round(self, rnd: RoundData) -> None:
        self.ops.append(("round", rnd.epoch))
        super().upsert_round(rnd)

    def upsert_snapshot(self, epoch, total, bull, bear, implied_up, implied_down, snapshot_type) -> None:
        self.ops.append(("snapshot", epoch, str(getattr(snapshot_type, "value", snapshot_type))))
        super().upsert_snapshot(epoch, total, bull, bear, implied_up, implied_down, snapshot_type)

    def has_snapshot(self, epoch, snapshot_type) -> bool:
        self.ops.append(("has", epoch))
        return super().has_snapshot(epoch, snapshot_type)


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
