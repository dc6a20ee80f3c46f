from pathlib import Path

import pytest

from roundwatch.data.round_store import RoundStore
from roundwatch.domain.models import SnapshotType
from helpers import BNB, NOW, make_round


class Clock:
    def __init__(self, t: int):
        self.t = t

    def __call__(self) -> int:
        return self.t


def test_upsert_round_is_idempotent(tmp_path: Path) -> None:
    clock = Clock(NOW)
    store = RoundStore(str(tmp_path / "r.db"), clock=clock)
    rnd = make_round(100)
    store.upsert_round(rnd)
    first = store.get_round(100)
    clock.t = NOW + 60
    store.upsert_round(rnd)
    assert store.get_round(100) == first
    assert len(store.all_rounds()) == 1


def test_upsert_round_changed_data_keeps_inserted_at(tmp_path: Path) -> None:
    clock = Clock(NOW)
    store = RoundStore(str(tmp_path / "r.db"), clock=clock)
    store.upsert_round(make_round(100, oracle_called=False))
    assert store.get_round(100)["winner"] == "UNKNOWN"
    assert store.get_round(100)["winner_multiple"] is None

    clock.t = NOW + 600
    store.upsert_round(make_round(100))
    row = store.get_round(100)
    assert row["winner"] == "UP"
    assert row["winner_multiple"] == pytest.approx(1.6167, abs=1e-4)
    assert row["inserted_at"] == NOW
    assert row["updated_at"] == NOW + 600


def test_round_amounts_keep_full_precision(tmp_path: Path) -> None:
    store = RoundStore(str(tmp_path / "r.db"))
    huge = 2**70 + 123
    store.upsert_round(make_round(7, total_amount=huge, bull_amount=huge - 1, bear_amount=1))
    row = store.get_round(7)
    assert int(row["total_amount_wei"]) == huge
    assert int(row["bull_amount_wei"]) == huge - 1
    assert row["oracle_called"] == 1


def test_snapshot_same_key_latest_wins(tmp_path: Path) -> None:
    store = RoundStore(str(tmp_path / "r.db"), clock=lambda: NOW)
    store.upsert_snapshot(100, 10 * BNB, 6 * BNB, 4 * BNB, 10 / 6, 2.5, SnapshotType.T_MINUS_20S)
    store.upsert_snapshot(100, 12 * BNB, 6 * BNB, 6 * BNB, 2.0, 2.0, "T_MINUS_20S")
    rows = store.all_snapshots()
    assert len(rows) == 1
    assert rows[0]["total_amount_wei"] == str(12 * BNB)
    assert rows[0]["implied_up_multiple"] == pytest.approx(2.0)


def test_has_snapshot_matches_upsert_key(tmp_path: Path) -> None:
    store = RoundStore(str(tmp_path / "r.db"))
    assert not store.has_snapshot(100, SnapshotType.T_MINUS_8S)
    store.upsert_snapshot(100, 0, 0, 0, 0.0, 0.0, SnapshotType.T_MINUS_8S)
    assert store.has_snapshot(100, SnapshotType.T_MINUS_8S)
    assert not store.has_snapshot(100, SnapshotType.T_MINUS_4S)
    assert not store.has_snapshot(101, SnapshotType.T_MINUS_8S)


def test_snapshot_allows_null_multiples_and_legacy_type(tmp_path: Path) -> None:
    store = RoundStore(str(tmp_path / "r.db"))
    store.upsert_snapshot(5, 4 * BNB, 0, 4 * BNB, None, 1.0, SnapshotType.T_MINUS_25S)
    row = store.get_snapshot(5, "T_MINUS_25S")
    assert row["implied_up_multiple"] is None
    with pytest.raises(ValueError):
        store.upsert_snapshot(5, 0, 0, 0, None, None, "T_MINUS_1S")


def test_stats_and_unsettled(tmp_path: Path) -> None:
    store = RoundStore(str(tmp_path / "r.db"))
    store.upsert_round(make_round(1))
    store.upsert_round(make_round(2, close_price=1))
    store.upsert_round(make_round(3, oracle_called=False))
    store.upsert_round(make_round(4, oracle_called=False))
    store.upsert_snapshot(3, 0, 0, 0, 0.0, 0.0, SnapshotType.T_MINUS_4S)

    stats = store.stats()
    assert stats.total_rounds == 4
    assert (stats.up_wins, stats.down_wins, stats.draws, stats.unknown) == (1, 1, 0, 2)
    assert stats.snapshots_by_type == {"T_MINUS_4S": 1}
    assert store.unsettled_epochs() == [3, 4]
    assert store.unsettled_epochs(limit=1) == [3]
