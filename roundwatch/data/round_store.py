from __future__ import annotations

import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

from roundwatch.domain.models import RoundData, SnapshotType, Winner
from roundwatch.domain.odds import calculate_winner_multiple, determine_winner

SCHEMA = """
CREATE TABLE IF NOT EXISTS rounds (
    epoch INTEGER PRIMARY KEY,
    start_ts INTEGER NOT NULL,
    lock_ts INTEGER NOT NULL,
    close_ts INTEGER NOT NULL,
    lock_price TEXT NOT NULL,
    close_price TEXT NOT NULL,
    total_amount_wei TEXT NOT NULL,
    bull_amount_wei TEXT NOT NULL,
    bear_amount_wei TEXT NOT NULL,
    oracle_called INTEGER NOT NULL,
    reward_base_cal_wei TEXT NOT NULL,
    reward_amount_wei TEXT NOT NULL,
    winner TEXT NOT NULL CHECK(winner IN ('UP','DOWN','DRAW','UNKNOWN')),
    winner_multiple REAL,
    inserted_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_rounds_winner ON rounds(winner);
CREATE INDEX IF NOT EXISTS idx_rounds_lock_ts ON rounds(lock_ts);

CREATE TABLE IF NOT EXISTS snapshots (
    epoch INTEGER NOT NULL,
    snapshot_type TEXT NOT NULL
        CHECK(snapshot_type IN ('T_MINUS_25S','T_MINUS_20S','T_MINUS_8S','T_MINUS_4S')),
    taken_at INTEGER NOT NULL,
    total_amount_wei TEXT NOT NULL,
    bull_amount_wei TEXT NOT NULL,
    bear_amount_wei TEXT NOT NULL,
    implied_up_multiple REAL,
    implied_down_multiple REAL,
    PRIMARY KEY (epoch, snapshot_type)
);
CREATE INDEX IF NOT EXISTS idx_snapshots_type ON snapshots(snapshot_type);
"""

ROUND_COLUMNS = (
    "epoch",
    "start_ts",
    "lock_ts",
    "close_ts",
    "lock_price",
    "close_price",
    "total_amount_wei",
    "bull_amount_wei",
    "bear_amount_wei",
    "oracle_called",
    "reward_base_cal_wei",
    "reward_amount_wei",
    "winner",
    "winner_multiple",
    "inserted_at",
    "updated_at",
)

SNAPSHOT_COLUMNS = (
    "epoch",
    "snapshot_type",
    "taken_at",
    "total_amount_wei",
    "bull_amount_wei",
    "bear_amount_wei",
    "implied_up_multiple",
    "implied_down_multiple",
)

# Columns compared on conflict; a replay with identical values is a no-op.
_ROUND_DATA_COLUMNS = ROUND_COLUMNS[1:14]

_UPSERT_ROUND = (
    f"INSERT INTO rounds ({','.join(ROUND_COLUMNS)}) "
    f"VALUES ({','.join('?' * len(ROUND_COLUMNS))}) "
    "ON CONFLICT(epoch) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _ROUND_DATA_COLUMNS + ("updated_at",))
    + " WHERE "
    + " OR ".join(f"rounds.{c} IS NOT excluded.{c}" for c in _ROUND_DATA_COLUMNS)
)

_UPSERT_SNAPSHOT = (
    f"INSERT INTO snapshots ({','.join(SNAPSHOT_COLUMNS)}) "
    f"VALUES ({','.join('?' * len(SNAPSHOT_COLUMNS))}) "
    "ON CONFLICT(epoch, snapshot_type) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in SNAPSHOT_COLUMNS[2:])
)


@dataclass(frozen=True)
class StoreStats:
    total_rounds: int
    total_snapshots: int
    up_wins: int
    down_wins: int
    draws: int
    unknown: int
    snapshots_by_type: dict[str, int]


class RoundStore:
    """sqlite3 store for finalized rounds and pre-lock pool snapshots.

    Wei amounts and prices are kept as decimal TEXT since they overflow
    sqlite's 64-bit INTEGER.
    """

    def __init__(self, path: str, *, clock: Callable[[], float] = time.time):
        self.path = path
        self.clock = clock
        self._lock = threading.Lock()
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._init()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init(self) -> None:
        with self._conn() as c:
            c.execute("PRAGMA journal_mode=WAL")
            c.execute("PRAGMA synchronous=NORMAL")
            c.executescript(SCHEMA)

    def upsert_round(self, rnd: RoundData) -> None:
        now = int(self.clock())
        winner = determine_winner(rnd)
        row = (
            int(rnd.epoch),
            int(rnd.start_timestamp),
            int(rnd.lock_timestamp),
            int(rnd.close_timestamp),
            str(rnd.lock_price),
            str(rnd.close_price),
            str(rnd.total_amount),
            str(rnd.bull_amount),
            str(rnd.bear_amount),
            1 if rnd.oracle_called else 0,
            str(rnd.reward_base_cal_amount),
            str(rnd.reward_amount),
            winner.value,
            calculate_winner_multiple(rnd),
            now,
            now,
        )
        with self._lock:
            with self._conn() as c:
                c.execute(_UPSERT_ROUND, row)

    def upsert_snapshot(
        self,
        epoch: int,
        total: int,
        bull: int,
        bear: int,
        implied_up: float | None,
        implied_down: float | None,
        snapshot_type: SnapshotType | str,
    ) -> None:
        row = (
            int(epoch),
            SnapshotType(snapshot_type).value,
            int(self.clock()),
            str(total),
            str(bull),
            str(bear),
            implied_up,
            implied_down,
        )
        with self._lock:
            with self._conn() as c:
                c.execute(_UPSERT_SNAPSHOT, row)

    def has_snapshot(self, epoch: int, snapshot_type: SnapshotType | str) -> bool:
        with self._conn() as c:
            hit = c.execute(
                "SELECT 1 FROM snapshots WHERE epoch = ? AND snapshot_type = ? LIMIT 1",
                (int(epoch), SnapshotType(snapshot_type).value),
            ).fetchone()
        return hit is not None

    def get_round(self, epoch: int) -> dict[str, Any] | None:
        with self._conn() as c:
            row = c.execute("SELECT * FROM rounds WHERE epoch = ?", (int(epoch),)).fetchone()
        return dict(row) if row is not None else None

    def get_snapshot(self, epoch: int, snapshot_type: SnapshotType | str) -> dict[str, Any] | None:
        with self._conn() as c:
            row = c.execute(
                "SELECT * FROM snapshots WHERE epoch = ? AND snapshot_type = ?",
                (int(epoch), SnapshotType(snapshot_type).value),
            ).fetchone()
        return dict(row) if row is not None else None

    def all_rounds(self) -> list[dict[str, Any]]:
        with self._conn() as c:
            rows = c.execute(f"SELECT {','.join(ROUND_COLUMNS)} FROM rounds ORDER BY epoch ASC").fetchall()
        return [dict(r) for r in rows]

    def all_snapshots(self) -> list[dict[str, Any]]:
        with self._conn() as c:
            rows = c.execute(
                f"SELECT {','.join(SNAPSHOT_COLUMNS)} FROM snapshots ORDER BY epoch ASC, snapshot_type ASC"
            ).fetchall()
        return [dict(r) for r in rows]

    def unsettled_epochs(self, limit: int | None = None) -> list[int]:
        sql = "SELECT epoch FROM rounds WHERE winner = ? ORDER BY epoch ASC"
        params: tuple[Any, ...] = (Winner.UNKNOWN.value,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (int(limit),)
        with self._conn() as c:
            return [int(r["epoch"]) for r in c.execute(sql, params).fetchall()]

    def stats(self) -> StoreStats:
        with self._conn() as c:
            total_rounds = int(c.execute("SELECT COUNT(*) FROM rounds").fetchone()[0])
            total_snapshots = int(c.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0])
            winners = {
                r["winner"]: int(r["n"])
                for r in c.execute("SELECT winner, COUNT(*) AS n FROM rounds GROUP BY winner").fetchall()
            }
            by_type = {
                r["snapshot_type"]: int(r["n"])
                for r in c.execute(
                    "SELECT snapshot_type, COUNT(*) AS n FROM snapshots GROUP BY snapshot_type"
                ).fetchall()
            }
        return StoreStats(
            total_rounds=total_rounds,
            total_snapshots=total_snapshots,
            up_wins=winners.get(Winner.UP.value, 0),
            down_wins=winners.get(Winner.DOWN.value, 0),
            draws=winners.get(Winner.DRAW.value, 0),
            unknown=winners.get(Winner.UNKNOWN.value, 0),
            snapshots_by_type=by_type,
        )
