from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence

from roundwatch.data.round_store import ROUND_COLUMNS, SNAPSHOT_COLUMNS, RoundStore
from roundwatch.domain.odds import format_wei

_WEI_TO_BNB = {
    "total_amount_wei": "total_amount_bnb",
    "bull_amount_wei": "bull_amount_bnb",
    "bear_amount_wei": "bear_amount_bnb",
    "reward_base_cal_wei": "reward_base_cal_bnb",
    "reward_amount_wei": "reward_amount_bnb",
}

HUMAN_ROUND_COLUMNS = tuple(_WEI_TO_BNB.get(c, c) for c in ROUND_COLUMNS)

DATED_ROUND_COLUMNS = (
    "epoch",
    "start_date",
    "lock_date",
    "close_date",
    "lock_price",
    "close_price",
    "total_amount_bnb",
    "bull_amount_bnb",
    "bear_amount_bnb",
    "oracle_called",
    "reward_base_cal_bnb",
    "reward_amount_bnb",
    "winner",
    "winner_multiple",
    "round_duration_seconds",
)


def _utc(ts: int) -> str:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _human_row(row: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for col in ROUND_COLUMNS:
        if col in _WEI_TO_BNB:
            out[_WEI_TO_BNB[col]] = format_wei(int(row[col]))
        else:
            out[col] = row[col]
    return out


def _dated_row(row: dict[str, Any]) -> dict[str, Any]:
    human = _human_row(row)
    return {
        "epoch": row["epoch"],
        "start_date": _utc(row["start_ts"]),
        "lock_date": _utc(row["lock_ts"]),
        "close_date": _utc(row["close_ts"]),
        "lock_price": row["lock_price"],
        "close_price": row["close_price"],
        "total_amount_bnb": human["total_amount_bnb"],
        "bull_amount_bnb": human["bull_amount_bnb"],
        "bear_amount_bnb": human["bear_amount_bnb"],
        "oracle_called": row["oracle_called"],
        "reward_base_cal_bnb": human["reward_base_cal_bnb"],
        "reward_amount_bnb": human["reward_amount_bnb"],
        "winner": row["winner"],
        "winner_multiple": row["winner_multiple"],
        "round_duration_seconds": int(row["close_ts"]) - int(row["start_ts"]),
    }


def write_csv(path: str | Path, columns: Sequence[str], rows: Iterable[dict[str, Any]]) -> int:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with out.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=list(columns), lineterminator="\n")
        w.writeheader()
        for row in rows:
            w.writerow({c: ("" if row.get(c) is None else row.get(c)) for c in columns})
            n += 1
    return n


def export_table(store: RoundStore, table: str, path: str | Path, *, human: bool = False, dates: bool = False) -> int:
    """Write ``rounds`` or ``snapshots`` to CSV and return the row count.

    ``human`` converts wei to BNB; ``dates`` also renders timestamps as UTC
    dates. Both only apply to rounds.
    """
    if table not in ("rounds", "snapshots"):
        raise ValueError(f"unknown table {table!r} (expected 'rounds' or 'snapshots')")
    if table == "snapshots":
        if human or dates:
            raise ValueError("--human and --dates are only supported for the rounds table")
        return write_csv(path, SNAPSHOT_COLUMNS, store.all_snapshots())
    rows = store.all_rounds()
    if dates:
        return write_csv(path, DATED_ROUND_COLUMNS, (_dated_row(r) for r in rows))
    if human:
        return write_csv(path, HUMAN_ROUND_COLUMNS, (_human_row(r) for r in rows))
    return write_csv(path, ROUND_COLUMNS, rows)
