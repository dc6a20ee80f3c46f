from __future__ import annotations

import argparse
import asyncio
import sys

from roundwatch.config import SettingsError, load_settings
from roundwatch.runtime.app import App, format_stats
from roundwatch.runtime.backfill import parse_epoch_arg


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="roundwatch", description="Prediction round collector")
    ap.add_argument("--env-file", default=None, help="dotenv file to load before reading settings")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("live", help="run the live watcher (captures rounds + pre-lock snapshots)")

    bf = sub.add_parser("backfill", help="backfill historical rounds")
    bf.add_argument("--from", dest="start", required=True, type=parse_epoch_arg, help="epoch or 'latest'")
    bf.add_argument("--to", dest="end", required=True, type=parse_epoch_arg, help="epoch or 'latest'")
    bf.add_argument("--concurrency", type=int, default=None)

    rs = sub.add_parser("resettle", help="refresh rounds stored before the oracle settled them")
    rs.add_argument("--limit", type=int, default=None)

    ex = sub.add_parser("export", help="export a table to CSV")
    ex.add_argument("--table", required=True, choices=("rounds", "snapshots"))
    ex.add_argument("--out", required=True)
    fmt = ex.add_mutually_exclusive_group()
    fmt.add_argument("--human", action="store_true", help="wei columns as BNB (rounds only)")
    fmt.add_argument("--dates", action="store_true", help="UTC dates and BNB values (rounds only)")

    sub.add_parser("stats", help="show database statistics")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.env_file)
    except SettingsError as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return 2
    app = App(settings)

    if args.command == "live":
        try:
            asyncio.run(app.run_live())
        except KeyboardInterrupt:
            app.log.info("watcher stopped")
        return 0

    if args.command == "backfill":
        try:
            report = asyncio.run(app.run_backfill(args.start, args.end, concurrency=args.concurrency))
        except ValueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        return 0 if report.ok else 1

    if args.command == "resettle":
        report = asyncio.run(app.run_resettle(args.limit))
        return 0 if report.ok else 1

    if args.command == "export":
        try:
            app.export(args.table, args.out, human=args.human, dates=args.dates)
        except ValueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        return 0

    if args.command == "stats":
        print(format_stats(*app.stats()))
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
