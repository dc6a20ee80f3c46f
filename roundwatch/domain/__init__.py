from .models import ImpliedMultiples, RoundData, Snapshot, SnapshotType, SnapshotWindow, Winner, SNAPSHOT_WINDOWS
from .odds import calculate_implied_multiples, calculate_winner_multiple, determine_winner, format_wei

__all__ = [
    "ImpliedMultiples",
    "RoundData",
    "Snapshot",
    "SnapshotType",
    "SnapshotWindow",
    "Winner",
    "SNAPSHOT_WINDOWS",
    "calculate_implied_multiples",
    "calculate_winner_multiple",
    "determine_winner",
    "format_wei",
]
