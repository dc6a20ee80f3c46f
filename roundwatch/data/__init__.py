from .csv_export import export_table
from .round_source import RoundSourceError, Web3RoundSource, parse_round
from .round_store import RoundStore, StoreStats

__all__ = ["export_table", "RoundSourceError", "Web3RoundSource", "parse_round", "RoundStore", "StoreStats"]
