from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from roundwatch.domain.models import SNAPSHOT_WINDOWS

PREDICTION_CONTRACT = "0x18B2A687610328590Bc8F2e5fEdDe3b582A49cdA"

BSC_RPCS = (
    "https://bsc-dataseed.binance.org",
    "https://bsc-dataseed1.defibit.io",
    "https://bsc-dataseed1.ninicoin.io",
    "https://bsc.publicnode.com",
)


class SettingsError(ValueError):
    """Raised when the environment describes an unusable configuration."""


def _env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise SettingsError(f"{name} must be an integer, got {raw!r}") from exc
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_float(name: str, default: float, min_value: float | None = None) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = float(raw)
        except ValueError as exc:
            raise SettingsError(f"{name} must be a number, got {raw!r}") from exc
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def narrowest_window_ms() -> int:
    return min(w.width for w in SNAPSHOT_WINDOWS) * 1000


@dataclass(frozen=True)
class Settings:
    rpc_urls: tuple[str, ...]
    contract_address: str
    db_path: str
    data_dir: str
    log_level: str
    poll_interval_ms: int
    attempt_cap: int
    max_catchup_epochs: int
    rpc_timeout: float
    concurrency: int
    max_retries: int
    retry_base_delay_ms: int

    def validate(self) -> "Settings":
        if not self.rpc_urls:
            raise SettingsError("at least one RPC url is required (BSC_RPC)")
        limit = narrowest_window_ms()
        if not 0 < self.poll_interval_ms < limit:
            raise SettingsError(
                f"POLL_INTERVAL_MS={self.poll_interval_ms} must be between 1 and {limit - 1}; "
                f"the narrowest snapshot window is {limit}ms wide"
            )
        if self.attempt_cap < 1:
            raise SettingsError("ATTEMPT_CAP must be positive")
        return self

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0


def load_settings(env_file: str | None = None) -> Settings:
    load_dotenv(env_file)
    primary = _env_list("BSC_RPC", BSC_RPCS[:1])
    fallbacks = _env_list("BSC_RPC_FALLBACKS", BSC_RPCS[1:])
    rpc_urls = tuple(dict.fromkeys(primary + fallbacks))
    return Settings(
        rpc_urls=rpc_urls,
        contract_address=os.environ.get("PREDICTION_CONTRACT", PREDICTION_CONTRACT).strip(),
        db_path=os.environ.get("DB_PATH", "./data/prediction-data.db"),
        data_dir=os.environ.get("DATA_DIR", "./data"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper(),
        poll_interval_ms=_env_int("POLL_INTERVAL_MS", 1000),
        attempt_cap=_env_int("ATTEMPT_CAP", 100),
        max_catchup_epochs=_env_int("MAX_CATCHUP_EPOCHS", 12, min_value=1),
        rpc_timeout=_env_float("RPC_TIMEOUT", 30.0, min_value=1.0),
        concurrency=_env_int("CONCURRENCY", 6, min_value=1),
        max_retries=_env_int("MAX_RETRIES", 5, min_value=0),
        retry_base_delay_ms=_env_int("RETRY_BASE_DELAY_MS", 200, min_value=0),
    ).validate()
