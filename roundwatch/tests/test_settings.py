import pytest

from roundwatch.config.settings import PREDICTION_CONTRACT, Settings, SettingsError, load_settings


def _settings(**overrides) -> Settings:
    base = dict(
        rpc_urls=("https://bsc-dataseed.binance.org",),
        contract_address=PREDICTION_CONTRACT,
        db_path="/data/prediction-data.db",
        data_dir="/data",
        log_level="INFO",
        poll_interval_ms=1000,
        attempt_cap=100,
        max_catchup_epochs=12,
        rpc_timeout=30.0,
        concurrency=6,
        max_retries=5,
        retry_base_delay_ms=200,
    )
    base.update(overrides)
    return Settings(**base)


def test_settings_validate_ok() -> None:
    s = _settings().validate()
    assert s.poll_interval == 1.0


@pytest.mark.parametrize("poll_ms", [0, 4000, 5000])
def test_poll_interval_must_fit_narrowest_window(poll_ms: int) -> None:
    with pytest.raises(SettingsError, match="POLL_INTERVAL_MS"):
        _settings(poll_interval_ms=poll_ms).validate()


def test_requires_rpc() -> None:
    with pytest.raises(SettingsError):
        _settings(rpc_urls=()).validate()


def test_load_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BSC_RPC", "https://a.example, https://b.example")
    monkeypatch.setenv("BSC_RPC_FALLBACKS", "https://b.example,https://c.example")
    monkeypatch.setenv("POLL_INTERVAL_MS", "1500")
    monkeypatch.setenv("ATTEMPT_CAP", "250")
    monkeypatch.setenv("CONCURRENCY", "0")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = load_settings()
    assert s.rpc_urls == ("https://a.example", "https://b.example", "https://c.example")
    assert s.poll_interval_ms == 1500
    assert s.attempt_cap == 250
    assert s.concurrency == 1
    assert s.log_level == "DEBUG"
    assert s.contract_address == PREDICTION_CONTRACT


def test_load_settings_rejects_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLL_INTERVAL_MS", "fast")
    with pytest.raises(SettingsError):
        load_settings()
