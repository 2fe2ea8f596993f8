"""Tests for settings loading and asset currency pair parsing."""

import pytest
from pydantic import ValidationError

from conftest import LBTC, USDT
from dexa.config import (
    ApiSettings,
    AppSettings,
    JobSettings,
    RaterSettings,
    parse_asset_currency_pairs,
)


def test_parse_asset_currency_pairs():
    table = parse_asset_currency_pairs(f"{LBTC}:bitcoin, {USDT}:usd,")
    assert table == {LBTC: "bitcoin", USDT: "usd"}


@pytest.mark.parametrize("raw", ["abc", "abc:usd:extra", ":usd", "abc:"])
def test_parse_asset_currency_pairs_invalid(raw):
    with pytest.raises(ValueError):
        parse_asset_currency_pairs(raw)


def test_defaults(mock_settings):
    assert mock_settings.rater.calls_per_minute == 50
    assert mock_settings.rater.refresh_interval_seconds == 300.0
    assert mock_settings.rater.asset_currency_table[LBTC] == "bitcoin"
    assert mock_settings.jobs.max_concurrent_fetches == 20
    assert mock_settings.storage.db_path.endswith("analytics.db")


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("RATER_CALLS_PER_MINUTE", "10")
    monkeypatch.setenv("JOBS_PRICE_PERIOD_MINUTES", "1.5")
    monkeypatch.setenv("API_ENABLED", "false")

    assert RaterSettings().calls_per_minute == 10
    assert JobSettings().price_period_minutes == 1.5
    assert ApiSettings().enabled is False


def test_invalid_pairs_from_env(monkeypatch):
    monkeypatch.setenv("RATER_ASSET_CURRENCY_PAIRS", "not-a-pair")
    with pytest.raises(ValidationError):
        RaterSettings()


def test_app_settings_composes_sections(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = AppSettings()
    assert settings.log_level == "INFO"
    assert settings.log_format == "console"
    assert settings.api.port == 9000
