"""Tests for the dexa command-line client with a mocked aiohttp session."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import LBTC, USDT
from dexa.cli import (
    DEFAULT_SERVER,
    AnalyticsApiClient,
    CliState,
    create_parser,
    main,
    markets_body,
    parse_filter,
    series_body,
)
from dexa.exceptions import ApiClientError


@pytest.fixture(autouse=True)
def _logging(restore_logging):
    yield


@pytest.fixture
def session(monkeypatch) -> MagicMock:
    session = MagicMock()
    session.close = AsyncMock()

    async def connect(self):
        self._session = session

    monkeypatch.setattr(AnalyticsApiClient, "connect", connect)
    return session


def _response(body, status: int = 200) -> MagicMock:
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=json.dumps(body))
    return response


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


def test_parse_filter():
    assert parse_filter(f" https://provider.example, {LBTC} ,{USDT}") == {
        "url": "https://provider.example",
        "base_asset": LBTC,
        "quote_asset": USDT,
    }


@pytest.mark.parametrize("raw", ["https://provider.example", f"a,{LBTC},{USDT},extra"])
def test_parse_filter_needs_three_parts(raw):
    with pytest.raises(ApiClientError, match="provide url, base_asset, quote_asset"):
        parse_filter(raw)


def test_balances_body_with_predefined_period():
    args = create_parser().parse_args(
        [
            "balances",
            "--period", "last_day",
            "--market-id", "1",
            "--market-id", "2",
            "--page-number", "2",
            "--page-size", "5",
            "--time-frame", "hour",
        ]
    )

    assert series_body(args) == {
        "time_range": {"predefined_period": 2},
        "market_ids": ["1", "2"],
        "page": {"number": 2, "size": 5},
        "time_frame": "hour",
    }


def test_prices_body_with_custom_period():
    args = create_parser().parse_args(
        ["prices", "--from-time", "2024-03-01T00:00:00Z", "--reference-currency", "EUR"]
    )

    assert series_body(args) == {
        "time_range": {"custom_period": {"start_date": "2024-03-01T00:00:00Z", "end_date": ""}},
        "market_ids": [],
        "reference_currency": "EUR",
    }


def test_markets_body_without_filters():
    args = create_parser().parse_args(["markets"])
    assert markets_body(args) == {"market_filters": []}


@pytest.mark.parametrize(
    "argv",
    [
        ["prices"],
        ["prices", "--period", "last_day", "--start-date", "2024-03-01T00:00:00Z"],
        ["balances", "--period", "yesterday"],
    ],
)
def test_time_range_usage_errors(argv):
    with pytest.raises(SystemExit):
        create_parser().parse_args(argv)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


def test_config_defaults_server(tmp_path):
    assert main(["--data-dir", str(tmp_path), "config"]) == 0
    assert CliState(tmp_path).load() == {"server": DEFAULT_SERVER}


def test_config_set_and_print(tmp_path, capsys):
    assert main(["--data-dir", str(tmp_path), "config", "set", "server", "analytics.example:9000"]) == 0
    assert "server analytics.example:9000 has been set" in capsys.readouterr().out

    assert main(["--data-dir", str(tmp_path), "config", "print"]) == 0
    assert capsys.readouterr().out.splitlines() == ["server: analytics.example:9000"]
    assert CliState(tmp_path).server() == "http://analytics.example:9000"


def test_config_set_keeps_other_keys(tmp_path):
    state = CliState(tmp_path)
    state.update({"server": "http://a.example"})
    state.update({"timeout": "5"})
    assert state.load() == {"server": "http://a.example", "timeout": "5"}


def test_corrupt_state_file(tmp_path, capsys):
    (tmp_path / "state.json").write_text("[1, 2]")

    assert main(["--data-dir", str(tmp_path), "config", "print"]) == 1
    assert "not a JSON object" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# API commands
# ---------------------------------------------------------------------------


def test_health(tmp_path, session, capsys):
    session.get = AsyncMock(return_value=_response({"status": "ok"}))

    assert main(["--data-dir", str(tmp_path), "health"]) == 0

    assert json.loads(capsys.readouterr().out) == {"status": "ok"}
    session.get.assert_awaited_once_with(f"{DEFAULT_SERVER}/health", params=None)
    session.close.assert_awaited_once()


def test_prices_posts_to_configured_server(tmp_path, session, capsys):
    CliState(tmp_path).update({"server": "http://analytics.example:9000"})
    payload = {
        "market_prices": {"1": [{"quote_price": "40000.00000000", "quote_reference_price": "36000.00"}]},
        "average_prices": [],
    }
    session.post = AsyncMock(return_value=_response(payload))

    code = main(
        ["--data-dir", str(tmp_path), "prices", "--period", "last_hour", "--reference-currency", "EUR"]
    )

    assert code == 0
    assert json.loads(capsys.readouterr().out) == payload
    session.post.assert_awaited_once_with(
        "http://analytics.example:9000/v1/prices",
        json={
            "time_range": {"predefined_period": 1},
            "market_ids": [],
            "reference_currency": "EUR",
        },
        params=None,
    )


def test_markets_posts_filters(tmp_path, session, capsys):
    session.post = AsyncMock(return_value=_response({"markets": []}))

    code = main(
        ["--data-dir", str(tmp_path), "markets", "--filter", f"https://provider.example,{LBTC},{USDT}"]
    )

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"markets": []}
    body = session.post.await_args.kwargs["json"]
    assert body == {
        "market_filters": [
            {"url": "https://provider.example", "base_asset": LBTC, "quote_asset": USDT}
        ]
    }


def test_bad_filter_sends_nothing(tmp_path, session, capsys):
    session.post = AsyncMock()

    assert main(["--data-dir", str(tmp_path), "markets", "--filter", "https://provider.example"]) == 1

    assert "provide url, base_asset, quote_asset" in capsys.readouterr().err
    session.post.assert_not_called()


def test_api_error_exits_non_zero(tmp_path, session, capsys):
    session.post = AsyncMock(
        return_value=_response({"error": "reference currency XYZ is not supported"}, status=400)
    )

    code = main(
        ["--data-dir", str(tmp_path), "prices", "--period", "last_day", "--reference-currency", "XYZ"]
    )

    assert code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "400" in captured.err
    assert "not supported" in captured.err
