"""Tests for epoch-aligned bucketing and VWAP."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from conftest import LBTC, USDT
from dexa.analytics.rounding import round_price
from dexa.analytics.vwap import bucket_balances, bucket_prices, bucket_start, compute_vwap
from dexa.models import MarketBalancePoint, MarketPricePoint

T0 = datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)


def _price(market_id: str, quote_price: str, at: datetime) -> MarketPricePoint:
    return MarketPricePoint(
        market_id=market_id,
        base_asset=LBTC,
        quote_asset=USDT,
        base_price=Decimal("1") / Decimal(quote_price),
        quote_price=Decimal(quote_price),
        time=at,
    )


def _balance(market_id: str, base_balance: str, at: datetime) -> MarketBalancePoint:
    return MarketBalancePoint(
        market_id=market_id,
        base_asset=LBTC,
        quote_asset=USDT,
        base_balance=Decimal(base_balance),
        quote_balance=Decimal("0"),
        time=at,
    )


# ---------------------------------------------------------------------------
# Bucketing
# ---------------------------------------------------------------------------


def test_bucket_start_is_epoch_aligned():
    moment = datetime(2024, 3, 15, 10, 47, 13, tzinfo=timezone.utc)
    assert bucket_start(moment, timedelta(hours=1)) == datetime(
        2024, 3, 15, 10, 0, tzinfo=timezone.utc
    )
    assert bucket_start(moment, timedelta(minutes=1)) == datetime(
        2024, 3, 15, 10, 47, tzinfo=timezone.utc
    )
    assert bucket_start(moment, timedelta(days=1)) == datetime(2024, 3, 15, tzinfo=timezone.utc)


def test_bucket_prices_averages_samples():
    points = [
        _price("1", "100", T0 + timedelta(minutes=5)),
        _price("1", "200", T0 + timedelta(minutes=35)),
        _price("1", "400", T0 + timedelta(hours=1, minutes=1)),
    ]

    buckets = bucket_prices(points, timedelta(hours=1))

    assert [b.quote_price for b in buckets] == [Decimal("150"), Decimal("400")]
    assert [b.time for b in buckets] == [T0, T0 + timedelta(hours=1)]


def test_bucket_balances_keeps_markets_apart():
    points = [
        _balance("2", "5", T0),
        _balance("1", "10", T0 + timedelta(minutes=10)),
        _balance("1", "30", T0 + timedelta(minutes=20)),
    ]

    buckets = bucket_balances(points, timedelta(hours=1))

    assert [(b.market_id, b.base_balance) for b in buckets] == [
        ("1", Decimal("20")),
        ("2", Decimal("5")),
    ]


# ---------------------------------------------------------------------------
# VWAP
# ---------------------------------------------------------------------------


def test_vwap_two_buckets():
    """(100*10 + 200*20) / (10 + 20) = 166.67"""
    hour = timedelta(hours=1)
    prices = bucket_prices([_price("1", "100", T0), _price("1", "200", T0 + hour)], hour)
    balances = bucket_balances([_balance("1", "10", T0), _balance("1", "20", T0 + hour)], hour)

    assert round_price(compute_vwap(prices, balances)) == Decimal("166.67")


def test_vwap_ignores_unmatched_buckets():
    hour = timedelta(hours=1)
    prices = bucket_prices(
        [_price("1", "100", T0), _price("1", "999", T0 + hour)], hour
    )
    balances = bucket_balances([_balance("1", "10", T0)], hour)

    assert compute_vwap(prices, balances) == Decimal("100")


def test_vwap_zero_balance_is_zero():
    prices = [_price("1", "100", T0)]
    balances = [_balance("1", "0", T0)]
    assert compute_vwap(prices, balances) == Decimal("0")


def test_vwap_empty_is_zero():
    assert compute_vwap([], []) == Decimal("0")
