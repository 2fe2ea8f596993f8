"""Time bucketing and volume-weighted average price.

Buckets are aligned to the Unix epoch: a sample at ``ts`` belongs to the
bucket starting at ``floor(ts / width) * width``. A bucket's value is the
arithmetic mean of its samples.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from dexa.models import ZERO, MarketBalancePoint, MarketPricePoint

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def bucket_start(moment: datetime, width: timedelta) -> datetime:
    """Start of the epoch-aligned bucket of ``width`` containing ``moment``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    offset = (moment - _EPOCH) // width
    return _EPOCH + offset * width


def _mean(values: list[Decimal]) -> Decimal:
    return sum(values, ZERO) / len(values)


def bucket_balances(
    points: list[MarketBalancePoint], width: timedelta
) -> list[MarketBalancePoint]:
    """Average balance samples per (market, bucket), ordered by market then time."""
    groups: dict[tuple[str, datetime], list[MarketBalancePoint]] = defaultdict(list)
    for point in points:
        groups[(point.market_id, bucket_start(point.time, width))].append(point)

    return [
        MarketBalancePoint(
            market_id=market_id,
            base_asset=samples[0].base_asset,
            quote_asset=samples[0].quote_asset,
            base_balance=_mean([s.base_balance for s in samples]),
            quote_balance=_mean([s.quote_balance for s in samples]),
            time=start,
        )
        for (market_id, start), samples in sorted(groups.items())
    ]


def bucket_prices(
    points: list[MarketPricePoint], width: timedelta
) -> list[MarketPricePoint]:
    """Average price samples per (market, bucket), ordered by market then time."""
    groups: dict[tuple[str, datetime], list[MarketPricePoint]] = defaultdict(list)
    for point in points:
        groups[(point.market_id, bucket_start(point.time, width))].append(point)

    return [
        MarketPricePoint(
            market_id=market_id,
            base_asset=samples[0].base_asset,
            quote_asset=samples[0].quote_asset,
            base_price=_mean([s.base_price for s in samples]),
            quote_price=_mean([s.quote_price for s in samples]),
            time=start,
        )
        for (market_id, start), samples in sorted(groups.items())
    ]


def compute_vwap(
    prices: list[MarketPricePoint], balances: list[MarketBalancePoint]
) -> Decimal:
    """Sum(price * balance) / Sum(balance) over buckets present in both series.

    Inputs are bucketed series (see bucket_prices / bucket_balances). Price is
    the quote price, weight is the base balance. Returns zero when either sum
    is zero. The result is not rounded.
    """
    weights = {(b.market_id, b.time): b.base_balance for b in balances}

    numerator = ZERO
    denominator = ZERO
    for price in prices:
        weight = weights.get((price.market_id, price.time))
        if weight is None:
            continue
        numerator += price.quote_price * weight
        denominator += weight

    if numerator == 0 or denominator == 0:
        return ZERO
    return numerator / denominator
