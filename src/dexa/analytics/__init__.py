"""Analytics layer -- time-range resolution, bucketing, VWAP and reference-price normalization."""

from dexa.analytics.normalizer import PriceNormalizer
from dexa.analytics.period import (
    resolve_bucket_width,
    resolve_time_range,
    select_bucket_width,
)
from dexa.analytics.rounding import round_amount, round_price
from dexa.analytics.vwap import bucket_balances, bucket_prices, compute_vwap

__all__ = [
    "PriceNormalizer",
    "bucket_balances",
    "bucket_prices",
    "compute_vwap",
    "resolve_bucket_width",
    "resolve_time_range",
    "round_amount",
    "round_price",
    "select_bucket_width",
]
