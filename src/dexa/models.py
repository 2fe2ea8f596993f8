"""Shared data models for the analytics service.

CRITICAL: All monetary values use Decimal. Never use float for balances or prices.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum, IntEnum

from dexa.exceptions import InvalidRequestError

ZERO = Decimal("0")


class PredefinedPeriod(IntEnum):
    """Named look-back windows. Values match the public API enum (0 is unset)."""

    LAST_HOUR = 1
    LAST_DAY = 2
    LAST_MONTH = 3
    LAST_THREE_MONTHS = 4
    YEAR_TO_DATE = 5
    ALL = 6


class TimeFrame(str, Enum):
    """Explicit aggregation bucket width chosen by the caller."""

    HOUR = "hour"
    FOUR_HOURS = "four_hours"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def width(self) -> timedelta:
        return _TIME_FRAME_WIDTHS[self]


_TIME_FRAME_WIDTHS: dict[TimeFrame, timedelta] = {
    TimeFrame.HOUR: timedelta(hours=1),
    TimeFrame.FOUR_HOURS: timedelta(hours=4),
    TimeFrame.DAY: timedelta(days=1),
    TimeFrame.WEEK: timedelta(days=7),
    TimeFrame.MONTH: timedelta(days=30),
}


@dataclass
class CustomPeriod:
    """Explicit window with RFC3339 bounds. An empty end_date means "now"."""

    start_date: str
    end_date: str = ""


@dataclass
class TimeRange:
    """Tagged union: exactly one of predefined_period / custom_period must be set."""

    predefined_period: PredefinedPeriod | None = None
    custom_period: CustomPeriod | None = None


@dataclass
class Page:
    """One page of a per-market series. size == 0 means no limit."""

    number: int = 1
    size: int = 0

    def validate(self) -> None:
        if self.number < 1:
            raise InvalidRequestError(f"page number must be >= 1, got {self.number}")
        if self.size < 0:
            raise InvalidRequestError(f"page size must be >= 0, got {self.size}")

    @property
    def offset(self) -> int:
        return self.number * self.size - self.size

    @property
    def limit(self) -> int:
        return self.size


@dataclass
class Market:
    """A market tracked in the catalog.

    Identity for reconciliation is key(), derived from url + assets,
    never the numeric id assigned by the catalog store.
    """

    provider_name: str
    url: str
    base_asset: str
    quote_asset: str
    active: bool = True
    id: int | None = None

    def key(self) -> str:
        return market_key(self.url, self.base_asset, self.quote_asset)


def market_key(url: str, base_asset: str, quote_asset: str) -> str:
    """Hex digest identifying a market by endpoint and asset pair."""
    return hashlib.sha256(f"{url}{base_asset}{quote_asset}".encode()).hexdigest()


@dataclass
class MarketFilter:
    """Catalog filter. Empty fields are ignored; fields are AND-ed."""

    url: str = ""
    base_asset: str = ""
    quote_asset: str = ""

    def validate(self) -> None:
        if self.url and not self.url.startswith(("http://", "https://")):
            raise InvalidRequestError(f"invalid market url: {self.url}")
        for asset in (self.base_asset, self.quote_asset):
            if asset:
                validate_asset_id(asset)


def validate_asset_id(asset: str) -> None:
    """Asset ids are 32-byte hex strings."""
    try:
        raw = bytes.fromhex(asset)
    except ValueError:
        raise InvalidRequestError(f"asset {asset!r} is not in hex format") from None
    if len(raw) != 32:
        raise InvalidRequestError(f"asset {asset!r} length is invalid")


@dataclass
class MarketBalancePoint:
    """A market's balance sampled at one instant."""

    market_id: str
    base_asset: str
    quote_asset: str
    base_balance: Decimal
    quote_balance: Decimal
    time: datetime

    def validate(self) -> None:
        _validate_point(self.market_id, self.base_asset, self.quote_asset)


@dataclass
class MarketPricePoint:
    """A market's spot price sampled at one instant.

    base_price = 1 / quote_price is intended but not enforced; both legs
    are stored and normalized independently.
    """

    market_id: str
    base_asset: str
    quote_asset: str
    base_price: Decimal
    quote_price: Decimal
    time: datetime

    def validate(self) -> None:
        _validate_point(self.market_id, self.base_asset, self.quote_asset)


def _validate_point(market_id: str, base_asset: str, quote_asset: str) -> None:
    if not market_id:
        raise InvalidRequestError("market id is required")
    validate_asset_id(base_asset)
    validate_asset_id(quote_asset)


@dataclass
class ReferencePrices:
    """Both legs of a price point expressed in the reference currency."""

    base_reference_price: Decimal = ZERO
    quote_reference_price: Decimal = ZERO

    def is_complete(self) -> bool:
        return self.base_reference_price != 0 and self.quote_reference_price != 0


@dataclass
class Balance:
    """One bucket of a market balance series."""

    base_balance: Decimal
    quote_balance: Decimal
    time: datetime


@dataclass
class Price:
    """One bucket of a market price series with reference-currency legs."""

    base_price: Decimal
    base_reference_price: Decimal
    quote_price: Decimal
    quote_reference_price: Decimal
    time: datetime


@dataclass
class AveragePrice:
    """Volume-weighted average over markets sharing one asset pair."""

    market_ids: list[str]
    average_price: Decimal
    average_reference_price: Decimal


@dataclass
class MarketsBalances:
    markets_balances: dict[str, list[Balance]] = field(default_factory=dict)


@dataclass
class MarketsPrices:
    markets_prices: dict[str, list[Price]] = field(default_factory=dict)
    average_prices: list[AveragePrice] = field(default_factory=list)
