"""Custom exceptions for the analytics service.

Request-validation, currency-conversion and collaborator errors live here
to avoid circular imports between the rater, analytics and service layers.
"""


class AnalyticsError(Exception):
    """Base exception for all analytics errors."""


class InvalidRequestError(AnalyticsError):
    """Raised when a caller-supplied argument is malformed.

    Covers bad time ranges, bad pagination, unsupported reference currencies
    and windows shorter than the bucket width. Surfaced to the caller verbatim.
    """


class CurrencyNotFoundError(AnalyticsError):
    """Raised when an asset or symbol has no resolvable exchange rate."""


class AssetNotFoundError(CurrencyNotFoundError):
    """Raised when an asset id has no configured currency ticker."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"asset {asset_id} not found")
        self.asset_id = asset_id


class UnsupportedSymbolError(CurrencyNotFoundError):
    """Raised when a symbol is neither a supported fiat nor a known crypto coin."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"{symbol} is not a supported fiat nor crypto symbol")
        self.symbol = symbol


class RateLimitWaitExceededError(AnalyticsError):
    """Raised when the rate limiter cannot grant a call within the wait timeout."""


class RateSourceError(AnalyticsError):
    """Raised when an external rate source fails (transport, status, payload)."""


class MarketFetchError(AnalyticsError):
    """Raised when a remote market returns an unusable balance or price."""


class ApiClientError(AnalyticsError):
    """Raised by the command-line client on transport, status or usage failures."""
