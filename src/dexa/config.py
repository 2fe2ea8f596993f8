"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# L-BTC, USDt and LCAD on the Liquid network
DEFAULT_ASSET_CURRENCY_PAIRS = (
    "6f0279e9ed041c3d710a9f57d0c02928416460c4b722ae3457a11eec381c526d:bitcoin,"
    "ce091c998b83c78bb71a632313ba3760f1763d9cfcffae02258ffa9865a37bd2:usd,"
    "0e99c1a6da379d1f4151fb9df90449d40d0608f6cb33a5bcbfc8c265f42bab0a:cad"
)


def parse_asset_currency_pairs(raw: str) -> dict[str, str]:
    """Parse ``asset_hash:ticker`` pairs delimited by commas into a lookup table.

    Raises ValueError on a pair that does not split into exactly two parts.
    """
    table: dict[str, str] = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        parts = pair.split(":")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(f"invalid asset currency pair: {pair}")
        table[parts[0]] = parts[1]
    return table


class RaterSettings(BaseSettings):
    """External exchange-rate sources and their rate limiting."""

    model_config = SettingsConfigDict(env_prefix="RATER_")

    coingecko_url: str = "https://api.coingecko.com/api/v3"
    forex_url: str = "https://open.er-api.com/v6"
    calls_per_minute: int = 50  # CoinGecko free tier quota
    burst: int = 50
    refresh_interval_seconds: float = 300.0
    wait_timeout_seconds: float = 10.0
    fiat_refresh_interval_seconds: float = 86400.0
    http_timeout_seconds: float = 10.0
    asset_currency_pairs: str = DEFAULT_ASSET_CURRENCY_PAIRS

    @field_validator("asset_currency_pairs")
    @classmethod
    def _validate_pairs(cls, value: str) -> str:
        parse_asset_currency_pairs(value)
        return value

    @property
    def asset_currency_table(self) -> dict[str, str]:
        """Asset hash -> currency ticker lookup table."""
        return parse_asset_currency_pairs(self.asset_currency_pairs)


class JobSettings(BaseSettings):
    """Periodic fetch and discovery job cadence."""

    model_config = SettingsConfigDict(env_prefix="JOBS_")

    balance_period_minutes: float = 5.0
    price_period_minutes: float = 5.0
    market_discovery_period_minutes: float = 60.0
    max_concurrent_fetches: int = 20


class LoaderSettings(BaseSettings):
    """Remote market discovery and data fetching."""

    model_config = SettingsConfigDict(env_prefix="LOADER_")

    registry_url: str = (
        "https://raw.githubusercontent.com/tdex-network/tdex-registry/master/registry.json"
    )
    price_amount: int = 100  # base amount used for trade previews
    http_timeout_seconds: float = 10.0


class StorageSettings(BaseSettings):
    """SQLite storage location."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/analytics.db"


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 9000
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production
    rater: RaterSettings = RaterSettings()
    jobs: JobSettings = JobSettings()
    loader: LoaderSettings = LoaderSettings()
    storage: StorageSettings = StorageSettings()
    api: ApiSettings = ApiSettings()
