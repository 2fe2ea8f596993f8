"""Market catalog queries."""

from dexa.data.catalog_store import MarketCatalogStore
from dexa.models import Market, MarketFilter, Page


class MarketService:
    def __init__(self, catalog: MarketCatalogStore) -> None:
        self._catalog = catalog

    async def list_markets(
        self, providers: list[MarketFilter], page: Page | None = None
    ) -> list[Market]:
        """Markets matching any of ``providers``; all markets when none are given."""
        for market_filter in providers:
            market_filter.validate()
        if page is not None:
            page.validate()
        return await self._catalog.get_markets_for_filter(providers, page)
