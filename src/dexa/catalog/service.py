"""Market discovery: fetch provider markets and reconcile them into the catalog."""

from dexa.catalog.reconciler import ReconciliationPlan, plan_reconciliation
from dexa.data.catalog_store import MarketCatalogStore
from dexa.loader.client import MarketDataFetcher
from dexa.logging import get_logger
from dexa.models import Market

logger = get_logger(__name__)


class MarketLoaderService:
    """Keeps the catalog in line with what liquidity providers advertise.

    Markets are never deleted; vanished markets are only flagged inactive.
    """

    def __init__(self, catalog: MarketCatalogStore, fetcher: MarketDataFetcher) -> None:
        self._catalog = catalog
        self._fetcher = fetcher

    async def fetch_markets(self) -> ReconciliationPlan:
        """Discover provider markets and apply the resulting reconciliation plan."""
        providers = await self._fetcher.fetch_providers_markets()
        discovered: list[Market] = []
        for provider in providers:
            discovered.extend(provider.catalog_markets())

        tracked = await self._catalog.get_all_markets()
        plan = plan_reconciliation(tracked, discovered)
        await self.apply(plan)
        return plan

    async def apply(self, plan: ReconciliationPlan) -> None:
        """Execute a plan; a failure on one market is logged and skipped."""
        for market in plan.to_insert:
            try:
                await self._catalog.insert_market(market)
            except Exception:
                logger.error("market_insert_failed", url=market.url, exc_info=True)

        for market in plan.to_activate:
            try:
                await self._catalog.activate_market(market.id)
            except Exception:
                logger.error("market_activate_failed", market_id=market.id, exc_info=True)

        for market in plan.to_inactivate:
            try:
                await self._catalog.inactivate_market(market.id)
            except Exception:
                logger.error("market_inactivate_failed", market_id=market.id, exc_info=True)

        logger.info(
            "markets_reconciled",
            inserted=len(plan.to_insert),
            activated=len(plan.to_activate),
            inactivated=len(plan.to_inactivate),
        )
