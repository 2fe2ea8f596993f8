"""Market catalog -- discovery and reconciliation of provider markets."""

from dexa.catalog.reconciler import ReconciliationPlan, plan_reconciliation
from dexa.catalog.service import MarketLoaderService

__all__ = ["MarketLoaderService", "ReconciliationPlan", "plan_reconciliation"]
