"""Market catalog reconciliation.

Compares the markets already tracked in the catalog against the markets
providers currently advertise, keyed by Market.key() (url + asset pair):

- tracked and still advertised -> activate (if currently inactive)
- tracked but no longer advertised -> inactivate (if currently active)
- advertised but not tracked -> insert as active

Only state changes are planned, so running the same reconciliation twice
produces an empty second plan.
"""

from dataclasses import dataclass, field

from dexa.models import Market


@dataclass
class ReconciliationPlan:
    to_activate: list[Market] = field(default_factory=list)
    to_inactivate: list[Market] = field(default_factory=list)
    to_insert: list[Market] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.to_activate or self.to_inactivate or self.to_insert)


def plan_reconciliation(
    tracked: list[Market], discovered: list[Market]
) -> ReconciliationPlan:
    """Diff tracked catalog markets against discovered provider markets."""
    discovered_by_key: dict[str, Market] = {}
    for market in discovered:
        discovered_by_key.setdefault(market.key(), market)

    plan = ReconciliationPlan()
    tracked_keys: set[str] = set()

    for market in tracked:
        key = market.key()
        tracked_keys.add(key)
        if key in discovered_by_key:
            if not market.active:
                plan.to_activate.append(market)
        elif market.active:
            plan.to_inactivate.append(market)

    for key, market in discovered_by_key.items():
        if key not in tracked_keys:
            plan.to_insert.append(
                Market(
                    provider_name=market.provider_name,
                    url=market.url,
                    base_asset=market.base_asset,
                    quote_asset=market.quote_asset,
                    active=True,
                )
            )

    return plan
