"""DEX analytics: market balance and price aggregation with reference-currency normalization."""
