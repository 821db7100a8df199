from .aggregator import Financials, MetricsAggregator, round_money

__all__ = ["Financials", "MetricsAggregator", "round_money"]
