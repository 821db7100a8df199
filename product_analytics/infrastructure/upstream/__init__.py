"""Upstream transaction API access."""

from .client import OrderDetailTotals, OrderSearchResult, UpstreamClient

__all__ = ["OrderDetailTotals", "OrderSearchResult", "UpstreamClient"]
