"""
Metrics Aggregator

Derives per-product financials and portfolio totals from synced revenue.
Arithmetic runs in Decimal at full precision; rounding to cents
(half away from zero) happens once, on the final values.
"""

import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from ...core.exceptions import ValidationError

CENTS = Decimal("0.01")
Number = Union[int, float, Decimal]


def _to_decimal(value: Number, field: str) -> Decimal:
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"{field} must be a finite number", field=field, value=value)
    try:
        return Decimal(str(value))
    except (ArithmeticError, ValueError) as e:
        raise ValidationError(f"{field} must be numeric", field=field, value=value) from e


def round_money(value: Decimal) -> float:
    """Round half away from zero to two decimal places."""
    # ROUND_HALF_UP on Decimal rounds away from zero for negatives too.
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Financials:
    refunds: float
    net: float
    costs: float
    profit: float
    margin: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class MetricsAggregator:
    """Financial calculations for products and the whole portfolio."""

    def __init__(self, default_cost_rate: Number = 0.10):
        self.default_cost_rate = default_cost_rate

    def compute_financials(
        self,
        gross: Number,
        refund_rate: Number,
        cost_rate: Optional[Number] = None,
    ) -> Financials:
        """
        Compute refunds, net revenue, costs, profit and margin.

        Args:
            gross: Gross revenue
            refund_rate: Refund rate as a fraction in [0, 1]
            cost_rate: Cost rate applied to net revenue

        Raises:
            ValidationError: If a rate is out of range or a value is not numeric
        """
        gross_d = _to_decimal(gross, "gross")
        rate = _to_decimal(refund_rate, "refund_rate")
        if rate < 0 or rate > 1:
            raise ValidationError(
                "refund_rate must be a fraction between 0 and 1",
                field="refund_rate",
                value=refund_rate,
            )
        cost_d = _to_decimal(
            self.default_cost_rate if cost_rate is None else cost_rate, "cost_rate"
        )
        if cost_d < 0:
            raise ValidationError("cost_rate cannot be negative", field="cost_rate")

        refunds = gross_d * rate
        net = gross_d - refunds
        costs = net * cost_d
        profit = net - costs
        margin = profit / net * 100 if net > 0 else Decimal(0)

        return Financials(
            refunds=round_money(refunds),
            net=round_money(net),
            costs=round_money(costs),
            profit=round_money(profit),
            margin=round_money(margin),
        )

    def portfolio_totals(self, products: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Aggregate per-product rows into portfolio totals.

        Monetary totals are sums of the already-rounded per-product values
        so the portfolio always reconciles with its rows.
        """
        revenue = refunds = net = costs = profit = Decimal(0)
        orders = quantity = count = 0

        for product in products:
            count += 1
            revenue += _to_decimal(product.get("total_revenue", 0), "total_revenue")
            refunds += _to_decimal(product.get("total_refunds", 0), "total_refunds")
            net += _to_decimal(product.get("net_revenue", 0), "net_revenue")
            costs += _to_decimal(product.get("total_costs", 0), "total_costs")
            profit += _to_decimal(product.get("profit_loss", 0), "profit_loss")
            orders += int(product.get("total_orders", 0) or 0)
            quantity += int(product.get("total_quantity_sold", 0) or 0)

        return {
            "total_products": count,
            "total_revenue": round_money(revenue),
            "total_refunds": round_money(refunds),
            "total_net_revenue": round_money(net),
            "total_costs": round_money(costs),
            "total_profit": round_money(profit),
            "total_orders": orders,
            "total_quantity": quantity,
            "average_revenue_per_product": round_money(revenue / count) if count else 0.0,
            "average_order_value": round_money(revenue / orders) if orders else 0.0,
            "profit_margin": round_money(profit / net * 100) if net > 0 else 0.0,
        }
