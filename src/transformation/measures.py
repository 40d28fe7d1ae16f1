"""
Sales Measure Derivation

Computes the derived measures stored on fact_sales. The schema does not
constrain them, so every loader that writes sales facts goes through here.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")

# Largest magnitude agg_monthly_product.profit_margin (NUMERIC(5,2)) can hold
MAX_PROFIT_MARGIN = Decimal("999.99")


def to_money(value: Optional[Number]) -> Optional[Decimal]:
    """Quantize a value to cents, passing None through"""
    if value is None:
        return None
    # str() avoids binary float artifacts such as 0.1 + 0.2
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class SalesMeasures:
    """Derived money measures for one sales line"""
    total_amount: Decimal
    cost_amount: Optional[Decimal]
    profit_amount: Optional[Decimal]


def derive_sales_measures(
    quantity: int,
    unit_price: Number,
    unit_cost: Optional[Number],
    discount_amount: Number = 0,
    tax_amount: Number = 0,
) -> SalesMeasures:
    """
    Derive total, cost and profit for a sales line.

    total  = quantity * unit_price - discount + tax
    cost   = quantity * unit_cost
    profit = total - tax - cost

    Tax is collected on behalf of the authority, so it is excluded from
    profit. Without a unit cost, cost and profit are unknown (None).
    """
    price = to_money(unit_price)
    discount = to_money(discount_amount) or Decimal("0")
    tax = to_money(tax_amount) or Decimal("0")

    total = to_money(price * quantity - discount + tax)

    if unit_cost is None:
        return SalesMeasures(total_amount=total, cost_amount=None, profit_amount=None)

    cost = to_money(to_money(unit_cost) * quantity)
    profit = to_money(total - tax - cost)

    return SalesMeasures(total_amount=total, cost_amount=cost, profit_amount=profit)


def profit_margin(profit: Optional[Number], revenue: Optional[Number]) -> Optional[Decimal]:
    """
    Profit as a percentage of revenue.

    None when revenue is zero or unknown, and when the margin exceeds
    MAX_PROFIT_MARGIN in either direction (a heavy loss on little revenue).
    """
    if profit is None or revenue is None:
        return None
    revenue_d = Decimal(str(revenue))
    if revenue_d == 0:
        return None
    margin = to_money(Decimal(str(profit)) / revenue_d * 100)
    if abs(margin) > MAX_PROFIT_MARGIN:
        return None
    return margin

