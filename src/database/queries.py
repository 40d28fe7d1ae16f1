"""
Reporting Queries

Read-side access to the warehouse for BI consumers: the two views plus
the standard ad hoc reports (revenue by region and quarter, top customers
by spend, daily store sales from the aggregate table).
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import and_, distinct, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from .models import AggDailySales, DimCustomer, DimDate, DimStore, FactSales
from .views import vw_sales_summary, vw_top_products


class SalesSummaryRow(BaseModel):
    """One row of vw_sales_summary"""
    model_config = ConfigDict(from_attributes=True)

    date_value: date
    month_name: Optional[str]
    year: Optional[int]
    customer_name: Optional[str]
    customer_tier: Optional[str]
    product_name: Optional[str]
    category: Optional[str]
    store_name: Optional[str]
    region: Optional[str]
    quantity: int
    total_amount: Optional[Decimal]
    profit_amount: Optional[Decimal]


class TopProductRow(BaseModel):
    """One row of vw_top_products"""
    model_config = ConfigDict(from_attributes=True)

    product_name: Optional[str]
    category: Optional[str]
    brand: Optional[str]
    total_quantity: Optional[int]
    total_revenue: Optional[Decimal]
    total_profit: Optional[Decimal]
    avg_price: Optional[Decimal]


class RegionQuarterRevenue(BaseModel):
    """Revenue and profit for one region in one quarter"""
    model_config = ConfigDict(from_attributes=True)

    region: Optional[str]
    year: int
    quarter: int
    total_revenue: Optional[Decimal]
    total_profit: Optional[Decimal]
    transactions: int


class CustomerSpend(BaseModel):
    """Lifetime spend of one customer across all of its versions"""
    model_config = ConfigDict(from_attributes=True)

    customer_id: str
    customer_name: Optional[str]
    customer_tier: Optional[str]
    order_count: int
    total_spend: Optional[Decimal]


async def fetch_sales_summary(
    session: AsyncSession,
    limit: int = 100,
    offset: int = 0,
    year: Optional[int] = None,
) -> List[SalesSummaryRow]:
    """Page through vw_sales_summary, newest dates first"""
    stmt = select(vw_sales_summary)
    if year is not None:
        stmt = stmt.where(vw_sales_summary.c.year == year)
    stmt = (
        stmt.order_by(
            vw_sales_summary.c.date_value.desc(),
            vw_sales_summary.c.store_name,
            vw_sales_summary.c.product_name,
        )
        .limit(limit)
        .offset(offset)
    )
    rows = (await session.execute(stmt)).all()
    return [SalesSummaryRow.model_validate(row) for row in rows]


async def fetch_top_products(
    session: AsyncSession,
    limit: Optional[int] = None,
) -> List[TopProductRow]:
    """
    Read vw_top_products.

    The view orders by total_revenue only; ties are broken here by
    product_name, category and brand so pages are stable.
    """
    stmt = select(vw_top_products).order_by(
        vw_top_products.c.total_revenue.desc(),
        vw_top_products.c.product_name,
        vw_top_products.c.category,
        vw_top_products.c.brand,
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = (await session.execute(stmt)).all()
    return [TopProductRow.model_validate(row) for row in rows]


async def revenue_by_region_quarter(
    session: AsyncSession,
    year: Optional[int] = None,
) -> List[RegionQuarterRevenue]:
    """Revenue, profit and transaction count per store region and quarter"""
    stmt = (
        select(
            DimStore.region,
            DimDate.year,
            DimDate.quarter,
            func.sum(FactSales.total_amount).label("total_revenue"),
            func.sum(FactSales.profit_amount).label("total_profit"),
            func.count(distinct(FactSales.order_id)).label("transactions"),
        )
        .select_from(FactSales)
        .join(DimStore, FactSales.store_key == DimStore.store_key)
        .join(DimDate, FactSales.date_key == DimDate.date_key)
        .group_by(DimStore.region, DimDate.year, DimDate.quarter)
        .order_by(DimDate.year, DimDate.quarter, func.sum(FactSales.total_amount).desc(), DimStore.region)
    )
    if year is not None:
        stmt = stmt.where(DimDate.year == year)
    rows = (await session.execute(stmt)).all()
    return [RegionQuarterRevenue.model_validate(row) for row in rows]


async def top_customers_by_spend(
    session: AsyncSession,
    limit: int = 10,
) -> List[CustomerSpend]:
    """
    Customers ranked by total spend.

    Spend is summed per business customer_id over every version the facts
    point at, and labelled with the current version's name and tier.
    """
    version = aliased(DimCustomer)
    current = aliased(DimCustomer)
    total_spend = func.sum(FactSales.total_amount)

    stmt = (
        select(
            version.customer_id,
            current.customer_name,
            current.customer_tier,
            func.count(distinct(FactSales.order_id)).label("order_count"),
            total_spend.label("total_spend"),
        )
        .select_from(FactSales)
        .join(version, FactSales.customer_key == version.customer_key)
        .outerjoin(
            current,
            and_(current.customer_id == version.customer_id, current.is_current == true()),
        )
        .group_by(version.customer_id, current.customer_name, current.customer_tier)
        .order_by(total_spend.desc(), version.customer_id)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).all()
    return [CustomerSpend.model_validate(row) for row in rows]


class DailyStoreSales(BaseModel):
    """One agg_daily_sales row labelled with its calendar day and store"""
    model_config = ConfigDict(from_attributes=True)

    date_value: date
    store_id: str
    store_name: Optional[str]
    total_transactions: Optional[int]
    total_quantity: Optional[int]
    total_revenue: Optional[Decimal]
    total_profit: Optional[Decimal]
    average_transaction_value: Optional[Decimal]


async def fetch_daily_sales(
    session: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    store_id: Optional[str] = None,
) -> List[DailyStoreSales]:
    """Read the pre-computed daily store aggregates for a date range"""
    stmt = (
        select(
            DimDate.date_value,
            DimStore.store_id,
            DimStore.store_name,
            AggDailySales.total_transactions,
            AggDailySales.total_quantity,
            AggDailySales.total_revenue,
            AggDailySales.total_profit,
            AggDailySales.average_transaction_value,
        )
        .select_from(AggDailySales)
        .join(DimDate, AggDailySales.date_key == DimDate.date_key)
        .join(DimStore, AggDailySales.store_key == DimStore.store_key)
        .order_by(DimDate.date_value, DimStore.store_id)
    )
    if start_date is not None:
        stmt = stmt.where(DimDate.date_value >= start_date)
    if end_date is not None:
        stmt = stmt.where(DimDate.date_value <= end_date)
    if store_id is not None:
        stmt = stmt.where(DimStore.store_id == store_id)
    rows = (await session.execute(stmt)).all()
    return [DailyStoreSales.model_validate(row) for row in rows]
