"""
Aggregate Table Refresh

Maintains agg_daily_sales and agg_monthly_product as derived caches of
fact_sales. Two policies are supported:

- FULL: delete every aggregate row and recompute from fact_sales
- INCREMENTAL: delete and recompute only the requested slices
  (date keys for the daily table, YYYY-MM months for the monthly table)

Recomputing a slice is idempotent, so a refresh can be re-run safely after
late-arriving facts.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import Numeric, and_, delete, distinct, func, insert, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.database.models import AggDailySales, AggMonthlyProduct, DimDate, FactSales
from src.transformation.measures import profit_margin

logger = structlog.get_logger(__name__)
settings = get_settings()

YEAR_MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

# SQLite stores whole amounts as INTEGER; keeps the average division non-integral
_ONE = literal(Decimal("1.00"), Numeric(15, 2))


class RefreshStrategy(str, Enum):
    """Aggregate refresh policy"""
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass
class RefreshResult:
    """Outcome of refreshing one aggregate table"""
    table: str
    strategy: RefreshStrategy
    rows_deleted: int = 0
    rows_written: int = 0
    slices: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


def format_year_month(year: int, month: int) -> str:
    """Format a year and month as the agg_monthly_product key"""
    return f"{year:04d}-{month:02d}"


def parse_year_month(year_month: str) -> Tuple[int, int]:
    """Parse 'YYYY-MM' into (year, month)"""
    match = YEAR_MONTH_PATTERN.match(year_month)
    if not match:
        raise ValueError(f"Invalid year_month '{year_month}', expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


# =============================================================================
# DAILY SALES
# =============================================================================

def _daily_sales_select(date_keys: Optional[Sequence[int]] = None):
    transactions = func.count(distinct(FactSales.order_id))
    revenue = func.sum(FactSales.total_amount)

    stmt = (
        select(
            FactSales.date_key,
            FactSales.store_key,
            transactions,
            func.sum(FactSales.quantity),
            revenue,
            func.sum(FactSales.cost_amount),
            func.sum(FactSales.profit_amount),
            func.round(revenue * _ONE / transactions, 2),
        )
        .group_by(FactSales.date_key, FactSales.store_key)
    )
    if date_keys is not None:
        stmt = stmt.where(FactSales.date_key.in_(date_keys))
    return stmt


async def refresh_daily_sales(
    session: AsyncSession,
    date_keys: Optional[Iterable[int]] = None,
) -> RefreshResult:
    """
    Recompute agg_daily_sales.

    Args:
        session: Active session; the caller owns the transaction
        date_keys: Dates to recompute; None recomputes the whole table

    Returns:
        RefreshResult for agg_daily_sales
    """
    started = time.perf_counter()
    keys = sorted(set(date_keys)) if date_keys is not None else None
    strategy = RefreshStrategy.FULL if keys is None else RefreshStrategy.INCREMENTAL

    delete_stmt = delete(AggDailySales)
    if keys is not None:
        delete_stmt = delete_stmt.where(AggDailySales.date_key.in_(keys))
    deleted = await session.execute(delete_stmt)

    written = 0
    if keys is None or keys:
        insert_stmt = insert(AggDailySales).from_select(
            [
                "date_key",
                "store_key",
                "total_transactions",
                "total_quantity",
                "total_revenue",
                "total_cost",
                "total_profit",
                "average_transaction_value",
            ],
            _daily_sales_select(keys),
        )
        inserted = await session.execute(insert_stmt)
        written = inserted.rowcount

    result = RefreshResult(
        table=AggDailySales.__tablename__,
        strategy=strategy,
        rows_deleted=deleted.rowcount,
        rows_written=written,
        slices=[str(k) for k in keys] if keys is not None else [],
        duration_seconds=time.perf_counter() - started,
    )
    logger.info(
        "Daily sales aggregate refreshed",
        strategy=strategy.value,
        rows_deleted=result.rows_deleted,
        rows_written=result.rows_written,
        slices=len(result.slices),
    )
    return result


# =============================================================================
# MONTHLY PRODUCT
# =============================================================================

async def refresh_monthly_product(
    session: AsyncSession,
    year_months: Optional[Iterable[str]] = None,
) -> RefreshResult:
    """
    Recompute agg_monthly_product.

    Months are taken from dim_date (year, month_number) of each sale.
    profit_margin is profit / revenue * 100, NULL when revenue is zero.

    Args:
        session: Active session; the caller owns the transaction
        year_months: 'YYYY-MM' months to recompute; None recomputes everything

    Returns:
        RefreshResult for agg_monthly_product
    """
    started = time.perf_counter()
    months = sorted(set(year_months)) if year_months is not None else None
    strategy = RefreshStrategy.FULL if months is None else RefreshStrategy.INCREMENTAL
    parsed = [parse_year_month(m) for m in months] if months is not None else None

    delete_stmt = delete(AggMonthlyProduct)
    if months is not None:
        delete_stmt = delete_stmt.where(AggMonthlyProduct.year_month.in_(months))
    deleted = await session.execute(delete_stmt)

    records = []
    if parsed is None or parsed:
        stmt = (
            select(
                DimDate.year,
                DimDate.month_number,
                FactSales.product_key,
                func.sum(FactSales.quantity).label("units_sold"),
                func.sum(FactSales.total_amount).label("revenue"),
                func.sum(FactSales.cost_amount).label("cost"),
                func.sum(FactSales.profit_amount).label("profit"),
            )
            .join(DimDate, FactSales.date_key == DimDate.date_key)
            .group_by(DimDate.year, DimDate.month_number, FactSales.product_key)
        )
        if parsed is not None:
            stmt = stmt.where(
                or_(*[
                    and_(DimDate.year == year, DimDate.month_number == month)
                    for year, month in parsed
                ])
            )

        rows = (await session.execute(stmt)).all()
        for row in rows:
            records.append({
                "year_month": format_year_month(row.year, row.month_number),
                "product_key": row.product_key,
                "units_sold": row.units_sold,
                "revenue": row.revenue,
                "cost": row.cost,
                "profit": row.profit,
                "profit_margin": profit_margin(row.profit, row.revenue),
            })

    chunk_size = settings.warehouse.insert_chunk_size
    for i in range(0, len(records), chunk_size):
        await session.execute(insert(AggMonthlyProduct), records[i:i + chunk_size])

    result = RefreshResult(
        table=AggMonthlyProduct.__tablename__,
        strategy=strategy,
        rows_deleted=deleted.rowcount,
        rows_written=len(records),
        slices=months or [],
        duration_seconds=time.perf_counter() - started,
    )
    logger.info(
        "Monthly product aggregate refreshed",
        strategy=strategy.value,
        rows_deleted=result.rows_deleted,
        rows_written=result.rows_written,
        slices=len(result.slices),
    )
    return result


async def months_for_date_keys(session: AsyncSession, date_keys: Iterable[int]) -> List[str]:
    """Distinct 'YYYY-MM' months covered by the given date keys"""
    keys = list(date_keys)
    if not keys:
        return []
    rows = (
        await session.execute(
            select(DimDate.year, DimDate.month_number)
            .where(DimDate.date_key.in_(keys))
            .distinct()
        )
    ).all()
    return sorted(format_year_month(r.year, r.month_number) for r in rows)


async def date_keys_between(session: AsyncSession, start: date, end: date) -> List[int]:
    """
    date_keys of the calendar days in [start, end], in date order.

    Keys come from dim_date, so any key assignment scheme is honored.
    """
    rows = await session.execute(
        select(DimDate.date_key)
        .where(DimDate.date_value.between(start, end))
        .order_by(DimDate.date_value)
    )
    return list(rows.scalars())


async def refresh_aggregates(
    session: AsyncSession,
    strategy: Optional[RefreshStrategy] = None,
    date_keys: Optional[Iterable[int]] = None,
) -> List[RefreshResult]:
    """
    Refresh both aggregate tables under one policy.

    An incremental refresh recomputes the given dates in agg_daily_sales and
    the months containing them in agg_monthly_product. Without date keys
    there is nothing to scope by, so it falls back to a full recompute.

    Args:
        session: Active session; both tables change in the caller's transaction
        strategy: Refresh policy; defaults to the configured strategy
        date_keys: Dates touched by new facts (incremental only)

    Returns:
        One RefreshResult per aggregate table
    """
    strategy = RefreshStrategy(strategy or settings.warehouse.aggregate_refresh_strategy)

    if strategy == RefreshStrategy.INCREMENTAL and date_keys is None:
        logger.warning("Incremental refresh without date keys, recomputing everything")
        strategy = RefreshStrategy.FULL

    if strategy == RefreshStrategy.FULL:
        daily = await refresh_daily_sales(session)
        monthly = await refresh_monthly_product(session)
    else:
        keys = sorted(set(date_keys))
        months = await months_for_date_keys(session, keys)
        daily = await refresh_daily_sales(session, keys)
        monthly = await refresh_monthly_product(session, months)

    return [daily, monthly]
