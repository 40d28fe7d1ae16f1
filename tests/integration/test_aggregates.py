"""
Integration Tests - Aggregate Refresh
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from src.database.models import AggDailySales, AggMonthlyProduct, DimProduct
from src.ingestion.dimensions import get_store
from src.ingestion.facts import SaleLine, record_sales
from src.ingestion.scd import get_current
from src.transformation.aggregates import (
    RefreshStrategy,
    date_keys_between,
    months_for_date_keys,
    refresh_aggregates,
    refresh_daily_sales,
    refresh_monthly_product,
)


def _line(order_id, sale_date, product_id, store_id, quantity, **extra) -> SaleLine:
    return SaleLine(
        order_id=order_id,
        sale_date=sale_date,
        customer_id="C001",
        product_id=product_id,
        store_id=store_id,
        quantity=quantity,
        **extra,
    )


@pytest.fixture
async def sales_db(seeded_db):
    """
    Jan 5 / S001: O-1 (P001 x2 + 1.60 tax, P002 x1), O-2 (P001 x1)
    Jan 6 / S002: O-3 (P002 x2, 5.00 discount)
    Feb 10 / S001: O-4 (P001 x3)
    """
    await record_sales(seeded_db, [
        _line("O-1", date(2024, 1, 5), "P001", "S001", 2, tax_amount=Decimal("1.60")),
        _line("O-1", date(2024, 1, 5), "P002", "S001", 1),
        _line("O-2", date(2024, 1, 5), "P001", "S001", 1),
        _line("O-3", date(2024, 1, 6), "P002", "S002", 2, discount_amount=Decimal("5.00")),
        _line("O-4", date(2024, 2, 10), "P001", "S001", 3),
    ])
    return seeded_db


async def _daily(session):
    rows = (await session.execute(select(AggDailySales).order_by(AggDailySales.date_key))).scalars().all()
    return {(r.date_key, r.store_key): r for r in rows}


async def _monthly(session):
    rows = (await session.execute(select(AggMonthlyProduct))).scalars().all()
    return {(r.year_month, r.product_key): r for r in rows}


class TestDailySales:
    """Tests for agg_daily_sales"""

    async def test_full_refresh_values(self, sales_db):
        s001 = (await get_store(sales_db, "S001")).store_key
        s002 = (await get_store(sales_db, "S002")).store_key

        result = await refresh_daily_sales(sales_db)
        daily = await _daily(sales_db)

        assert result.strategy == RefreshStrategy.FULL
        assert result.rows_written == 3
        jan5 = daily[(20240105, s001)]
        assert jan5.total_transactions == 2
        assert jan5.total_quantity == 4
        assert jan5.total_revenue == Decimal("56.60")
        assert jan5.total_cost == Decimal("33.00")
        assert jan5.total_profit == Decimal("22.00")
        assert jan5.average_transaction_value == Decimal("28.30")
        jan6 = daily[(20240106, s002)]
        assert jan6.total_revenue == Decimal("45.00")
        assert jan6.total_profit == Decimal("15.00")

    async def test_average_is_not_integer_division(self, sales_db):
        await record_sales(sales_db, [_line("O-5", date(2024, 2, 10), "P002", "S001", 1)])

        await refresh_daily_sales(sales_db, [20240210])
        s001 = (await get_store(sales_db, "S001")).store_key
        feb10 = (await _daily(sales_db))[(20240210, s001)]

        # 30.00 + 25.00 over two orders
        assert feb10.average_transaction_value == Decimal("27.50")
        assert feb10.total_transactions == 2

    async def test_full_refresh_is_idempotent(self, sales_db):
        await refresh_daily_sales(sales_db)
        second = await refresh_daily_sales(sales_db)

        assert second.rows_deleted == 3
        assert second.rows_written == 3

    async def test_incremental_refresh_only_touches_given_dates(self, sales_db):
        await refresh_daily_sales(sales_db)
        await record_sales(sales_db, [_line("O-6", date(2024, 1, 6), "P001", "S002", 1)])

        result = await refresh_daily_sales(sales_db, [20240106])
        s002 = (await get_store(sales_db, "S002")).store_key
        daily = await _daily(sales_db)

        assert result.strategy == RefreshStrategy.INCREMENTAL
        assert result.rows_deleted == 1
        assert result.rows_written == 1
        assert daily[(20240106, s002)].total_revenue == Decimal("55.00")
        assert len(daily) == 3

    async def test_incremental_with_no_dates_is_noop(self, sales_db):
        await refresh_daily_sales(sales_db)

        result = await refresh_daily_sales(sales_db, [])

        assert result.rows_deleted == 0
        assert result.rows_written == 0
        assert len(await _daily(sales_db)) == 3


class TestMonthlyProduct:
    """Tests for agg_monthly_product"""

    async def test_full_refresh_values(self, sales_db):
        p001 = (await get_current(sales_db, DimProduct, "P001")).product_key
        p002 = (await get_current(sales_db, DimProduct, "P002")).product_key

        result = await refresh_monthly_product(sales_db)
        monthly = await _monthly(sales_db)

        assert result.rows_written == 3
        jan_p001 = monthly[("2024-01", p001)]
        assert jan_p001.units_sold == 3
        assert jan_p001.revenue == Decimal("31.60")
        assert jan_p001.profit == Decimal("12.00")
        assert jan_p001.profit_margin == Decimal("37.97")
        assert monthly[("2024-01", p002)].profit_margin == Decimal("35.71")
        assert monthly[("2024-02", p001)].profit_margin == Decimal("40.00")

    async def test_heavy_loss_month_has_no_margin(self, sales_db):
        await record_sales(sales_db, [_line("O-8", date(2024, 3, 4), "P001", "S001", 1, unit_price=Decimal("0.50"))])
        p001 = (await get_current(sales_db, DimProduct, "P001")).product_key

        await refresh_monthly_product(sales_db, ["2024-03"])
        march = (await _monthly(sales_db))[("2024-03", p001)]

        assert march.revenue == Decimal("0.50")
        assert march.profit == Decimal("-5.50")
        assert march.profit_margin is None

    async def test_incremental_month(self, sales_db):
        await refresh_monthly_product(sales_db)

        result = await refresh_monthly_product(sales_db, ["2024-02"])

        assert result.slices == ["2024-02"]
        assert result.rows_deleted == 1
        assert result.rows_written == 1
        assert len(await _monthly(sales_db)) == 3

    async def test_invalid_month_rejected(self, sales_db):
        with pytest.raises(ValueError):
            await refresh_monthly_product(sales_db, ["2024-2"])

    async def test_months_for_date_keys(self, sales_db):
        months = await months_for_date_keys(sales_db, [20240131, 20240201, 20240215])

        assert months == ["2024-01", "2024-02"]

    async def test_date_keys_between_reads_the_calendar(self, sales_db):
        keys = await date_keys_between(sales_db, date(2024, 2, 28), date(2024, 3, 1))

        assert keys == [20240228, 20240229, 20240301]

    async def test_date_keys_between_outside_calendar(self, sales_db):
        assert await date_keys_between(sales_db, date(2025, 1, 1), date(2025, 1, 3)) == []


class TestRefreshAggregates:
    """Tests for the combined refresh policy"""

    async def test_incremental_refreshes_dates_and_their_months(self, sales_db):
        await refresh_aggregates(sales_db, RefreshStrategy.FULL)
        await record_sales(sales_db, [_line("O-7", date(2024, 2, 11), "P002", "S002", 1)])

        daily, monthly = await refresh_aggregates(sales_db, RefreshStrategy.INCREMENTAL, [20240211])

        assert daily.slices == ["20240211"]
        assert monthly.slices == ["2024-02"]
        assert len(await _daily(sales_db)) == 4
        assert len(await _monthly(sales_db)) == 4

    async def test_incremental_without_dates_falls_back_to_full(self, sales_db):
        daily, monthly = await refresh_aggregates(sales_db, RefreshStrategy.INCREMENTAL)

        assert daily.strategy == RefreshStrategy.FULL
        assert monthly.strategy == RefreshStrategy.FULL
        assert daily.rows_written == 3

    async def test_string_strategy_accepted(self, sales_db):
        daily, _ = await refresh_aggregates(sales_db, "full")

        assert daily.strategy == RefreshStrategy.FULL
