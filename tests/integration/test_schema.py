"""
Integration Tests - Schema, Keys and Constraints
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import delete, inspect, insert, select
from sqlalchemy.exc import IntegrityError

from src.database.connection import drop_schema
from src.database.models import (
    AggDailySales,
    AggMonthlyProduct,
    DimCustomer,
    DimDate,
    DimProduct,
    DimStore,
    FactInventory,
    FactSales,
)

WAREHOUSE_TABLES = {
    "dim_date",
    "dim_customer",
    "dim_product",
    "dim_store",
    "fact_sales",
    "fact_inventory",
    "agg_daily_sales",
    "agg_monthly_product",
}


async def _minimal_star(session):
    """One row in each dimension, keyed 1"""
    session.add_all([
        DimDate(date_key=1, date_value=date(2024, 1, 1), year=2024, month_name="January"),
        DimCustomer(customer_key=1, customer_id="C1", customer_name="Avery", effective_date=date(2024, 1, 1)),
        DimProduct(product_key=1, product_id="P1", product_name="Lamp", effective_date=date(2024, 1, 1)),
        DimStore(store_key=1, store_id="S1", store_name="Downtown"),
    ])
    await session.flush()


def _sale(**overrides):
    values = dict(
        date_key=1, customer_key=1, product_key=1, store_key=1,
        order_id="O-1", quantity=1, unit_price=Decimal("10.00"), total_amount=Decimal("10.00"),
    )
    values.update(overrides)
    return FactSales(**values)


class TestSchemaObjects:
    """Tables, indexes and views are created"""

    async def test_tables_and_views_exist(self, test_engine):
        async with test_engine.connect() as conn:
            tables, views = await conn.run_sync(
                lambda c: (set(inspect(c).get_table_names()), set(inspect(c).get_view_names()))
            )

        assert WAREHOUSE_TABLES <= tables
        assert {"vw_sales_summary", "vw_top_products"} <= views

    async def test_fact_indexes(self, test_engine):
        async with test_engine.connect() as conn:
            sales_idx, inventory_idx = await conn.run_sync(
                lambda c: (
                    {i["name"]: i["column_names"] for i in inspect(c).get_indexes("fact_sales")},
                    {i["name"]: i["column_names"] for i in inspect(c).get_indexes("fact_inventory")},
                )
            )

        assert sales_idx == {
            "idx_sales_date": ["date_key"],
            "idx_sales_customer": ["customer_key"],
            "idx_sales_product": ["product_key"],
            "idx_sales_store": ["store_key"],
            "idx_sales_timestamp": ["transaction_timestamp"],
        }
        assert inventory_idx == {
            "idx_inventory_date": ["date_key"],
            "idx_inventory_product": ["product_key"],
            "idx_inventory_store": ["store_key"],
        }

    async def test_aggregate_composite_keys(self, test_engine):
        async with test_engine.connect() as conn:
            daily_pk, monthly_pk = await conn.run_sync(
                lambda c: (
                    inspect(c).get_pk_constraint("agg_daily_sales")["constrained_columns"],
                    inspect(c).get_pk_constraint("agg_monthly_product")["constrained_columns"],
                )
            )

        assert daily_pk == ["date_key", "store_key"]
        assert monthly_pk == ["year_month", "product_key"]

    async def test_drop_schema_removes_views_and_tables(self, test_engine):
        await drop_schema(test_engine)

        async with test_engine.connect() as conn:
            tables, views = await conn.run_sync(
                lambda c: (set(inspect(c).get_table_names()), set(inspect(c).get_view_names()))
            )

        assert not (WAREHOUSE_TABLES & tables)
        assert not views


class TestForeignKeys:
    """Facts only reference existing dimension rows"""

    async def test_fact_with_existing_keys_inserts(self, test_db):
        await _minimal_star(test_db)
        test_db.add(_sale())
        await test_db.flush()

        count = len((await test_db.execute(select(FactSales))).scalars().all())
        assert count == 1

    @pytest.mark.parametrize("column", ["date_key", "customer_key", "product_key", "store_key"])
    async def test_dangling_key_rejected(self, test_db, column):
        await _minimal_star(test_db)
        test_db.add(_sale(**{column: 999}))

        with pytest.raises(IntegrityError):
            await test_db.flush()

    async def test_missing_key_rejected(self, test_db):
        await _minimal_star(test_db)

        with pytest.raises(IntegrityError):
            await test_db.execute(
                insert(FactSales).values(date_key=1, customer_key=1, product_key=1, order_id="O-1", quantity=1)
            )

    async def test_inventory_dangling_product_rejected(self, test_db):
        await _minimal_star(test_db)
        test_db.add(FactInventory(date_key=1, product_key=42, store_key=1, quantity_on_hand=5))

        with pytest.raises(IntegrityError):
            await test_db.flush()

    @pytest.mark.parametrize("model,key", [
        (DimCustomer, DimCustomer.customer_key),
        (DimProduct, DimProduct.product_key),
        (DimStore, DimStore.store_key),
        (DimDate, DimDate.date_key),
    ])
    async def test_referenced_dimension_row_cannot_be_deleted(self, test_db, model, key):
        await _minimal_star(test_db)
        test_db.add(_sale())
        await test_db.flush()

        with pytest.raises(IntegrityError):
            await test_db.execute(delete(model).where(key == 1))

    async def test_unreferenced_dimension_row_can_be_deleted(self, test_db):
        await _minimal_star(test_db)

        result = await test_db.execute(delete(DimStore).where(DimStore.store_key == 1))

        assert result.rowcount == 1


class TestUniqueConstraints:
    """Business key and aggregate uniqueness"""

    async def test_duplicate_date_value_rejected(self, test_db):
        test_db.add(DimDate(date_key=1, date_value=date(2024, 1, 1)))
        test_db.add(DimDate(date_key=2, date_value=date(2024, 1, 1)))

        with pytest.raises(IntegrityError):
            await test_db.flush()

    async def test_duplicate_customer_version_rejected(self, test_db):
        test_db.add(DimCustomer(customer_id="C1", effective_date=date(2024, 1, 1), is_current=False))
        test_db.add(DimCustomer(customer_id="C1", effective_date=date(2024, 1, 1)))

        with pytest.raises(IntegrityError):
            await test_db.flush()

    async def test_duplicate_product_version_rejected(self, test_db):
        test_db.add(DimProduct(product_id="P1", effective_date=date(2024, 1, 1), is_current=False))
        test_db.add(DimProduct(product_id="P1", effective_date=date(2024, 1, 1)))

        with pytest.raises(IntegrityError):
            await test_db.flush()

    async def test_duplicate_store_id_rejected(self, test_db):
        test_db.add(DimStore(store_id="S1"))
        test_db.add(DimStore(store_id="S1"))

        with pytest.raises(IntegrityError):
            await test_db.flush()

    async def test_agg_daily_sales_pk_rejects_second_row(self, test_db):
        await _minimal_star(test_db)
        await test_db.execute(insert(AggDailySales).values(date_key=1, store_key=1, total_transactions=1))

        with pytest.raises(IntegrityError):
            await test_db.execute(insert(AggDailySales).values(date_key=1, store_key=1, total_transactions=2))

    async def test_agg_monthly_product_pk_rejects_second_row(self, test_db):
        await _minimal_star(test_db)
        await test_db.execute(insert(AggMonthlyProduct).values(year_month="2024-01", product_key=1))

        with pytest.raises(IntegrityError):
            await test_db.execute(insert(AggMonthlyProduct).values(year_month="2024-01", product_key=1))

    async def test_inventory_snapshot_duplicates_not_enforced(self, test_db):
        await _minimal_star(test_db)
        test_db.add(FactInventory(date_key=1, product_key=1, store_key=1, quantity_on_hand=5))
        test_db.add(FactInventory(date_key=1, product_key=1, store_key=1, quantity_on_hand=7))
        await test_db.flush()

        rows = (await test_db.execute(select(FactInventory))).scalars().all()
        assert len(rows) == 2


class TestDefaults:
    """Column defaults"""

    async def test_scd_and_measure_defaults(self, test_db):
        await _minimal_star(test_db)
        sale = _sale()
        test_db.add(sale)
        await test_db.flush()

        customer = (await test_db.execute(select(DimCustomer))).scalar_one()
        assert customer.is_current is True
        assert customer.expiration_date is None
        assert sale.discount_amount == Decimal("0")
        assert sale.tax_amount == Decimal("0")
