"""
Integration Tests - Fact Loading
"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from src.database.models import DimCustomer, DimProduct, FactInventory
from src.ingestion.errors import DimensionLookupError
from src.ingestion.facts import (
    InventorySnapshot,
    SaleLine,
    record_inventory_snapshot,
    record_sale,
    record_sales,
)
from src.ingestion.scd import get_current, upsert_customer, upsert_product


def _line(**overrides) -> SaleLine:
    values = dict(
        order_id="O-1",
        sale_date=date(2024, 1, 5),
        customer_id="C001",
        product_id="P001",
        store_id="S001",
        quantity=2,
        tax_amount=Decimal("1.60"),
    )
    values.update(overrides)
    return SaleLine(**values)


class TestRecordSale:
    """Tests for sales fact loading"""

    async def test_keys_resolved_and_measures_derived(self, seeded_db):
        fact = await record_sale(seeded_db, _line())

        customer = await get_current(seeded_db, DimCustomer, "C001")
        product = await get_current(seeded_db, DimProduct, "P001")
        assert fact.date_key == 20240105
        assert fact.customer_key == customer.customer_key
        assert fact.product_key == product.product_key
        assert fact.unit_price == Decimal("10.00")
        assert fact.total_amount == Decimal("21.60")
        assert fact.cost_amount == Decimal("12.00")
        assert fact.profit_amount == Decimal("8.00")

    async def test_explicit_price_and_overrides_kept(self, seeded_db):
        fact = await record_sale(
            seeded_db,
            _line(unit_price=Decimal("9.50"), total_amount=Decimal("20.00"), payment_method="cash"),
        )

        assert fact.unit_price == Decimal("9.50")
        assert fact.total_amount == Decimal("20.00")
        assert fact.payment_method == "cash"

    async def test_sale_uses_version_valid_on_sale_date(self, seeded_db):
        old = await get_current(seeded_db, DimProduct, "P001")
        await upsert_product(seeded_db, "P001", {"unit_price": Decimal("12.00")}, date(2024, 2, 1))
        new = await get_current(seeded_db, DimProduct, "P001")

        january = await record_sale(seeded_db, _line(order_id="O-J", sale_date=date(2024, 1, 31)))
        february = await record_sale(seeded_db, _line(order_id="O-F", sale_date=date(2024, 2, 1)))

        assert january.product_key == old.product_key
        assert january.unit_price == Decimal("10.00")
        assert february.product_key == new.product_key
        assert february.unit_price == Decimal("12.00")

    async def test_unknown_business_key_raises(self, seeded_db):
        with pytest.raises(DimensionLookupError) as exc_info:
            await record_sale(seeded_db, _line(customer_id="C999"))

        assert exc_info.value.dimension == "dim_customer"

    async def test_unknown_store_raises(self, seeded_db):
        with pytest.raises(DimensionLookupError):
            await record_sale(seeded_db, _line(store_id="S999"))

    async def test_date_outside_calendar_raises(self, seeded_db):
        with pytest.raises(DimensionLookupError):
            await record_sale(seeded_db, _line(sale_date=date(2030, 1, 1)))

    async def test_sale_before_first_version_raises(self, seeded_db):
        await upsert_customer(seeded_db, "C100", {"customer_name": "Late Joiner"}, date(2024, 3, 1))

        with pytest.raises(DimensionLookupError):
            await record_sale(seeded_db, _line(customer_id="C100", sale_date=date(2024, 2, 1)))

    async def test_batch_records_every_line(self, seeded_db):
        facts = await record_sales(seeded_db, [
            _line(order_id="O-1", product_id="P001"),
            _line(order_id="O-1", product_id="P002", quantity=1),
            _line(order_id="O-2", sale_date=date(2024, 1, 6), store_id="S002"),
        ])

        assert len(facts) == 3
        assert {f.order_id for f in facts} == {"O-1", "O-2"}


class TestSaleLineValidation:
    """Pydantic validation of incoming lines"""

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            _line(quantity=0)

    def test_order_id_length(self):
        with pytest.raises(ValidationError):
            _line(order_id="X" * 51)


class TestInventorySnapshot:
    """Tests for inventory fact loading"""

    async def test_derived_inventory_values(self, seeded_db):
        fact = await record_inventory_snapshot(seeded_db, InventorySnapshot(
            snapshot_date=date(2024, 1, 31),
            product_id="P002",
            store_id="S001",
            quantity_on_hand=40,
            quantity_allocated=5,
            snapshot_timestamp=datetime(2024, 1, 31, 23, 59),
        ))

        assert fact.quantity_available == 35
        assert fact.unit_cost == Decimal("15.00")
        assert fact.inventory_value == Decimal("600.00")

    async def test_snapshot_replaces_same_day(self, seeded_db):
        snapshot = dict(snapshot_date=date(2024, 1, 31), product_id="P001", store_id="S001")
        await record_inventory_snapshot(seeded_db, InventorySnapshot(quantity_on_hand=10, **snapshot))
        await record_inventory_snapshot(seeded_db, InventorySnapshot(quantity_on_hand=8, **snapshot))

        rows = (await seeded_db.execute(select(FactInventory))).scalars().all()
        assert [r.quantity_on_hand for r in rows] == [8]

    async def test_snapshot_appends_when_not_replacing(self, seeded_db):
        snapshot = dict(snapshot_date=date(2024, 1, 31), product_id="P001", store_id="S001")
        await record_inventory_snapshot(seeded_db, InventorySnapshot(quantity_on_hand=10, **snapshot))
        await record_inventory_snapshot(
            seeded_db, InventorySnapshot(quantity_on_hand=8, **snapshot), replace_existing=False
        )

        rows = (await seeded_db.execute(select(FactInventory))).scalars().all()
        assert len(rows) == 2

    def test_negative_on_hand_rejected(self):
        with pytest.raises(ValidationError):
            InventorySnapshot(snapshot_date=date(2024, 1, 31), product_id="P1", store_id="S1", quantity_on_hand=-1)
