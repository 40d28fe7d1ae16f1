"""
Fact Loading

Appends sales lines and inventory snapshots. Incoming records carry
business keys (customer_id, product_id, store_id, calendar date); the loader
resolves them to surrogate keys, picking the customer and product version
that was valid on the transaction date.

Sales facts are append-only. Inventory snapshots may replace an earlier
snapshot for the same (date, product, store) so the loader keeps one
logical snapshot per day.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.database.models import DimCustomer, DimProduct, FactInventory, FactSales
from src.ingestion.dimensions import get_date_key, get_store
from src.ingestion.errors import DimensionLookupError
from src.ingestion.scd import get_version_as_of
from src.transformation.measures import derive_sales_measures, to_money

logger = structlog.get_logger(__name__)
settings = get_settings()


class SaleLine(BaseModel):
    """One order line keyed by business keys"""
    order_id: str = Field(max_length=50)
    sale_date: date
    customer_id: str
    product_id: str
    store_id: str
    quantity: int = Field(gt=0)
    unit_price: Optional[Decimal] = None
    discount_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    # Stored as given when supplied; derived otherwise
    total_amount: Optional[Decimal] = None
    cost_amount: Optional[Decimal] = None
    profit_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    transaction_timestamp: Optional[datetime] = None


class InventorySnapshot(BaseModel):
    """End-of-day stock level for one product in one store"""
    snapshot_date: date
    product_id: str
    store_id: str
    quantity_on_hand: int = Field(ge=0)
    quantity_allocated: int = Field(default=0, ge=0)
    quantity_available: Optional[int] = None
    reorder_level: Optional[int] = None
    reorder_quantity: Optional[int] = None
    unit_cost: Optional[Decimal] = None
    snapshot_timestamp: Optional[datetime] = None


async def _resolve_store_key(session: AsyncSession, store_id: str) -> int:
    store = await get_store(session, store_id)
    if store is None:
        raise DimensionLookupError("dim_store", store_id)
    return store.store_key


async def _resolve_version(session: AsyncSession, model, business_key: str, as_of: date):
    version = await get_version_as_of(session, model, business_key, as_of)
    if version is None:
        raise DimensionLookupError(model.__tablename__, business_key, as_of)
    return version


async def record_sale(session: AsyncSession, line: SaleLine) -> FactSales:
    """
    Append one fact_sales row.

    Args:
        session: Active session; the caller owns the transaction
        line: Sales line with business keys

    Returns:
        The flushed FactSales row

    Raises:
        DimensionLookupError: a key has no dimension row valid on sale_date
    """
    date_key = await get_date_key(session, line.sale_date)
    store_key = await _resolve_store_key(session, line.store_id)
    customer = await _resolve_version(session, DimCustomer, line.customer_id, line.sale_date)
    product = await _resolve_version(session, DimProduct, line.product_id, line.sale_date)

    unit_price = line.unit_price if line.unit_price is not None else product.unit_price
    if unit_price is None:
        raise ValueError(f"No unit price for product {line.product_id!r} on order {line.order_id!r}")

    measures = derive_sales_measures(
        quantity=line.quantity,
        unit_price=unit_price,
        unit_cost=product.unit_cost,
        discount_amount=line.discount_amount,
        tax_amount=line.tax_amount,
    )

    fact = FactSales(
        date_key=date_key,
        customer_key=customer.customer_key,
        product_key=product.product_key,
        store_key=store_key,
        order_id=line.order_id,
        quantity=line.quantity,
        unit_price=to_money(unit_price),
        discount_amount=to_money(line.discount_amount),
        tax_amount=to_money(line.tax_amount),
        total_amount=to_money(line.total_amount) if line.total_amount is not None else measures.total_amount,
        cost_amount=to_money(line.cost_amount) if line.cost_amount is not None else measures.cost_amount,
        profit_amount=to_money(line.profit_amount) if line.profit_amount is not None else measures.profit_amount,
        payment_method=line.payment_method,
        transaction_timestamp=line.transaction_timestamp,
    )
    session.add(fact)
    await session.flush()
    return fact


async def record_sales(session: AsyncSession, lines: Iterable[SaleLine]) -> List[FactSales]:
    """Append a batch of sales lines; any failure aborts the whole batch"""
    facts = []
    for line in lines:
        facts.append(await record_sale(session, line))

    logger.info(
        "Sales facts recorded",
        rows=len(facts),
        date_keys=len({f.date_key for f in facts}),
    )
    return facts


async def record_inventory_snapshot(
    session: AsyncSession,
    snapshot: InventorySnapshot,
    replace_existing: Optional[bool] = None,
) -> FactInventory:
    """
    Append one fact_inventory row.

    quantity_available defaults to on_hand - allocated, unit_cost to the
    product version's cost and inventory_value to on_hand * unit_cost.

    Args:
        session: Active session; the caller owns the transaction
        snapshot: Stock levels with business keys
        replace_existing: Delete earlier rows for the same date/product/store
            first; defaults to settings.warehouse.replace_inventory_snapshots

    Returns:
        The flushed FactInventory row
    """
    if replace_existing is None:
        replace_existing = settings.warehouse.replace_inventory_snapshots

    date_key = await get_date_key(session, snapshot.snapshot_date)
    store_key = await _resolve_store_key(session, snapshot.store_id)
    product = await _resolve_version(session, DimProduct, snapshot.product_id, snapshot.snapshot_date)

    if replace_existing:
        replaced = await session.execute(
            delete(FactInventory).where(
                FactInventory.date_key == date_key,
                FactInventory.product_key == product.product_key,
                FactInventory.store_key == store_key,
            )
        )
        if replaced.rowcount:
            logger.debug(
                "Inventory snapshot replaced",
                date_key=date_key,
                product_id=snapshot.product_id,
                store_id=snapshot.store_id,
            )

    available = snapshot.quantity_available
    if available is None:
        available = snapshot.quantity_on_hand - snapshot.quantity_allocated

    unit_cost = to_money(snapshot.unit_cost if snapshot.unit_cost is not None else product.unit_cost)
    inventory_value = to_money(unit_cost * snapshot.quantity_on_hand) if unit_cost is not None else None

    fact = FactInventory(
        date_key=date_key,
        product_key=product.product_key,
        store_key=store_key,
        quantity_on_hand=snapshot.quantity_on_hand,
        quantity_allocated=snapshot.quantity_allocated,
        quantity_available=available,
        reorder_level=snapshot.reorder_level,
        reorder_quantity=snapshot.reorder_quantity,
        unit_cost=unit_cost,
        inventory_value=inventory_value,
        snapshot_timestamp=snapshot.snapshot_timestamp,
    )
    session.add(fact)
    await session.flush()
    return fact
