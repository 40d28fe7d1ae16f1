"""
Demo Database Seeding

Builds a populated warehouse from synthetic data: calendar, stores,
customers and products, one round of SCD Type 2 changes, a period of
sales before and after the changes, an inventory snapshot and the
aggregate tables.

Usage:
    python -m src.ingestion.seed_db
"""

import argparse
import asyncio
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import polars as pl
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.config.logging import configure_logging
from src.data.generators import ChangeGenerator, DataGenerator, InventoryGenerator, SalesGenerator
from src.database.connection import close_database, get_db, init_database
from src.ingestion.dimensions import STORE_ATTRIBUTES, load_date_dimension, upsert_store
from src.ingestion.facts import InventorySnapshot, SaleLine, record_inventory_snapshot, record_sales
from src.ingestion.scd import TRACKED_ATTRIBUTES, upsert_customer, upsert_product
from src.database.models import DimCustomer, DimProduct
from src.transformation.aggregates import RefreshStrategy, refresh_aggregates

logger = structlog.get_logger(__name__)
settings = get_settings()

# Dimension members are valid from before the first generated sale
INITIAL_EFFECTIVE_DATE = date(2020, 1, 1)


def _attributes(row: Dict[str, Any], names) -> Dict[str, Any]:
    return {name: row[name] for name in names if name in row}


async def seed_dimensions(
    session: AsyncSession,
    frames: Dict[str, pl.DataFrame],
    effective_date: date = INITIAL_EFFECTIVE_DATE,
) -> Dict[str, int]:
    """Load stores (Type 1) and first versions of customers and products"""
    for row in frames["stores"].to_dicts():
        await upsert_store(session, row["store_id"], **_attributes(row, STORE_ATTRIBUTES))

    for row in frames["customers"].to_dicts():
        await upsert_customer(
            session, row["customer_id"], _attributes(row, TRACKED_ATTRIBUTES[DimCustomer]), effective_date
        )

    for row in frames["products"].to_dicts():
        await upsert_product(
            session, row["product_id"], _attributes(row, TRACKED_ATTRIBUTES[DimProduct]), effective_date
        )

    counts = {name: len(df) for name, df in frames.items()}
    logger.info("Dimensions seeded", **counts)
    return counts


async def apply_changes(
    session: AsyncSession,
    customer_changes: List[Dict[str, Any]],
    product_changes: List[Dict[str, Any]],
    effective_date: date,
) -> int:
    """Apply a round of tracked-attribute changes as new SCD versions"""
    for change in customer_changes:
        change = dict(change)
        await upsert_customer(session, change.pop("customer_id"), change, effective_date)
    for change in product_changes:
        change = dict(change)
        await upsert_product(session, change.pop("product_id"), change, effective_date)

    total = len(customer_changes) + len(product_changes)
    logger.info(
        "SCD changes applied",
        customers=len(customer_changes),
        products=len(product_changes),
        effective_date=str(effective_date),
    )
    return total


async def seed_sales(session: AsyncSession, sales_df: pl.DataFrame) -> List[int]:
    """Record sales lines; returns the date_keys touched"""
    lines = [SaleLine(**row) for row in sales_df.to_dicts()]
    facts = await record_sales(session, lines)
    return sorted({f.date_key for f in facts})


async def seed_inventory(session: AsyncSession, inventory_df: pl.DataFrame) -> int:
    """Record one day of inventory snapshots"""
    for row in inventory_df.to_dicts():
        await record_inventory_snapshot(session, InventorySnapshot(**row))
    logger.info("Inventory snapshots recorded", rows=len(inventory_df))
    return len(inventory_df)


async def seed(
    start: date,
    end: date,
    n_stores: int = 10,
    n_customers: int = 500,
    n_products: int = 200,
    orders_per_day: int = 20,
    seed_value: int = 42,
) -> Dict[str, Any]:
    """
    Populate the warehouse for sales dates in [start, end].

    Changes take effect halfway through the period so that sales on either
    side resolve to different dimension versions.
    """
    generator = DataGenerator(seed_value)
    frames = generator.generate_all(n_stores, n_customers, n_products)
    change_date = start + (end - start) // 2
    changes = ChangeGenerator(seed_value)
    customer_changes = changes.customer_changes(frames["customers"])
    product_changes = changes.product_changes(frames["products"])

    sales = SalesGenerator(frames["customers"], frames["products"], frames["stores"], seed_value)
    before = sales.generate(start, change_date - timedelta(days=1), orders_per_day)
    after = sales.generate(
        change_date,
        end,
        orders_per_day,
        price_overrides={c["product_id"]: c["unit_price"] for c in product_changes},
    )

    summary: Dict[str, Any] = {}

    async with get_db() as db:
        summary["calendar_days"] = await load_date_dimension(
            db,
            min(start, date(settings.warehouse.calendar_start_year, 1, 1)),
            max(end, date(settings.warehouse.calendar_end_year, 12, 31)),
        )
        summary["dimensions"] = await seed_dimensions(db, frames, min(start, INITIAL_EFFECTIVE_DATE))

    async with get_db() as db:
        await seed_sales(db, before)
        summary["scd_changes"] = await apply_changes(db, customer_changes, product_changes, change_date)
        await seed_sales(db, after)
        summary["sales_lines"] = len(before) + len(after)

    async with get_db() as db:
        inventory = InventoryGenerator(frames["products"], frames["stores"], seed_value).generate(end)
        summary["inventory_rows"] = await seed_inventory(db, inventory)

    async with get_db() as db:
        results = await refresh_aggregates(db, RefreshStrategy.FULL)
        summary["aggregates"] = {r.table: r.rows_written for r in results}

    logger.info("Database seeding completed", **{k: v for k, v in summary.items() if not isinstance(v, dict)})
    return summary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    today = date.today()
    parser = argparse.ArgumentParser(description="Seed the retail warehouse with synthetic data")
    parser.add_argument("--start", type=date.fromisoformat, default=today - timedelta(days=90))
    parser.add_argument("--end", type=date.fromisoformat, default=today - timedelta(days=1))
    parser.add_argument("--stores", type=int, default=10)
    parser.add_argument("--customers", type=int, default=500)
    parser.add_argument("--products", type=int, default=200)
    parser.add_argument("--orders-per-day", type=int, default=20)
    parser.add_argument("--seed", type=int, default=42)
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    configure_logging()
    logger.info("Starting database seeding...", start=str(args.start), end=str(args.end))

    await init_database(create_tables=True)
    try:
        return await seed(
            args.start,
            args.end,
            n_stores=args.stores,
            n_customers=args.customers,
            n_products=args.products,
            orders_per_day=args.orders_per_day,
            seed_value=args.seed,
        )
    except Exception as e:
        logger.error("Seeding failed", error=str(e))
        raise
    finally:
        await close_database()


def run():
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
