"""
Test Suite Configuration
"""
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import polars as pl
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database.connection import build_engine, close_database, create_schema, get_db, init_database
from src.ingestion.dimensions import load_date_dimension, upsert_store
from src.ingestion.scd import upsert_customer, upsert_product

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Dimension members are valid from this day in the seeded fixture
BASE_DATE = date(2024, 1, 1)


@pytest.fixture
async def test_engine():
    """In-memory warehouse with tables, indexes and views"""
    engine = build_engine(TEST_DATABASE_URL)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


async def seed_reference_data(session: AsyncSession) -> None:
    """Calendar for Q1 2024, two stores, two customers, two products"""
    await load_date_dimension(session, date(2024, 1, 1), date(2024, 3, 31))

    await upsert_store(session, "S001", store_name="Downtown", region="East", city="Boston", state="MA")
    await upsert_store(session, "S002", store_name="Harbor", region="West", city="Seattle", state="WA")

    await upsert_customer(
        session, "C001",
        {"customer_name": "Avery Stone", "email": "avery@example.com", "customer_tier": "Gold"},
        BASE_DATE,
    )
    await upsert_customer(
        session, "C002",
        {"customer_name": "Jordan Lake", "email": "jordan@example.com", "customer_tier": "Silver"},
        BASE_DATE,
    )

    await upsert_product(
        session, "P001",
        {"product_name": "Trail Lamp", "category": "Outdoor", "brand": "Northwind",
         "unit_price": Decimal("10.00"), "unit_cost": Decimal("6.00")},
        BASE_DATE,
    )
    await upsert_product(
        session, "P002",
        {"product_name": "Desk Fan", "category": "Home", "brand": "Contoso",
         "unit_price": Decimal("25.00"), "unit_cost": Decimal("15.00")},
        BASE_DATE,
    )


@pytest.fixture
async def seeded_db(test_db) -> AsyncSession:
    """Session over a warehouse with reference dimensions loaded"""
    await seed_reference_data(test_db)
    return test_db


@pytest.fixture
def customer_versions_df() -> pl.DataFrame:
    """dim_customer extract with two versions of C001"""
    return pl.DataFrame({
        "customer_key": [1, 2, 3],
        "customer_id": ["C001", "C001", "C002"],
        "email": ["avery@example.com", "avery@example.com", "jordan@example.com"],
        "effective_date": [date(2024, 1, 1), date(2024, 2, 1), date(2024, 1, 1)],
        "expiration_date": [date(2024, 2, 1), None, None],
        "is_current": [False, True, True],
    })


@pytest.fixture
def sales_lines_df() -> pl.DataFrame:
    """fact_sales extract with consistent measures"""
    return pl.DataFrame({
        "order_id": ["O-1", "O-1", "O-2"],
        "date_key": [20240105, 20240105, 20240106],
        "customer_key": [1, 1, 3],
        "product_key": [1, 2, 1],
        "store_key": [1, 1, 2],
        "quantity": [2, 1, 3],
        "unit_price": [10.0, 25.0, 10.0],
        "discount_amount": [0.0, 2.5, 0.0],
        "tax_amount": [1.6, 1.8, 2.4],
        "total_amount": [21.6, 24.3, 32.4],
        "cost_amount": [12.0, 15.0, 18.0],
        "profit_amount": [8.0, 7.5, 12.0],
    })


@pytest.fixture
async def warehouse():
    """Global engine over an in-memory warehouse with reference dimensions loaded"""
    await init_database(url=TEST_DATABASE_URL, create_tables=True)
    async with get_db() as db:
        await seed_reference_data(db)

    yield

    await close_database()
