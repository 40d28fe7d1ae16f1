"""
Database Models - Retail Star Schema

This module defines the retail analytics warehouse as a star schema:

Dimension Tables:
- DimDate: Calendar day with calendar and fiscal attributes
- DimCustomer: Customer versions (SCD Type 2)
- DimProduct: Product versions with price/cost (SCD Type 2)
- DimStore: Store locations (Type 1, overwritten in place)

Fact Tables:
- FactSales: One row per sales transaction line
- FactInventory: Daily on-hand snapshot per product and store

Aggregate Tables:
- AggDailySales: Daily rollup per store
- AggMonthlyProduct: Monthly rollup per product

Dimensions must be loaded before facts; aggregates are derived from
fact_sales and have no enforced freshness.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements an INTEGER PRIMARY KEY (rowid alias)
SurrogateBigInt = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all warehouse models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimDate(Base):
    """
    Date Dimension Table

    One row per calendar day. date_key is assigned by the loader
    (YYYYMMDD for generated calendars) and never changes afterwards.
    """
    __tablename__ = "dim_date"

    date_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    date_value: Mapped[date] = mapped_column(Date, nullable=False)
    day_of_week: Mapped[Optional[str]] = mapped_column(String(10))
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    day_of_year: Mapped[Optional[int]] = mapped_column(Integer)
    week_of_year: Mapped[Optional[int]] = mapped_column(Integer)
    month_number: Mapped[Optional[int]] = mapped_column(Integer)
    month_name: Mapped[Optional[str]] = mapped_column(String(10))
    quarter: Mapped[Optional[int]] = mapped_column(Integer)
    year: Mapped[Optional[int]] = mapped_column(Integer)
    is_weekend: Mapped[Optional[bool]] = mapped_column(Boolean)
    is_holiday: Mapped[Optional[bool]] = mapped_column(Boolean)
    fiscal_period: Mapped[Optional[str]] = mapped_column(String(10))

    __table_args__ = (
        UniqueConstraint("date_value", name="uq_dim_date_date_value"),
    )


class DimCustomer(Base):
    """
    Customer Dimension Table

    Implements SCD Type 2: each change inserts a new version and expires the
    previous one. Exactly one row per customer_id is current.
    """
    __tablename__ = "dim_customer"

    customer_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    customer_segment: Mapped[Optional[str]] = mapped_column(String(50))
    customer_tier: Mapped[Optional[str]] = mapped_column(String(20))
    registration_date: Mapped[Optional[date]] = mapped_column(Date)

    # Geographic
    city: Mapped[Optional[str]] = mapped_column(String(50))
    state: Mapped[Optional[str]] = mapped_column(String(50))
    country: Mapped[Optional[str]] = mapped_column(String(50))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))

    # SCD Type 2 fields
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date)
    is_current: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true()
    )

    sales: Mapped[List["FactSales"]] = relationship(back_populates="customer", passive_deletes="all")

    __table_args__ = (
        UniqueConstraint("customer_id", "effective_date", name="uq_dim_customer_version"),
    )


class DimProduct(Base):
    """
    Product Dimension Table

    Product catalog with pricing. Price or attribute changes create a new
    SCD Type 2 version.
    """
    __tablename__ = "dim_product"

    product_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(String(50), nullable=False)

    product_name: Mapped[Optional[str]] = mapped_column(String(200))
    product_description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(50))
    subcategory: Mapped[Optional[str]] = mapped_column(String(50))
    brand: Mapped[Optional[str]] = mapped_column(String(50))

    # Pricing
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    supplier_name: Mapped[Optional[str]] = mapped_column(String(100))

    # SCD Type 2 fields
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date)
    is_current: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true()
    )

    sales: Mapped[List["FactSales"]] = relationship(back_populates="product", passive_deletes="all")

    __table_args__ = (
        UniqueConstraint("product_id", "effective_date", name="uq_dim_product_version"),
    )


class DimStore(Base):
    """
    Store Dimension Table

    Type 1 only: attribute changes overwrite the existing row.
    """
    __tablename__ = "dim_store"

    store_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[str] = mapped_column(String(50), nullable=False)

    store_name: Mapped[Optional[str]] = mapped_column(String(100))
    store_type: Mapped[Optional[str]] = mapped_column(String(50))
    store_size: Mapped[Optional[str]] = mapped_column(String(20))

    # Geographic
    city: Mapped[Optional[str]] = mapped_column(String(50))
    state: Mapped[Optional[str]] = mapped_column(String(50))
    region: Mapped[Optional[str]] = mapped_column(String(50))
    country: Mapped[Optional[str]] = mapped_column(String(50))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))

    opening_date: Mapped[Optional[date]] = mapped_column(Date)
    manager_name: Mapped[Optional[str]] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true()
    )

    sales: Mapped[List["FactSales"]] = relationship(back_populates="store", passive_deletes="all")

    __table_args__ = (
        UniqueConstraint("store_id", name="uq_dim_store_store_id"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSales(Base):
    """
    Sales Fact Table

    Grain: one row per order line. total/cost/profit are derived measures;
    their consistency is the loader's responsibility, not a constraint.
    """
    __tablename__ = "fact_sales"

    sales_key: Mapped[int] = mapped_column(SurrogateBigInt, primary_key=True, autoincrement=True)

    # Dimension foreign keys (no cascade)
    date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), nullable=False
    )
    customer_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_customer.customer_key"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_product.product_key"), nullable=False
    )
    store_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_store.store_key"), nullable=False
    )

    # Degenerate dimension
    order_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # Measures
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), server_default="0"
    )
    tax_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), server_default="0"
    )
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    cost_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    profit_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    transaction_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    calendar: Mapped["DimDate"] = relationship()
    customer: Mapped["DimCustomer"] = relationship(back_populates="sales")
    product: Mapped["DimProduct"] = relationship(back_populates="sales")
    store: Mapped["DimStore"] = relationship(back_populates="sales")

    __table_args__ = (
        Index("idx_sales_date", "date_key"),
        Index("idx_sales_customer", "customer_key"),
        Index("idx_sales_product", "product_key"),
        Index("idx_sales_store", "store_key"),
        Index("idx_sales_timestamp", "transaction_timestamp"),
    )


class FactInventory(Base):
    """
    Inventory Snapshot Fact Table

    Daily on-hand levels. Grain: one logical snapshot per
    (date_key, product_key, store_key); not enforced beyond the PK.
    """
    __tablename__ = "fact_inventory"

    inventory_key: Mapped[int] = mapped_column(SurrogateBigInt, primary_key=True, autoincrement=True)

    date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_product.product_key"), nullable=False
    )
    store_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_store.store_key"), nullable=False
    )

    # Inventory measures
    quantity_on_hand: Mapped[Optional[int]] = mapped_column(Integer)
    quantity_allocated: Mapped[Optional[int]] = mapped_column(Integer)
    quantity_available: Mapped[Optional[int]] = mapped_column(Integer)
    reorder_level: Mapped[Optional[int]] = mapped_column(Integer)
    reorder_quantity: Mapped[Optional[int]] = mapped_column(Integer)

    # Value
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    inventory_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    snapshot_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_inventory_date", "date_key"),
        Index("idx_inventory_product", "product_key"),
        Index("idx_inventory_store", "store_key"),
    )


# =============================================================================
# AGGREGATE TABLES
# =============================================================================

class AggDailySales(Base):
    """
    Daily Sales Aggregate Table

    Pre-computed per (date, store) from fact_sales by the refresh job.
    """
    __tablename__ = "agg_daily_sales"

    date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), primary_key=True, autoincrement=False
    )
    store_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_store.store_key"), primary_key=True, autoincrement=False
    )

    total_transactions: Mapped[Optional[int]] = mapped_column(Integer)
    total_quantity: Mapped[Optional[int]] = mapped_column(Integer)
    total_revenue: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    total_profit: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    average_transaction_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))


class AggMonthlyProduct(Base):
    """
    Monthly Product Performance Aggregate Table

    Pre-computed per (year_month, product_key); year_month is 'YYYY-MM'.
    """
    __tablename__ = "agg_monthly_product"

    year_month: Mapped[str] = mapped_column(String(7), primary_key=True)
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_product.product_key"), primary_key=True, autoincrement=False
    )

    units_sold: Mapped[Optional[int]] = mapped_column(Integer)
    revenue: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    profit: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    profit_margin: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))


SCD2_MODELS = (DimCustomer, DimProduct)
