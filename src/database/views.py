"""
Reporting Views

The two persisted views of the warehouse, defined as SQLAlchemy selects
and emitted as CREATE VIEW DDL whenever the table metadata is created.

- vw_sales_summary: denormalized sales lines attributed to the current
  customer and product versions (inner joins; non-current versions drop out)
- vw_top_products: revenue ranking grouped by product name, category and
  brand (not by key, so versions with equal attributes merge)
"""

from sqlalchemy import (
    Column,
    Date,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    event,
    func,
    select,
    true,
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import ExecutableDDLElement
from sqlalchemy.sql import Select

from .models import Base, DimCustomer, DimDate, DimProduct, DimStore, FactSales


class CreateView(ExecutableDDLElement):
    """CREATE VIEW <name> AS <select>, idempotent on every dialect we target"""

    def __init__(self, name: str, selectable: Select):
        self.name = name
        self.selectable = selectable


class DropView(ExecutableDDLElement):
    """DROP VIEW IF EXISTS <name>"""

    def __init__(self, name: str):
        self.name = name


@compiles(CreateView)
def _compile_create_view(element, compiler, **kw):
    body = compiler.sql_compiler.process(element.selectable, literal_binds=True)
    return f"CREATE VIEW IF NOT EXISTS {element.name} AS {body}"


@compiles(CreateView, "postgresql")
def _compile_create_view_postgresql(element, compiler, **kw):
    body = compiler.sql_compiler.process(element.selectable, literal_binds=True)
    return f"CREATE OR REPLACE VIEW {element.name} AS {body}"


@compiles(DropView)
def _compile_drop_view(element, compiler, **kw):
    return f"DROP VIEW IF EXISTS {element.name}"


# =============================================================================
# VIEW DEFINITIONS
# =============================================================================

sales_summary_select = (
    select(
        DimDate.date_value,
        DimDate.month_name,
        DimDate.year,
        DimCustomer.customer_name,
        DimCustomer.customer_tier,
        DimProduct.product_name,
        DimProduct.category,
        DimStore.store_name,
        DimStore.region,
        FactSales.quantity,
        FactSales.total_amount,
        FactSales.profit_amount,
    )
    .select_from(FactSales)
    .join(DimDate, FactSales.date_key == DimDate.date_key)
    .join(DimCustomer, FactSales.customer_key == DimCustomer.customer_key)
    .join(DimProduct, FactSales.product_key == DimProduct.product_key)
    .join(DimStore, FactSales.store_key == DimStore.store_key)
    .where(
        DimCustomer.is_current == true(),
        DimProduct.is_current == true(),
    )
)

_total_revenue = func.sum(FactSales.total_amount).label("total_revenue")

top_products_select = (
    select(
        DimProduct.product_name,
        DimProduct.category,
        DimProduct.brand,
        func.sum(FactSales.quantity).label("total_quantity"),
        _total_revenue,
        func.sum(FactSales.profit_amount).label("total_profit"),
        func.round(func.avg(FactSales.unit_price), 2, type_=Numeric(10, 2)).label("avg_price"),
    )
    .select_from(FactSales)
    .join(DimProduct, FactSales.product_key == DimProduct.product_key)
    .where(DimProduct.is_current == true())
    .group_by(DimProduct.product_name, DimProduct.category, DimProduct.brand)
    .order_by(_total_revenue.desc())
)

VIEW_DEFINITIONS = {
    "vw_sales_summary": sales_summary_select,
    "vw_top_products": top_products_select,
}


# =============================================================================
# QUERYABLE VIEW TABLES
# =============================================================================

# Kept out of Base.metadata so create_all never creates them as tables
view_metadata = MetaData()

vw_sales_summary = Table(
    "vw_sales_summary",
    view_metadata,
    Column("date_value", Date),
    Column("month_name", String(10)),
    Column("year", Integer),
    Column("customer_name", String(100)),
    Column("customer_tier", String(20)),
    Column("product_name", String(200)),
    Column("category", String(50)),
    Column("store_name", String(100)),
    Column("region", String(50)),
    Column("quantity", Integer),
    Column("total_amount", Numeric(12, 2)),
    Column("profit_amount", Numeric(12, 2)),
)

vw_top_products = Table(
    "vw_top_products",
    view_metadata,
    Column("product_name", String(200)),
    Column("category", String(50)),
    Column("brand", String(50)),
    Column("total_quantity", Integer),
    Column("total_revenue", Numeric(15, 2)),
    Column("total_profit", Numeric(15, 2)),
    Column("avg_price", Numeric(10, 2)),
)


for _name, _selectable in VIEW_DEFINITIONS.items():
    event.listen(Base.metadata, "after_create", CreateView(_name, _selectable))
    event.listen(Base.metadata, "before_drop", DropView(_name))
