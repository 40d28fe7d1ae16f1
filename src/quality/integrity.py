"""
Warehouse Integrity Checks

Pulls the dimension and fact tables into polars frames and runs the
validator suites over them, plus cross-table checks that need more than
one table (aggregate freshness).
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import polars as pl
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import (
    AggDailySales,
    DimCustomer,
    DimProduct,
    DimStore,
    FactInventory,
    FactSales,
)
from src.quality.validators import (
    DataValidator,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_customer_dimension_validator,
    create_product_dimension_validator,
    create_sales_fact_validator,
    create_store_dimension_validator,
    summarize,
)

logger = structlog.get_logger(__name__)

# Amounts are rounded to cents on write; anything above this is a real mismatch
MEASURE_TOLERANCE = 0.01


class DataQualityError(Exception):
    """Raised when an integrity run finishes with ERROR-level failures"""

    def __init__(self, result: ValidationResult):
        self.result = result
        failed = [c.name for c in result.checks if not c.passed and c.severity == ValidationSeverity.ERROR]
        super().__init__(f"Warehouse integrity check failed: {', '.join(failed)}")


CUSTOMER_COLUMNS = {
    "customer_key": pl.Int64,
    "customer_id": pl.Utf8,
    "email": pl.Utf8,
    "effective_date": pl.Date,
    "expiration_date": pl.Date,
    "is_current": pl.Boolean,
}

PRODUCT_COLUMNS = {
    "product_key": pl.Int64,
    "product_id": pl.Utf8,
    "unit_price": pl.Float64,
    "unit_cost": pl.Float64,
    "effective_date": pl.Date,
    "expiration_date": pl.Date,
    "is_current": pl.Boolean,
}

STORE_COLUMNS = {
    "store_key": pl.Int64,
    "store_id": pl.Utf8,
}

SALES_COLUMNS = {
    "sales_key": pl.Int64,
    "order_id": pl.Utf8,
    "date_key": pl.Int64,
    "customer_key": pl.Int64,
    "product_key": pl.Int64,
    "store_key": pl.Int64,
    "quantity": pl.Int64,
    "unit_price": pl.Float64,
    "discount_amount": pl.Float64,
    "tax_amount": pl.Float64,
    "total_amount": pl.Float64,
    "cost_amount": pl.Float64,
    "profit_amount": pl.Float64,
}

INVENTORY_COLUMNS = {
    "inventory_key": pl.Int64,
    "date_key": pl.Int64,
    "product_key": pl.Int64,
    "store_key": pl.Int64,
}


def _plain(value: Any) -> Any:
    return float(value) if isinstance(value, Decimal) else value


async def extract_frame(session: AsyncSession, model, columns: Dict[str, Any]) -> pl.DataFrame:
    """Load the given columns of a table into a typed polars DataFrame"""
    stmt = select(*(getattr(model, name) for name in columns))
    rows = (await session.execute(stmt)).all()
    data = {
        name: [_plain(row[i]) for row in rows]
        for i, name in enumerate(columns)
    }
    return pl.DataFrame(data, schema=columns)


def measures_consistent(df: pl.DataFrame) -> bool:
    """total = qty * price - discount + tax and profit = total - tax - cost, within a cent"""
    if df.is_empty():
        return True

    expected_total = (
        pl.col("quantity") * pl.col("unit_price")
        - pl.col("discount_amount").fill_null(0)
        + pl.col("tax_amount").fill_null(0)
    )
    expected_profit = (
        pl.col("total_amount") - pl.col("tax_amount").fill_null(0) - pl.col("cost_amount")
    )
    mismatched = df.filter(
        ((pl.col("total_amount") - expected_total).abs() > MEASURE_TOLERANCE)
        | (
            pl.col("cost_amount").is_not_null()
            & pl.col("profit_amount").is_not_null()
            & ((pl.col("profit_amount") - expected_profit).abs() > MEASURE_TOLERANCE)
        )
    )
    return mismatched.height == 0


def create_inventory_fact_validator() -> DataValidator:
    """One snapshot per date/product/store is expected but not enforced"""
    return DataValidator().add_unique_check(
        ["date_key", "product_key", "store_key"],
        severity=ValidationSeverity.WARNING,
        name="unique_inventory_snapshot",
    )


def aggregate_freshness_check(sales: pl.DataFrame, daily: pl.DataFrame) -> ValidationCheck:
    """Every (date, store) slice with sales has an agg_daily_sales row with matching revenue"""
    expected = sales.group_by(["date_key", "store_key"]).agg(
        pl.col("total_amount").sum().alias("expected_revenue")
    )
    compared = expected.join(daily, on=["date_key", "store_key"], how="left")
    stale = compared.filter(
        pl.col("total_revenue").is_null()
        | ((pl.col("total_revenue") - pl.col("expected_revenue")).abs() > MEASURE_TOLERANCE)
    )
    passed = stale.height == 0

    return ValidationCheck(
        name="agg_daily_sales_fresh",
        passed=passed,
        severity=ValidationSeverity.WARNING,
        message=(
            "agg_daily_sales matches fact_sales" if passed
            else f"{stale.height} date/store slices missing or stale in agg_daily_sales"
        ),
        details={"missing_date_keys": sorted(set(stale["date_key"].to_list()))[:20]},
        failed_rows=stale.height,
        total_rows=expected.height,
    )


async def check_warehouse_integrity(
    session: AsyncSession,
    raise_on_error: bool = False,
) -> ValidationResult:
    """
    Run all warehouse integrity checks.

    ERROR-level: more than one current version per business key,
    duplicate versions, duplicate store ids, null or non-positive fact keys
    and quantities. WARNING-level: measure arithmetic, duplicate inventory
    snapshots, stale daily aggregates.

    Args:
        session: Active session
        raise_on_error: Raise DataQualityError if any ERROR check fails

    Returns:
        Merged ValidationResult
    """
    customers = await extract_frame(session, DimCustomer, CUSTOMER_COLUMNS)
    products = await extract_frame(session, DimProduct, PRODUCT_COLUMNS)
    stores = await extract_frame(session, DimStore, STORE_COLUMNS)
    sales = await extract_frame(session, FactSales, SALES_COLUMNS)
    inventory = await extract_frame(session, FactInventory, INVENTORY_COLUMNS)
    daily = await extract_frame(
        session,
        AggDailySales,
        {"date_key": pl.Int64, "store_key": pl.Int64, "total_revenue": pl.Float64},
    )

    sales_validator = create_sales_fact_validator().add_custom_check(
        "measures_consistent",
        measures_consistent,
        "Stored sales measures do not match quantity, price, discount, tax and cost",
        severity=ValidationSeverity.WARNING,
    )

    results: List[ValidationResult] = [
        create_customer_dimension_validator().validate(customers),
        create_product_dimension_validator().validate(products),
        create_store_dimension_validator().validate(stores),
        sales_validator.validate(sales),
        create_inventory_fact_validator().validate(inventory),
        summarize([aggregate_freshness_check(sales, daily)]),
    ]
    result = ValidationResult.merge(results)

    logger.info(
        "Warehouse integrity checked",
        status=result.status.value,
        checks=result.total_checks,
        failed=result.failed_checks,
        warnings=result.warning_count,
    )

    if raise_on_error and result.status == ValidationStatus.FAILED:
        raise DataQualityError(result)
    return result


def failed_checks(result: ValidationResult, severity: Optional[ValidationSeverity] = None) -> Sequence[ValidationCheck]:
    """Checks that did not pass, optionally filtered by severity"""
    return [
        c for c in result.checks
        if not c.passed and (severity is None or c.severity == severity)
    ]
