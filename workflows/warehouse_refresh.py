"""
Prefect Workflow Orchestration - Warehouse Refresh

Scheduled batch process that keeps the aggregate tables in sync with
fact_sales and then runs the warehouse integrity checks.
"""

from datetime import date, timedelta
from typing import List, Optional, Tuple

import structlog
from prefect import flow, task, get_run_logger

from src.config import get_settings
from src.database.connection import close_database, get_db, init_database
from src.quality.integrity import DataQualityError, check_warehouse_integrity, failed_checks
from src.quality.validators import ValidationSeverity, ValidationStatus
from src.transformation.aggregates import RefreshStrategy, date_keys_between, refresh_aggregates

settings = get_settings()
logger = structlog.get_logger(__name__)


def trailing_window(as_of: date, days_back: int) -> Tuple[date, date]:
    """First and last day of the days_back days ending at as_of (inclusive)"""
    if days_back < 1:
        raise ValueError(f"days_back must be positive, got {days_back}")
    return as_of - timedelta(days=days_back - 1), as_of


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="refresh_aggregates",
    description="Recompute agg_daily_sales and agg_monthly_product",
    retries=2,
    retry_delay_seconds=60,
)
async def refresh_aggregates_task(
    strategy: str,
    date_keys: Optional[List[int]] = None,
    window: Optional[Tuple[date, date]] = None,
) -> dict:
    """
    Refresh both aggregate tables in one transaction.

    A window (first day, last day) is resolved to date_keys through dim_date.
    """
    async with get_db() as db:
        if window is not None:
            date_keys = await date_keys_between(db, *window)
        results = await refresh_aggregates(db, RefreshStrategy(strategy), date_keys)

    summary = {
        r.table: {
            "strategy": r.strategy.value,
            "rows_deleted": r.rows_deleted,
            "rows_written": r.rows_written,
            "duration_seconds": r.duration_seconds,
        }
        for r in results
    }
    logger.info("Aggregates refreshed", **{t: s["rows_written"] for t, s in summary.items()})
    return summary


@task(
    name="integrity_check",
    description="Run warehouse integrity checks",
    retries=1,
    retry_delay_seconds=30,
)
async def integrity_check_task(fail_on_error: bool = True) -> dict:
    """Run the integrity suite; ERROR-level failures fail the task"""
    async with get_db() as db:
        result = await check_warehouse_integrity(db)

    summary = {
        "status": result.status.value,
        "total_checks": result.total_checks,
        "passed_checks": result.passed_checks,
        "failed_checks": result.failed_checks,
        "warnings": result.warning_count,
        "failures": [
            {"name": c.name, "severity": c.severity.value, "message": c.message}
            for c in failed_checks(result)
        ],
    }

    if fail_on_error and failed_checks(result, ValidationSeverity.ERROR):
        raise DataQualityError(result)
    return summary


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="warehouse_refresh",
    description="Refresh warehouse aggregates and check integrity",
    retries=1,
    retry_delay_seconds=300,
)
async def warehouse_refresh_flow(
    strategy: Optional[str] = None,
    days_back: Optional[int] = None,
    as_of: Optional[date] = None,
) -> dict:
    """
    Warehouse refresh pipeline.

    Steps:
    1. Recompute aggregates (last days_back days when incremental, to
       pick up late-arriving facts)
    2. Run integrity checks if data quality checks are enabled
    """
    run_logger = get_run_logger()

    strategy = RefreshStrategy(strategy or settings.warehouse.aggregate_refresh_strategy)
    as_of = as_of or date.today()
    days_back = days_back or settings.warehouse.refresh_days_back
    window = trailing_window(as_of, days_back) if strategy == RefreshStrategy.INCREMENTAL else None

    run_logger.info(f"Starting warehouse refresh ({strategy.value}) as of {as_of}")

    await init_database()
    try:
        results = {
            "as_of": as_of.isoformat(),
            "strategy": strategy.value,
            "aggregates": await refresh_aggregates_task(strategy.value, window=window),
        }

        if settings.quality.enabled:
            results["integrity"] = await integrity_check_task(settings.quality.fail_on_error)
            if results["integrity"]["status"] != ValidationStatus.PASSED.value:
                run_logger.warning(
                    f"Integrity checks finished with {results['integrity']['warnings']} warnings"
                )
    finally:
        await close_database()

    results["status"] = "success"
    return results


if __name__ == "__main__":
    import asyncio

    asyncio.run(warehouse_refresh_flow())
