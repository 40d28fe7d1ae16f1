"""
Calendar and Store Dimension Loading

- dim_date is generated, one row per calendar day, keyed YYYYMMDD
- dim_store is Type 1: a changed attribute overwrites the row in place
"""

from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.database.models import DimDate, DimStore
from src.ingestion.errors import DimensionLookupError

logger = structlog.get_logger(__name__)
settings = get_settings()

STORE_ATTRIBUTES = (
    "store_name",
    "store_type",
    "store_size",
    "city",
    "state",
    "region",
    "country",
    "postal_code",
    "opening_date",
    "manager_name",
    "is_active",
)


# =============================================================================
# DATE DIMENSION
# =============================================================================

def date_key_for(day: date) -> int:
    """Surrogate key of a generated calendar day (YYYYMMDD)"""
    return day.year * 10000 + day.month * 100 + day.day


def fiscal_period_for(day: date, fiscal_year_start_month: int = 1) -> str:
    """
    Fiscal period label, e.g. FY2025-P03.

    Fiscal years are named after the calendar year in which they end.
    """
    period = (day.month - fiscal_year_start_month) % 12 + 1
    fiscal_year = day.year
    if fiscal_year_start_month != 1 and day.month >= fiscal_year_start_month:
        fiscal_year += 1
    return f"FY{fiscal_year}-P{period:02d}"


def build_date_rows(
    start: date,
    end: date,
    fiscal_year_start_month: Optional[int] = None,
    holidays: Optional[Iterable[date]] = None,
) -> List[Dict[str, Any]]:
    """
    Generate dim_date rows for every day in [start, end].

    Args:
        start: First day (inclusive)
        end: Last day (inclusive)
        fiscal_year_start_month: First month of the fiscal year
        holidays: Days flagged is_holiday

    Returns:
        List of column dicts ready for insert
    """
    if end < start:
        raise ValueError(f"Calendar end {end} precedes start {start}")

    fiscal_start = fiscal_year_start_month or settings.warehouse.fiscal_year_start_month
    holiday_set = set(holidays or ())

    rows = []
    for offset in range((end - start).days + 1):
        d = start + timedelta(days=offset)
        rows.append({
            "date_key": date_key_for(d),
            "date_value": d,
            "day_of_week": d.strftime("%A"),
            "day_of_month": d.day,
            "day_of_year": d.timetuple().tm_yday,
            "week_of_year": d.isocalendar()[1],
            "month_number": d.month,
            "month_name": d.strftime("%B"),
            "quarter": (d.month - 1) // 3 + 1,
            "year": d.year,
            "is_weekend": d.weekday() >= 5,
            "is_holiday": d in holiday_set,
            "fiscal_period": fiscal_period_for(d, fiscal_start),
        })
    return rows


async def load_date_dimension(
    session: AsyncSession,
    start: date,
    end: date,
    fiscal_year_start_month: Optional[int] = None,
    holidays: Optional[Iterable[date]] = None,
) -> int:
    """
    Insert calendar days missing from dim_date.

    Existing rows are left untouched so date_key stays stable.

    Returns:
        Number of rows inserted
    """
    existing = set(
        (
            await session.execute(
                select(DimDate.date_value).where(
                    DimDate.date_value >= start, DimDate.date_value <= end
                )
            )
        ).scalars()
    )

    rows = [
        row for row in build_date_rows(start, end, fiscal_year_start_month, holidays)
        if row["date_value"] not in existing
    ]

    chunk_size = settings.warehouse.insert_chunk_size
    for i in range(0, len(rows), chunk_size):
        await session.execute(insert(DimDate), rows[i:i + chunk_size])

    logger.info(
        "Date dimension loaded",
        start=str(start),
        end=str(end),
        inserted=len(rows),
        skipped=len(existing),
    )
    return len(rows)


async def get_date_key(session: AsyncSession, day: date) -> int:
    """Resolve a calendar date to its date_key"""
    key = (
        await session.execute(select(DimDate.date_key).where(DimDate.date_value == day))
    ).scalar_one_or_none()
    if key is None:
        raise DimensionLookupError("dim_date", day)
    return key


# =============================================================================
# STORE DIMENSION
# =============================================================================

async def get_store(session: AsyncSession, store_id: str) -> Optional[DimStore]:
    """Return the store row for a business key"""
    return (
        await session.execute(select(DimStore).where(DimStore.store_id == store_id))
    ).scalar_one_or_none()


async def upsert_store(session: AsyncSession, store_id: str, **attributes: Any) -> DimStore:
    """
    Type 1 upsert for dim_store.

    Inserts a new store or overwrites the supplied attributes of the existing
    one. No history is kept and store_key never changes.
    """
    unknown = set(attributes) - set(STORE_ATTRIBUTES)
    if unknown:
        raise ValueError(f"Unknown dim_store attributes: {sorted(unknown)}")

    store = await get_store(session, store_id)
    if store is None:
        store = DimStore(store_id=store_id, **attributes)
        session.add(store)
        await session.flush()
        logger.info("Store inserted", store_id=store_id, store_key=store.store_key)
        return store

    changed = [name for name, value in attributes.items() if getattr(store, name) != value]
    for name in changed:
        setattr(store, name, attributes[name])
    if changed:
        await session.flush()
        logger.info("Store overwritten", store_id=store_id, changed=changed)
    return store
