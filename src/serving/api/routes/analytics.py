"""
Analytics API Endpoints

Read-only REST API over the warehouse views and aggregates for BI
dashboards.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from src.database.connection import get_db_dependency
from src.database.queries import (
    CustomerSpend,
    DailyStoreSales,
    RegionQuarterRevenue,
    SalesSummaryRow,
    TopProductRow,
    fetch_daily_sales,
    fetch_sales_summary,
    fetch_top_products,
    revenue_by_region_quarter,
    top_customers_by_spend,
)

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/sales-summary", response_model=List[SalesSummaryRow])
async def get_sales_summary(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[SalesSummaryRow]:
    """
    Sales lines joined to their calendar day, current customer, current
    product and store, newest first.
    """
    rows = await fetch_sales_summary(db, limit=limit, offset=offset, year=year)
    logger.debug("Sales summary served", rows=len(rows), year=year, offset=offset)
    return rows


@router.get("/top-products", response_model=List[TopProductRow])
async def get_top_products(
    limit: int = Query(20, ge=1, le=500),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[TopProductRow]:
    """Product groups ranked by total revenue"""
    return await fetch_top_products(db, limit=limit)


@router.get("/revenue-by-region", response_model=List[RegionQuarterRevenue])
async def get_revenue_by_region(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[RegionQuarterRevenue]:
    """Revenue and profit per store region and quarter"""
    return await revenue_by_region_quarter(db, year=year)


@router.get("/top-customers", response_model=List[CustomerSpend])
async def get_top_customers(
    limit: int = Query(10, ge=1, le=500),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[CustomerSpend]:
    """Customers ranked by lifetime spend across all versions"""
    return await top_customers_by_spend(db, limit=limit)


@router.get("/daily-sales", response_model=List[DailyStoreSales])
async def get_daily_sales(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    store_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> List[DailyStoreSales]:
    """Pre-computed daily sales per store"""
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=422, detail="end_date precedes start_date")
    return await fetch_daily_sales(db, start_date=start_date, end_date=end_date, store_id=store_id)
