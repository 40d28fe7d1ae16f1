"""
Data Transformation Module
"""
from .aggregates import RefreshResult, RefreshStrategy, refresh_aggregates
from .measures import SalesMeasures, derive_sales_measures, profit_margin

__all__ = [
    "RefreshResult",
    "RefreshStrategy",
    "refresh_aggregates",
    "SalesMeasures",
    "derive_sales_measures",
    "profit_margin",
]
