"""
Data Ingestion Module

Dimension versioning and fact loading.
"""
from .dimensions import load_date_dimension, upsert_store
from .errors import DimensionLookupError, ScdConflictError
from .facts import InventorySnapshot, SaleLine, record_inventory_snapshot, record_sale, record_sales
from .scd import ScdAction, ScdResult, apply_scd2, expire_current, upsert_customer, upsert_product

__all__ = [
    "load_date_dimension",
    "upsert_store",
    "DimensionLookupError",
    "ScdConflictError",
    "InventorySnapshot",
    "SaleLine",
    "record_inventory_snapshot",
    "record_sale",
    "record_sales",
    "ScdAction",
    "ScdResult",
    "apply_scd2",
    "expire_current",
    "upsert_customer",
    "upsert_product",
]
