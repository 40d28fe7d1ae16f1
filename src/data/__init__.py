"""
Data Generation Module
"""
from .generators import (
    ChangeGenerator,
    CustomerGenerator,
    DataGenerator,
    InventoryGenerator,
    ProductGenerator,
    SalesGenerator,
    StoreGenerator,
)

__all__ = [
    "DataGenerator",
    "StoreGenerator",
    "CustomerGenerator",
    "ProductGenerator",
    "ChangeGenerator",
    "SalesGenerator",
    "InventoryGenerator",
]
