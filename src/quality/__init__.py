"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult, ValidationSeverity, ValidationStatus
from .integrity import DataQualityError, check_warehouse_integrity

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "DataQualityError",
    "check_warehouse_integrity",
]
