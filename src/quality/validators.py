"""
Data Validation Module

Rule-based quality checks over polars DataFrames. The same suites run on
staged frames before loading and on extracts of the warehouse tables
afterwards (see integrity.py).

Most rules are row predicates: a check counts the rows matching an
"offending" expression and fails when there is at least one. Rules that
need grouping (uniqueness, one current SCD version per key) or arbitrary
logic (custom checks) are written out on their own.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = r"^[\w\.\+\-]+@[\w\-]+\.[\w\.\-]+$"

Check = Callable[[pl.DataFrame], "ValidationCheck"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationSeverity(str, Enum):
    """How a failed check affects the overall status"""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Outcome of one check"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Outcome of a suite of checks"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def check(self, name: str) -> Optional[ValidationCheck]:
        """Look up a check outcome by name"""
        return next((c for c in self.checks if c.name == name), None)

    @classmethod
    def merge(cls, results: Sequence["ValidationResult"]) -> "ValidationResult":
        """Combine several suite results into one"""
        started = min((r.started_at for r in results), default=None)
        return summarize([c for r in results for c in r.checks], started_at=started)


def summarize(
    checks: List[ValidationCheck],
    strict_mode: bool = False,
    started_at: Optional[datetime] = None,
) -> ValidationResult:
    """
    Derive the overall status from individual checks.

    Any failed ERROR check fails the suite. Failed WARNING checks make it
    PARTIAL, or FAILED in strict mode. INFO checks never change the status.
    """
    errors = sum(1 for c in checks if not c.passed and c.severity == ValidationSeverity.ERROR)
    warnings = sum(1 for c in checks if not c.passed and c.severity == ValidationSeverity.WARNING)

    if errors or (warnings and strict_mode):
        status = ValidationStatus.FAILED
    elif warnings:
        status = ValidationStatus.PARTIAL
    else:
        status = ValidationStatus.PASSED

    return ValidationResult(
        status=status,
        total_checks=len(checks),
        passed_checks=sum(1 for c in checks if c.passed),
        failed_checks=errors,
        warning_count=warnings,
        checks=checks,
        started_at=started_at or _utcnow(),
        completed_at=_utcnow(),
    )


def _missing(name: str, columns: Sequence[str], df: pl.DataFrame, severity: ValidationSeverity) -> Optional[ValidationCheck]:
    absent = [c for c in columns if c not in df.columns]
    if not absent:
        return None
    return ValidationCheck(name=name, passed=False, severity=severity, message=f"Column(s) {absent} not found")


class DataValidator:
    """
    Chainable suite of checks.

    Example:
        validator = (
            DataValidator()
            .add_not_null_check("customer_id")
            .add_unique_check(["customer_id", "effective_date"])
            .add_single_current_version_check("customer_id")
        )
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        # strict_mode: failed warnings fail the suite
        self.strict_mode = strict_mode
        self._checks: List[Check] = []

    def reset(self) -> None:
        self._checks = []

    def _add_row_check(
        self,
        name: str,
        columns: Sequence[str],
        offending: Callable[[], pl.Expr],
        severity: ValidationSeverity,
        failure: str,
        success: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> "DataValidator":
        """Register a check that fails when any row matches `offending`"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = _missing(name, columns, df, severity)
            if missing:
                return missing

            bad_rows = df.filter(offending()).height
            return ValidationCheck(
                name=name,
                passed=bad_rows == 0,
                severity=severity,
                message=failure.format(count=bad_rows) if bad_rows else success,
                details={**(details or {}), "failed_count": bad_rows},
                failed_rows=bad_rows,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add_row_check(
            f"not_null_{column}",
            [column],
            lambda: pl.col(column).is_null(),
            severity,
            f"Column '{column}' has {{count}} null values",
            f"Column '{column}' has no null values",
        )

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
        name: Optional[str] = None,
    ) -> "DataValidator":
        """Values of a column, or combinations of several columns, appear once"""
        cols = [columns] if isinstance(columns, str) else list(columns)
        check_name = name or f"unique_{'_'.join(cols)}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = _missing(check_name, cols, df, severity)
            if missing:
                return missing

            duplicates = df.group_by(cols).agg(pl.len().alias("n")).filter(pl.col("n") > 1)
            passed = duplicates.is_empty()
            return ValidationCheck(
                name=check_name,
                passed=passed,
                severity=severity,
                message=f"{cols} values are unique" if passed else f"{duplicates.height} duplicated {cols} keys",
                details={"duplicate_keys": duplicates.height, "sample": duplicates.head(5).to_dicts()},
                failed_rows=0 if passed else int(duplicates["n"].sum()),
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Non-null values lie within [min_value, max_value]; either bound may be open"""
        def out_of_range() -> pl.Expr:
            expr = pl.lit(False)
            if min_value is not None:
                expr = expr | (pl.col(column) < min_value)
            if max_value is not None:
                expr = expr | (pl.col(column) > max_value)
            return expr

        return self._add_row_check(
            f"range_{column}",
            [column],
            out_of_range,
            severity,
            f"Column '{column}' has {{count}} values outside [{min_value}, {max_value}]",
            "All values in range",
            {"min": min_value, "max": max_value},
        )

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        # Integers and cents: the smallest positive value is far above this bound
        return self.add_range_check(column, min_value=0 if allow_zero else 0.0001, severity=severity)

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add_row_check(
            f"enum_{column}",
            [column],
            lambda: pl.col(column).is_not_null() & ~pl.col(column).is_in(allowed_values),
            severity,
            f"Column '{column}' has {{count}} values outside the allowed set",
            "All values are valid",
            {"allowed_values": allowed_values},
        )

    def add_pattern_check(
        self,
        column: str,
        pattern: str,
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        """Non-null values match a regular expression"""
        return self._add_row_check(
            f"pattern_{column}",
            [column],
            lambda: pl.col(column).is_not_null() & ~pl.col(column).cast(pl.Utf8).str.contains(pattern),
            severity,
            f"Column '{column}' has {{count}} values not matching the pattern",
            "All values match pattern",
            {"pattern": pattern},
        )

    def add_single_current_version_check(
        self,
        business_key: str,
        current_column: str = "is_current",
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """
        SCD Type 2: no business key has more than one current row.

        Keys with zero current rows (fully expired) are listed in the details
        but do not fail the check.
        """
        name = f"single_current_{business_key}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = _missing(name, [business_key, current_column], df, severity)
            if missing:
                return missing

            per_key = df.group_by(business_key).agg(
                pl.col(current_column).cast(pl.Int64).sum().alias("current_rows")
            )
            multiple = per_key.filter(pl.col("current_rows") > 1)
            passed = multiple.is_empty()
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=(
                    f"Each {business_key} has at most one current row" if passed
                    else f"{multiple.height} {business_key} values have several current rows"
                ),
                details={
                    "multiple_current": sorted(multiple[business_key].to_list())[:20],
                    "no_current": sorted(per_key.filter(pl.col("current_rows") == 0)[business_key].to_list())[:20],
                },
                failed_rows=multiple.height,
                total_rows=per_key.height,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """A whole-frame predicate; an exception inside it counts as a failure"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check raised {type(e).__name__}: {e}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Every non-null value of `column` exists in reference_df[reference_column]"""
        known = reference_df[reference_column].unique()
        return self._add_row_check(
            f"ref_integrity_{column}",
            [column],
            lambda: pl.col(column).is_not_null() & ~pl.col(column).is_in(known.to_list()),
            severity,
            f"Column '{column}' has {{count}} orphan values",
            "Referential integrity maintained",
        )

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """Run every registered check against df"""
        started_at = _utcnow()
        checks = [check(df) for check in self._checks]

        for failed in (c for c in checks if not c.passed):
            logger.warning(
                "Validation check failed",
                check=failed.name,
                severity=failed.severity.value,
                message=failed.message,
            )

        result = summarize(checks, self.strict_mode, started_at)
        logger.info(
            "Validation complete",
            status=result.status.value,
            rows=df.height,
            passed=result.passed_checks,
            failed=result.failed_checks,
            warnings=result.warning_count,
        )
        return result


# Pre-built validators for warehouse frames
def create_customer_dimension_validator() -> DataValidator:
    """dim_customer extracts or staged customer versions"""
    return (
        DataValidator()
        .add_not_null_check("customer_id")
        .add_not_null_check("effective_date")
        .add_unique_check(["customer_id", "effective_date"])
        .add_single_current_version_check("customer_id")
        .add_pattern_check("email", EMAIL_PATTERN)
    )


def create_product_dimension_validator() -> DataValidator:
    """dim_product extracts or staged product versions"""
    return (
        DataValidator()
        .add_not_null_check("product_id")
        .add_not_null_check("effective_date")
        .add_unique_check(["product_id", "effective_date"])
        .add_single_current_version_check("product_id")
        .add_positive_check("unit_price", severity=ValidationSeverity.WARNING)
        .add_positive_check("unit_cost", severity=ValidationSeverity.WARNING)
    )


def create_store_dimension_validator() -> DataValidator:
    return (
        DataValidator()
        .add_not_null_check("store_id")
        .add_unique_check("store_id")
    )


def create_sales_fact_validator() -> DataValidator:
    """fact_sales extracts or staged sales lines"""
    validator = DataValidator()
    for key in ("order_id", "date_key", "customer_key", "product_key", "store_key"):
        validator.add_not_null_check(key)
    return (
        validator
        .add_positive_check("quantity", allow_zero=False)
        .add_range_check("discount_amount", min_value=0)
        .add_range_check("tax_amount", min_value=0)
    )
