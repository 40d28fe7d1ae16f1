"""
Unit Tests - Data Quality
"""
from datetime import date

import polars as pl

from src.quality.integrity import (
    aggregate_freshness_check,
    create_inventory_fact_validator,
    measures_consistent,
)
from src.quality.validators import (
    DataValidator,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_customer_dimension_validator,
    create_sales_fact_validator,
    create_store_dimension_validator,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.checks[0].failed_rows == 1

    def test_result_timestamps_are_utc(self):
        result = DataValidator().add_not_null_check("id").validate(pl.DataFrame({"id": [1]}))

        assert result.started_at.tzinfo is not None
        assert result.completed_at >= result.started_at

    def test_unique_check_single_column(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"store_id": ["S1", "S2", "S1"]})

        result = DataValidator().add_unique_check("store_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 2

    def test_unique_check_composite_key(self):
        """Same business key with different effective dates is unique"""
        df = pl.DataFrame({
            "customer_id": ["C1", "C1", "C2"],
            "effective_date": [date(2024, 1, 1), date(2024, 2, 1), date(2024, 1, 1)],
        })

        result = DataValidator().add_unique_check(["customer_id", "effective_date"]).validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.checks[0].name == "unique_customer_id_effective_date"

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        result = DataValidator().add_range_check("price", min_value=0, max_value=100).validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        assert result.checks[0].failed_rows == 2

    def test_missing_column_fails_check(self):
        df = pl.DataFrame({"other": [1]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_warning_gives_partial_status(self):
        df = pl.DataFrame({"email": ["ok@example.com", "not-an-email"]})

        result = DataValidator().add_pattern_check("email", r"@").validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_strict_mode_fails_on_warning(self):
        df = pl.DataFrame({"email": ["not-an-email"]})

        result = DataValidator(strict_mode=True).add_pattern_check("email", r"@").validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_custom_check_error_is_reported(self):
        df = pl.DataFrame({"x": [1]})

        def broken(frame):
            raise RuntimeError("boom")

        result = DataValidator().add_custom_check("broken", broken, "never").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "boom" in result.checks[0].message

    def test_referential_integrity(self):
        stores = pl.DataFrame({"store_key": [1, 2]})
        facts = pl.DataFrame({"store_key": [1, 2, 3]})

        result = (
            DataValidator()
            .add_referential_integrity_check("store_key", stores, "store_key")
            .validate(facts)
        )

        assert result.checks[0].failed_rows == 1

    def test_merge_combines_checks(self):
        a = DataValidator().add_not_null_check("id").validate(pl.DataFrame({"id": [1]}))
        b = DataValidator().add_not_null_check("id").validate(pl.DataFrame({"id": [None]}))

        merged = ValidationResult.merge([a, b])

        assert merged.total_checks == 2
        assert merged.status == ValidationStatus.FAILED
        assert merged.success_rate == 50.0


class TestSingleCurrentVersion:
    """Tests for the SCD Type 2 current-row check"""

    def test_one_current_row_per_key_passes(self, customer_versions_df):
        result = DataValidator().add_single_current_version_check("customer_id").validate(customer_versions_df)

        assert result.status == ValidationStatus.PASSED

    def test_two_current_rows_fail(self, customer_versions_df):
        df = customer_versions_df.with_columns(pl.lit(True).alias("is_current"))

        result = DataValidator().add_single_current_version_check("customer_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].details["multiple_current"] == ["C001"]

    def test_fully_expired_key_is_reported_not_failed(self, customer_versions_df):
        df = customer_versions_df.with_columns(
            pl.when(pl.col("customer_id") == "C002").then(False).otherwise(pl.col("is_current")).alias("is_current")
        )

        result = DataValidator().add_single_current_version_check("customer_id").validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.checks[0].details["no_current"] == ["C002"]


class TestWarehouseValidators:
    """Tests for the pre-built warehouse validators"""

    def test_customer_dimension_validator(self, customer_versions_df):
        result = create_customer_dimension_validator().validate(customer_versions_df)

        assert result.status == ValidationStatus.PASSED

    def test_duplicate_customer_version_fails(self, customer_versions_df):
        df = pl.concat([customer_versions_df, customer_versions_df.head(1)])

        result = create_customer_dimension_validator().validate(df)

        assert result.check("unique_customer_id_effective_date").passed is False

    def test_store_dimension_validator(self):
        df = pl.DataFrame({"store_key": [1, 2], "store_id": ["S1", "S1"]})

        result = create_store_dimension_validator().validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_sales_fact_validator(self, sales_lines_df):
        result = create_sales_fact_validator().validate(sales_lines_df)

        assert result.status == ValidationStatus.PASSED

    def test_sales_zero_quantity_fails(self, sales_lines_df):
        df = sales_lines_df.with_columns(pl.lit(0).alias("quantity"))

        result = create_sales_fact_validator().validate(df)

        assert result.check("range_quantity").passed is False

    def test_inventory_duplicates_are_warnings(self):
        df = pl.DataFrame({
            "date_key": [20240105, 20240105],
            "product_key": [1, 1],
            "store_key": [1, 1],
        })

        result = create_inventory_fact_validator().validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.checks[0].severity == ValidationSeverity.WARNING


class TestIntegrityHelpers:
    """Tests for frame-level integrity helpers"""

    def test_measures_consistent(self, sales_lines_df):
        assert measures_consistent(sales_lines_df) is True

    def test_measures_inconsistent_total(self, sales_lines_df):
        df = sales_lines_df.with_columns(pl.lit(99.0).alias("total_amount"))

        assert measures_consistent(df) is False

    def test_measures_allow_unknown_cost(self, sales_lines_df):
        df = sales_lines_df.with_columns(
            pl.lit(None, dtype=pl.Float64).alias("cost_amount"),
            pl.lit(None, dtype=pl.Float64).alias("profit_amount"),
        )

        assert measures_consistent(df) is True

    def test_freshness_detects_missing_slice(self, sales_lines_df):
        daily = pl.DataFrame({"date_key": [20240105], "store_key": [1], "total_revenue": [45.9]})

        check = aggregate_freshness_check(sales_lines_df, daily)

        assert check.passed is False
        assert check.details["missing_date_keys"] == [20240106]

    def test_freshness_detects_stale_revenue(self, sales_lines_df):
        daily = pl.DataFrame({
            "date_key": [20240105, 20240106],
            "store_key": [1, 2],
            "total_revenue": [21.6, 32.4],
        })

        check = aggregate_freshness_check(sales_lines_df, daily)

        assert check.passed is False
        assert check.failed_rows == 1

    def test_freshness_passes(self, sales_lines_df):
        daily = pl.DataFrame({
            "date_key": [20240105, 20240106],
            "store_key": [1, 2],
            "total_revenue": [45.9, 32.4],
        })

        assert aggregate_freshness_check(sales_lines_df, daily).passed is True
