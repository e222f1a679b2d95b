"""Tests for write-time filter validation."""

import pytest

from audience_segments.services.segments.filter_schemas import (
    MalformedFilterError,
    PaymentFilterConfig,
    normalize_config,
    validate_filter,
)


VALID_FILTERS = [
    ("date", {"operator": "is_after", "date": "2025-01-31"}),
    ("date", {"operator": "between", "start_date": "2025-01-01", "end_date": "2025-02-01"}),
    ("product", {"operator": "has_bought", "product_ids": ["12", 34]}),
    ("payment", {"operator": "is_between", "min_amount_cents": 100, "max_amount_cents": 100}),
    ("location", {"operator": "is_not", "country": "DE", "region": "Bavaria"}),
    ("email_engagement", {"operator": "in_last", "days": 7}),
]


class TestValidateFilter:
    @pytest.mark.parametrize("filter_type,config", VALID_FILTERS)
    def test_valid_filters_pass(self, filter_type, config):
        parsed = validate_filter(filter_type, config)
        assert parsed.operator.value == config["operator"]

    def test_returns_typed_model(self):
        parsed = validate_filter("payment", {"operator": "is_more_than", "amount_cents": 5000})
        assert isinstance(parsed, PaymentFilterConfig)
        assert parsed.amount_cents == 5000

    def test_unknown_filter_type(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("lifetime_value", {"operator": "is"})
        assert exc_info.value.errors[0]["field"] == "filter_type"

    def test_config_must_be_object(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("date", ["is_after", "2025-01-01"])
        assert exc_info.value.errors[0]["field"] == "config"

    def test_unknown_operator(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("payment", {"operator": "is_about", "amount_cents": 100})
        assert exc_info.value.errors[0]["field"] == "config.operator"

    def test_missing_required_operand(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("date", {"operator": "between", "start_date": "2025-01-01"})
        fields = [e["field"] for e in exc_info.value.errors]
        assert fields == ["config.end_date"]

    def test_amounts_must_be_integers(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("payment", {"operator": "is_more_than", "amount_cents": "5000"})
        assert exc_info.value.errors[0]["field"] == "config.amount_cents"

    @pytest.mark.parametrize("field", ["amount_cents", "min_amount_cents", "max_amount_cents"])
    def test_amounts_must_fit_the_paid_columns(self, field):
        config = {"operator": "is_between", "min_amount_cents": 0, "max_amount_cents": 100}
        config[field] = 10**20
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("payment", config)
        assert exc_info.value.errors[0]["field"] == f"config.{field}"

    def test_largest_storable_amount_accepted(self):
        parsed = validate_filter("payment", {"operator": "is_more_than", "amount_cents": 2**31 - 1})
        assert parsed.amount_cents == 2**31 - 1

    def test_days_must_be_positive(self):
        with pytest.raises(MalformedFilterError):
            validate_filter("email_engagement", {"operator": "in_last", "days": 0})

    def test_unparseable_date(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("date", {"operator": "is_before", "date": "sometime in May"})
        assert exc_info.value.errors[0]["type"] == "date_parsing"

    def test_empty_product_list(self):
        with pytest.raises(MalformedFilterError):
            validate_filter("product", {"operator": "has_bought", "product_ids": []})

    def test_inverted_range(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter(
                "payment",
                {"operator": "is_between", "min_amount_cents": 900, "max_amount_cents": 100},
            )
        assert exc_info.value.errors[0]["field"] == "config.min_amount_cents"

    def test_unexpected_keys_rejected(self):
        with pytest.raises(MalformedFilterError) as exc_info:
            validate_filter("location", {"operator": "is", "country": "US", "amount": 5})
        assert exc_info.value.errors[0]["field"] == "config.amount"


class TestNormalizeConfig:
    def test_drops_unset_keys_and_unwraps_enums(self):
        parsed = validate_filter("location", {"operator": "is", "country": "US"})
        assert normalize_config(parsed) == {"operator": "is", "country": "US"}
