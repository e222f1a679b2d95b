"""
Tests for per-type filter predicates.

Each predicate is evaluated against a small audience through the engine so
the JSON purchase lookups run on the real SQLite functions.
"""

import pytest
import pytest_asyncio
from datetime import datetime
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import False_

from audience_segments.schemas.segment import FilterGroupSpec, FilterSpec
from audience_segments.services.segments.predicates import build_filter_condition
from audience_segments.services.segments.segment_engine import SegmentEngine

from factories import PurchaseFactory

SELLER_ID = 1
NOW = datetime(2025, 7, 1, 12, 0)


@pytest_asyncio.fixture
async def audience(add_members):
    """
    early:  joined March, small payments, bought 111 in US, active last week
    late:   joined July, big payments, bought 222 (stored as int) in CA, idle since January
    follower: no purchases, no payments
    stranger: belongs to another seller
    """
    await add_members(
        dict(
            email="early@example.com",
            min_created_at=datetime(2025, 3, 1, 9, 0),
            max_created_at=datetime(2025, 6, 1, 18, 0),
            min_paid_cents=1000,
            max_paid_cents=5000,
            purchases=[PurchaseFactory(product_id="111", country="US")],
            updated_at=datetime(2025, 6, 25, 8, 0),
        ),
        dict(
            email="late@example.com",
            min_created_at=datetime(2025, 7, 10, 9, 0),
            max_created_at=datetime(2025, 8, 1, 9, 0),
            min_paid_cents=8000,
            max_paid_cents=12000,
            purchases=[PurchaseFactory(product_id=222, country="CA")],
            updated_at=datetime(2025, 1, 1, 8, 0),
        ),
        dict(
            email="follower@example.com",
            audience_type="subscriber",
            min_created_at=datetime(2025, 5, 5, 9, 0),
            max_created_at=datetime(2025, 5, 5, 9, 0),
            min_paid_cents=None,
            max_paid_cents=None,
            purchases=[],
            updated_at=datetime(2025, 6, 30, 8, 0),
        ),
        dict(
            seller_id=2,
            email="stranger@example.com",
            min_created_at=datetime(2025, 7, 10, 9, 0),
            max_created_at=datetime(2025, 8, 1, 9, 0),
            min_paid_cents=8000,
            max_paid_cents=12000,
            purchases=[PurchaseFactory(product_id="222", country="CA")],
        ),
    )


async def matches(db: AsyncSession, filter_type, config) -> set[str]:
    engine = SegmentEngine(db, now=NOW)
    group = FilterGroupSpec(filters=[FilterSpec(filter_type=filter_type, config=config)])
    return set(await engine.preview_emails(SELLER_ID, [group], limit=100))


# ============================================
# Date
# ============================================


class TestDateFilter:
    @pytest.mark.asyncio
    async def test_is_after(self, test_db, audience):
        result = await matches(test_db, "date", {"operator": "is_after", "date": "2025-07-01"})
        assert result == {"late@example.com"}

    @pytest.mark.asyncio
    async def test_is_after_includes_the_whole_day(self, test_db, audience):
        result = await matches(test_db, "date", {"operator": "is_after", "date": "2025-07-10"})
        assert result == {"late@example.com"}

    @pytest.mark.asyncio
    async def test_is_before_includes_the_whole_day(self, test_db, audience):
        result = await matches(test_db, "date", {"operator": "is_before", "date": "2025-06-01"})
        assert result == {"early@example.com", "follower@example.com"}

    @pytest.mark.asyncio
    async def test_between(self, test_db, audience):
        result = await matches(
            test_db, "date",
            {"operator": "between", "start_date": "2025-03-01", "end_date": "2025-05-05"},
        )
        assert result == {"early@example.com", "follower@example.com"}

    @pytest.mark.asyncio
    async def test_unparseable_date_matches_nothing(self, test_db, audience):
        result = await matches(test_db, "date", {"operator": "is_after", "date": "next tuesday"})
        assert result == set()

    @pytest.mark.asyncio
    async def test_between_missing_end_matches_nothing(self, test_db, audience):
        result = await matches(test_db, "date", {"operator": "between", "start_date": "2025-01-01"})
        assert result == set()


# ============================================
# Product
# ============================================


class TestProductFilter:
    @pytest.mark.asyncio
    async def test_has_bought(self, test_db, audience):
        result = await matches(test_db, "product", {"operator": "has_bought", "product_ids": ["111"]})
        assert result == {"early@example.com"}

    @pytest.mark.asyncio
    async def test_ids_compare_as_strings(self, test_db, audience):
        as_string = await matches(test_db, "product", {"operator": "has_bought", "product_ids": ["222"]})
        as_int = await matches(test_db, "product", {"operator": "has_bought", "product_ids": [222]})
        assert as_string == as_int == {"late@example.com"}

    @pytest.mark.asyncio
    async def test_has_not_bought_includes_members_without_purchases(self, test_db, audience):
        result = await matches(test_db, "product", {"operator": "has_not_bought", "product_ids": ["111"]})
        assert result == {"late@example.com", "follower@example.com"}

    @pytest.mark.asyncio
    async def test_empty_product_ids_matches_nothing(self, test_db, audience):
        result = await matches(test_db, "product", {"operator": "has_not_bought", "product_ids": []})
        assert result == set()


# ============================================
# Payment
# ============================================


class TestPaymentFilter:
    @pytest.mark.asyncio
    async def test_is_more_than_uses_largest_payment(self, test_db, audience):
        result = await matches(test_db, "payment", {"operator": "is_more_than", "amount_cents": 6000})
        assert result == {"late@example.com"}

    @pytest.mark.asyncio
    async def test_is_less_than_uses_smallest_payment(self, test_db, audience):
        result = await matches(test_db, "payment", {"operator": "is_less_than", "amount_cents": 2000})
        assert result == {"early@example.com"}

    @pytest.mark.asyncio
    async def test_is_between_requires_both_bounds_inside(self, test_db, audience):
        inside = await matches(
            test_db, "payment",
            {"operator": "is_between", "min_amount_cents": 1000, "max_amount_cents": 5000},
        )
        straddling = await matches(
            test_db, "payment",
            {"operator": "is_between", "min_amount_cents": 1000, "max_amount_cents": 9000},
        )
        assert inside == {"early@example.com"}
        assert straddling == {"early@example.com"}

    @pytest.mark.asyncio
    async def test_string_amount_matches_nothing(self, test_db, audience):
        result = await matches(test_db, "payment", {"operator": "is_more_than", "amount_cents": "6000"})
        assert result == set()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "config",
        [
            {"operator": "is_more_than", "amount_cents": 10**20},
            {"operator": "is_less_than", "amount_cents": 2**31},
            {"operator": "is_between", "min_amount_cents": 0, "max_amount_cents": 10**20},
            {"operator": "is_more_than", "amount_cents": -(10**20)},
        ],
    )
    async def test_out_of_range_amount_matches_nothing(self, test_db, audience, config):
        assert await matches(test_db, "payment", config) == set()

    @pytest.mark.asyncio
    async def test_largest_storable_amount_is_evaluated(self, test_db, audience):
        result = await matches(test_db, "payment", {"operator": "is_less_than", "amount_cents": 2**31 - 1})
        assert result == {"early@example.com", "late@example.com"}


# ============================================
# Location
# ============================================


class TestLocationFilter:
    @pytest.mark.asyncio
    async def test_is(self, test_db, audience):
        result = await matches(test_db, "location", {"operator": "is", "country": "CA"})
        assert result == {"late@example.com"}

    @pytest.mark.asyncio
    async def test_is_not(self, test_db, audience):
        result = await matches(test_db, "location", {"operator": "is_not", "country": "CA"})
        assert result == {"early@example.com", "follower@example.com"}

    @pytest.mark.asyncio
    async def test_missing_country_matches_nothing(self, test_db, audience):
        result = await matches(test_db, "location", {"operator": "is_not"})
        assert result == set()


# ============================================
# Email engagement
# ============================================


class TestEmailEngagementFilter:
    @pytest.mark.asyncio
    async def test_in_last(self, test_db, audience):
        result = await matches(test_db, "email_engagement", {"operator": "in_last", "days": 30})
        assert result == {"early@example.com", "follower@example.com"}

    @pytest.mark.asyncio
    async def test_not_in_last(self, test_db, audience):
        result = await matches(test_db, "email_engagement", {"operator": "not_in_last", "days": 30})
        assert result == {"late@example.com"}

    @pytest.mark.asyncio
    async def test_numeric_string_days_accepted(self, test_db, audience):
        result = await matches(test_db, "email_engagement", {"operator": "in_last", "days": "3"})
        assert result == {"follower@example.com"}

    @pytest.mark.asyncio
    async def test_garbage_days_matches_nothing(self, test_db, audience):
        result = await matches(test_db, "email_engagement", {"operator": "in_last", "days": "a month"})
        assert result == set()


# ============================================
# Fail-closed behaviour
# ============================================


class TestMalformedFilters:
    @pytest.mark.parametrize(
        "filter_type,config",
        [
            ("payment", {"operator": "is_roughly", "amount_cents": 100}),
            ("payment", {"amount_cents": 100}),
            ("date", {"operator": "is_after", "date": 20250101}),
            ("lifetime_value", {"operator": "is_more_than", "amount_cents": 100}),
            ("location", "country=US"),
            ("location", None),
        ],
    )
    def test_returns_false_condition(self, filter_type, config):
        assert isinstance(build_filter_condition(filter_type, config), False_)

    @pytest.mark.asyncio
    async def test_unknown_operator_never_raises(self, test_db, audience):
        result = await matches(test_db, "location", {"operator": "near", "country": "US"})
        assert result == set()

    def test_well_formed_filter_is_not_false(self):
        condition = build_filter_condition("payment", {"operator": "is_more_than", "amount_cents": 100})
        assert not isinstance(condition, False_)


class TestDialects:
    def test_sqlite_uses_json_each(self):
        condition = build_filter_condition(
            "product", {"operator": "has_bought", "product_ids": ["1"]}, dialect_name="sqlite"
        )
        sql = str(condition.compile(dialect=sqlite.dialect()))
        assert "json_each" in sql

    def test_postgresql_uses_json_array_elements(self):
        condition = build_filter_condition(
            "location", {"operator": "is", "country": "US"}, dialect_name="postgresql"
        )
        sql = str(condition.compile(dialect=postgresql.dialect()))
        assert "json_array_elements" in sql
        assert "->>" in sql
