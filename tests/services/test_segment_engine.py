"""
Tests for SegmentEngine group/segment composition.
"""

import pytest
import pytest_asyncio
from datetime import datetime

from audience_segments.models import Segment, AudienceMemberFilterGroup, AudienceMemberFilter
from audience_segments.schemas.segment import FilterGroupSpec, FilterSpec
from audience_segments.services.segments.segment_engine import SegmentEngine

from factories import PurchaseFactory

SELLER_ID = 1

PAID_OVER_1000 = FilterSpec(filter_type="payment", config={"operator": "is_more_than", "amount_cents": 1000})
FROM_GERMANY = FilterSpec(filter_type="location", config={"operator": "is", "country": "DE"})
BROKEN = FilterSpec(filter_type="date", config={"operator": "is_after", "date": "31/31/2025"})


def group(*filters: FilterSpec) -> FilterGroupSpec:
    return FilterGroupSpec(filters=list(filters))


@pytest_asyncio.fixture
async def members(add_members):
    """A paid 500 cents from DE, B paid 3000 cents from US."""
    return await add_members(
        dict(
            email="a@example.com",
            min_paid_cents=500,
            max_paid_cents=500,
            purchases=[PurchaseFactory(country="DE")],
        ),
        dict(
            email="b@example.com",
            min_paid_cents=3000,
            max_paid_cents=3000,
            purchases=[PurchaseFactory(country="US")],
        ),
    )


async def emails(engine: SegmentEngine, groups) -> set[str]:
    return set(await engine.preview_emails(SELLER_ID, groups, limit=100))


class TestComposition:
    @pytest.mark.asyncio
    async def test_single_predicates(self, test_db, members):
        engine = SegmentEngine(test_db)
        assert await emails(engine, [group(PAID_OVER_1000)]) == {"b@example.com"}
        assert await emails(engine, [group(FROM_GERMANY)]) == {"a@example.com"}

    @pytest.mark.asyncio
    async def test_group_is_intersection(self, test_db, members):
        engine = SegmentEngine(test_db)
        assert await emails(engine, [group(PAID_OVER_1000, FROM_GERMANY)]) == set()

    @pytest.mark.asyncio
    async def test_segment_is_union(self, test_db, members):
        engine = SegmentEngine(test_db)
        result = await emails(engine, [group(PAID_OVER_1000), group(FROM_GERMANY)])
        assert result == {"a@example.com", "b@example.com"}

    @pytest.mark.asyncio
    async def test_union_matches_per_group_evaluation(self, test_db, members):
        engine = SegmentEngine(test_db)
        groups = [group(PAID_OVER_1000), group(FROM_GERMANY)]

        per_group = set()
        for g in groups:
            per_group |= set(await engine.evaluate_group(SELLER_ID, g))

        assert set(await engine.evaluate_groups(SELLER_ID, groups)) == per_group

    @pytest.mark.asyncio
    async def test_zero_groups_matches_nothing(self, test_db, members):
        engine = SegmentEngine(test_db)
        assert await engine.count(SELLER_ID, []) == 0
        assert await engine.preview_emails(SELLER_ID, []) == []

    @pytest.mark.asyncio
    async def test_empty_group_contributes_nothing(self, test_db, members):
        engine = SegmentEngine(test_db)
        assert await emails(engine, [group()]) == set()
        assert await emails(engine, [group(), group(FROM_GERMANY)]) == {"a@example.com"}

    @pytest.mark.asyncio
    async def test_malformed_filter_empties_its_group_only(self, test_db, members):
        engine = SegmentEngine(test_db)
        result = await emails(engine, [group(PAID_OVER_1000, BROKEN), group(FROM_GERMANY)])
        assert result == {"a@example.com"}


class TestCountAndPreview:
    @pytest_asyncio.fixture
    async def crowd(self, add_members):
        return await add_members(*[dict(max_paid_cents=9000) for _ in range(7)])

    @pytest.mark.asyncio
    async def test_count_matches_evaluation(self, test_db, crowd):
        engine = SegmentEngine(test_db)
        groups = [group(PAID_OVER_1000)]
        assert await engine.count(SELLER_ID, groups) == len(await engine.evaluate_groups(SELLER_ID, groups)) == 7

    @pytest.mark.asyncio
    async def test_count_is_capped_by_limit(self, test_db, crowd):
        engine = SegmentEngine(test_db)
        assert await engine.count(SELLER_ID, [group(PAID_OVER_1000)], limit=3) == 3

    @pytest.mark.asyncio
    async def test_preview_defaults_to_five_ordered_by_id(self, test_db, crowd):
        engine = SegmentEngine(test_db)
        preview = await engine.preview(SELLER_ID, [group(PAID_OVER_1000)])

        expected = [m.email for m in sorted(crowd, key=lambda m: m.id)][:5]
        assert preview.audience_count == 7
        assert preview.preview_emails == expected

    @pytest.mark.asyncio
    async def test_other_sellers_are_invisible(self, test_db, crowd):
        engine = SegmentEngine(test_db)
        assert await engine.count(2, [group(PAID_OVER_1000)]) == 0


class TestPersistedSegment:
    @pytest_asyncio.fixture
    async def segment(self, test_db, members):
        segment = Segment(seller_id=SELLER_ID, name="Big or German")
        test_db.add(segment)
        await test_db.flush()
        for spec in (PAID_OVER_1000, FROM_GERMANY):
            test_db.add(
                AudienceMemberFilterGroup(
                    seller_id=SELLER_ID,
                    owner_id=segment.id,
                    filters=[
                        AudienceMemberFilter(
                            seller_id=SELLER_ID,
                            filter_type=spec.filter_type,
                            config=spec.config,
                        )
                    ],
                )
            )
        await test_db.commit()
        return segment

    @pytest.mark.asyncio
    async def test_evaluate(self, test_db, members, segment):
        engine = SegmentEngine(test_db)
        result = await engine.evaluate(segment)

        assert result.segment_id == segment.id
        assert result.total_count == 2
        assert sorted(result.matching_member_ids) == sorted(m.id for m in members)
        assert result.execution_time_ms >= 0

    @pytest.mark.asyncio
    async def test_count_and_preview_segment(self, test_db, members, segment):
        engine = SegmentEngine(test_db)
        assert await engine.count_segment(segment) == 2

        preview = await engine.preview_segment(segment, limit=1)
        assert preview.audience_count == 2
        assert preview.preview_emails == ["a@example.com"]

    @pytest.mark.asyncio
    async def test_segment_without_groups_is_empty(self, test_db, members):
        segment = Segment(seller_id=SELLER_ID, name="Nothing yet", created_at=datetime(2025, 1, 1))
        test_db.add(segment)
        await test_db.commit()

        result = await SegmentEngine(test_db).evaluate(segment)
        assert result.total_count == 0
        assert result.matching_member_ids == []
