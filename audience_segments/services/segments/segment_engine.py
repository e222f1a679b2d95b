"""
Segment Engine

Evaluates filter groups against the audience table:

- a filter group is the intersection (AND) of its filters
- a segment is the union (OR) of its filter groups
- a group without filters, and a segment without groups, match nothing

Groups and filters are read by attribute (``group.filters``,
``filter.filter_type``, ``filter.config``), so persisted ORM rows and unsaved
request specs evaluate the same way.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy import select, func, and_, or_, false
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from audience_segments.config import settings
from audience_segments.models.audience_member import AudienceMember
from audience_segments.models.segment import Segment, AudienceMemberFilterGroup, OWNER_SEGMENT
from audience_segments.services.segments.predicates import build_filter_condition


logger = logging.getLogger(__name__)


@dataclass
class SegmentEvaluationResult:
    """Result of evaluating a segment."""

    segment_id: Optional[int]
    matching_member_ids: List[int]
    total_count: int
    execution_time_ms: float


@dataclass
class SegmentPreviewResult:
    """Audience size plus a sample of matching emails."""

    audience_count: int
    preview_emails: List[str] = field(default_factory=list)


class SegmentEngine:
    """Builds and runs audience queries for segments and filter groups."""

    def __init__(self, db: AsyncSession, now: Optional[datetime] = None):
        self.db = db
        self.now = now

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    # ========================================
    # Conditions
    # ========================================

    def filter_condition(self, audience_filter: Any) -> ColumnElement:
        return build_filter_condition(
            audience_filter.filter_type,
            audience_filter.config,
            self.dialect_name,
            now=self.now,
        )

    def group_condition(self, filters: Iterable[Any]) -> ColumnElement:
        """AND of the filters' conditions; no filters matches nothing."""
        conditions = [self.filter_condition(f) for f in filters]
        if not conditions:
            return false()
        return and_(*conditions)

    def segment_condition(self, groups: Iterable[Any]) -> ColumnElement:
        """OR of the groups' conditions; no groups matches nothing."""
        conditions = [self.group_condition(g.filters) for g in groups]
        if not conditions:
            return false()
        return or_(*conditions)

    def member_query(self, seller_id: int, condition: ColumnElement, *columns) -> Select:
        query = select(*(columns or (AudienceMember.id,))).where(AudienceMember.seller_id == seller_id)
        return query.where(condition)

    # ========================================
    # Loading
    # ========================================

    async def load_groups(self, segment: Segment) -> List[AudienceMemberFilterGroup]:
        """Filter groups owned by a segment, filters eagerly loaded."""
        result = await self.db.execute(
            select(AudienceMemberFilterGroup)
            .where(
                AudienceMemberFilterGroup.owner_kind == OWNER_SEGMENT,
                AudienceMemberFilterGroup.owner_id == segment.id,
            )
            .order_by(AudienceMemberFilterGroup.id)
        )
        return list(result.scalars().all())

    # ========================================
    # Evaluation
    # ========================================

    async def evaluate_group(self, seller_id: int, group: Any) -> List[int]:
        """Member ids matching a single group, ordered by id."""
        query = self.member_query(seller_id, self.group_condition(group.filters))
        result = await self.db.execute(query.order_by(AudienceMember.id))
        return list(result.scalars().all())

    async def evaluate_groups(self, seller_id: int, groups: Iterable[Any]) -> List[int]:
        query = self.member_query(seller_id, self.segment_condition(groups))
        result = await self.db.execute(query.order_by(AudienceMember.id))
        return list(result.scalars().all())

    async def count(self, seller_id: int, groups: Iterable[Any], limit: Optional[int] = None) -> int:
        """
        Count members matching the union of ``groups``.

        Args:
            seller_id: Owner of the audience
            groups: Filter groups (ORM rows or specs)
            limit: Optional cap; the count never exceeds it

        Returns:
            Number of distinct matching members
        """
        query = self.member_query(seller_id, self.segment_condition(groups))
        if limit is not None:
            query = query.order_by(AudienceMember.id).limit(limit)
        result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        return result.scalar() or 0

    async def preview_emails(self, seller_id: int, groups: Iterable[Any], limit: Optional[int] = None) -> List[str]:
        """First ``limit`` matching emails, ordered by member id."""
        if limit is None:
            limit = settings.SEGMENT_PREVIEW_LIMIT
        query = (
            self.member_query(seller_id, self.segment_condition(groups), AudienceMember.email)
            .order_by(AudienceMember.id)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def preview(self, seller_id: int, groups: Iterable[Any], limit: Optional[int] = None) -> SegmentPreviewResult:
        groups = list(groups)
        return SegmentPreviewResult(
            audience_count=await self.count(seller_id, groups),
            preview_emails=await self.preview_emails(seller_id, groups, limit=limit),
        )

    # ========================================
    # Persisted segments
    # ========================================

    async def evaluate(self, segment: Segment) -> SegmentEvaluationResult:
        """
        Evaluate a saved segment.

        Args:
            segment: The segment to evaluate

        Returns:
            Matching member ids with timing
        """
        start = time.perf_counter()
        groups = await self.load_groups(segment)
        member_ids = await self.evaluate_groups(segment.seller_id, groups)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.debug(f"Evaluated segment {segment.id}: {len(member_ids)} members in {elapsed_ms:.1f}ms")
        return SegmentEvaluationResult(
            segment_id=segment.id,
            matching_member_ids=member_ids,
            total_count=len(member_ids),
            execution_time_ms=elapsed_ms,
        )

    async def count_segment(self, segment: Segment, limit: Optional[int] = None) -> int:
        groups = await self.load_groups(segment)
        return await self.count(segment.seller_id, groups, limit=limit)

    async def preview_segment(self, segment: Segment, limit: Optional[int] = None) -> SegmentPreviewResult:
        groups = await self.load_groups(segment)
        return await self.preview(segment.seller_id, groups, limit=limit)
