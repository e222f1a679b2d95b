"""
Segment Service

Persistence for segments and the filter groups they own. Writes are
all-or-nothing: every filter is validated before the first INSERT, and any
database error rolls the whole transaction back.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from audience_segments.exceptions import NotFoundError, ValidationError
from audience_segments.models.segment import (
    Segment,
    AudienceMemberFilterGroup,
    AudienceMemberFilter,
    InstallmentSegmentJoin,
    WorkflowSegmentJoin,
    OWNER_SEGMENT,
)
from audience_segments.schemas.segment import (
    FilterGroupSpec,
    SegmentCreate,
    SegmentUpdate,
    SegmentResponse,
    SegmentPreviewResponse,
    AudienceMemberFilterGroupResponse,
    AudienceMemberFilterResponse,
)
from audience_segments.services.segments.filter_schemas import (
    MalformedFilterError,
    validate_filter,
    normalize_config,
)
from audience_segments.services.segments.segment_engine import SegmentEngine


logger = logging.getLogger(__name__)


def _duplicate_name(name: str) -> ValidationError:
    return ValidationError(
        f"Segment with name '{name}' already exists",
        errors=[{"field": "name", "message": "has already been taken", "type": "unique"}],
    )


def _is_duplicate_name(error: IntegrityError) -> bool:
    """uq_segments_seller_name, as reported by PostgreSQL or SQLite."""
    message = str(error.orig)
    return "uq_segments_seller_name" in message or "segments.seller_id, segments.name" in message


class SegmentService:
    """CRUD and preview for a seller's segments."""

    def __init__(self, db: AsyncSession, seller_id: int):
        self.db = db
        self.seller_id = seller_id
        self.engine = SegmentEngine(db)

    # ========================================
    # Reads
    # ========================================

    async def list_segments(self) -> List[Segment]:
        result = await self.db.execute(
            select(Segment)
            .where(Segment.seller_id == self.seller_id)
            .order_by(Segment.created_at.desc(), Segment.id.desc())
        )
        return list(result.scalars().all())

    async def get_segment(self, segment_id: int) -> Segment:
        """Fetch a segment owned by the current seller or raise NotFoundError."""
        result = await self.db.execute(
            select(Segment).where(
                Segment.id == segment_id,
                Segment.seller_id == self.seller_id,
            )
        )
        segment = result.scalar_one_or_none()
        if not segment:
            raise NotFoundError("Segment", segment_id)
        return segment

    async def serialize(self, segment: Segment) -> SegmentResponse:
        """Segment plus filter groups and live audience count."""
        groups = await self.engine.load_groups(segment)
        audience_count = await self.engine.count(segment.seller_id, groups)

        return SegmentResponse(
            id=segment.id,
            name=segment.name,
            description=segment.description,
            audience_type=segment.audience_type or "customer",
            audience_count=audience_count,
            created_at=segment.created_at,
            updated_at=segment.updated_at,
            # No usage tracking yet; last edit stands in
            last_used_at=segment.updated_at,
            audience_member_filter_groups=[
                AudienceMemberFilterGroupResponse(
                    id=group.id,
                    name=group.name,
                    audience_member_filters=[
                        AudienceMemberFilterResponse(
                            id=f.id,
                            filter_type=f.filter_type,
                            config=f.config,
                        )
                        for f in group.filters
                    ],
                )
                for group in groups
            ],
        )

    # ========================================
    # Writes
    # ========================================

    def _validate_filter_groups(self, filter_groups: Sequence[FilterGroupSpec]) -> List[List[Dict[str, Any]]]:
        """
        Validate every filter of every group.

        Returns:
            Normalized configs, one list per group

        Raises:
            ValidationError: with paths like ``filter_groups.0.filters.1.config.date``
        """
        errors = []
        normalized = []
        for group_index, group in enumerate(filter_groups):
            configs = []
            for filter_index, spec in enumerate(group.filters):
                prefix = f"filter_groups.{group_index}.filters.{filter_index}"
                try:
                    configs.append(normalize_config(validate_filter(spec.filter_type, spec.config)))
                except MalformedFilterError as e:
                    errors.extend(
                        {**error, "field": f"{prefix}.{error['field']}"} for error in e.errors
                    )
            normalized.append(configs)

        if errors:
            raise ValidationError("Invalid filter configuration", errors=errors)
        return normalized

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        query = select(Segment.id).where(
            Segment.seller_id == self.seller_id,
            Segment.name == name,
        )
        if exclude_id is not None:
            query = query.where(Segment.id != exclude_id)
        existing = await self.db.execute(query)
        if existing.first() is not None:
            raise _duplicate_name(name)

    def _add_filter_groups(
        self,
        segment: Segment,
        filter_groups: Sequence[FilterGroupSpec],
        configs: List[List[Dict[str, Any]]],
    ) -> None:
        for group, group_configs in zip(filter_groups, configs):
            self.db.add(
                AudienceMemberFilterGroup(
                    seller_id=self.seller_id,
                    name=(group.name or "Filter Group").strip() or "Filter Group",
                    owner_kind=OWNER_SEGMENT,
                    owner_id=segment.id,
                    filters=[
                        AudienceMemberFilter(
                            seller_id=self.seller_id,
                            filter_type=spec.filter_type,
                            config=config,
                        )
                        for spec, config in zip(group.filters, group_configs)
                    ],
                )
            )

    async def _delete_filter_groups(self, segment_id: int) -> None:
        group_ids = select(AudienceMemberFilterGroup.id).where(
            AudienceMemberFilterGroup.owner_kind == OWNER_SEGMENT,
            AudienceMemberFilterGroup.owner_id == segment_id,
        )
        await self.db.execute(
            delete(AudienceMemberFilter).where(AudienceMemberFilter.filter_group_id.in_(group_ids))
        )
        await self.db.execute(
            delete(AudienceMemberFilterGroup).where(
                AudienceMemberFilterGroup.owner_kind == OWNER_SEGMENT,
                AudienceMemberFilterGroup.owner_id == segment_id,
            )
        )

    async def create_segment(self, data: SegmentCreate) -> Segment:
        """
        Create a segment with its filter groups in one transaction.

        Raises:
            ValidationError: duplicate name or malformed filter
        """
        name = data.name.strip()
        if not name:
            raise ValidationError(
                "Name can't be blank",
                errors=[{"field": "name", "message": "can't be blank", "type": "missing"}],
            )

        configs = self._validate_filter_groups(data.filter_groups)
        await self._ensure_unique_name(name)

        segment = Segment(
            seller_id=self.seller_id,
            name=name,
            description=data.description,
            audience_type=data.audience_type.value,
        )
        try:
            self.db.add(segment)
            await self.db.flush()
            self._add_filter_groups(segment, data.filter_groups, configs)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if _is_duplicate_name(e):
                raise _duplicate_name(name) from e
            logger.exception(f"Failed to create segment '{name}' for seller {self.seller_id}")
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create segment '{name}' for seller {self.seller_id}")
            raise

        await self.db.refresh(segment)
        logger.info(f"Created segment {segment.id} with {len(data.filter_groups)} filter groups")
        return segment

    async def update_segment(self, segment_id: int, data: SegmentUpdate) -> Segment:
        """
        Update a segment. Sent filter groups replace all existing ones.

        Raises:
            NotFoundError: segment not owned by the seller
            ValidationError: duplicate name or malformed filter
        """
        segment = await self.get_segment(segment_id)
        update_data = data.model_dump(exclude_unset=True, exclude={"filter_groups"})

        if "name" in update_data:
            if update_data["name"] is None or not update_data["name"].strip():
                raise ValidationError(
                    "Name can't be blank",
                    errors=[{"field": "name", "message": "can't be blank", "type": "missing"}],
                )
            update_data["name"] = update_data["name"].strip()
            await self._ensure_unique_name(update_data["name"], exclude_id=segment.id)

        configs = None
        if data.filter_groups is not None:
            configs = self._validate_filter_groups(data.filter_groups)

        try:
            for field, value in update_data.items():
                if field == "audience_type":
                    if value is None:
                        continue
                    value = value.value
                setattr(segment, field, value)

            if configs is not None:
                await self._delete_filter_groups(segment.id)
                self._add_filter_groups(segment, data.filter_groups, configs)

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if "name" in update_data and _is_duplicate_name(e):
                raise _duplicate_name(update_data["name"]) from e
            logger.exception(f"Failed to update segment {segment_id}")
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to update segment {segment_id}")
            raise

        await self.db.refresh(segment)
        return segment

    async def delete_segment(self, segment_id: int) -> None:
        """Delete a segment, its filter groups and campaign/workflow links."""
        segment = await self.get_segment(segment_id)

        try:
            await self.db.execute(
                delete(InstallmentSegmentJoin).where(InstallmentSegmentJoin.segment_id == segment.id)
            )
            await self.db.execute(
                delete(WorkflowSegmentJoin).where(WorkflowSegmentJoin.segment_id == segment.id)
            )
            await self._delete_filter_groups(segment.id)
            await self.db.delete(segment)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to delete segment {segment_id}")
            raise

        logger.info(f"Deleted segment {segment_id}")

    # ========================================
    # Preview
    # ========================================

    async def preview_draft(self, filter_groups: Sequence[FilterGroupSpec]) -> SegmentPreviewResponse:
        """
        Count and sample an unsaved set of filter groups.

        Groups without filters are skipped. Filters are not validated; a
        malformed one simply matches nothing.
        """
        groups = [group for group in filter_groups if group.filters]
        if not groups:
            return SegmentPreviewResponse(audience_count=0, preview_emails=[])

        result = await self.engine.preview(self.seller_id, groups)
        return SegmentPreviewResponse(
            audience_count=result.audience_count,
            preview_emails=result.preview_emails,
        )
