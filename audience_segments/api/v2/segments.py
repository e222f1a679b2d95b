"""
Segment API Endpoints

Includes:
- Standard CRUD operations for a seller's segments
- Draft preview (count + sample emails) before saving
- AI generation of filter groups from a free-text description
- Conversion between the builder form's filters and stored filters
"""

import logging

from fastapi import APIRouter, status

from audience_segments.api.deps import DbSession, CurrentSeller, SegmentGenerator
from audience_segments.exceptions import (
    AIGenerationError,
    ExternalServiceError,
    ValidationError,
)
from audience_segments.schemas.segment import (
    SegmentCreate,
    SegmentUpdate,
    SegmentResponse,
    SegmentListResponse,
    SegmentPreviewRequest,
    SegmentPreviewResponse,
    SegmentGenerateRequest,
    SegmentGenerateResponse,
    GeneratedFilterGroup,
)
from audience_segments.schemas.filter_conversion import (
    FilterNormalizeRequest,
    FilterNormalizeResponse,
    FilterUIRequest,
    FilterUIResponse,
)
from audience_segments.services.segments.segment_service import SegmentService
from audience_segments.services.segments.segment_ai_generator import GenerationErrorKind
from audience_segments.services.segments.filter_conversion import ui_groups_to_api, api_groups_to_ui

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Draft preview & AI generation
# ============================================


@router.post("/preview", response_model=SegmentPreviewResponse)
async def preview_segment(
    request: SegmentPreviewRequest,
    db: DbSession,
    seller_id: CurrentSeller,
):
    """Audience count and first emails for unsaved filter groups."""
    service = SegmentService(db, seller_id)
    return await service.preview_draft(request.filter_groups)


@router.post("/generate", response_model=SegmentGenerateResponse)
async def generate_segment(
    request: SegmentGenerateRequest,
    seller_id: CurrentSeller,
    generator: SegmentGenerator,
):
    """
    Generate filter groups from a plain-language description.

    Nothing is saved: the client reviews the groups and then creates the
    segment through ``POST /``.
    """
    result = await generator.generate(request.description)

    if not result.success:
        if result.error_kind == GenerationErrorKind.DESCRIPTION_REQUIRED:
            raise ValidationError(
                result.error,
                errors=[{"field": "description", "message": "can't be blank", "type": "missing"}],
            )
        if result.error_kind == GenerationErrorKind.SERVICE_UNAVAILABLE:
            raise ExternalServiceError(result.error)
        raise AIGenerationError(result.error)

    logger.info(f"Generated {len(result.filter_groups)} filter groups for seller {seller_id}")
    return SegmentGenerateResponse(
        success=True,
        filter_groups=[GeneratedFilterGroup(**group) for group in result.filter_groups],
        suggested_name=result.suggested_name,
    )


# ============================================
# Form <-> stored filter conversion
# ============================================


@router.post("/filters/normalize", response_model=FilterNormalizeResponse)
async def normalize_filters(
    request: FilterNormalizeRequest,
    seller_id: CurrentSeller,
):
    """Builder-form filters to stored filters (dollars to cents, operator names)."""
    return FilterNormalizeResponse(filter_groups=ui_groups_to_api(request.filter_groups))


@router.post("/filters/ui", response_model=FilterUIResponse)
async def filters_for_ui(
    request: FilterUIRequest,
    seller_id: CurrentSeller,
):
    """Stored filters to builder-form filters."""
    return FilterUIResponse(filter_groups=api_groups_to_ui(request.filter_groups))


# ============================================
# CRUD
# ============================================


@router.get("/", response_model=SegmentListResponse)
async def list_segments(
    db: DbSession,
    seller_id: CurrentSeller,
):
    """List the seller's segments with audience counts."""
    service = SegmentService(db, seller_id)
    segments = await service.list_segments()

    return SegmentListResponse(
        segments=[await service.serialize(segment) for segment in segments],
        total=len(segments),
    )


@router.get("/{segment_id}", response_model=SegmentResponse)
async def get_segment(
    segment_id: int,
    db: DbSession,
    seller_id: CurrentSeller,
):
    """Get a specific segment."""
    service = SegmentService(db, seller_id)
    segment = await service.get_segment(segment_id)
    return await service.serialize(segment)


@router.get("/{segment_id}/preview", response_model=SegmentPreviewResponse)
async def preview_saved_segment(
    segment_id: int,
    db: DbSession,
    seller_id: CurrentSeller,
):
    """Audience count and first emails for a saved segment."""
    service = SegmentService(db, seller_id)
    segment = await service.get_segment(segment_id)
    preview = await service.engine.preview_segment(segment)
    return SegmentPreviewResponse(
        audience_count=preview.audience_count,
        preview_emails=preview.preview_emails,
    )


@router.post("/", response_model=SegmentResponse, status_code=status.HTTP_201_CREATED)
async def create_segment(
    data: SegmentCreate,
    db: DbSession,
    seller_id: CurrentSeller,
):
    """Create a segment together with its filter groups."""
    service = SegmentService(db, seller_id)
    segment = await service.create_segment(data)
    return await service.serialize(segment)


@router.put("/{segment_id}", response_model=SegmentResponse)
async def update_segment(
    segment_id: int,
    data: SegmentUpdate,
    db: DbSession,
    seller_id: CurrentSeller,
):
    """Update a segment. Sent filter groups replace the existing ones."""
    service = SegmentService(db, seller_id)
    segment = await service.update_segment(segment_id, data)
    return await service.serialize(segment)


@router.delete("/{segment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_segment(
    segment_id: int,
    db: DbSession,
    seller_id: CurrentSeller,
):
    """Delete a segment, its filter groups and its campaign/workflow links."""
    service = SegmentService(db, seller_id)
    await service.delete_segment(segment_id)
