from audience_segments.schemas.segment import (
    AudienceType,
    FilterType,
    FilterSpec,
    FilterGroupSpec,
    SegmentCreate,
    SegmentUpdate,
    SegmentResponse,
    SegmentListResponse,
    SegmentPreviewRequest,
    SegmentPreviewResponse,
    SegmentGenerateRequest,
    SegmentGenerateResponse,
)
