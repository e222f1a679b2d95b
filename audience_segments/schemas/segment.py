"""
Segment Schemas

Wire shapes for segments, filter groups and filters, plus the filter type
and operator vocabularies shared by validation, evaluation and AI generation.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional, Any
from enum import Enum


class AudienceType(str, Enum):
    CUSTOMER = "customer"
    SUBSCRIBER = "subscriber"
    AFFILIATE = "affiliate"
    EVERYONE = "everyone"


class FilterType(str, Enum):
    DATE = "date"
    PRODUCT = "product"
    PAYMENT = "payment"
    LOCATION = "location"
    EMAIL_ENGAGEMENT = "email_engagement"


class DateOperator(str, Enum):
    IS_AFTER = "is_after"
    IS_BEFORE = "is_before"
    BETWEEN = "between"


class ProductOperator(str, Enum):
    HAS_BOUGHT = "has_bought"
    HAS_NOT_BOUGHT = "has_not_bought"


class PaymentOperator(str, Enum):
    IS_MORE_THAN = "is_more_than"
    IS_LESS_THAN = "is_less_than"
    IS_BETWEEN = "is_between"


class LocationOperator(str, Enum):
    IS = "is"
    IS_NOT = "is_not"


class EmailEngagementOperator(str, Enum):
    IN_LAST = "in_last"
    NOT_IN_LAST = "not_in_last"


# ============================================
# Filter group specs (request side)
# ============================================


class FilterSpec(BaseModel):
    """A single filter as submitted by a client.

    ``filter_type`` stays a plain string here: drafts with unknown types are
    previewable (they match nothing), saved segments are validated by the
    segment service with field-level errors.
    """
    filter_type: str = Field(..., description="date, product, payment, location or email_engagement")
    config: dict[str, Any] = Field(default_factory=dict)


class FilterGroupSpec(BaseModel):
    """AND-combination of filters."""
    name: str = Field("Filter Group", max_length=255)
    filters: list[FilterSpec] = Field(default_factory=list)


class SegmentCreate(BaseModel):
    """Schema for creating a segment."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    audience_type: AudienceType = AudienceType.CUSTOMER
    filter_groups: list[FilterGroupSpec] = Field(default_factory=list)


class SegmentUpdate(BaseModel):
    """Schema for updating a segment.

    When ``filter_groups`` is sent (even as an empty list) it replaces every
    existing group and filter of the segment.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    audience_type: Optional[AudienceType] = None
    filter_groups: Optional[list[FilterGroupSpec]] = None


class SegmentPreviewRequest(BaseModel):
    """Unsaved draft to preview."""
    filter_groups: list[FilterGroupSpec] = Field(default_factory=list)


class SegmentGenerateRequest(BaseModel):
    """Free-text description for AI generation."""
    description: str = Field(..., max_length=2000)


# ============================================
# Responses
# ============================================


class AudienceMemberFilterResponse(BaseModel):
    id: int
    filter_type: str
    config: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)


class AudienceMemberFilterGroupResponse(BaseModel):
    id: int
    name: str
    audience_member_filters: list[AudienceMemberFilterResponse] = Field(default_factory=list)


class SegmentResponse(BaseModel):
    """Segment with its filter groups and current audience size."""
    id: int
    name: str
    description: Optional[str] = None
    audience_type: str
    audience_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    audience_member_filter_groups: list[AudienceMemberFilterGroupResponse] = Field(default_factory=list)


class SegmentListResponse(BaseModel):
    segments: list[SegmentResponse]
    total: int


class SegmentPreviewResponse(BaseModel):
    audience_count: int
    preview_emails: list[str]


class GeneratedFilterGroup(BaseModel):
    name: str
    filters: list[FilterSpec]


class SegmentGenerateResponse(BaseModel):
    success: bool = True
    filter_groups: list[GeneratedFilterGroup]
    suggested_name: str
