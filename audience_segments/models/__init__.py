from audience_segments.models.audience_member import AudienceMember
from audience_segments.models.segment import (
    Segment,
    AudienceMemberFilterGroup,
    AudienceMemberFilter,
    InstallmentSegmentJoin,
    WorkflowSegmentJoin,
)

__all__ = [
    "AudienceMember",
    "Segment",
    "AudienceMemberFilterGroup",
    "AudienceMemberFilter",
    "InstallmentSegmentJoin",
    "WorkflowSegmentJoin",
]
