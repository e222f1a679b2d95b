"""
Audience Segment Services

Filter evaluation, segment persistence, AI generation and form transcoding.
"""

from audience_segments.services.segments.segment_engine import SegmentEngine
from audience_segments.services.segments.segment_service import SegmentService
from audience_segments.services.segments.segment_ai_generator import SegmentAIGenerator

__all__ = [
    "SegmentEngine",
    "SegmentService",
    "SegmentAIGenerator",
]
