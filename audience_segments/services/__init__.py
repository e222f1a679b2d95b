# Services module
from audience_segments.services.ai_gateway import AIGateway, ai_gateway
from audience_segments.services.segments import (
    SegmentEngine,
    SegmentService,
    SegmentAIGenerator,
)

__all__ = [
    "AIGateway",
    "ai_gateway",
    # Segment services
    "SegmentEngine",
    "SegmentService",
    "SegmentAIGenerator",
]
