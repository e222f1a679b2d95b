from fastapi import APIRouter
from audience_segments.api.v2 import segments

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(segments.router, prefix="/segments", tags=["segments"])
