from fastapi import APIRouter
from app.api.v2 import (
    audience,
    segments,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(segments.router, prefix="/segments", tags=["segments"])
api_router.include_router(audience.router, prefix="/audience", tags=["audience"])
api_router.include_router(audience.campaigns_router, prefix="/campaigns", tags=["campaigns"])
