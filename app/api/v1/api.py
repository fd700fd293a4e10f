# app/api/v1/api.py

from fastapi import APIRouter
from app.api.v1.endpoints import (
    campaigns,
    health,
    segments,
    suppression,
    tracking,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(segments.router, prefix="/segments", tags=["segments"])
api_router.include_router(campaigns.router, prefix="/campaigns", tags=["campaigns"])
api_router.include_router(suppression.router, prefix="/suppression", tags=["suppression"])
api_router.include_router(tracking.router, tags=["tracking"])
