"""
Health and usage routes
"""
from fastapi import APIRouter, Depends

from katazuke_api.core.config import Settings
from katazuke_api.core.dependencies import get_settings, get_usage_tracker
from katazuke_api.services.usage_tracker import UsageTracker

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)):
    return {"status": "ok", "version": settings.version}


@router.get("/usage")
async def get_usage(tracker: UsageTracker = Depends(get_usage_tracker)):
    """Today's per-capability quota usage"""
    return {"success": True, "usage": tracker.status()}
