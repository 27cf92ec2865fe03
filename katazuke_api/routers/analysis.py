"""
Room analysis API routes
"""
from fastapi import APIRouter, Depends

from katazuke_api.core.dependencies import get_advice_service
from katazuke_api.schemas.cleanup import ImagePayload
from katazuke_api.services.room_advice_service import RoomAdviceService

router = APIRouter(tags=["analysis"])


@router.post("/analyze")
async def analyze_room(payload: ImagePayload, service: RoomAdviceService = Depends(get_advice_service)):
    """Zone the room and propose the quickest-win area with three tasks"""
    return await service.strategic_analysis(payload.image_base64)


@router.post("/analyze-cleanup-spots")
async def analyze_cleanup_spots(payload: ImagePayload, service: RoomAdviceService = Depends(get_advice_service)):
    """Break the room down into 30-second to 2-minute micro tasks"""
    return await service.cleanup_spots(payload.image_base64)
