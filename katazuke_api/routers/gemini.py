"""
Image editing API routes: cleanup preview, inpainting and item-address chat
"""
import logging

from fastapi import APIRouter, Depends

from katazuke_api.core.dependencies import get_advice_service, get_orchestrator
from katazuke_api.schemas.cleanup import ChatAddressRequest, EditImageRequest, InpaintRequest
from katazuke_api.services.cleanup_orchestrator import CleanupOrchestrator
from katazuke_api.services.room_advice_service import RoomAdviceService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["gemini"])

LEGACY_EDIT_TYPE = "future_vision"


async def _run_edit(request: EditImageRequest, orchestrator: CleanupOrchestrator):
    result = await orchestrator.run(request.image_base64, request.edit_type, request.high_quality)
    response = result.to_response(orchestrator.usage_tracker.status())
    logger.info(
        f"✅ Edit complete: model={result.model} fallback={result.used_fallback} "
        f"retry={result.did_retry} verdict={result.verdict.verdict.value if result.verdict else 'none'}"
    )
    return response


@router.post("/gemini/edit-image")
async def edit_image(request: EditImageRequest, orchestrator: CleanupOrchestrator = Depends(get_orchestrator)):
    """
    Generate a decluttered preview of the room.

    Analysis, generation, inspection and at most one corrective retry run in
    sequence; the response carries the image plus quota usage and debug detail.
    """
    return await _run_edit(request, orchestrator)


@router.post("/generate-image")
async def generate_image_legacy(
    request: EditImageRequest, orchestrator: CleanupOrchestrator = Depends(get_orchestrator)
):
    """Backward-compatible alias of /gemini/edit-image that always runs the standard mode"""
    request.edit_type = LEGACY_EDIT_TYPE
    return await _run_edit(request, orchestrator)


@router.post("/gemini/inpaint")
async def inpaint(request: InpaintRequest, service: RoomAdviceService = Depends(get_advice_service)):
    return await service.inpaint(request.image_base64, request.mask_base64)


@router.post("/chat-address")
async def chat_address(request: ChatAddressRequest, service: RoomAdviceService = Depends(get_advice_service)):
    """Chat about where a homeless item should live"""
    return await service.chat_address(
        item_name=request.item_name,
        category=request.category,
        image_base64=request.image_base64,
        messages=request.messages,
    )
