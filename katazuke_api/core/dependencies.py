"""
FastAPI dependencies resolving the per-app service objects stored on app.state
"""
from fastapi import Depends, Request

from katazuke_api.core.config import Settings
from katazuke_api.core.errors import MissingApiKeyError
from katazuke_api.services.cleanup_orchestrator import CleanupOrchestrator
from katazuke_api.services.room_advice_service import RoomAdviceService
from katazuke_api.services.usage_tracker import UsageTracker


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_usage_tracker(request: Request) -> UsageTracker:
    return request.app.state.usage_tracker


def require_api_key(request: Request) -> None:
    """Reject requests that need the vision backend when no key is configured"""
    if not request.app.state.api_key_configured:
        raise MissingApiKeyError()


def get_orchestrator(request: Request, _: None = Depends(require_api_key)) -> CleanupOrchestrator:
    state = request.app.state
    return CleanupOrchestrator(state.backend, state.usage_tracker, state.settings, sleep=state.sleep)


def get_advice_service(request: Request, _: None = Depends(require_api_key)) -> RoomAdviceService:
    state = request.app.state
    return RoomAdviceService(state.backend, state.settings, sleep=state.sleep)
