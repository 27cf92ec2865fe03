"""
Image generation with overload retries and tier fallback.

One logical "produce an image" operation runs this state machine:

    ATTEMPT --ok--> DONE
    ATTEMPT --overload--> OVERLOAD_RETRY(n) (fixed backoff, unchanged parameters)
    OVERLOAD_RETRY(n) --overload, n exhausted, high-quality tier--> FALLBACK (standard tier)
    any state --non-overload failure--> FAILED (status surfaced)
    overload with nothing left to try --> FAILED (retryable overload)

Quota is not touched here; the orchestrator charges only after an image is
confirmed.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from katazuke_api.core.config import Settings
from katazuke_api.core.errors import BackendOverloadedError, BackendRejectedError
from katazuke_api.schemas.cleanup import ModelTier
from katazuke_api.services.vision_backend import BackendImage, BackendResponse, VisionBackend

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class GenerationState(str, Enum):
    attempt = "attempt"
    overload_retry = "overload_retry"
    fallback = "fallback"
    done = "done"
    failed = "failed"


def next_state(
    state: GenerationState,
    response: BackendResponse,
    overload_retries_used: int,
    max_overload_retries: int,
    tier: ModelTier,
) -> GenerationState:
    """Transition after a backend response observed in `state`"""
    if state in (GenerationState.done, GenerationState.failed):
        return state
    if response.ok:
        return GenerationState.done
    if not response.overloaded:
        return GenerationState.failed
    if state == GenerationState.fallback:
        return GenerationState.failed
    if overload_retries_used < max_overload_retries:
        return GenerationState.overload_retry
    if tier == ModelTier.high_quality:
        return GenerationState.fallback
    return GenerationState.failed


@dataclass
class GenerationOutcome:
    """Successful backend response plus which tier actually served it"""

    response: BackendResponse
    requested_tier: ModelTier
    served_tier: ModelTier
    model: str
    used_fallback: bool = False
    calls: int = 1
    trail: List[GenerationState] = field(default_factory=list)


class GenerationClient:
    """Invokes the image backend under the overload retry / fallback policy"""

    def __init__(self, backend: VisionBackend, settings: Settings, sleep: Sleeper = asyncio.sleep):
        self.backend = backend
        self.settings = settings
        self.sleep = sleep

    @property
    def models(self) -> Dict[ModelTier, str]:
        return {
            ModelTier.standard: self.settings.standard_image_model,
            ModelTier.high_quality: self.settings.high_quality_image_model,
        }

    async def _call(self, tier: ModelTier, instruction: str, image: BackendImage, temperature: float) -> BackendResponse:
        model = self.models[tier]
        logger.info(
            f"🎨 Generation request: model={model} temperature={temperature} instruction={len(instruction)} chars"
        )
        return await self.backend.generate_image(
            model=model, instruction=instruction, images=[image], temperature=temperature
        )

    async def generate(
        self,
        instruction: str,
        image_bytes: bytes,
        tier: ModelTier,
        temperature: float,
        fallback_temperature: Optional[float] = None,
    ) -> GenerationOutcome:
        """
        Produce one image response.

        The fallback call runs at `fallback_temperature` when given, otherwise
        at the temperature of the failed request.

        Raises BackendOverloadedError when overload outlasts retries and
        fallback, and BackendRejectedError for any other failure status.
        """
        image = BackendImage(data=image_bytes)
        max_retries = self.settings.overload_retry_attempts

        state = GenerationState.attempt
        trail = [state]
        serving_tier = tier
        retries_used = 0
        calls = 0

        while True:
            response = await self._call(serving_tier, instruction, image, temperature)
            calls += 1
            previous = state
            state = next_state(state, response, retries_used, max_retries, tier)
            trail.append(state)

            if state == GenerationState.done:
                used_fallback = previous == GenerationState.fallback
                if used_fallback:
                    logger.info(f"✅ Fallback succeeded on {self.models[serving_tier]}")
                elif retries_used:
                    logger.info(f"✅ Overload retry {retries_used} succeeded")
                return GenerationOutcome(
                    response=response,
                    requested_tier=tier,
                    served_tier=serving_tier,
                    model=self.models[serving_tier],
                    used_fallback=used_fallback,
                    calls=calls,
                    trail=trail,
                )

            if state == GenerationState.overload_retry:
                retries_used += 1
                logger.warning(
                    f"⚠️ Model overloaded (503), retry {retries_used}/{max_retries} "
                    f"in {self.settings.overload_backoff_seconds}s"
                )
                await self.sleep(self.settings.overload_backoff_seconds)
                continue

            if state == GenerationState.fallback:
                serving_tier = ModelTier.standard
                if fallback_temperature is not None:
                    temperature = fallback_temperature
                logger.warning(f"🔄 Still overloaded, falling back to {self.models[serving_tier]}")
                continue

            # FAILED
            if response.overloaded or previous == GenerationState.fallback:
                logger.error(f"❌ Generation failed after {calls} calls: model overloaded")
                raise BackendOverloadedError()
            logger.error(f"❌ Generation rejected with status {response.status}: {response.error_message}")
            raise BackendRejectedError(response.status, response.error_message)
