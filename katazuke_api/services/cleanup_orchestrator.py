"""
Cleanup preview pipeline: ANALYZE -> GENERATE -> [INSPECT -> RETRY?] -> RESPOND

Quota is charged only for confirmed work: a generation counts once an image
was extracted, an inspection once a verdict parsed, a retry once it produced
an image. Charges that already happened stand even if a later step fails.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from katazuke_api.core.config import Settings
from katazuke_api.core.errors import (
    BackendOverloadedError,
    BackendRejectedError,
    ClientInputError,
    NoImageProducedError,
    QuotaExceededError,
)
from katazuke_api.middleware.logging_middleware import get_logger
from katazuke_api.schemas.cleanup import EditMode, ModelTier, QuotaCapability
from katazuke_api.services.generation_client import GenerationClient, GenerationOutcome, Sleeper
from katazuke_api.services.image_utils import decode_room_image, encode_base64, to_data_uri
from katazuke_api.services.inspector import InspectionVerdict, Inspector
from katazuke_api.services.instruction_composer import InstructionComposer
from katazuke_api.services.region_extractor import RegionExtractor, RoomAnalysis, summarize_regions
from katazuke_api.services.usage_tracker import UsageTracker
from katazuke_api.services.vision_backend import BackendImage, VisionBackend

logger = get_logger(__name__)

DEFAULT_FIX_INSTRUCTION = "The previous result did not pass quality inspection."


@dataclass
class GenerationAttempt:
    """Parameters of one generation attempt"""

    attempt_number: int
    temperature: float
    tier: ModelTier
    instruction_text: str


@dataclass
class CleanupResult:
    """Everything the edit endpoint reports back"""

    image: BackendImage
    model: str
    requested_model: str
    used_fallback: bool
    analysis: RoomAnalysis
    attempts: List[GenerationAttempt] = field(default_factory=list)
    verdict: Optional[InspectionVerdict] = None
    did_retry: bool = False

    def to_response(self, usage: Dict[str, Dict[str, int]]) -> Dict[str, Any]:
        image_base64 = encode_base64(self.image.data)
        first = self.attempts[0]
        return {
            "success": True,
            "imageBase64": image_base64,
            "imageUrl": to_data_uri(image_base64),
            "model": self.model,
            "usedFallback": self.used_fallback,
            "fallbackReason": (
                f"{self.requested_model} was overloaded, so {self.model} generated this image"
                if self.used_fallback
                else None
            ),
            "usage": usage,
            "debug": {
                "roomType": self.analysis.room.value,
                "removeItemCount": len(self.analysis.removal_targets),
                "protectedBoundariesCount": len(self.analysis.keep_regions),
                "criticalAppliancesCount": len(self.analysis.critical_regions),
                "criticalAppliances": summarize_regions(self.analysis.critical_regions),
                "analysisDegraded": self.analysis.degraded,
                "temperature": first.temperature,
                "retryTemperature": self.attempts[1].temperature if self.did_retry else None,
                "inspectionResult": self.verdict.to_dict() if self.verdict else {"message": "inspection not run"},
                "didRetry": self.did_retry,
                "usedFallbackModel": self.used_fallback,
                "originalModelRequested": self.requested_model,
                "actualModelUsed": self.model,
            },
        }


class CleanupOrchestrator:
    """Runs one edit request end to end"""

    def __init__(
        self,
        backend: VisionBackend,
        usage_tracker: UsageTracker,
        settings: Settings,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.settings = settings
        self.usage_tracker = usage_tracker
        self.extractor = RegionExtractor(backend, settings)
        self.composer = InstructionComposer()
        self.generator = GenerationClient(backend, settings, sleep=sleep)
        self.inspector = Inspector(backend, settings)

    def temperature_for(self, tier: ModelTier, mode: EditMode, is_retry: bool = False) -> float:
        """Higher tiers run cooler; a retry always runs at the conservative retry temperature"""
        if is_retry:
            return self.settings.retry_temperature
        strong = mode == EditMode.strong
        if tier == ModelTier.high_quality:
            return self.settings.high_quality_strong_temperature if strong else self.settings.high_quality_temperature
        return self.settings.standard_strong_temperature if strong else self.settings.standard_temperature

    def fallback_temperature_for(self, mode: EditMode) -> float:
        """The standard-tier fallback of a first attempt runs at standard-tier heat"""
        if mode == EditMode.strong:
            return self.settings.fallback_strong_temperature
        return self.settings.fallback_temperature

    def _admit(self, tier: ModelTier) -> QuotaCapability:
        capability = QuotaCapability.for_tier(tier)
        if not self.usage_tracker.can_use(capability):
            mode_name = "high-quality mode" if tier == ModelTier.high_quality else "standard mode"
            raise QuotaExceededError(
                f"Today's usage limit for {mode_name} has been reached",
                usage=self.usage_tracker.status(),
                suggestion="Try standard mode" if tier == ModelTier.high_quality else "Please try again tomorrow",
            )
        return capability

    async def _inspect(self, original: bytes, generated: BackendImage, analysis: RoomAnalysis):
        if not self.usage_tracker.can_use(QuotaCapability.inspection):
            logger.warning("⚠️ Inspection quota exhausted, skipping inspection")
            return None
        verdict = await self.inspector.inspect(original, generated, analysis.room)
        if verdict is not None:
            self.usage_tracker.increment(QuotaCapability.inspection)
        return verdict

    async def run(self, image_base64: Optional[str], edit_type: Optional[str], high_quality: bool) -> CleanupResult:
        if not image_base64:
            raise ClientInputError("Image data is required")
        original = decode_room_image(image_base64)

        tier = ModelTier.high_quality if high_quality else ModelTier.standard
        capability = self._admit(tier)
        mode = EditMode.from_edit_type(edit_type)
        requested_model = self.generator.models[tier]

        # ANALYZE
        analysis = await self.extractor.analyze(original)
        regions = analysis.protected_regions

        # GENERATE (attempt 1)
        first = GenerationAttempt(
            attempt_number=1,
            temperature=self.temperature_for(tier, mode),
            tier=tier,
            instruction_text=self.composer.compose(mode, analysis.removal_targets, analysis.room, regions).render(),
        )
        logger.info(f"=== Image edit attempt 1: mode={mode.value} tier={tier.value} temp={first.temperature} ===")
        outcome = await self.generator.generate(
            first.instruction_text,
            original,
            tier,
            first.temperature,
            fallback_temperature=self.fallback_temperature_for(mode),
        )
        if outcome.response.image is None:
            logger.error("❌ No image in generation response")
            raise NoImageProducedError(outcome.response.text)

        self.usage_tracker.increment(capability)

        result = CleanupResult(
            image=outcome.response.image,
            model=outcome.model,
            requested_model=requested_model,
            used_fallback=outcome.used_fallback,
            analysis=analysis,
            attempts=[first],
        )

        # INSPECT
        result.verdict = await self._inspect(original, result.image, analysis)
        if result.verdict is None or result.verdict.passed:
            return result

        # RETRY (attempt 2, at most once)
        if not self.usage_tracker.can_use(QuotaCapability.retry):
            logger.warning("⚠️ Retry quota exhausted, returning first image")
            return result

        fix_instruction = result.verdict.fix_instruction or result.verdict.reason or DEFAULT_FIX_INSTRUCTION
        second = GenerationAttempt(
            attempt_number=2,
            temperature=self.temperature_for(tier, mode, is_retry=True),
            tier=tier,
            instruction_text=self.composer.compose(
                mode, analysis.removal_targets, analysis.room, regions, fix_instruction=fix_instruction
            ).render(),
        )
        logger.info(f"🔄 Retrying after FAIL: {result.verdict.reason}")

        retry_outcome = await self._retry(second, original, tier)
        if retry_outcome is None or retry_outcome.response.image is None:
            logger.warning("⚠️ Retry produced no image, keeping the first image")
            return result

        self.usage_tracker.increment(QuotaCapability.retry)
        self.usage_tracker.increment(capability)

        result.attempts.append(second)
        result.image = retry_outcome.response.image
        result.model = retry_outcome.model
        result.used_fallback = retry_outcome.used_fallback
        result.did_retry = True

        retry_verdict = await self._inspect(original, result.image, analysis)
        if retry_verdict is not None:
            result.verdict = retry_verdict
            logger.info(f"✅ Re-inspection after retry: {retry_verdict.verdict.value}")

        return result

    async def _retry(self, attempt: GenerationAttempt, original: bytes, tier: ModelTier) -> Optional[GenerationOutcome]:
        try:
            return await self.generator.generate(attempt.instruction_text, original, tier, attempt.temperature)
        except (BackendOverloadedError, BackendRejectedError) as e:
            logger.warning(f"⚠️ Retry generation failed ({e.status_code}: {e.message}), keeping the first image")
            return None
