"""
Self-critic inspection of a generated cleanup image.

The backend compares the original and generated images and scores three
dimensions 0-10. The verdict is recomputed locally: PASS requires every
sub-score to reach the configured threshold. Any failed call or unparsable
report yields None, meaning inspection is unavailable for this attempt.
"""
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from katazuke_api.core.config import Settings
from katazuke_api.schemas.cleanup import RoomClassification
from katazuke_api.services.json_parsing import load_json_object
from katazuke_api.services.vision_backend import BackendImage, VisionBackend

logger = logging.getLogger(__name__)

INSPECTION_PROMPT = """You are a STRICT quality control inspector for AI-generated cleaned room images.

Compare these TWO images:
1. ORIGINAL image (the messy room)
2. GENERATED image (the cleaned version)

Room type: {room}

Check the following criteria STRICTLY:

[CRITERION 1: STRUCTURAL INTEGRITY]
- Are all major furniture items (tables, chairs, sofas, beds, shelves) still in the SAME position?
- Are walls, windows, and doors preserved correctly?
- Is the camera angle and perspective EXACTLY the same?

[CRITERION 2: APPLIANCE PRESERVATION - MOST CRITICAL]
THIS IS THE MOST IMPORTANT CHECK. Score 0 if ANY appliance is removed or significantly altered.
Kitchen appliances to check:
- IH cooktop / stove / gas range
- Sink and faucet
- Refrigerator
- Microwave
- Range hood / exhaust fan
- Dishwasher
- Rice cooker, toaster, coffee maker

Other appliances to check:
- TV, monitors, computers
- Air conditioner units
- Washing machine, dryer

FAIL IMMEDIATELY if:
- Any appliance visible in ORIGINAL is missing in GENERATED
- Any appliance has changed shape, color, or position significantly
- Appliance controls/buttons have disappeared

[CRITERION 3: CLEANUP EFFECTIVENESS - BE EXTREMELY STRICT]
Score 0-3 if papers, dishes, clothes, toys or loose items are still visible, or surfaces are not at least 80% empty.
Score 4-6 if some clutter was removed but significant items remain.
Score 7-8 if most visible clutter is gone and the transformation is noticeable.
Score 9-10 ONLY if the transformation is SHOCKING and all surfaces are 90%+ empty.

BE HARSH. If in doubt, score LOWER. A score of 10 should be rare.

[OUTPUT FORMAT - JSON only]
{{
  "verdict": "PASS or FAIL",
  "structural_integrity": {{"score": 0-10, "issues": []}},
  "appliance_preservation": {{"score": 0-10, "missing_appliances": [], "issues": []}},
  "cleanup_effectiveness": {{"score": 0-10, "issues": []}},
  "overall_reason": "brief explanation of the verdict",
  "fix_instruction": "if FAIL, specific instructions to fix the issue in the next generation"
}}

Verdict guide:
- PASS: ALL three scores >= {threshold}
- FAIL: Any score < {threshold}"""


class Verdict(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class _CriterionReport(BaseModel):
    score: float = Field(ge=0, le=10)
    issues: List[str] = Field(default_factory=list)


class _ApplianceReport(_CriterionReport):
    missing_appliances: List[str] = Field(default_factory=list)


class InspectionReport(BaseModel):
    """Raw report as returned by the inspection model"""

    verdict: Optional[str] = None
    structural_integrity: _CriterionReport
    appliance_preservation: _ApplianceReport
    cleanup_effectiveness: _CriterionReport
    overall_reason: str = ""
    fix_instruction: Optional[str] = None


@dataclass
class InspectionVerdict:
    """Structured PASS/FAIL judgment with sub-scores"""

    verdict: Verdict
    structural_score: int
    appliance_score: int
    cleanup_score: int
    missing_items: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    reason: str = ""
    fix_instruction: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.verdict == Verdict.PASS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["verdict"] = self.verdict.value
        return data


def decide_verdict(scores: List[int], threshold: int) -> Verdict:
    """PASS only if every sub-score reaches the threshold"""
    return Verdict.PASS if all(score >= threshold for score in scores) else Verdict.FAIL


def verdict_from_report(report: InspectionReport, threshold: int) -> InspectionVerdict:
    structural = int(report.structural_integrity.score)
    appliance = int(report.appliance_preservation.score)
    cleanup = int(report.cleanup_effectiveness.score)
    verdict = decide_verdict([structural, appliance, cleanup], threshold)

    if report.verdict and report.verdict.strip().upper() != verdict.value:
        logger.info(f"Inspector said {report.verdict}, scores say {verdict.value}; using scores")

    issues = (
        report.structural_integrity.issues
        + report.appliance_preservation.issues
        + report.cleanup_effectiveness.issues
    )
    return InspectionVerdict(
        verdict=verdict,
        structural_score=structural,
        appliance_score=appliance,
        cleanup_score=cleanup,
        missing_items=list(report.appliance_preservation.missing_appliances),
        issues=issues,
        reason=report.overall_reason,
        fix_instruction=report.fix_instruction or None,
    )


def parse_inspection(text: str, threshold: int) -> Optional[InspectionVerdict]:
    payload = load_json_object(text)
    if payload is None:
        return None
    try:
        report = InspectionReport.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"⚠️ Inspection report has unexpected structure: {e.error_count()} errors")
        return None
    return verdict_from_report(report, threshold)


class Inspector:
    """Compares original and generated images through the backend"""

    def __init__(self, backend: VisionBackend, settings: Settings):
        self.backend = backend
        self.settings = settings

    async def inspect(
        self, original_bytes: bytes, generated: BackendImage, room: RoomClassification
    ) -> Optional[InspectionVerdict]:
        threshold = self.settings.inspection_pass_threshold
        prompt = INSPECTION_PROMPT.format(room=room.value, threshold=threshold)

        try:
            response = await self.backend.generate_json(
                model=self.settings.analysis_model,
                prompt=prompt,
                images=[BackendImage(data=original_bytes), generated],
                temperature=self.settings.inspection_temperature,
                max_output_tokens=1024,
            )
        except Exception as e:
            logger.warning(f"⚠️ Inspection error: {e}")
            return None

        if not response.ok:
            logger.warning(f"⚠️ Inspection call failed ({response.status})")
            return None

        verdict = parse_inspection(response.text, threshold)
        if verdict is None:
            logger.warning("⚠️ Inspection result could not be parsed")
            return None

        logger.info(
            f"🔍 Inspection {verdict.verdict.value}: structure={verdict.structural_score} "
            f"appliances={verdict.appliance_score} cleanup={verdict.cleanup_score} | {verdict.reason}"
        )
        if verdict.missing_items:
            logger.info(f"⚠️ Missing appliances: {', '.join(verdict.missing_items)}")
        if not verdict.passed and verdict.fix_instruction:
            logger.info(f"❌ Fix instruction: {verdict.fix_instruction}")
        return verdict
