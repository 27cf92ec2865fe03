"""
Room analysis: protected regions, removal targets and room classification.

The analysis call never fails the pipeline. A failed call, an exception or
unparsable output all degrade to the default removal list with the room
classified as a kitchen, because generation can proceed without a perfect
analysis.
"""
import logging
import numbers
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from katazuke_api.core.config import Settings
from katazuke_api.schemas.cleanup import RoomClassification
from katazuke_api.services.json_parsing import load_json_object
from katazuke_api.services.vision_backend import BackendImage, VisionBackend

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8

# Generic clutter categories used when analysis is unavailable
DEFAULT_REMOVAL_ITEMS = [
    "papers and documents on the counter",
    "small items and knick-knacks on the counter",
    "scattered dishes and cups",
    "trash, empty boxes and wrapping",
    "items on the floor",
]

ITEM_FIELD = re.compile(r'"item"\s*:\s*"([^"]+)"')

ANALYSIS_PROMPT = """You are a professional room organizer AI with object detection capabilities.

[CRITICAL TASK - HIGHEST PRIORITY]
Detect and provide PRECISE bounding box coordinates for ALL kitchen appliances and fixed installations.
This is the MOST IMPORTANT part of your analysis. The coordinates will be used to PROTECT these objects.

[MANDATORY DETECTION TARGETS - Must detect with bbox]
1. IH cooktop / Gas stove - BLACK or SILVER cooking surface
2. Kitchen sink and faucet
3. Range hood / Ventilation fan
4. Refrigerator
5. Microwave / Oven
6. Rice cooker
7. Large furniture (tables, chairs, beds, sofas)

[BOUNDING BOX FORMAT]
For EACH item above, provide coordinates as [ymin, xmin, ymax, xmax] where:
- Values are normalized from 0.0 to 1.0
- ymin = top edge, ymax = bottom edge
- xmin = left edge, xmax = right edge
- Be GENEROUS with the bounding box - include some margin around the object

[REMOVE - cleanup targets]
These items should be cleaned up:
- Papers: scattered documents, magazines, newspapers, flyers
- Small items: stationery, toys, knick-knacks, accessories
- Clothing: discarded clothes, bags, hats, socks
- Dishes and drinks: cups, plates, plastic bottles, empty cans, leftovers
- Trash: tissues, wrapping paper, empty boxes, plastic bags
- Cables: cords left lying around

[OUTPUT FORMAT - JSON ONLY]
{
  "critical_appliances": [
    {"item": "IH cooktop", "type": "cooktop", "bbox": [ymin, xmin, ymax, xmax], "confidence": 0.0-1.0}
  ],
  "keep_items": [
    {"item": "item name", "location": "where", "reason": "why it stays", "bbox": [ymin, xmin, ymax, xmax]}
  ],
  "remove_items": [
    {"item": "item name", "location": "where", "reason": "why it goes"}
  ],
  "room_type": "kitchen/bedroom/living/office/other",
  "confidence": 0.0-1.0
}

IMPORTANT: If you detect ANY kitchen appliance (especially cooktop/stove), it MUST be in "critical_appliances" with accurate bbox."""


@dataclass
class ProtectedRegion:
    """A normalized [ymin, xmin, ymax, xmax] zone the generator must not alter"""

    label: str
    box: Tuple[float, float, float, float]
    confidence: float = DEFAULT_CONFIDENCE
    kind: str = "appliance"

    def to_dict(self) -> Dict[str, Any]:
        return {"item": self.label, "bbox": list(self.box)}


@dataclass
class RemovalTarget:
    """An item and where it was seen"""

    label: str
    location: str = ""

    def describe(self) -> str:
        return f"{self.location} {self.label}".strip()


@dataclass
class RoomAnalysis:
    """Structured result of the analysis step"""

    critical_regions: List[ProtectedRegion] = field(default_factory=list)
    keep_regions: List[ProtectedRegion] = field(default_factory=list)
    removal_targets: List[RemovalTarget] = field(default_factory=list)
    room: RoomClassification = RoomClassification.general
    degraded: bool = False

    @property
    def protected_regions(self) -> List[ProtectedRegion]:
        """Critical appliances first, then the other keep-items"""
        return self.critical_regions + self.keep_regions


def default_analysis() -> RoomAnalysis:
    return RoomAnalysis(
        removal_targets=[RemovalTarget(label=item) for item in DEFAULT_REMOVAL_ITEMS],
        room=RoomClassification.kitchen,
        degraded=True,
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def parse_box(value: Any) -> Optional[Tuple[float, float, float, float]]:
    """Accept a 4-element numeric sequence; values on Gemini's 0-1000 grid are rescaled"""
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return None
    if not all(_is_number(v) for v in value):
        return None

    coords = [float(v) for v in value]
    if max(coords) > 1.0 and max(coords) <= 1000.0:
        coords = [v / 1000.0 for v in coords]
    ymin, xmin, ymax, xmax = (min(max(v, 0.0), 1.0) for v in coords)
    return (ymin, xmin, ymax, xmax)


def parse_confidence(value: Any) -> float:
    if _is_number(value) and 0.0 <= float(value) <= 1.0:
        return float(value)
    return DEFAULT_CONFIDENCE


def _parse_regions(entries: Any, default_kind: str) -> List[ProtectedRegion]:
    if not isinstance(entries, list):
        return []

    regions = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        box = parse_box(entry.get("bbox"))
        if box is None:
            continue
        label = entry.get("item") or entry.get("type") or "protected item"
        regions.append(
            ProtectedRegion(
                label=str(label),
                box=box,
                confidence=parse_confidence(entry.get("confidence")),
                kind=str(entry.get("type") or default_kind),
            )
        )
    return regions


def _parse_removal_targets(entries: Any) -> List[RemovalTarget]:
    if not isinstance(entries, list):
        return []

    targets = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("item"):
            continue
        targets.append(RemovalTarget(label=str(entry["item"]), location=str(entry.get("location") or "")))
    return targets


def extract_from_payload(payload: Dict[str, Any]) -> RoomAnalysis:
    """Turn a parsed analysis object into regions, targets and room class"""
    return RoomAnalysis(
        critical_regions=_parse_regions(payload.get("critical_appliances"), default_kind="appliance"),
        keep_regions=_parse_regions(payload.get("keep_items"), default_kind="furniture"),
        removal_targets=_parse_removal_targets(payload.get("remove_items")),
        room=RoomClassification.parse(payload.get("room_type")),
    )


def extract_from_text(text: str) -> RoomAnalysis:
    """
    Parse raw analysis text.

    Unparsable text is scanned for "item" fields first; only when none are
    found does the default removal list apply.
    """
    payload = load_json_object(text)
    if payload is not None:
        return extract_from_payload(payload)

    fragments = ITEM_FIELD.findall(text or "")
    if fragments:
        logger.warning(f"Analysis JSON unparsable, recovered {len(fragments)} item fragments from text")
        return RoomAnalysis(
            removal_targets=[RemovalTarget(label=fragment) for fragment in fragments],
            room=RoomClassification.kitchen,
            degraded=True,
        )

    logger.warning("Analysis JSON unparsable and no item fragments found, using default removal list")
    return default_analysis()


class RegionExtractor:
    """Runs the analysis call and extracts the structures the composer needs"""

    def __init__(self, backend: VisionBackend, settings: Settings):
        self.backend = backend
        self.settings = settings

    async def analyze(self, image_bytes: bytes) -> RoomAnalysis:
        try:
            response = await self.backend.generate_json(
                model=self.settings.analysis_model,
                prompt=ANALYSIS_PROMPT,
                images=[BackendImage(data=image_bytes)],
                temperature=self.settings.analysis_temperature,
                max_output_tokens=2048,
            )
        except Exception as e:
            logger.warning(f"⚠️ Room analysis error, using default removal list: {e}")
            return default_analysis()

        if not response.ok:
            logger.warning(
                f"⚠️ Room analysis call failed ({response.status}: {response.error_message}), using default removal list"
            )
            return default_analysis()

        analysis = extract_from_text(response.text)
        logger.info(
            f"🏠 Room: {analysis.room.value} | remove: {len(analysis.removal_targets)} | "
            f"critical: {len(analysis.critical_regions)} | keep: {len(analysis.keep_regions)}"
            + (" (degraded)" if analysis.degraded else "")
        )
        for region in analysis.critical_regions:
            logger.info(f"   - {region.label} ({region.kind}): bbox{list(region.box)}")
        return analysis


def summarize_regions(regions: Sequence[ProtectedRegion]) -> List[Dict[str, Any]]:
    return [region.to_dict() for region in regions]
