"""
Cleanup instruction builder.

An instruction is an ordered list of named sections. Order is fixed:

    retry notice (retry only) -> protection header -> room rules ->
    protection reminder (when regions exist) -> removal list ->
    mode rules -> quality footer

Composition is pure and deterministic: identical inputs give byte-identical
text.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from katazuke_api.schemas.cleanup import EditMode, RoomClassification
from katazuke_api.services.region_extractor import ProtectedRegion, RemovalTarget

BANNER = "#" * 70


class InstructionSection(str, Enum):
    retry_notice = "retry_notice"
    protection_header = "protection_header"
    room_rules = "room_rules"
    protection_reminder = "protection_reminder"
    removal_list = "removal_list"
    mode_rules = "mode_rules"
    quality_footer = "quality_footer"


SECTION_ORDER = list(InstructionSection)


BASE_ROOM_RULES = """[IMMUTABLE LAWS - ABSOLUTELY DO NOT ALTER]

1. CAMERA & PERSPECTIVE
   - Keep the EXACT same camera angle and focal length
   - Maintain the original perspective and vanishing points
   - Do NOT change the viewpoint or crop

2. LIGHTING & SHADOWS
   - Preserve the original lighting direction and intensity
   - Keep all existing shadows in their original positions
   - Do NOT add new light sources or change ambient lighting

3. ARCHITECTURAL ELEMENTS
   - Walls, ceiling, and floor materials are PERMANENT
   - Windows, doors, and their frames cannot be moved or altered
   - Curtains, blinds, and window treatments stay as-is

4. TEXTURE PRESERVATION
   - Maintain the exact wood grain pattern of floors
   - Keep wall paint texture and color identical
   - Preserve carpet patterns and fabric textures

5. FIXED INSTALLATIONS
   - Kitchen appliances (stove, sink, refrigerator) are BOLTED DOWN
   - Built-in cabinets and shelving are PERMANENT
   - Ceiling lights and fixtures cannot be removed"""

ROOM_SPECIFIC_RULES: Dict[RoomClassification, str] = {
    RoomClassification.kitchen: """6. KITCHEN-SPECIFIC PROTECTION
   - IH cooktop / gas burners: MUST remain visible and unchanged
   - Range hood / ventilation: PERMANENT fixture
   - Sink and faucet: Cannot be altered
   - Counter surfaces: Keep original material and color""",
    RoomClassification.bedroom: """6. BEDROOM-SPECIFIC PROTECTION
   - Bed frame and headboard: PERMANENT
   - Closet doors and handles: Cannot be altered
   - Bedside tables: Keep in original position""",
    RoomClassification.living: """6. LIVING ROOM-SPECIFIC PROTECTION
   - Sofa and main seating: PERMANENT placement
   - TV and entertainment unit: Cannot be removed
   - Coffee table: Keep in original position""",
    RoomClassification.office: """6. OFFICE-SPECIFIC PROTECTION
   - Desk and chair: PERMANENT placement
   - Monitor and computer equipment: Keep as-is
   - Bookshelf: Cannot be removed""",
    RoomClassification.general: "",
}

GENERIC_PROTECTION = """- IH cooktop / Gas stove (if visible)
- Kitchen sink and faucet (if visible)
- All large furniture and appliances"""

GENERIC_RETRY_REMINDER = """- All kitchen appliances (cooktop, sink, etc.) MUST REMAIN
- All large furniture MUST REMAIN"""

QUALITY_FOOTER = """[OUTPUT QUALITY REQUIREMENTS]
- High-resolution photography quality (8K UHD)
- Realistic shadows with soft edges
- Natural indoor lighting preservation
- Professional architectural photography style
- No blur, no distortion, no artifacts
- Clean and sharp edges on all objects
- Photorealistic texture rendering"""

EMPTY_REMOVAL_LIST = "(no analysis result - remove general clutter)"


@dataclass(frozen=True)
class ModeTemplate:
    removal_heading: str
    rules: str


MODE_TEMPLATES: Dict[EditMode, ModeTemplate] = {
    EditMode.standard: ModeTemplate(
        removal_heading="[ITEMS TO REMOVE - CLEAR THESE COMPLETELY]",
        rules=f"""{BANNER}
#  MANDATORY: DRAMATIC TRANSFORMATION REQUIRED
{BANNER}

The output image MUST show a DRAMATIC "before and after" difference.
If the input has clutter on counters/floors, the output MUST have CLEAN surfaces.
A subtle change is NOT acceptable - the transformation must be VISIBLE and SIGNIFICANT.

[MISSION] Transform this messy room into a CLEAN, organized space.

[REQUIRED RESULT]
- Countertops: MUST be 90% clear (only permanent appliances remain)
- Floor: MUST be completely clear of loose items
- Sink area: MUST be clean and empty
- The difference from original MUST be immediately obvious

[EDITING RULES]
1. AGGRESSIVELY remove all clutter and loose items
2. Where items are removed, RECONSTRUCT the background using surrounding textures
3. Do NOT add any new objects, decorations, or furniture
4. Preserve ONLY the items in PROTECTED ZONES above
5. The result should look like a "professionally cleaned" version

[TECHNIQUE]
- Use content-aware fill to restore hidden surfaces
- Match floor/wall textures seamlessly
- Maintain consistent lighting across edited areas

Generate a DRAMATICALLY CLEANER version of this room.""",
    ),
    EditMode.strong: ModeTemplate(
        removal_heading="[TARGETS FOR COMPLETE REMOVAL]",
        rules=f"""{BANNER}
#  MANDATORY: EXTREME TRANSFORMATION REQUIRED
{BANNER}

This is a DEEP CLEAN operation. The output MUST look like a completely different level of cleanliness.
Imagine a professional cleaning service spent hours on this room.
If the change is not DRAMATIC, this generation is a FAILURE.

[MISSION] EXTREME deep clean - create a "model home" level of cleanliness.

[AGGRESSIVE CLEANUP REQUIREMENTS]
- Clear 100% of loose items from ALL surfaces
- Remove EVERYTHING from countertops (except built-in appliances)
- Clear ALL floor clutter completely
- Remove items from sink area
- The before/after difference MUST be shocking

[ABSOLUTE PROHIBITIONS - VIOLATION = FAILURE]
- NEVER remove or alter items in the PROTECTED ZONES listed above
- NEVER remove large furniture (tables, chairs, sofas, beds)
- NEVER remove kitchen appliances (stove, cooktop, refrigerator, microwave, sink)
- NEVER add vases, plants, flowers, or decorations
- NEVER change wall colors or floor materials
- NEVER alter the room layout or furniture positions

[RECONSTRUCTION TECHNIQUE]
- Where clutter is removed, seamlessly restore the underlying surface
- Use the surrounding floor/table texture to fill gaps
- Ensure no "ghost shadows" or artifacts remain
- DOUBLE-CHECK that protected zones are unchanged

Create an EXTREMELY CLEAN version - like a model home showroom.""",
    ),
    EditMode.light: ModeTemplate(
        removal_heading="[ITEMS TO REMOVE]",
        rules="""[MISSION] Light cleanup of this room.

[RULES]
- Remove only obvious clutter
- Keep all furniture and appliances (especially those in PROTECTED ZONES)
- Do not add anything new""",
    ),
}


def format_box(box: Sequence[float]) -> str:
    return "[" + ", ".join(f"{value:g}" for value in box) + "]"


@dataclass
class CleanupInstruction:
    """Ordered, named sections of one generation instruction"""

    sections: List[Tuple[InstructionSection, str]] = field(default_factory=list)

    def section(self, name: InstructionSection) -> Optional[str]:
        for section_name, text in self.sections:
            if section_name == name:
                return text
        return None

    def has_section(self, name: InstructionSection) -> bool:
        return self.section(name) is not None

    @property
    def section_names(self) -> List[InstructionSection]:
        return [name for name, _ in self.sections]

    def render(self) -> str:
        return "\n\n".join(text for _, text in self.sections)


def protection_header(regions: Sequence[ProtectedRegion]) -> str:
    if regions:
        items = "\n".join(
            f"★ {i}. {region.label} | PROTECTED ZONE: {format_box(region.box)}" for i, region in enumerate(regions, 1)
        )
    else:
        items = GENERIC_PROTECTION

    lines = [
        BANNER,
        "#  CRITICAL - DO NOT REMOVE - READ THIS FIRST",
        BANNER,
        "",
        "THE FOLLOWING ITEMS MUST REMAIN VISIBLE IN THE OUTPUT IMAGE.",
        "IF ANY OF THESE ITEMS DISAPPEAR OR ARE ALTERED, THE GENERATION IS A FAILURE.",
        "",
        "[PROTECTED ITEMS LIST]",
        items,
    ]

    if regions:
        lines += [
            "",
            "[PIXEL-LEVEL PROTECTION ZONES]",
            "The following coordinate regions contain essential appliances.",
            "You MUST preserve the ORIGINAL PIXELS in these regions EXACTLY as they are:",
        ]
        lines += [
            f"ZONE {i}: {region.label} → bbox{format_box(region.box)} - DO NOT MODIFY"
            for i, region in enumerate(regions, 1)
        ]

    lines += ["", BANNER]
    return "\n".join(lines)


def room_rules(room: RoomClassification) -> str:
    specific = ROOM_SPECIFIC_RULES.get(room, "")
    return f"{BASE_ROOM_RULES}\n\n{specific}" if specific else BASE_ROOM_RULES


def protection_reminder() -> str:
    return (
        "[ADDITIONAL PROTECTION REMINDER]\n"
        "The items and zones listed in CRITICAL section above are IMMUTABLE.\n"
        "Any modification to these protected zones will result in rejection."
    )


def removal_list(heading: str, targets: Sequence[RemovalTarget]) -> str:
    if targets:
        body = "\n".join(f"{i}. {target.describe()}" for i, target in enumerate(targets, 1))
    else:
        body = EMPTY_REMOVAL_LIST
    return f"{heading}\n{body}"


def retry_notice(fix_instruction: str, regions: Sequence[ProtectedRegion]) -> str:
    if regions:
        reminder = "\n".join(f"- {region.label} at bbox{format_box(region.box)} - MUST REMAIN" for region in regions)
    else:
        reminder = GENERIC_RETRY_REMINDER

    return "\n".join(
        [
            BANNER,
            "#  RETRY ATTEMPT - PREVIOUS GENERATION FAILED",
            BANNER,
            "",
            "[FAILURE REASON]",
            fix_instruction,
            "",
            "[MANDATORY FIX]",
            "You MUST fix this issue. The previous image was REJECTED because important items were removed or altered.",
            "",
            "[REMINDER - PROTECTED ITEMS]",
            reminder,
            "",
            "DO NOT repeat the same mistake. Be MORE CONSERVATIVE this time.",
            "",
            BANNER,
        ]
    )


class InstructionComposer:
    """Builds the generation instruction from mode, targets, room class and protected regions"""

    def compose(
        self,
        edit_mode: EditMode,
        removal_targets: Sequence[RemovalTarget],
        room: RoomClassification,
        protected_regions: Sequence[ProtectedRegion],
        fix_instruction: Optional[str] = None,
    ) -> CleanupInstruction:
        template = MODE_TEMPLATES.get(edit_mode, MODE_TEMPLATES[EditMode.light])
        sections: List[Tuple[InstructionSection, str]] = []

        if fix_instruction is not None:
            sections.append((InstructionSection.retry_notice, retry_notice(fix_instruction, protected_regions)))

        sections.append((InstructionSection.protection_header, protection_header(protected_regions)))
        sections.append((InstructionSection.room_rules, room_rules(room)))
        if protected_regions:
            sections.append((InstructionSection.protection_reminder, protection_reminder()))
        sections.append((InstructionSection.removal_list, removal_list(template.removal_heading, removal_targets)))
        sections.append((InstructionSection.mode_rules, template.rules))
        sections.append((InstructionSection.quality_footer, QUALITY_FOOTER))

        return CleanupInstruction(sections=sections)


def compose_instruction(
    edit_mode: EditMode,
    removal_targets: Sequence[RemovalTarget],
    room: RoomClassification,
    protected_regions: Sequence[ProtectedRegion],
    fix_instruction: Optional[str] = None,
) -> str:
    """Render the instruction text in one call"""
    return (
        InstructionComposer()
        .compose(edit_mode, removal_targets, room, protected_regions, fix_instruction=fix_instruction)
        .render()
    )
