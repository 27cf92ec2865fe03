"""
Unit tests for the cleanup instruction builder
"""
import pytest

from katazuke_api.schemas.cleanup import EditMode, RoomClassification
from katazuke_api.services.instruction_composer import (
    EMPTY_REMOVAL_LIST,
    GENERIC_PROTECTION,
    GENERIC_RETRY_REMINDER,
    InstructionComposer,
    InstructionSection,
    compose_instruction,
)
from katazuke_api.services.region_extractor import ProtectedRegion, RemovalTarget

COOKTOP = ProtectedRegion(label="IH cooktop", box=(0.4, 0.3, 0.6, 0.7), confidence=0.95, kind="cooktop")
SOFA = ProtectedRegion(label="sofa", box=(0.5, 0.0, 1.0, 0.5), kind="furniture")
TARGETS = [RemovalTarget(label="mugs", location="counter"), RemovalTarget(label="flyers")]


@pytest.fixture
def composer():
    return InstructionComposer()


class TestSectionOrder:
    """Tests for the fixed section order"""

    @pytest.mark.unit
    def test_first_attempt_with_regions(self, composer):
        instruction = composer.compose(EditMode.standard, TARGETS, RoomClassification.kitchen, [COOKTOP])
        assert instruction.section_names == [
            InstructionSection.protection_header,
            InstructionSection.room_rules,
            InstructionSection.protection_reminder,
            InstructionSection.removal_list,
            InstructionSection.mode_rules,
            InstructionSection.quality_footer,
        ]

    @pytest.mark.unit
    def test_reminder_only_when_regions_exist(self, composer):
        instruction = composer.compose(EditMode.standard, TARGETS, RoomClassification.kitchen, [])
        assert not instruction.has_section(InstructionSection.protection_reminder)

    @pytest.mark.unit
    def test_retry_notice_comes_first(self, composer):
        instruction = composer.compose(
            EditMode.strong, TARGETS, RoomClassification.kitchen, [COOKTOP], fix_instruction="keep stove visible"
        )
        assert instruction.section_names[0] == InstructionSection.retry_notice
        assert instruction.render().startswith(instruction.section(InstructionSection.retry_notice))

    @pytest.mark.unit
    def test_protection_precedes_removal_in_text(self, composer):
        text = composer.compose(EditMode.standard, TARGETS, RoomClassification.kitchen, [COOKTOP]).render()
        assert text.index("IH cooktop") < text.index("counter mugs")


class TestSectionContent:
    """Tests for what each section says"""

    @pytest.mark.unit
    def test_regions_listed_with_coordinates(self, composer):
        header = composer.compose(
            EditMode.standard, TARGETS, RoomClassification.kitchen, [COOKTOP, SOFA]
        ).section(InstructionSection.protection_header)
        assert "★ 1. IH cooktop | PROTECTED ZONE: [0.4, 0.3, 0.6, 0.7]" in header
        assert "★ 2. sofa" in header
        assert "ZONE 1: IH cooktop → bbox[0.4, 0.3, 0.6, 0.7] - DO NOT MODIFY" in header

    @pytest.mark.unit
    def test_generic_protection_without_regions(self, composer):
        header = composer.compose(EditMode.standard, TARGETS, RoomClassification.kitchen, []).section(
            InstructionSection.protection_header
        )
        assert GENERIC_PROTECTION in header
        assert "PIXEL-LEVEL PROTECTION ZONES" not in header

    @pytest.mark.unit
    def test_removal_list_is_numbered(self, composer):
        removal = composer.compose(EditMode.standard, TARGETS, RoomClassification.kitchen, []).section(
            InstructionSection.removal_list
        )
        assert "1. counter mugs" in removal
        assert "2. flyers" in removal

    @pytest.mark.unit
    def test_empty_removal_list_placeholder(self, composer):
        removal = composer.compose(EditMode.light, [], RoomClassification.office, []).section(
            InstructionSection.removal_list
        )
        assert EMPTY_REMOVAL_LIST in removal

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "room,marker",
        [
            (RoomClassification.kitchen, "KITCHEN-SPECIFIC"),
            (RoomClassification.bedroom, "BEDROOM-SPECIFIC"),
            (RoomClassification.living, "LIVING ROOM-SPECIFIC"),
            (RoomClassification.office, "OFFICE-SPECIFIC"),
        ],
    )
    def test_room_specific_rules(self, composer, room, marker):
        rules = composer.compose(EditMode.standard, TARGETS, room, []).section(InstructionSection.room_rules)
        assert "IMMUTABLE LAWS" in rules
        assert marker in rules

    @pytest.mark.unit
    def test_general_room_has_base_rules_only(self, composer):
        rules = composer.compose(EditMode.standard, TARGETS, RoomClassification.general, []).section(
            InstructionSection.room_rules
        )
        assert "IMMUTABLE LAWS" in rules
        assert "SPECIFIC PROTECTION" not in rules

    @pytest.mark.unit
    def test_modes_differ(self, composer):
        texts = {
            mode: composer.compose(mode, TARGETS, RoomClassification.kitchen, []).section(InstructionSection.mode_rules)
            for mode in EditMode
        }
        assert "DRAMATIC TRANSFORMATION" in texts[EditMode.standard]
        assert "EXTREME TRANSFORMATION" in texts[EditMode.strong]
        assert "Light cleanup" in texts[EditMode.light]

    @pytest.mark.unit
    def test_retry_notice_contains_fix_and_regions(self, composer):
        notice = composer.compose(
            EditMode.standard, TARGETS, RoomClassification.kitchen, [COOKTOP], fix_instruction="keep stove visible"
        ).section(InstructionSection.retry_notice)
        assert "keep stove visible" in notice
        assert "- IH cooktop at bbox[0.4, 0.3, 0.6, 0.7] - MUST REMAIN" in notice

    @pytest.mark.unit
    def test_retry_notice_generic_reminder(self, composer):
        notice = composer.compose(
            EditMode.standard, TARGETS, RoomClassification.kitchen, [], fix_instruction="restore the sink"
        ).section(InstructionSection.retry_notice)
        assert GENERIC_RETRY_REMINDER in notice


class TestDeterminism:
    @pytest.mark.unit
    def test_identical_inputs_identical_text(self):
        args = (EditMode.strong, TARGETS, RoomClassification.kitchen, [COOKTOP, SOFA])
        assert compose_instruction(*args) == compose_instruction(*args)

    @pytest.mark.unit
    def test_edit_type_mapping(self):
        assert EditMode.from_edit_type("future_vision") == EditMode.standard
        assert EditMode.from_edit_type("future_vision_stronger") == EditMode.strong
        assert EditMode.from_edit_type("something_else") == EditMode.light
        assert EditMode.from_edit_type(None) == EditMode.light
