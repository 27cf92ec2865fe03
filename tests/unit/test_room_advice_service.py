"""
Unit tests for strategic analysis, cleanup spots, inpainting and item-address chat
"""
import json

import pytest

from katazuke_api.core.errors import BackendRejectedError, ClientInputError, NoImageProducedError
from katazuke_api.schemas.cleanup import ChatMessage
from katazuke_api.services.room_advice_service import (
    INPAINT_MASK_HINT,
    SPOTS_SYSTEM_INSTRUCTION,
    RoomAdviceService,
    build_chat_turns,
)
from katazuke_api.services.vision_backend import BackendImage
from tests.fakes import FakeVisionBackend, error_response, image_response, json_response, text_response

SPOTS = {
    "spots": [
        {
            "category": "kitchen",
            "location": "on the table",
            "items": "mugs",
            "action": "Take the mugs to the kitchen",
            "principle": "proximity",
            "visualEffect": "The table outline becomes clear",
            "estimatedTime": "30s",
        }
    ],
    "totalEstimatedTime": "5 minutes",
    "encouragement": "You can do it!",
}


@pytest.fixture
def make_service(test_settings, recording_sleep):
    def _make(backend):
        return RoomAdviceService(backend, test_settings, sleep=recording_sleep)

    return _make


class TestStrategicAnalysis:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_returns_text_and_raw(self, make_service, test_settings, sample_room_image):
        backend = FakeVisionBackend(text=[text_response('Start with the desk! {"selectedZone": "desk"}')])
        result = await make_service(backend).strategic_analysis(sample_room_image)

        assert result["success"] is True
        assert result["analysis"].startswith("Start with the desk!")
        assert "candidates" in result["rawResponse"]
        call = backend.calls_of("text")[0]
        assert call["model"] == test_settings.analysis_model
        assert len(call["turns"][0].images) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_upstream_error_passes_status(self, make_service, sample_room_image):
        backend = FakeVisionBackend(text=[error_response(403, "API key invalid")])
        with pytest.raises(BackendRejectedError) as exc_info:
            await make_service(backend).strategic_analysis(sample_room_image)
        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "API key invalid"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_image(self, make_service):
        with pytest.raises(ClientInputError):
            await make_service(FakeVisionBackend()).strategic_analysis(None)


class TestCleanupSpots:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_parsed_spots_are_spread_into_response(self, make_service, sample_room_image):
        backend = FakeVisionBackend(json_results=[json_response(SPOTS)])
        result = await make_service(backend).cleanup_spots(sample_room_image)

        assert result == {"success": True, **SPOTS}
        assert backend.calls_of("json")[0]["system_instruction"] == SPOTS_SYSTEM_INSTRUCTION

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_spots_object_inside_prose(self, make_service, sample_room_image):
        backend = FakeVisionBackend(json_results=[text_response("Here you go: " + json.dumps(SPOTS) + " Enjoy")])
        result = await make_service(backend).cleanup_spots(sample_room_image)
        assert result["spots"] == SPOTS["spots"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unparsable_returns_raw_text(self, make_service, sample_room_image):
        backend = FakeVisionBackend(json_results=[text_response("The room is tidy already.")])
        result = await make_service(backend).cleanup_spots(sample_room_image)
        assert result == {"success": True, "rawText": "The room is tidy already.", "spots": []}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rate_limit_retries_with_growing_wait(self, make_service, recording_sleep, sample_room_image):
        backend = FakeVisionBackend(json_results=[error_response(429), error_response(429), json_response(SPOTS)])
        result = await make_service(backend).cleanup_spots(sample_room_image)

        assert result["success"] is True
        assert recording_sleep.delays == [3.0, 6.0]
        assert len(backend.calls_of("json")) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rate_limit_gives_up_after_two_retries(self, make_service, recording_sleep, sample_room_image):
        backend = FakeVisionBackend(json_results=[error_response(429)])
        with pytest.raises(BackendRejectedError) as exc_info:
            await make_service(backend).cleanup_spots(sample_room_image)

        assert exc_info.value.status_code == 429
        assert len(backend.calls_of("json")) == 3
        assert recording_sleep.delays == [3.0, 6.0]


class TestInpaint:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_single_standard_generation(self, make_service, test_settings, sample_room_image):
        backend = FakeVisionBackend(images=[image_response(b"clean")])
        result = await make_service(backend).inpaint(sample_room_image)

        call = backend.calls_of("image")[0]
        assert call["model"] == test_settings.standard_image_model
        assert call["temperature"] == 0.3
        assert len(call["images"]) == 1
        assert result["imageUrl"] == "data:image/png;base64," + result["imageBase64"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mask_is_forwarded(self, make_service, sample_room_image):
        backend = FakeVisionBackend()
        await make_service(backend).inpaint(sample_room_image, mask_base64="data:image/png;base64,QUJD")

        call = backend.calls_of("image")[0]
        assert [image.data for image in call["images"]][1] == b"ABC"
        assert INPAINT_MASK_HINT in call["instruction"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_image_raises(self, make_service, sample_room_image):
        backend = FakeVisionBackend(images=[text_response("no")])
        with pytest.raises(NoImageProducedError):
            await make_service(backend).inpaint(sample_room_image)


class TestChatAddress:
    @pytest.mark.unit
    def test_opening_turn_without_history(self):
        image = BackendImage(data=b"room")
        turns = build_chat_turns("keys", [], image)
        assert len(turns) == 1
        assert turns[0].role == "user"
        assert '"keys"' in turns[0].text
        assert turns[0].images == [image]

    @pytest.mark.unit
    def test_history_roles_and_image_placement(self):
        image = BackendImage(data=b"room")
        messages = [
            ChatMessage(role="ai", text="What is it?"),
            ChatMessage(role="user", text="My keys"),
            ChatMessage(role="user", text="I use them daily"),
        ]
        turns = build_chat_turns("keys", messages, image)

        assert [turn.role for turn in turns] == ["model", "user", "user"]
        # image rides on the first turn only when that turn is from the user
        assert [len(turn.images) for turn in turns] == [0, 0, 0]

        turns = build_chat_turns("keys", messages[1:], image)
        assert [len(turn.images) for turn in turns] == [1, 0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reply(self, make_service, sample_room_image):
        backend = FakeVisionBackend(text=[text_response("How about the hook by the door?")])
        result = await make_service(backend).chat_address(
            "keys", category="daily", image_base64=sample_room_image, messages=[]
        )

        assert result == {"success": True, "reply": "How about the hook by the door?"}
        call = backend.calls_of("text")[0]
        assert "Name: keys" in call["system_instruction"]
        assert "Category: daily" in call["system_instruction"]
        assert call["max_output_tokens"] == 300

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_item_name_required(self, make_service):
        backend = FakeVisionBackend()
        with pytest.raises(ClientInputError):
            await make_service(backend).chat_address(None)
        assert backend.calls == []
