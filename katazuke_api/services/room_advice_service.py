"""
Advice endpoints that sit beside the cleanup preview pipeline: strategic room
analysis, micro-task cleanup spots, mask-guided inpainting and the
item-address chat.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from katazuke_api.core.config import Settings
from katazuke_api.core.errors import BackendRejectedError, ClientInputError, NoImageProducedError
from katazuke_api.schemas.cleanup import ChatMessage
from katazuke_api.services.generation_client import Sleeper
from katazuke_api.services.image_utils import decode_base64_payload, decode_room_image, encode_base64, to_data_uri
from katazuke_api.services.json_parsing import load_json_object
from katazuke_api.services.vision_backend import BackendImage, BackendResponse, ChatTurn, VisionBackend

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
SPOTS_MAX_RATE_LIMIT_RETRIES = 2
SPOTS_RATE_LIMIT_BACKOFF_SECONDS = 3.0

STRATEGIC_ANALYSIS_PROMPT = """You are the "cleanup command center AI". Analyze this room photo strategically.

## Steps

### STEP 1: Zoning
Split the room into zones such as:
- Desk area
- Bed area
- Floor and walkways
- Closet and storage
- Bookshelves
- Kitchen area
- Other

### STEP 2: Pick one zone
From the zones you found, pick exactly ONE zone where tidying gives the fastest sense of achievement with the lowest effort.

Criteria:
1. Visible results in 5 to 15 minutes
2. Low mental and physical burden
3. Tidying it helps the other zones too
4. Easy to feel "I did it!"

### STEP 3: Concrete tasks
Propose three concrete, doable tasks for the chosen zone, each in the form "do X with Y".

## Output format

First write a 2-3 sentence analysis comment in a warm, encouraging tone.

Then output JSON in exactly this form:
{
  "dirtyLevel": number from 0 to 100,
  "selectedZone": "chosen zone",
  "reason": "why to start here (warm, encouraging words)",
  "tasks": ["task 1", "task 2", "task 3"],
  "estimatedTime": "estimated time (e.g. 10 minutes)",
  "zones": ["every zone you recognized"]
}"""

SPOTS_SYSTEM_INSTRUCTION = """You are the world's best professional cleaning advisor and room organization expert.

[YOUR EXPERTISE]
- Over 20 years of decluttering consulting
- Motivating advice grounded in psychology
- Deep familiarity with small Japanese homes

[YOUR PERSONALITY]
- Warm, encouraging tone
- Concrete advice that is easy to act on
- Values small wins"""

SPOTS_PROMPT = """[TASK] Analyze the room and propose micro cleanup tasks based on Gestalt psychology.

[MOST IMPORTANT: MISS NOTHING]
Inspect every corner of the image and detect every item on tables and on the floor,
including small or partially visible ones (cups, bottles, snacks, remotes, phones,
chargers, glasses, tissues, books, papers, receipts, pens, cosmetics, keys, cables, bags, boxes).

[RULES]
- Each task takes 30 seconds to 2 minutes and clearly improves visual order
- Generate every task needed until the room is fully tidy; at least 5 tasks
- One action per task, in the simple form "move X to Y"; no vague verbs like "organize"
- Only items actually visible in the image; never invent items
- Use concrete item names, never "stuff" or "small things"
- Prefer tool-free actions: stack, align, gather, stand up
- If trash is visible, the first task is "throw the trash in the bin"
- Dishes, cups and seasonings go "to the kitchen"; personal belongings, toys and anything
  whose storage place is unknown go "back to their usual place"

[OUTPUT FORMAT - JSON only]
{
  "spots": [
    {
      "category": "documents/clothes/kitchen/stationery/other",
      "location": "where (e.g. on the table)",
      "items": "what is out of place",
      "action": "a concrete 30-second to 2-minute action",
      "principle": "Gestalt principle applied (proximity/similarity/closure/common fate)",
      "visualEffect": "the visual effect, politely phrased",
      "estimatedTime": "30s/60s/90s/2min"
    }
  ],
  "totalEstimatedTime": "total estimated time",
  "encouragement": "warm words of encouragement"
}"""

INPAINT_PROMPT = (
    "Clean up this room. Remove all clutter and mess from the floor and surfaces. "
    "Keep furniture in place. Restore the original floor and wall textures where items are removed."
)
INPAINT_MASK_HINT = "The second image is a mask: clean only the white areas and leave everything else untouched."

CHAT_SYSTEM_INSTRUCTION = """You are the decluttering advisor of "Katazuke Navi AI".
You help the user decide a home (a fixed place) for an item that does not have one yet.

## Your role
- Look at the user's room photo and note the space and the storage already there
- Draw out how often the item is used, what it is for and how big it is
- Agree on a specific place together ("second shelf", "right side of the drawer")

## Conversation style
- Friendly and short (1-3 sentences)
- Suggest, never push ("How about ...?")
- Fit the user's habits

## The item
- Name: {item_name}
- Category: {category}"""

CHAT_OPENING = (
    'Looking at this room photo, I want to decide a home for "{item_name}". '
    "Please start with a first suggestion or a question."
)


def _raise_for_response(response: BackendResponse) -> None:
    if not response.ok:
        logger.error(f"❌ Advice request failed with status {response.status}: {response.error_message}")
        raise BackendRejectedError(response.status, response.error_message)


def build_chat_turns(
    item_name: str, messages: Sequence[ChatMessage], image: Optional[BackendImage]
) -> List[ChatTurn]:
    """Map the client's chat history onto backend turns; the room photo rides on the first user turn"""
    if not messages:
        return [
            ChatTurn(
                role="user",
                text=CHAT_OPENING.format(item_name=item_name),
                images=[image] if image else [],
            )
        ]

    turns: List[ChatTurn] = []
    for message in messages:
        images = []
        if message.role == "user" and not turns and image:
            images = [image]
        turns.append(ChatTurn(role="model" if message.role == "ai" else "user", text=message.text, images=images))
    return turns


class RoomAdviceService:
    """Text and light image calls that do not go through the quota-tracked pipeline"""

    def __init__(self, backend: VisionBackend, settings: Settings, sleep: Sleeper = asyncio.sleep):
        self.backend = backend
        self.settings = settings
        self.sleep = sleep

    async def strategic_analysis(self, image_base64: Optional[str]) -> Dict[str, Any]:
        if not image_base64:
            raise ClientInputError("Image data is required")
        image = BackendImage(data=decode_room_image(image_base64))

        response = await self.backend.generate_text(
            model=self.settings.analysis_model,
            turns=[ChatTurn(role="user", text=STRATEGIC_ANALYSIS_PROMPT, images=[image])],
            temperature=0.4,
            max_output_tokens=2048,
        )
        _raise_for_response(response)

        logger.info(f"📊 Strategic analysis: {len(response.text)} chars")
        return {"success": True, "analysis": response.text, "rawResponse": response.raw}

    async def cleanup_spots(self, image_base64: Optional[str]) -> Dict[str, Any]:
        if not image_base64:
            raise ClientInputError("Image data is required")
        image = BackendImage(data=decode_room_image(image_base64))

        attempt = 0
        while True:
            response = await self.backend.generate_json(
                model=self.settings.analysis_model,
                prompt=SPOTS_PROMPT,
                images=[image],
                temperature=0.3,
                max_output_tokens=4096,
                system_instruction=SPOTS_SYSTEM_INSTRUCTION,
            )
            if response.status != RATE_LIMIT_STATUS or attempt >= SPOTS_MAX_RATE_LIMIT_RETRIES:
                break
            attempt += 1
            wait = SPOTS_RATE_LIMIT_BACKOFF_SECONDS * attempt
            logger.warning(f"⏳ Rate limited, retrying in {wait}s ({attempt}/{SPOTS_MAX_RATE_LIMIT_RETRIES})")
            await self.sleep(wait)

        _raise_for_response(response)

        result = load_json_object(response.text, required_key="spots")
        if result is None:
            logger.warning("⚠️ Cleanup spots response was not JSON, returning raw text")
            return {"success": True, "rawText": response.text, "spots": []}

        spots = result.get("spots") or []
        logger.info(f"📋 Cleanup spots: {len(spots)} tasks, total {result.get('totalEstimatedTime')}")
        return {"success": True, **result}

    async def inpaint(self, image_base64: Optional[str], mask_base64: Optional[str] = None) -> Dict[str, Any]:
        if not image_base64:
            raise ClientInputError("Image data is required")
        images = [BackendImage(data=decode_room_image(image_base64))]
        instruction = INPAINT_PROMPT
        if mask_base64:
            images.append(BackendImage(data=decode_base64_payload(mask_base64), mime_type="image/png"))
            instruction = f"{INPAINT_PROMPT}\n{INPAINT_MASK_HINT}"

        response = await self.backend.generate_image(
            model=self.settings.standard_image_model,
            instruction=instruction,
            images=images,
            temperature=0.3,
        )
        _raise_for_response(response)
        if response.image is None:
            raise NoImageProducedError(response.text)

        image_b64 = encode_base64(response.image.data)
        return {"success": True, "imageBase64": image_b64, "imageUrl": to_data_uri(image_b64)}

    async def chat_address(
        self,
        item_name: Optional[str],
        category: Optional[str] = None,
        image_base64: Optional[str] = None,
        messages: Sequence[ChatMessage] = (),
    ) -> Dict[str, Any]:
        if not item_name:
            raise ClientInputError("itemName is required")

        image = BackendImage(data=decode_room_image(image_base64)) if image_base64 else None
        response = await self.backend.generate_text(
            model=self.settings.analysis_model,
            turns=build_chat_turns(item_name, messages, image),
            temperature=0.7,
            max_output_tokens=300,
            system_instruction=CHAT_SYSTEM_INSTRUCTION.format(item_name=item_name, category=category or "unknown"),
        )
        _raise_for_response(response)
        return {"success": True, "reply": response.text}
