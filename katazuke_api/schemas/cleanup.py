"""
Pydantic schemas and shared enums for the cleanup endpoints
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RoomClassification(str, Enum):
    """Room classes that select the room-specific protection rules"""

    kitchen = "kitchen"
    bedroom = "bedroom"
    living = "living"
    office = "office"
    general = "general"

    @classmethod
    def parse(cls, value: Optional[str]) -> "RoomClassification":
        """Map a free-text room type from the analysis model; anything unknown is general."""
        if not value:
            return cls.general
        normalized = str(value).strip().lower().replace(" ", "_")
        if normalized in ("living_room", "livingroom"):
            normalized = "living"
        try:
            return cls(normalized)
        except ValueError:
            return cls.general


class EditMode(str, Enum):
    """Aggressiveness tier of the cleanup instruction"""

    standard = "standard"
    strong = "strong"
    light = "light"

    @classmethod
    def from_edit_type(cls, edit_type: Optional[str]) -> "EditMode":
        """Translate the client's editType; unknown values fall back to light."""
        if edit_type == "future_vision":
            return cls.standard
        if edit_type == "future_vision_stronger":
            return cls.strong
        try:
            return cls(edit_type)
        except ValueError:
            return cls.light


class ModelTier(str, Enum):
    """Quality/cost level of the image backend"""

    standard = "standard"
    high_quality = "high_quality"


class QuotaCapability(str, Enum):
    """Chargeable operation classes; values are the keys of the usage snapshot the client reads"""

    standard_generation = "flash"
    high_quality_generation = "pro"
    inspection = "inspection"
    retry = "retry"

    @classmethod
    def for_tier(cls, tier: ModelTier) -> "QuotaCapability":
        if tier == ModelTier.high_quality:
            return cls.high_quality_generation
        return cls.standard_generation


class ImagePayload(BaseModel):
    """Body carrying a single data-URI or raw base64 image"""

    image_base64: Optional[str] = Field(default=None, alias="imageBase64")

    class Config:
        populate_by_name = True


class EditImageRequest(ImagePayload):
    """Body of POST /api/gemini/edit-image"""

    edit_type: Optional[str] = Field(default="future_vision", alias="editType")
    high_quality: bool = Field(default=False, alias="highQuality")


class InpaintRequest(ImagePayload):
    """Body of POST /api/gemini/inpaint"""

    mask_base64: Optional[str] = Field(default=None, alias="maskBase64")


class ChatMessage(BaseModel):
    """One turn of the item-address chat; role is 'user' or 'ai'"""

    role: str
    text: str


class ChatAddressRequest(BaseModel):
    """Body of POST /api/chat-address"""

    item_name: Optional[str] = Field(default=None, alias="itemName")
    category: Optional[str] = None
    image_base64: Optional[str] = Field(default=None, alias="imageBase64")
    messages: List[ChatMessage] = Field(default_factory=list)

    class Config:
        populate_by_name = True
