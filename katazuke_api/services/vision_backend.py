"""
Google AI Studio adapter for the vision-generation service.

Every call resolves to a BackendResponse. Upstream API errors become
non-success responses carrying the upstream HTTP code; any other exception
propagates to the caller.
"""
import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from google import genai
from google.genai import errors, types

logger = logging.getLogger(__name__)

OVERLOAD_STATUS = 503


@dataclass
class BackendImage:
    """Raw image bytes plus their mime type"""

    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class ChatTurn:
    """One conversational turn sent to the backend; role is 'user' or 'model'"""

    role: str
    text: str
    images: List[BackendImage] = field(default_factory=list)


@dataclass
class BackendResponse:
    """Normalized result of one backend call"""

    status: int = 200
    text: str = ""
    image: Optional[BackendImage] = None
    error_message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def overloaded(self) -> bool:
        return self.status == OVERLOAD_STATUS


@runtime_checkable
class VisionBackend(Protocol):
    """The request/response contract the pipeline needs from the vision-generation service"""

    async def generate_image(
        self, model: str, instruction: str, images: Sequence[BackendImage], temperature: float
    ) -> BackendResponse:
        ...

    async def generate_json(
        self,
        model: str,
        prompt: str,
        images: Sequence[BackendImage],
        temperature: float,
        max_output_tokens: int = 2048,
        system_instruction: Optional[str] = None,
    ) -> BackendResponse:
        ...

    async def generate_text(
        self,
        model: str,
        turns: Sequence[ChatTurn],
        temperature: float,
        max_output_tokens: int = 2048,
        system_instruction: Optional[str] = None,
    ) -> BackendResponse:
        ...


def _image_part(image: BackendImage) -> types.Part:
    return types.Part(inline_data=types.Blob(mime_type=image.mime_type, data=image.data))


def _normalize_image_bytes(image_data: Any) -> Optional[bytes]:
    """
    The SDK may hand back raw image bytes or base64 text encoded as bytes.
    Raw PNG starts with 89504e47, raw JPEG with ffd8ff.
    """
    if isinstance(image_data, str):
        image_data = image_data.encode("utf-8")
    if not isinstance(image_data, (bytes, bytearray)):
        logger.error(f"Unexpected image data type: {type(image_data)}")
        return None

    first_hex = bytes(image_data[:4]).hex()
    if first_hex.startswith("89504e47") or first_hex.startswith("ffd8ff"):
        return bytes(image_data)
    try:
        return base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError):
        # Unknown container format (webp etc.) - pass the raw bytes through
        return bytes(image_data)


def parse_generate_response(response: Any) -> BackendResponse:
    """Collect the first image part and all text parts of a generate_content response"""
    text_chunks: List[str] = []
    image: Optional[BackendImage] = None

    parts = None
    candidates = getattr(response, "candidates", None)
    if candidates:
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) if content is not None else None

    for part in parts or []:
        inline_data = getattr(part, "inline_data", None)
        if inline_data is not None and inline_data.data:
            mime_type = inline_data.mime_type or "image/png"
            if image is None and mime_type.startswith("image/"):
                data = _normalize_image_bytes(inline_data.data)
                if data:
                    image = BackendImage(data=data, mime_type=mime_type)
        elif getattr(part, "text", None):
            text_chunks.append(part.text)

    raw: Dict[str, Any] = {}
    if hasattr(response, "model_dump"):
        raw = response.model_dump(mode="json", exclude_none=True)

    return BackendResponse(status=200, text="".join(text_chunks), image=image, raw=raw)


class GeminiVisionBackend:
    """VisionBackend implementation on top of the google-genai SDK"""

    def __init__(self, api_key: str, client: Optional[genai.Client] = None):
        self.api_key = api_key
        if client is not None:
            self.genai_client = client
        elif api_key:
            self.genai_client = genai.Client(api_key=api_key)
            if len(api_key) > 12:
                masked_key = f"{api_key[:8]}...{api_key[-4:]}"
                logger.info(f"Google AI API Key loaded: {masked_key}")
        else:
            self.genai_client = None
            logger.warning("Google AI API key not configured - image generation will not be available")

    @property
    def configured(self) -> bool:
        return self.genai_client is not None

    async def _generate(self, model: str, contents: List[Any], config: types.GenerateContentConfig) -> BackendResponse:
        if self.genai_client is None:
            raise RuntimeError("Google GenAI client is not configured")

        def _run_generate():
            """Run the blocking generate_content call in a separate thread"""
            return self.genai_client.models.generate_content(model=model, contents=contents, config=config)

        loop = asyncio.get_event_loop()
        try:
            response = await loop.run_in_executor(None, _run_generate)
        except errors.APIError as e:
            logger.warning(f"Google AI API error {e.code} from {model}: {e.message}")
            return BackendResponse(status=e.code or 500, error_message=e.message or str(e))

        return parse_generate_response(response)

    async def generate_image(
        self, model: str, instruction: str, images: Sequence[BackendImage], temperature: float
    ) -> BackendResponse:
        contents: List[Any] = [instruction]
        contents.extend(_image_part(image) for image in images)
        config = types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            temperature=temperature,
        )
        return await self._generate(model, contents, config)

    async def generate_json(
        self,
        model: str,
        prompt: str,
        images: Sequence[BackendImage],
        temperature: float,
        max_output_tokens: int = 2048,
        system_instruction: Optional[str] = None,
    ) -> BackendResponse:
        contents: List[Any] = [prompt]
        contents.extend(_image_part(image) for image in images)
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            response_mime_type="application/json",
            system_instruction=system_instruction,
        )
        return await self._generate(model, contents, config)

    async def generate_text(
        self,
        model: str,
        turns: Sequence[ChatTurn],
        temperature: float,
        max_output_tokens: int = 2048,
        system_instruction: Optional[str] = None,
    ) -> BackendResponse:
        contents = [
            types.Content(
                role=turn.role,
                parts=[types.Part(text=turn.text)] + [_image_part(image) for image in turn.images],
            )
            for turn in turns
        ]
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            system_instruction=system_instruction,
        )
        return await self._generate(model, contents, config)
