"""
Image payload helpers: data-URI handling and normalization before upload
"""
import base64
import binascii
import io
import logging
import re

from PIL import Image, ImageOps, UnidentifiedImageError

from katazuke_api.core.errors import ClientInputError

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")

# Only resize if image is extremely large, to stay inside API limits
MAX_EDGE = 4096


def strip_data_uri(image_data: str) -> str:
    """Remove a data:image/...;base64, prefix if present"""
    return DATA_URI_PREFIX.sub("", image_data.strip(), count=1)


def to_data_uri(image_base64: str, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{image_base64}"


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def decode_base64_payload(image_data: str) -> bytes:
    """Decode a data-URI or raw base64 string, raising ClientInputError when it is not base64"""
    try:
        return base64.b64decode(strip_data_uri(image_data), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ClientInputError(f"Image data is not valid base64: {e}")


def decode_room_image(image_data: str) -> bytes:
    """
    Minimal preprocessing for editing tasks.
    Preserves original quality - only fixes orientation, ensures RGB JPEG,
    and shrinks images beyond MAX_EDGE.
    """
    if not image_data:
        raise ClientInputError("Image data is required")

    image_bytes = decode_base64_payload(image_data)
    try:
        image = Image.open(io.BytesIO(image_bytes))
        # Apply EXIF orientation correction (important for smartphone photos)
        image = ImageOps.exif_transpose(image)
    except (UnidentifiedImageError, OSError) as e:
        raise ClientInputError(f"Image data could not be decoded: {e}")

    if image.mode != "RGB":
        image = image.convert("RGB")

    if image.width > MAX_EDGE or image.height > MAX_EDGE:
        image.thumbnail((MAX_EDGE, MAX_EDGE), Image.Resampling.LANCZOS)
        logger.info(f"Resized large image to fit within {MAX_EDGE}px: {image.width}x{image.height}")

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()
