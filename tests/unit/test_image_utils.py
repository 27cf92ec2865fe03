"""
Unit tests for image payload helpers
"""
import base64
import io

import pytest
from PIL import Image

from katazuke_api.core.errors import ClientInputError
from katazuke_api.services.image_utils import (
    MAX_EDGE,
    decode_room_image,
    strip_data_uri,
    to_data_uri,
)
from tests.fakes import make_jpeg_base64


class TestDataUri:
    @pytest.mark.unit
    @pytest.mark.parametrize("prefix", ["data:image/jpeg;base64,", "data:image/png;base64,", "data:image/webp;base64,"])
    def test_prefix_is_stripped(self, prefix):
        assert strip_data_uri(prefix + "QUJD") == "QUJD"

    @pytest.mark.unit
    def test_raw_base64_is_untouched(self):
        assert strip_data_uri("QUJD") == "QUJD"

    @pytest.mark.unit
    def test_results_are_wrapped_as_png(self):
        assert to_data_uri("QUJD") == "data:image/png;base64,QUJD"


class TestDecodeRoomImage:
    @pytest.mark.unit
    def test_returns_rgb_jpeg(self):
        png = Image.new("RGBA", (20, 10), color=(255, 0, 0, 128))
        buffer = io.BytesIO()
        png.save(buffer, format="PNG")
        payload = "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()

        decoded = Image.open(io.BytesIO(decode_room_image(payload)))

        assert decoded.format == "JPEG"
        assert decoded.mode == "RGB"
        assert decoded.size == (20, 10)

    @pytest.mark.unit
    def test_raw_base64_without_prefix(self):
        decoded = Image.open(io.BytesIO(decode_room_image(make_jpeg_base64(data_uri=False))))
        assert decoded.size == (32, 24)

    @pytest.mark.unit
    def test_only_huge_images_are_resized(self):
        payload = make_jpeg_base64(size=(MAX_EDGE + 400, 100))
        decoded = Image.open(io.BytesIO(decode_room_image(payload)))
        assert max(decoded.size) == MAX_EDGE

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", ["", "data:image/jpeg;base64,bm90IGFuIGltYWdl"])
    def test_bad_payloads_are_client_errors(self, payload):
        with pytest.raises(ClientInputError) as exc_info:
            decode_room_image(payload)
        assert exc_info.value.status_code == 400
