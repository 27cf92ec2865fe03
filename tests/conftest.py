"""
Shared pytest fixtures and configuration for all tests
"""
from datetime import date

import pytest

from katazuke_api.core.config import Settings
from katazuke_api.services.usage_tracker import UsageTracker
from tests.fakes import FakeClock, FakeVisionBackend, RecordingSleep, make_jpeg_base64


@pytest.fixture
def test_settings():
    """Settings isolated from any local .env file"""
    return Settings(_env_file=None, gemini_api_key="test-key", environment="test")


@pytest.fixture
def fake_clock():
    return FakeClock(date(2026, 1, 15))


@pytest.fixture
def usage_tracker(test_settings, fake_clock):
    return UsageTracker.from_settings(test_settings, today=fake_clock)


@pytest.fixture
def fake_backend():
    return FakeVisionBackend()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def sample_room_image():
    """Small JPEG room photo as a data URI"""
    return make_jpeg_base64()
