"""Pytest configuration and fixtures."""

import pytest

from threat_classifier.config import get_settings
from threat_classifier.middleware.rate_limit import get_limiter


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Start every test without an API key and with fresh settings."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("MAX_IMAGE_SIZE_MB", raising=False)
    monkeypatch.delenv("DEFAULT_LOCATION", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Clear in-memory rate limit counters between tests."""
    get_limiter().reset()
    yield


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up a configured Gemini API key."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini-api-key")
    get_settings.cache_clear()
