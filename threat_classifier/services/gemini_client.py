"""Gemini client factory for the live analysis path.

Uses the google-genai SDK. Rule-engine and demo endpoints never touch it, so
a missing key only matters once an image is submitted.
"""

from google import genai
from threat_classifier.config import get_settings


def get_gemini_client() -> genai.Client:
    """Build a Gemini client from the configured API key.

    Raises:
        ValueError: If GEMINI_API_KEY is unset or blank.
    """
    api_key = get_settings().gemini_api_key
    if not api_key:
        raise ValueError(
            "GEMINI_API_KEY not set in environment. "
            "Live image analysis needs a key in your .env file or environment."
        )

    return genai.Client(api_key=api_key)
