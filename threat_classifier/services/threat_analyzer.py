"""
Live image analysis using the Gemini multimodal API.

Sends a single image with a fixed taxonomy prompt and parses the model's JSON
reply into an AIAnalysis record. The call is never retried: gateway errors
are surfaced to the caller, and a reply that cannot be parsed degrades to an
ambiguous/benign placeholder instead of failing the request.
"""

import json
import logging
import re

from google import genai
from google.genai import errors, types
from pydantic import ValidationError

from threat_classifier.models.analysis import AIAnalysis, ThreatIndicators

logger = logging.getLogger(__name__)


class AIGatewayError(Exception):
    """Raised when the hosted model rejects or fails the request.

    Attributes:
        status_code: HTTP status reported by the gateway (0 if unknown)
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class EmptyAnalysisError(Exception):
    """Raised when the model reply carries no text content."""


SYSTEM_PROMPT = """You are SENTINEL AI, an advanced security threat detection system. Analyze the uploaded image and classify any objects detected.

STRICT CLASS TAXONOMY:
- firearm: handgun, rifle, shotgun, gun-like shapes, weapons
- explosive_device: IED, bomb, detonator, explosive materials (requires ≥2 supporting components like wires + container)
- suspicious_component: wires, batteries, timers, unusual circuitry (alone does NOT imply explosive)
- benign_object: bags, electronics, tools, everyday items

CRITICAL RULES:
1. A firearm MUST NEVER be classified as suspicious_component or wire_bundle
2. explosive_device requires ≥2 supporting components (wiring + container, battery + timer, etc.)
3. suspicious_component alone does NOT indicate an explosive
4. Look for firearm features: barrel structure, trigger guard, grip geometry, metallic frame

VISUAL FEATURE DETECTION:
For firearms, look for:
- barrel_structure: Cylindrical barrel
- trigger_guard: Trigger mechanism
- grip_geometry: Handle/grip shape
- metallic_frame: Metal construction
- slide_mechanism: Slide/action

For explosives, look for:
- wire_bundle: Visible wiring
- battery_pack: Power source
- timer_display: Timer/electronics
- container: Housing/casing
- detonator: Detonation mechanism

RESPOND IN EXACT JSON FORMAT:
{
  "detected": true/false,
  "primaryClass": "firearm"|"explosive_device"|"suspicious_component"|"benign_object",
  "confidence": 0.0-1.0,
  "secondaryClass": "class_name"|null,
  "secondaryConfidence": 0.0-1.0|null,
  "detectedFeatures": [
    {"name": "feature_name", "confidence": 0.0-1.0, "description": "what was detected"}
  ],
  "explanation": "Brief explanation of what was detected and why",
  "threatIndicators": {
    "hasFirearmFeatures": true/false,
    "hasExplosiveComponents": true/false,
    "componentCount": number
  }
}

Be accurate. Do not hallucinate threats. If the image shows ordinary objects, classify as benign_object with high confidence."""

XRAY_CONTEXT = (
    "This is an X-RAY scan image. You can see internal structures, wiring, "
    "and components that would not be visible in a normal photo."
)

RGB_CONTEXT = (
    "This is a standard RGB photograph. Only analyze visually apparent "
    "features - do not assume internal components."
)

_FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def build_user_prompt(is_xray: bool) -> str:
    """Build the user turn text for the given modality."""
    modality_context = XRAY_CONTEXT if is_xray else RGB_CONTEXT
    return (
        f"{modality_context}\n\n"
        "Analyze this image for security threats. "
        "Provide your analysis in the exact JSON format specified."
    )


def fallback_analysis(content: str) -> AIAnalysis:
    """Placeholder analysis used when the model reply is not valid JSON."""
    return AIAnalysis(
        detected=True,
        primary_class="benign_object",
        confidence=0.5,
        secondary_class=None,
        secondary_confidence=None,
        detected_features=[],
        explanation=content,
        threat_indicators=ThreatIndicators(),
        is_ambiguous=True,
    )


def parse_analysis_content(content: str) -> AIAnalysis:
    """
    Parse the model reply, tolerating a markdown code fence around the JSON.

    Args:
        content: Raw text returned by the model

    Returns:
        Parsed AIAnalysis, or the ambiguous fallback if parsing fails
    """
    json_str = content
    match = _FENCED_JSON_PATTERN.search(content)
    if match:
        json_str = match.group(1)

    try:
        return AIAnalysis.model_validate(json.loads(json_str.strip()))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Failed to parse model reply as analysis JSON: {e}")
        return fallback_analysis(content)


def analyze_image(
    client: genai.Client,
    image_bytes: bytes,
    mime_type: str,
    is_xray: bool = False,
    model: str = "gemini-2.5-flash",
) -> AIAnalysis:
    """
    Send one image to Gemini and return the parsed analysis.

    Args:
        client: Gemini API client
        image_bytes: Decoded image content
        mime_type: Detected image MIME type
        is_xray: Whether the image is an X-ray scan
        model: Gemini model name

    Returns:
        AIAnalysis parsed from the reply (fallback record if malformed)

    Raises:
        AIGatewayError: If the API rejects or fails the request
        EmptyAnalysisError: If the reply has no text content
    """
    logger.info(f"Analyzing image with {model} (modality: {'X-RAY' if is_xray else 'RGB'})")

    try:
        response = client.models.generate_content(
            model=model,
            contents=[
                types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                build_user_prompt(is_xray),
            ],
            config=types.GenerateContentConfig(system_instruction=SYSTEM_PROMPT),
        )
    except errors.APIError as e:
        logger.error(f"AI gateway error: {e.code} {e.message}")
        raise AIGatewayError(e.code or 0, str(e)) from e

    content = response.text
    if not content:
        logger.error("No content in AI response")
        raise EmptyAnalysisError("No analysis result")

    analysis = parse_analysis_content(content)
    logger.info(
        f"Analysis complete: {analysis.primary_class} confidence: {analysis.confidence}"
    )
    return analysis
