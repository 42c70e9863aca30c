"""
Threat analysis API endpoints.

Provides the live image analysis endpoints (hosted model + rule post-processing)
and direct access to the deterministic rule engine.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from threat_classifier.config import get_settings
from threat_classifier.middleware.rate_limit import RATE_LIMITS, get_limiter
from threat_classifier.models.analysis import (
    AIAnalysis,
    AnalyzeRequest,
    AnalyzeResponse,
    RuleClassificationRequest,
)
from threat_classifier.models.classification import ClassificationResult
from threat_classifier.services.analysis_mapping import build_classification
from threat_classifier.services.gemini_client import get_gemini_client
from threat_classifier.services.image_validator import decode_image
from threat_classifier.services.rule_engine import (
    classify_threat,
    detect_modality,
    get_demo_safe_fallback,
)
from threat_classifier.services.threat_analyzer import (
    AIGatewayError,
    EmptyAnalysisError,
    analyze_image,
)

router = APIRouter(prefix="/api", tags=["analysis"])
limiter = get_limiter()
logger = logging.getLogger(__name__)

# Gateway status -> (status returned to the client, error message)
_GATEWAY_ERRORS = {
    429: (429, "Rate limit exceeded. Please try again in a moment."),
    402: (402, "AI credits exhausted. Please add credits to continue."),
}
_GATEWAY_FAILURE = (500, "AI analysis failed")

ANALYZE_THREAT_PATH = "/api/analyze-threat"


async def _run_live_analysis(payload: AnalyzeRequest) -> AIAnalysis:
    """
    Validate the image and send it to the hosted model.

    Raises:
        HTTPException: 400/413 for invalid images, 500 when the AI service is
            not configured or returns nothing, 429/402/500 for gateway errors
    """
    if not payload.image_base64:
        raise HTTPException(status_code=400, detail="No image provided")

    image_bytes, mime_type, image_hash = decode_image(payload.image_base64)

    try:
        client = get_gemini_client()
    except ValueError:
        logger.error("GEMINI_API_KEY not configured")
        raise HTTPException(status_code=500, detail="AI service not configured")

    logger.info(
        f"Image {image_hash[:12]} accepted ({mime_type}, {len(image_bytes)} bytes, "
        f"modality: {detect_modality(payload.is_xray)})"
    )

    try:
        return await asyncio.to_thread(
            analyze_image,
            client,
            image_bytes,
            mime_type,
            payload.is_xray,
            get_settings().model_name,
        )
    except AIGatewayError as e:
        status_code, message = _GATEWAY_ERRORS.get(e.status_code, _GATEWAY_FAILURE)
        raise HTTPException(status_code=status_code, detail=message)
    except EmptyAnalysisError as e:
        raise HTTPException(status_code=500, detail=str(e))


def _envelope(
    status_code: int,
    analysis: Optional[AIAnalysis] = None,
    error: Optional[str] = None,
    modality: Optional[str] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"success": error is None}
    if analysis is not None:
        body["analysis"] = analysis.model_dump(by_alias=True)
    if error is not None:
        body["error"] = error
    headers = {}
    if modality is not None:
        body["modality"] = modality
        headers["X-Modality"] = modality
    return JSONResponse(content=body, status_code=status_code, headers=headers)


async def analyze_threat_validation_handler(
    request: Request, exc: RequestValidationError
) -> Response:
    """
    Keep the analyse envelope for bodies that fail validation.

    Only /api/analyze-threat answers with ``{"success": false, "error": ...}``
    (status 400); every other route gets FastAPI's default 422 response.
    """
    if request.url.path != ANALYZE_THREAT_PATH:
        return await request_validation_exception_handler(request, exc)

    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
    message = first.get("msg", "Invalid request body")

    logger.warning(f"Rejected analyze-threat request: {field}: {message}")
    return _envelope(400, error=f"Invalid request: {field}: {message}")


@router.post("/analyze-threat", response_model=AnalyzeResponse)
@limiter.limit(RATE_LIMITS["analyze"])  # type: ignore[untyped-decorator]
async def analyze_threat(request: Request, payload: AnalyzeRequest) -> JSONResponse:
    """
    Analyse an image with the hosted model and return its raw analysis.

    Body: ``{"imageBase64": "...", "isXray": false}``

    Returns:
        200: ``{"success": true, "analysis": {...}, "modality": "RGB"}``
             (a malformed model reply yields an ambiguous placeholder analysis)
        400: No image provided / invalid image / malformed request body
        402: AI credits exhausted
        413: Image too large
        429: Rate limit exceeded
        500: AI service not configured, analysis failed, or no result
    """
    try:
        analysis = await _run_live_analysis(payload)
    except HTTPException as e:
        return _envelope(e.status_code, error=str(e.detail))
    except Exception as e:
        logger.error(f"Error in analyze-threat: {e}", exc_info=True)
        return _envelope(500, error=str(e) or "Analysis failed")

    return _envelope(200, analysis=analysis, modality=detect_modality(payload.is_xray))


@router.post("/classify", response_model=ClassificationResult)
@limiter.limit(RATE_LIMITS["analyze"])  # type: ignore[untyped-decorator]
async def classify_image(
    request: Request, response: Response, payload: AnalyzeRequest
) -> ClassificationResult:
    """
    Analyse an image with the hosted model and apply the classification rules.

    Returns:
        200: ClassificationResult (threat level also in the X-Threat-Level header)
        Errors use the same status codes as /api/analyze-threat, as
        ``{"detail": "..."}`` bodies.
    """
    try:
        analysis = await _run_live_analysis(payload)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in classify: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Analysis failed: {str(e)}")

    result = build_classification(analysis, detect_modality(payload.is_xray))

    response.headers["X-Threat-Level"] = result.threat_level
    response.headers["X-Modality"] = result.modality
    return result


@router.post("/classify/rules", response_model=ClassificationResult)
@limiter.limit(RATE_LIMITS["rules"])  # type: ignore[untyped-decorator]
async def classify_with_rules(
    request: Request, response: Response, payload: RuleClassificationRequest
) -> ClassificationResult:
    """
    Run the deterministic rule engine on caller-supplied predictions and features.

    Returns:
        200: ClassificationResult
        422: Malformed predictions or features
    """
    result = classify_threat(
        payload.predictions,
        payload.features,
        is_xray=payload.is_xray,
        context=payload.context,
    )

    response.headers["X-Threat-Level"] = result.threat_level
    response.headers["X-Modality"] = result.modality
    return result


@router.get("/fallback", response_model=ClassificationResult)
async def demo_safe_fallback() -> ClassificationResult:
    """Return the conservative record shown when live analysis is unavailable."""
    return get_demo_safe_fallback()
