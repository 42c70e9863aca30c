"""FastAPI application for the threat classification service."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Union

from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded  # type: ignore[import-not-found]

from threat_classifier.config import get_settings
from threat_classifier.middleware.logging import RequestLoggingMiddleware
from threat_classifier.middleware.rate_limit import (
    get_limiter,
    rate_limit_exceeded_handler,
    RateLimitMiddleware,
)
from threat_classifier.routers import analysis, scenarios
from threat_classifier.services.gemini_client import get_gemini_client
from threat_classifier.services.rule_engine import classify_threat
from threat_classifier.services.demo_scenarios import DEMO_SCENARIOS

# Application metadata
VERSION = "1.0.0"
COMMIT_HASH = "development"  # This can be set via environment variable or build process

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan event handler for startup and shutdown."""
    try:
        # Raises ValidationError if env vars are present but invalid
        settings = get_settings()

        # Log startup (without exposing secrets)
        logger.info(f"Starting Threat Classification API v{VERSION}")
        logger.info(f"Model: {settings.model_name}")
        logger.info(f"Live analysis: {'enabled' if settings.gemini_api_key else 'disabled (no GEMINI_API_KEY)'}")
        logger.info("Environment validation: OK")

    except Exception as e:
        logger.error(f"Startup validation failed: {e}")
        raise

    yield

    logger.info("Shutting down Threat Classification API")


app = FastAPI(
    title="Threat Classification API",
    description="Rule-gated threat classification for photographs and X-ray scans (demo scenarios + Gemini live analysis)",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add rate limiter to app state (required by slowapi)
limiter = get_limiter()
app.state.limiter = limiter

# Register custom rate limit exceeded handler
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]

# Analyse endpoint keeps its JSON envelope for malformed bodies
app.add_exception_handler(RequestValidationError, analysis.analyze_threat_validation_handler)  # type: ignore[arg-type]

# add_middleware prepends, so the last one added is outermost.
# Order from the outside in: logging, rate limit headers, CORS.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this to specific domains
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add rate limit middleware for adding X-RateLimit-Remaining header
app.add_middleware(RateLimitMiddleware)

# Add logging middleware (last, so it wraps all other middleware)
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", response_model=None)
async def health_check() -> Union[Dict[str, Any], Response]:
    """
    Health check endpoint that verifies the classification services.

    The rule engine is required; the Gemini API is optional and reported as
    "not_configured" when no API key is set (the demo path still works).

    Status Codes:
        200: All configured services healthy
        503: Rule engine self-check failed or the Gemini client errored
    """
    timestamp = datetime.utcnow().isoformat()
    services: Dict[str, str] = {}
    overall_healthy = True

    # Check rule engine against a known scenario
    try:
        scenario = DEMO_SCENARIOS["benign-laptop"]
        result = classify_threat(scenario.predictions, scenario.features)
        if result.threat_level == "SAFE":
            services["rule_engine"] = "healthy"
        else:
            services["rule_engine"] = f"unhealthy: unexpected threat level {result.threat_level}"
            overall_healthy = False
    except Exception as e:
        services["rule_engine"] = f"unhealthy: {str(e)}"
        overall_healthy = False

    # Check Gemini API client
    try:
        client = get_gemini_client()
        if client:
            services["gemini_api"] = "healthy"
        else:
            services["gemini_api"] = "unhealthy: client is None"
            overall_healthy = False
    except ValueError:
        services["gemini_api"] = "not_configured"
    except Exception as e:
        services["gemini_api"] = f"unhealthy: {str(e)}"
        overall_healthy = False

    response_data: Dict[str, Any] = {
        "status": "healthy" if overall_healthy else "unhealthy",
        "timestamp": timestamp,
        "services": services,
    }

    if not overall_healthy:
        return Response(
            content=json.dumps(response_data),
            status_code=503,
            media_type="application/json",
        )

    return response_data


@app.get("/version")
async def version_info() -> Dict[str, str]:
    """Get version information for the API."""
    return {
        "version": VERSION,
        "commit_hash": COMMIT_HASH,
    }


app.include_router(analysis.router)
app.include_router(scenarios.router)
