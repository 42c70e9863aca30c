"""Structured JSON access logging for the classification API."""

import json
import logging
import sys
import time
import uuid
from typing import Any, Awaitable, Callable, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

# One JSON document per line on stdout
logging.basicConfig(
    level=logging.INFO,
    format='%(message)s',
    stream=sys.stdout
)

logger = logging.getLogger(__name__)

# Response header -> log field
VERDICT_HEADERS = {
    "X-Threat-Level": "threat_level",
    "X-Modality": "modality",
}


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emit one JSON log line per request.

    Each line carries the request id, method, path, client IP, status code
    and latency. Classification routes also expose their verdict through
    response headers, which are copied into the line so screening outcomes
    can be audited without logging bodies.

    Image payloads and API keys are never logged. Responses with a 5xx
    status are logged at WARNING.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        record: Dict[str, Any] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "user_ip": request.client.host if request.client else "unknown",
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            record.update({
                "status_code": 500,
                "processing_time_ms": _elapsed_ms(started),
                "error": str(e),
                "error_type": type(e).__name__,
                "message": f"Request failed: {request.method} {request.url.path}",
            })
            logger.error(json.dumps(record), exc_info=True)
            raise

        record["status_code"] = response.status_code
        record["processing_time_ms"] = _elapsed_ms(started)
        for header, field in VERDICT_HEADERS.items():
            if header in response.headers:
                record[field] = response.headers[header]

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, json.dumps(record))

        response.headers["X-Request-ID"] = request_id
        return response
