"""
HTTP plumbing for the diligence API: CORS, access logging and the
error envelope.

Every failure, whatever raised it, reaches the client as
{"error": {code, message, timestamp, field?, suggestion?}}.
"""

import os
import re
import time
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config_manager import ConfigurationError
from risk_models import CaseValidationError
from text_utils import sanitize_for_logging

logger = logging.getLogger(__name__)

LOCAL_ORIGINS = [
    f"http://{host}:{port}"
    for host in ("localhost", "127.0.0.1")
    for port in (3000, 5173, 8000)
]

TRACE_HEADERS = ["X-Request-ID", "X-Processing-Time-MS"]


def cors_origin_settings(origins: List[str]) -> Dict[str, Any]:
    """CORSMiddleware keyword arguments for a list of origins

    An entry like https://*.example.com matches one subdomain label.
    Exact entries go to allow_origins unless a wildcard forces the whole
    list into one allow_origin_regex.
    """
    if not any("*" in o for o in origins):
        return {"allow_origins": list(origins)}
    alternatives = [re.escape(o).replace(r"\*", r"[\w-]+") for o in origins]
    return {"allow_origin_regex": "|".join(f"(?:{a})" for a in alternatives)}


def setup_cors(app: FastAPI) -> None:
    """Allow browser callers from CORS_ORIGINS (comma-separated) or localhost"""
    configured = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=TRACE_HEADERS,
        **cors_origin_settings(configured or LOCAL_ORIGINS),
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line in, one out, tagged with the request id

    Bodies name the screened parties and stay out of the log.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        started = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or f"req-{time.time_ns()}"
        request.state.request_id = request_id
        safe_id = sanitize_for_logging(request_id)

        logger.info("→ %s %s [%s]", request.method, sanitize_for_logging(request.url.path), safe_id)
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("✗ %s %s failed after %dms [%s]: %s", request.method,
                         sanitize_for_logging(request.url.path), _elapsed_ms(started), safe_id,
                         sanitize_for_logging(str(exc)))
            raise

        elapsed = _elapsed_ms(started)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-MS"] = str(elapsed)
        logger.info("← %d in %dms [%s]", response.status_code, elapsed, safe_id)
        return response


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "-")


def error_response(
    code: str,
    message: str,
    status_code: int = 500,
    field: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> JSONResponse:
    """Wrap an error in the envelope; field and suggestion only when known"""
    body: Dict[str, Any] = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if field:
        body["field"] = field
    if suggestion:
        body["suggestion"] = suggestion
    return JSONResponse(status_code=status_code, content={"error": body})


async def case_validation_handler(request: Request, exc: CaseValidationError) -> JSONResponse:
    logger.warning("Case rejected (%s on %s) [%s]", exc.code, exc.field, _request_id(request))
    return error_response(exc.code, str(exc), 400, field=exc.field, suggestion=exc.suggestion)


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.warning("HTTP %d: %s [%s]", exc.status_code, sanitize_for_logging(detail), _request_id(request))
    return error_response(f"HTTP_{exc.status_code}", detail, exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort; internal details are logged, never returned"""
    logger.error("Unhandled %s [%s]: %s", type(exc).__name__, _request_id(request),
                 sanitize_for_logging(str(exc)))
    if isinstance(exc, ConfigurationError):
        return error_response("CONFIGURATION_ERROR", "The service is misconfigured", 503)
    return error_response("INTERNAL_ERROR", "Unexpected server error", 500)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CaseValidationError, case_validation_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
