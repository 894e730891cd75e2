"""
FastAPI Trade Diligence API Server

REST endpoints around the diligence engine: full case screening plus the
stand-alone IBAN and SWIFT validators.

Usage:
    uvicorn api.server:app --reload --port 8000
"""

import os
import time
import logging
import asyncio
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request, Security
from fastapi.security import APIKeyHeader

from api.models import (
    DiligenceRequest,
    DiligenceResponse,
    IbanRequest,
    IbanResponse,
    SwiftRequest,
    SwiftResponse,
    HealthResponse,
    ProviderHealth,
    ErrorResponse,
)
from api.middleware import (
    setup_cors,
    setup_exception_handlers,
    RequestLoggingMiddleware,
)
from config_manager import get_config, ConfigManager, ConfigurationError
from monitoring import get_provider_metrics
from orchestrator import DiligenceEngine
from risk_models import Case
from validators import validate_iban, validate_swift

logger = logging.getLogger(__name__)

ENGINE_VERSION = "1.0.0"

# Environment variables with defaults
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
CONFIG_PATH = os.getenv("CONFIG_PATH", "config.yaml")
API_KEY = os.getenv("API_KEY", "")  # Required for authenticated endpoints

# Global state
_engine: Optional[DiligenceEngine] = None
_config: Optional[ConfigManager] = None
_startup_time: Optional[datetime] = None

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """Verify API key for protected endpoints.

    If API_KEY environment variable is not set, authentication is disabled.
    """
    if not API_KEY:
        return "dev-mode"

    if not api_key:
        raise HTTPException(
            status_code=401, detail="Missing API key. Provide X-API-Key header."
        )

    if api_key != API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key


def get_engine() -> DiligenceEngine:
    """Dependency to get the engine instance."""
    if _engine is None:
        raise HTTPException(
            status_code=503, detail="Engine not initialized. Service is starting up."
        )
    return _engine


def get_config_instance() -> ConfigManager:
    """Dependency to get the config instance."""
    global _config
    if _config is None:
        _config = get_config(CONFIG_PATH)
    return _config


app = FastAPI(
    title="Trade Diligence API",
    description="Counterparty, banking and shipping risk screening for trade transactions",
    version=ENGINE_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

setup_cors(app)
app.add_middleware(RequestLoggingMiddleware)
setup_exception_handlers(app)


@app.on_event("startup")
async def startup():
    """Load configuration and build the provider set."""
    global _engine, _config, _startup_time

    logger.info("🚀 Starting Trade Diligence API...")

    try:
        _config = get_config(CONFIG_PATH)
        logger.info(f"✓ Configuration loaded from {CONFIG_PATH}")

        _engine = DiligenceEngine.from_config(_config)
        _startup_time = datetime.now(timezone.utc)
        logger.info("✓ API ready: %d providers", len(_engine.providers))

    except ConfigurationError as e:
        logger.error(f"✗ Configuration error: {e}")
        raise


@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Trade Diligence API...")
    if _engine is not None:
        _engine.close()


async def _run_until_disconnect(request: Request, engine: DiligenceEngine, case: Case,
                                config: ConfigManager):
    """Run the engine, cancelling it if the client goes away or the run times out

    Returns the verdict, or None when the client disconnected.
    """
    run = asyncio.ensure_future(engine.run(case))
    deadline = time.monotonic() + config.api.run_timeout_seconds

    try:
        while True:
            done, _ = await asyncio.wait({run}, timeout=config.api.disconnect_poll_seconds)
            if done:
                return run.result()
            if await request.is_disconnected():
                logger.warning("Client disconnected, cancelling case %s", case.case_id)
                run.cancel()
                return None
            if time.monotonic() >= deadline:
                run.cancel()
                raise HTTPException(status_code=504, detail="Diligence run timed out")
    finally:
        if not run.done():
            run.cancel()


@app.post(
    "/api/v1/diligence",
    response_model=DiligenceResponse,
    responses={
        200: {"model": DiligenceResponse, "description": "Verdict issued"},
        400: {"model": ErrorResponse, "description": "Case rejected"},
        401: {"model": ErrorResponse, "description": "Missing API key"},
        403: {"model": ErrorResponse, "description": "Invalid API key"},
        504: {"model": ErrorResponse, "description": "Run timed out"},
    },
    summary="Screen a trade case",
    description="Screen all parties, banking details and trade documents of a case",
)
async def run_diligence(
    body: DiligenceRequest,
    request: Request,
    engine: DiligenceEngine = Depends(get_engine),
    config: ConfigManager = Depends(get_config_instance),
    api_key: str = Depends(verify_api_key),
):
    """Screen a case and return its verdict.

    Provider failures never fail the request; they are listed in
    databasesUnavailable.
    """
    start_time = time.time()
    case = Case.from_dict(body.to_case_dict())

    verdict = await _run_until_disconnect(request, engine, case, config)
    if verdict is None:
        # Nobody is listening any more
        raise HTTPException(status_code=499, detail="Client closed request")

    result = verdict.to_dict()
    result["processingTimeMs"] = int((time.time() - start_time) * 1000)
    return result


@app.post(
    "/api/v1/validate/iban",
    response_model=IbanResponse,
    response_model_exclude_none=True,
    summary="Validate an IBAN",
)
async def check_iban(body: IbanRequest, api_key: str = Depends(verify_api_key)):
    return validate_iban(body.iban).to_dict()


@app.post(
    "/api/v1/validate/swift",
    response_model=SwiftResponse,
    response_model_exclude_none=True,
    summary="Validate a SWIFT/BIC code",
)
async def check_swift(body: SwiftRequest, api_key: str = Depends(verify_api_key)):
    return validate_swift(body.swift).to_dict()


@app.get(
    "/api/v1/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Service status and per-provider call statistics",
)
async def health_check(engine: DiligenceEngine = Depends(get_engine)):
    """Always returns HTTP 200 once the engine is up."""
    metrics = get_provider_metrics()
    providers = []
    for provider in engine.providers:
        stats = metrics.get(provider.name, {})
        providers.append(ProviderHealth(
            name=provider.name,
            label=provider.label,
            calls=stats.get("calls", 0),
            failures=stats.get("failures", 0),
            avg_time_ms=stats.get("avg_time_ms", 0.0),
        ))

    uptime_seconds = None
    if _startup_time:
        uptime_seconds = int((datetime.now(timezone.utc) - _startup_time).total_seconds())

    return HealthResponse(
        status="healthy" if providers else "degraded",
        providers=providers,
        domain_age_lookup=engine.domain_lookup is not None,
        version=ENGINE_VERSION,
        uptime_seconds=uptime_seconds,
    )


@app.get("/", include_in_schema=False)
async def root():
    """Redirect root to API documentation."""
    from fastapi.responses import RedirectResponse

    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    uvicorn.run(app, host=API_HOST, port=API_PORT)
