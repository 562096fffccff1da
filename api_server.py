"""
FastAPI Server for the Ads/CRM to Sheets sync job

Provides REST API endpoints for:
- Triggering one pipeline run (scheduler or manual)
- Health checks and client capability status
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from loguru import logger
import uvicorn

from config import settings
from modules.health_check import HealthChecker
from modules.logging_utils import (
    configure_logging_with_correlation,
    generate_correlation_id,
    set_correlation_id,
)
from modules.pipeline import SyncContext, SyncPipeline, build_context


SUCCESS_MESSAGE = "Pipeline executado com sucesso!"
FAILURE_MESSAGE = "Erro na execução do pipeline."


# ============================================================================
# FastAPI App Setup
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the clients once per process and reuse them across runs"""
    configure_logging_with_correlation(settings.log_level, settings.log_file_path)
    if getattr(app.state, "context", None) is None:
        app.state.context = build_context(settings)
    logger.info("Sync service ready")
    yield


app = FastAPI(
    title="Ads CRM Sheets Sync API",
    description="Triggers the Google Ads / HubSpot to Google Sheets sync and reports health",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

health_checker = HealthChecker()


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    timestamp: str
    components: List[Dict[str, Any]]
    summary: Dict[str, int]


class SyncResponse(BaseModel):
    """JSON envelope for a pipeline run"""
    status: str
    message: str
    details: Optional[Any] = None


# ============================================================================
# Dependency Injection
# ============================================================================

def get_sync_context(request: Request) -> SyncContext:
    """Context built in the lifespan handler"""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Sync context not initialized")
    return context


def add_correlation_id():
    """Add correlation ID to request context"""
    correlation_id = generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


# ============================================================================
# Sync Trigger
# ============================================================================

@app.api_route("/", methods=["GET", "POST"], tags=["Sync"])
@app.api_route("/api/sync", methods=["GET", "POST"], tags=["Sync"])
async def run_sync(
    response_format: Optional[str] = Query(None, alias="format"),
    context: SyncContext = Depends(get_sync_context),
    correlation_id: str = Depends(add_correlation_id)
):
    """
    Run the pipeline once

    Returns 200 when the run completes, even if some data sources were
    skipped or produced no rows; only an escaped exception yields 500.
    """
    as_json = (response_format or "").lower() == "json"
    try:
        report = await SyncPipeline(context).run()
    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        if as_json:
            body = SyncResponse(status="error", message=FAILURE_MESSAGE, details=str(e))
            return JSONResponse(status_code=500, content=body.model_dump())
        return PlainTextResponse(FAILURE_MESSAGE, status_code=500)

    if as_json:
        body = SyncResponse(status="success", message=SUCCESS_MESSAGE, details=report.to_dict())
        return JSONResponse(status_code=200, content=body.model_dump())
    return PlainTextResponse(SUCCESS_MESSAGE, status_code=200)


# ============================================================================
# Health & Status Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Status"])
async def health_check(context: SyncContext = Depends(get_sync_context)):
    """
    Health of every client the pipeline uses

    Returns health status of:
    - Configuration
    - Google Ads client
    - HubSpot client and its capability set
    - Google Sheets client
    """
    try:
        return health_checker.check_all(context)
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Health check failed: {str(e)}")


@app.get("/health/components/{component_name}", tags=["Status"])
async def component_health(component_name: str, context: SyncContext = Depends(get_sync_context)):
    """Check health of a specific component"""
    health_status = health_checker.check_all(context)

    component = next(
        (c for c in health_status["components"] if c["name"] == component_name),
        None
    )

    if not component:
        raise HTTPException(status_code=404, detail=f"Component '{component_name}' not found")

    return component


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    logger.info("Starting sync API server...")
    uvicorn.run(
        "api_server:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower()
    )
