"""Asset search service: HTTP wiring around the search orchestrator."""

import time
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from libs.common.config import SearchConfig
from libs.common.logging import configure_logging
from libs.common.tracing import configure_tracing

from .api.routes import router as api_router
from .hybrid.orchestrator import create_search_orchestrator
from .runtime.metrics import MetricsCollector

SERVICE_NAME = "search-service"

logger = structlog.get_logger("search_service")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the orchestrator from settings and release it on shutdown."""
    config = SearchConfig()
    configure_logging(SERVICE_NAME, config.ml_log_level, config.ml_log_format, env=config.ml_env)

    if config.ml_tracing_enabled and configure_tracing(SERVICE_NAME, config.ml_otel_exporter) is None:
        logger.warning("Search spans will not be exported", exporter=config.ml_otel_exporter)

    app.state.metrics_collector = MetricsCollector(SERVICE_NAME)
    app.state.search_defaults = {
        "limit": config.ml_search_default_limit,
        "min_score": config.ml_search_default_min_score,
    }

    orchestrator = create_search_orchestrator(config, metrics=app.state.metrics_collector)
    await orchestrator.retriever.store.initialize()
    app.state.search_orchestrator = orchestrator

    logger.info(
        "Search service started",
        backend=config.ml_search_backend,
        native_fusion=orchestrator.native_fusion,
        tracing=config.ml_tracing_enabled
    )

    yield

    await orchestrator.cleanup()
    logger.info("Search service stopped")


app = FastAPI(
    title="Asset Search Service",
    description="Hybrid semantic and lexical search over campaign assets",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Count every HTTP request by route and status."""
    start_time = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error("Unhandled request error", path=request.url.path, error=str(e))
        response = JSONResponse(status_code=500, content={"error": "Internal server error"})

    collector = getattr(app.state, "metrics_collector", None)
    if collector is not None:
        collector.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
            duration=time.perf_counter() - start_time
        )

    return response


@app.get("/health")
async def health_check():
    """Report whether the asset store answers."""
    orchestrator = getattr(app.state, "search_orchestrator", None)
    healthy = orchestrator is not None and await orchestrator.health_check()

    content = {
        "status": "healthy" if healthy else "unhealthy",
        "store": type(orchestrator.retriever.store).__name__ if orchestrator else None,
        "native_fusion": orchestrator.native_fusion if orchestrator else None,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=content)


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    collector = getattr(app.state, "metrics_collector", None)
    data = collector.get_metrics() if collector is not None else ""
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    return {
        "service": SERVICE_NAME,
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "search": "/api/v1/search",
            "cache": "/api/v1/cache"
        }
    }


if __name__ == "__main__":
    uvicorn.run(
        "asset_search.main:app",
        host="0.0.0.0",
        port=SearchConfig().ml_search_port,
        log_level="info"
    )
