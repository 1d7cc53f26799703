"""API routes for the asset search service."""

import time
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from libs.asset_store.base import RecordType

from ..errors import GENERIC_SEARCH_ERROR, SearchFailedError, SearchValidationError
from ..hybrid.orchestrator import SearchOrchestrator
from ..models import build_search_request

logger = structlog.get_logger("search_service.api")

router = APIRouter()


class SearchBody(BaseModel):
    """Request model for search endpoint."""
    free_text_query: Optional[str] = Field(None, description="Natural-language query (semantic)")
    keywords: Optional[str] = Field(None, description="Keyword query (lexical)")
    campaign_id: str = Field(..., description="Campaign to search within")
    record_type: Optional[RecordType] = Field(None, description="Optional asset type filter")
    limit: Optional[int] = Field(None, description="Maximum number of results")
    min_score: Optional[float] = Field(None, description="Minimum score in [0, 1]")


class SearchResult(BaseModel):
    """Search result model."""
    id: str = Field(..., description="Asset ID")
    score: float = Field(..., description="Canonical relevance score in [0, 1]")
    relevance_score: float = Field(..., description="Retrieval-native score")
    mode: str = Field(..., description="Search mode that produced the result")
    attributes: Dict[str, Any] = Field(..., description="Asset attributes")


class SearchResponseBody(BaseModel):
    """Response model for search endpoint."""
    results: List[SearchResult] = Field(..., description="Search results")
    total: int = Field(..., description="Number of results returned")
    mode: str = Field(..., description="Search mode that executed")
    timings: Dict[str, float] = Field(..., description="Stage durations in milliseconds")
    latency_ms: float = Field(..., description="Endpoint latency in milliseconds")


def get_search_orchestrator(request: Request) -> SearchOrchestrator:
    """Get search orchestrator from application state."""
    return request.app.state.search_orchestrator


def get_search_defaults(request: Request) -> Dict[str, Any]:
    """Configured request defaults (``limit``/``min_score``), if any."""
    return getattr(request.app.state, "search_defaults", {})


@router.post("/search", response_model=SearchResponseBody)
async def search(
    body: SearchBody,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
    defaults: Dict[str, Any] = Depends(get_search_defaults)
):
    """Search campaign assets."""
    start_time = time.time()

    try:
        search_request = build_search_request(**{**defaults, **body.model_dump(exclude_none=True)})
    except SearchValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        response = await orchestrator.search(search_request)
    except SearchFailedError:
        raise HTTPException(status_code=500, detail=GENERIC_SEARCH_ERROR)

    latency_ms = (time.time() - start_time) * 1000

    logger.info(
        "Search completed",
        campaign_id=search_request.campaign_id,
        search_mode=response.mode.value,
        results_count=len(response.results),
        latency_ms=latency_ms
    )

    return SearchResponseBody(
        results=[SearchResult(**result.to_dict()) for result in response.results],
        total=len(response.results),
        mode=response.mode.value,
        timings=response.timings.to_dict(),
        latency_ms=latency_ms
    )


@router.get("/cache")
async def cache_metrics(orchestrator: SearchOrchestrator = Depends(get_search_orchestrator)):
    """Embedding cache counters."""
    return orchestrator.cache_metrics()
