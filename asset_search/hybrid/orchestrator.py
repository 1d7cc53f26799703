"""Search orchestrator for campaign asset search.

A request moves strictly forward through:

    mode select -> embed (if needed) -> retrieve -> [fuse] -> min-score filter -> limit

Mode selection depends only on which query forms the request carries and
whether hybrid requests are fused by the store (resolved once, at
construction, from the hybrid method and the store's capability tier).
Retrieval runs through one ``RetrievalStrategy`` per mode.

Any runtime failure (embedding or retrieval) is logged with full detail and
surfaced as ``SearchFailedError`` carrying only a generic message.
"""

import time
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from libs.asset_store.factory import create_asset_store
from libs.common.config import SearchConfig
from libs.common.logging import log_performance
from libs.common.metrics import MetricsCollector
from libs.common.tracing import SearchTracer, get_search_tracer

from ..errors import EmbeddingError, SearchFailedError
from ..models import SearchMode, SearchRequest, SearchResponse, SearchTimings
from ..ranking.fusion import DEFAULT_RRF_K, ReciprocalRankFusion
from ..retrievers.cache_manager import EmbeddingCache
from ..retrievers.candidates import CandidateRetriever
from ..retrievers.embedding_client import EmbeddingProvider, EmbeddingServiceClient
from ..runtime.quality import QualityMetricsSampler
from ..runtime.sinks import RedisStreamMetricsSink
from .modes import HybridMethod, resolve_native_fusion, select_search_mode
from .strategies import (
    ManualHybridStrategy,
    NativeHybridStrategy,
    RetrievalStrategy,
    TextOnlyStrategy,
    VectorOnlyStrategy,
)

logger = structlog.get_logger("search_service.orchestrator")


class SearchOrchestrator:
    """Coordinates embedding, retrieval, fusion and final filtering.

    Responsibilities
    - Pick the search mode for each request
    - Reuse query embeddings through the ``EmbeddingCache``
    - Apply ``min_score`` and ``limit`` after scores are canonical
    - Hand finished searches to the quality sampler without waiting on it
    """

    def __init__(
        self,
        retriever: CandidateRetriever,
        embedder: EmbeddingProvider,
        cache: Optional[EmbeddingCache] = None,
        fusion: Optional[ReciprocalRankFusion] = None,
        hybrid_method: HybridMethod = HybridMethod.AUTO,
        native_vector_weight: float = 0.5,
        sampler: Optional[QualityMetricsSampler] = None,
        metrics: Optional[MetricsCollector] = None,
        tracer: Optional[SearchTracer] = None
    ):
        """Construct a search orchestrator.

        Parameters
        - retriever: Candidate retriever bound to an asset store
        - embedder: Embedding provider for free-text queries
        - cache: Query embedding cache (a fresh 1000-entry cache by default)
        - fusion: RRF engine used for client-side hybrid fusion
        - hybrid_method: ``auto``, ``manual`` or ``native``
        - native_vector_weight: Vector share of store-side fusion (text gets the rest)
        - sampler: Optional quality metrics sampler
        - metrics: Optional Prometheus collector
        - tracer: Span helper (no-op unless tracing is configured)
        """
        self.retriever = retriever
        self.embedder = embedder
        self.cache = cache if cache is not None else EmbeddingCache()
        self.fusion = fusion or ReciprocalRankFusion(DEFAULT_RRF_K)
        self.sampler = sampler
        self.metrics = metrics
        self.tracer = tracer or get_search_tracer()

        self.native_fusion = resolve_native_fusion(
            hybrid_method,
            retriever.supports_native_fusion
        )

        self._strategies: Dict[SearchMode, RetrievalStrategy] = {
            SearchMode.VECTOR_ONLY: VectorOnlyStrategy(retriever),
            SearchMode.TEXT_ONLY: TextOnlyStrategy(retriever),
            SearchMode.MANUAL_HYBRID: ManualHybridStrategy(retriever, self.fusion),
            SearchMode.NATIVE_HYBRID: NativeHybridStrategy(
                retriever,
                vector_weight=native_vector_weight,
                rank_constant=self.fusion.k
            ),
        }

        logger.info(
            "Search orchestrator initialized",
            native_fusion=self.native_fusion,
            hybrid_method=HybridMethod(hybrid_method).value,
            rrf_k=self.fusion.k,
            overquery_factor=retriever.overquery_factor
        )

    def select_mode(self, request: SearchRequest) -> SearchMode:
        return select_search_mode(
            request.has_free_text,
            request.has_keywords,
            self.native_fusion
        )

    async def _embed_query(self, text: str) -> List[float]:
        """Return the query embedding, consulting the cache first."""
        cached = self.cache.get(text)
        if cached is not None:
            return cached

        with self.tracer.trace_embedding(len(text)):
            vector = await self.embedder.embed(text)
        if not vector:
            raise EmbeddingError("Embedding provider returned an empty vector")

        self.cache.set(text, vector)
        return list(vector)

    async def search(
        self,
        request: SearchRequest,
        capture_metrics: bool = True
    ) -> SearchResponse:
        """Run a search and return canonical-scored results.

        ``capture_metrics=False`` skips the quality sampler.

        Raises
        - SearchValidationError: the request carries no query
        - SearchFailedError: embedding or retrieval failed
        """
        mode = self.select_mode(request)

        try:
            response, candidate_count = await self._execute(request, mode)
        except Exception as e:
            logger.error(
                "Campaign asset search failed",
                search_mode=mode.value,
                campaign_id=request.campaign_id,
                record_type=request.record_type.value if request.record_type else None,
                has_free_text=request.has_free_text,
                has_keywords=request.has_keywords,
                query_length=request.query_length,
                error_type=type(e).__name__,
                error=str(e)
            )
            if self.metrics:
                self.metrics.record_search_failure(mode.value)
            raise SearchFailedError() from e

        timings = response.timings
        if self.metrics:
            self.metrics.record_search(mode.value, timings.total / 1000, len(response.results))
            self.metrics.record_cache_metrics(self.cache.metrics())

        log_performance(
            "asset_search",
            timings.total,
            search_mode=mode.value,
            campaign_id=request.campaign_id,
            candidate_count=candidate_count,
            results_count=len(response.results)
        )

        if capture_metrics and self.sampler:
            self.sampler.maybe_sample(
                request,
                response.results,
                timings,
                mode,
                rerun=self._expanded_search
            )

        return response

    async def _execute(self, request: SearchRequest, mode: SearchMode) -> Tuple[SearchResponse, int]:
        """Embed, retrieve, filter and truncate; returns the response and candidate count.

        No counters, performance logs or sampling happen here, and errors
        propagate unchanged.
        """
        strategy = self._strategies[mode]
        timings = SearchTimings()
        start_time = time.perf_counter()

        with self.tracer.trace_search_query(mode.value, request.campaign_id, request.limit):
            query_vector: Optional[Sequence[float]] = None
            if mode.requires_vector:
                embedding_start = time.perf_counter()
                query_vector = await self._embed_query(request.free_text_query)
                timings.embedding = (time.perf_counter() - embedding_start) * 1000

            ranked = await strategy.run(request, query_vector, timings)

        results = [result for result in ranked if result.score >= request.min_score]
        results = results[:request.limit]
        timings.total = (time.perf_counter() - start_time) * 1000

        return SearchResponse(results=results, mode=mode, timings=timings), len(ranked)

    async def _expanded_search(self, request: SearchRequest) -> SearchResponse:
        # Sampler re-runs bypass the caller-facing counters and failure handling.
        response, _ = await self._execute(request, self.select_mode(request))
        return response

    def cache_metrics(self) -> Dict[str, float]:
        return self.cache.metrics()

    async def health_check(self) -> bool:
        """Check if the underlying asset store is healthy."""
        return await self.retriever.store.health_check()

    async def cleanup(self) -> None:
        """Drain pending metrics and release collaborators."""
        try:
            if self.sampler:
                await self.sampler.drain()
                await self.sampler.sink.close()
            await self.embedder.close()
            await self.retriever.store.close()
            logger.info("Search orchestrator cleanup completed")
        except Exception as e:
            logger.error("Search orchestrator cleanup failed", error=str(e))


def create_search_orchestrator(
    config: SearchConfig,
    metrics: Optional[MetricsCollector] = None
) -> SearchOrchestrator:
    """Wire an orchestrator and its collaborators from settings.

    Nothing connects here; stores and clients connect lazily or in
    ``AssetStore.initialize``.
    """
    store = create_asset_store(config.ml_search_backend, config)
    sampler = QualityMetricsSampler(
        store,
        RedisStreamMetricsSink(config.ml_redis_url, stream=config.ml_search_metrics_stream),
        sample_rate=config.ml_search_metrics_sample_rate,
        expanded_limit=config.ml_search_metrics_expanded_limit,
        metrics=metrics
    )

    return SearchOrchestrator(
        retriever=CandidateRetriever(store, overquery_factor=config.ml_search_overquery_factor),
        embedder=EmbeddingServiceClient.from_config(config),
        cache=EmbeddingCache(max_size=config.ml_search_embedding_cache_size),
        fusion=ReciprocalRankFusion(k=config.ml_search_rrf_k),
        hybrid_method=HybridMethod(config.ml_search_hybrid_method),
        native_vector_weight=config.ml_search_native_vector_weight,
        sampler=sampler,
        metrics=metrics
    )
