"""Retrieval strategies, one per search mode.

Every strategy takes a validated request (plus the query vector when its
mode needs one), fills in its share of the timings, and returns results on
the canonical ``[0, 1]`` scale, best first. Min-score filtering and
truncation are left to the orchestrator so they mean the same thing in
every mode.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, List, Optional, Sequence, Tuple

import structlog

from libs.asset_store.base import CandidateItem

from ..models import RankedResult, SearchMode, SearchRequest, SearchTimings
from ..ranking.fusion import ReciprocalRankFusion, normalize_candidates
from ..retrievers.candidates import CandidateRetriever

logger = structlog.get_logger("search_service.strategies")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _clamp(score: float) -> float:
    return min(max(float(score), 0.0), 1.0)


async def _timed(coro: Awaitable[Any]) -> Tuple[Any, float]:
    start = time.perf_counter()
    result = await coro
    return result, _elapsed_ms(start)


class RetrievalStrategy(ABC):
    """Common contract for the per-mode retrieval paths."""

    mode: SearchMode

    def __init__(self, retriever: CandidateRetriever):
        self.retriever = retriever

    @abstractmethod
    async def run(
        self,
        request: SearchRequest,
        query_vector: Optional[Sequence[float]],
        timings: SearchTimings
    ) -> List[RankedResult]:
        pass

    def _convert(self, candidates: Sequence[CandidateItem]) -> List[RankedResult]:
        # Single-list scores are already bounded; clamp absorbs float drift.
        return [
            RankedResult.from_candidate(item, _clamp(item.relevance_score), self.mode)
            for item in candidates
        ]


class VectorOnlyStrategy(RetrievalStrategy):
    """Semantic search on the free-text embedding."""

    mode = SearchMode.VECTOR_ONLY

    async def run(self, request, query_vector, timings):
        candidates, timings.vector_search = await _timed(self.retriever.retrieve_vector(
            query_vector,
            request.campaign_id,
            request.record_type,
            self.retriever.candidate_limit(request.limit)
        ))

        start = time.perf_counter()
        results = self._convert(candidates)
        timings.conversion = _elapsed_ms(start)
        return results


class TextOnlyStrategy(RetrievalStrategy):
    """Lexical search on the keywords."""

    mode = SearchMode.TEXT_ONLY

    async def run(self, request, query_vector, timings):
        candidates, timings.text_search = await _timed(self.retriever.retrieve_text(
            request.keywords,
            request.campaign_id,
            request.record_type,
            self.retriever.candidate_limit(request.limit)
        ))

        start = time.perf_counter()
        results = self._convert(candidates)
        timings.conversion = _elapsed_ms(start)
        return results


class ManualHybridStrategy(RetrievalStrategy):
    """Concurrent vector + text retrieval fused client-side with RRF.

    Both retrievals always run to completion before anything is fused. If
    either fails the whole request fails; fusing only one side is never
    attempted.
    """

    mode = SearchMode.MANUAL_HYBRID

    def __init__(self, retriever: CandidateRetriever, fusion: ReciprocalRankFusion):
        super().__init__(retriever)
        self.fusion = fusion

    async def run(self, request, query_vector, timings):
        candidate_limit = self.retriever.candidate_limit(request.limit)

        outcomes = await asyncio.gather(
            _timed(self.retriever.retrieve_vector(
                query_vector, request.campaign_id, request.record_type, candidate_limit
            )),
            _timed(self.retriever.retrieve_text(
                request.keywords, request.campaign_id, request.record_type, candidate_limit
            )),
            return_exceptions=True
        )

        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        (vector_candidates, timings.vector_search), (text_candidates, timings.text_search) = outcomes

        start = time.perf_counter()
        entries = self.fusion.fuse(vector_candidates, text_candidates)
        timings.fusion = _elapsed_ms(start)

        start = time.perf_counter()
        results = self.fusion.normalize(entries, self.mode)
        timings.conversion = _elapsed_ms(start)

        logger.debug(
            "Manual hybrid retrieval fused",
            vector_count=len(vector_candidates),
            text_count=len(text_candidates),
            fused_count=len(results)
        )
        return results


class NativeHybridStrategy(RetrievalStrategy):
    """Single store-side fused retrieval.

    The store's fused score is opaque, so the batch is min-max scaled like
    client-side fusion. Retrieval time is split evenly between the vector
    and text timings.
    """

    mode = SearchMode.NATIVE_HYBRID

    def __init__(
        self,
        retriever: CandidateRetriever,
        vector_weight: float = 0.5,
        rank_constant: int = 60
    ):
        super().__init__(retriever)
        self.vector_weight = vector_weight
        self.rank_constant = rank_constant

    async def run(self, request, query_vector, timings):
        candidates, retrieval_ms = await _timed(self.retriever.retrieve_fused(
            query_vector,
            request.keywords,
            request.campaign_id,
            request.record_type,
            self.retriever.candidate_limit(request.limit),
            vector_weight=self.vector_weight,
            rank_constant=self.rank_constant
        ))
        timings.vector_search = retrieval_ms / 2
        timings.text_search = retrieval_ms / 2

        start = time.perf_counter()
        results = normalize_candidates(candidates, self.mode)
        timings.conversion = _elapsed_ms(start)
        return results
