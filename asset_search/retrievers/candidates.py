"""Candidate retrieval against the asset store's search primitives.

Each call asks the store for ``limit`` candidates, where ``limit`` has
already been widened by the overquery factor (``candidate_limit``) so fusion
and min-score filtering have enough material to work with. Store errors
propagate unchanged; this layer does not retry.
"""

import dataclasses
from typing import List, Optional, Sequence

import structlog

from libs.asset_store.base import AssetStore, CandidateItem, RecordType

logger = structlog.get_logger("search_service.retrievers")


def asymptotic_score(score: float) -> float:
    """Map an unbounded non-negative lexical score into ``[0, 1)``.

    ``s / (s + 1)`` is monotonic, so rank order is preserved.
    """
    score = max(float(score), 0.0)
    return score / (score + 1.0)


class CandidateRetriever:
    """Fetches ranked candidate lists from an ``AssetStore``."""

    def __init__(self, store: AssetStore, overquery_factor: int = 3):
        if overquery_factor < 1:
            raise ValueError("overquery_factor must be at least 1")
        self.store = store
        self.overquery_factor = overquery_factor

    @property
    def supports_native_fusion(self) -> bool:
        return self.store.supports_native_fusion

    def candidate_limit(self, limit: int) -> int:
        return limit * self.overquery_factor

    async def retrieve_vector(
        self,
        query_vector: Sequence[float],
        campaign_id: str,
        record_type: Optional[RecordType],
        candidate_limit: int
    ) -> List[CandidateItem]:
        """Vector-similarity candidates, most similar first."""
        candidates = await self.store.vector_search(
            query_vector=query_vector,
            campaign_id=campaign_id,
            record_type=record_type,
            limit=candidate_limit
        )
        logger.debug("Vector candidates retrieved", count=len(candidates), limit=candidate_limit)
        return candidates

    async def retrieve_text(
        self,
        keywords: str,
        campaign_id: str,
        record_type: Optional[RecordType],
        candidate_limit: int
    ) -> List[CandidateItem]:
        """Lexical candidates with scores squashed into ``[0, 1)``."""
        raw = await self.store.text_search(
            keywords=keywords,
            campaign_id=campaign_id,
            record_type=record_type,
            limit=candidate_limit
        )
        candidates = [
            dataclasses.replace(item, relevance_score=asymptotic_score(item.relevance_score))
            for item in raw
        ]
        logger.debug("Text candidates retrieved", count=len(candidates), limit=candidate_limit)
        return candidates

    async def retrieve_fused(
        self,
        query_vector: Sequence[float],
        keywords: str,
        campaign_id: str,
        record_type: Optional[RecordType],
        candidate_limit: int,
        vector_weight: float = 0.5,
        rank_constant: int = 60
    ) -> List[CandidateItem]:
        """Store-side fused candidates; scores are opaque until normalized."""
        candidates = await self.store.rank_fusion_search(
            query_vector=query_vector,
            keywords=keywords,
            campaign_id=campaign_id,
            record_type=record_type,
            limit=candidate_limit,
            vector_weight=vector_weight,
            rank_constant=rank_constant
        )
        logger.debug("Fused candidates retrieved", count=len(candidates), limit=candidate_limit)
        return candidates
