"""Result fusion for hybrid search.

Reciprocal Rank Fusion scores each candidate by ``1/(k + rank)`` summed
over the vector and text lists. A candidate missing from one list takes the
default rank ``max(len(vector), len(text), 1) + 1`` there: penalized, but
never infinitely. Fused scores are then min-max scaled onto ``[0, 1]``.

Everything here is pure; no I/O and no shared state.
"""

from typing import Dict, List, Optional, Sequence

import structlog

from libs.asset_store.base import CandidateItem

from ..models import FusionEntry, RankedResult, SearchMode

logger = structlog.get_logger("search_fusion")

DEFAULT_RRF_K = 60


def default_rank(vector_count: int, text_count: int) -> int:
    """Rank assigned to a candidate absent from one of the lists."""
    return max(vector_count, text_count, 1) + 1


def min_max_normalize(scores: Sequence[float]) -> List[float]:
    """Scale a batch of scores onto ``[0, 1]``.

    A single score, or a batch where every score is equal, maps to 1.0.
    Otherwise the maximum maps to exactly 1.0 and the minimum to 0.0.
    """
    if not scores:
        return []

    low = min(scores)
    high = max(scores)
    spread = high - low
    if len(scores) == 1 or spread == 0:
        return [1.0] * len(scores)

    return [(score - low) / spread for score in scores]


class ReciprocalRankFusion:
    """Reciprocal Rank Fusion (RRF) algorithm."""

    def __init__(self, k: int = DEFAULT_RRF_K):
        if isinstance(k, bool) or int(k) != k:
            raise ValueError(f"RRF k must be a whole number, got {k!r}")
        if k < 0:
            raise ValueError("RRF k must be non-negative")
        self.k = int(k)  # RRF parameter

    def fuse(
        self,
        vector_results: Sequence[CandidateItem],
        text_results: Sequence[CandidateItem],
        k: Optional[int] = None
    ) -> List[FusionEntry]:
        """Merge two ranked lists into entries sorted by descending RRF score.

        Ties keep discovery order (vector list first, then text-only items).
        """
        k = self.k if k is None else k

        vector_ranks: Dict[str, int] = {}
        text_ranks: Dict[str, int] = {}
        items: Dict[str, CandidateItem] = {}

        for rank, item in enumerate(vector_results, start=1):
            vector_ranks.setdefault(item.id, rank)
            items.setdefault(item.id, item)

        for rank, item in enumerate(text_results, start=1):
            text_ranks.setdefault(item.id, rank)
            items.setdefault(item.id, item)

        missing_rank = default_rank(len(vector_results), len(text_results))

        entries = []
        for item_id, item in items.items():
            vector_rank = vector_ranks.get(item_id)
            text_rank = text_ranks.get(item_id)

            raw_score = (
                1.0 / (k + (vector_rank or missing_rank))
                + 1.0 / (k + (text_rank or missing_rank))
            )

            entries.append(FusionEntry(
                id=item_id,
                item=item,
                vector_rank=vector_rank,
                text_rank=text_rank,
                raw_fusion_score=raw_score,
            ))

        # list.sort is stable, so equal scores keep discovery order
        entries.sort(key=lambda entry: entry.raw_fusion_score, reverse=True)

        logger.debug(
            "RRF fusion completed",
            vector_count=len(vector_results),
            text_count=len(text_results),
            fused_count=len(entries),
            k_parameter=k
        )

        return entries

    def normalize(
        self,
        entries: Sequence[FusionEntry],
        mode: SearchMode = SearchMode.MANUAL_HYBRID
    ) -> List[RankedResult]:
        """Min-max scale fused entries into ranked results."""
        scores = min_max_normalize([entry.raw_fusion_score for entry in entries])
        return [
            RankedResult.from_candidate(entry.item, score, mode)
            for entry, score in zip(entries, scores)
        ]


def normalize_candidates(
    candidates: Sequence[CandidateItem],
    mode: SearchMode
) -> List[RankedResult]:
    """Min-max scale an already-ranked candidate list (e.g. store-side fusion).

    Candidates are re-sorted by their opaque score before scaling.
    """
    ordered = sorted(candidates, key=lambda item: item.relevance_score, reverse=True)
    scores = min_max_normalize([item.relevance_score for item in ordered])
    return [
        RankedResult.from_candidate(item, score, mode)
        for item, score in zip(ordered, scores)
    ]
