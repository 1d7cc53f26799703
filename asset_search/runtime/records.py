"""Search metric records and the statistics computed for sampled searches.

Without a labelled relevance set, the expanded re-run (limit ``N``, usually
200) is the proxy for "everything relevant":

- precision@k = |results| / k
- recall@k = |results| / |expanded|
- precision@N = |expanded| / N
- recall@N = |expanded| / total assets in scope
- coverage = |results| / total assets in scope

Every ratio is 0 when its denominator is 0.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..models import SearchMode, SearchRequest, SearchTimings

SEARCH_TYPE = "campaign_asset"


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _harmonic_mean(precision: float, recall: float) -> float:
    total = precision + recall
    return 2 * precision * recall / total if total > 0 else 0.0


@dataclass(frozen=True)
class ScoreStatistics:
    mean: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    std_dev: float = 0.0


def score_statistics(scores: Sequence[float]) -> ScoreStatistics:
    """Distribution of returned scores (population std-dev); zeros when empty."""
    if len(scores) == 0:
        return ScoreStatistics()

    values = np.asarray(scores, dtype=np.float64)
    return ScoreStatistics(
        mean=float(np.mean(values)),
        median=float(np.median(values)),
        min=float(values.min()),
        max=float(values.max()),
        std_dev=float(np.std(values)),
    )


@dataclass(frozen=True)
class QualityStatistics:
    precision_at_k: float
    recall_at_k: float
    f1_at_k: float
    precision_at_n: float
    recall_at_n: float
    f1_at_n: float
    coverage_ratio: float


def quality_statistics(
    result_count: int,
    expanded_count: int,
    total_assets: int,
    k: int,
    expanded_limit: int = 200
) -> QualityStatistics:
    """Precision/recall proxies at the requested limit and the expanded limit."""
    precision_at_k = _ratio(result_count, k)
    recall_at_k = _ratio(result_count, expanded_count)
    precision_at_n = _ratio(expanded_count, expanded_limit)
    recall_at_n = _ratio(expanded_count, total_assets)

    return QualityStatistics(
        precision_at_k=precision_at_k,
        recall_at_k=recall_at_k,
        f1_at_k=_harmonic_mean(precision_at_k, recall_at_k),
        precision_at_n=precision_at_n,
        recall_at_n=recall_at_n,
        f1_at_n=_harmonic_mean(precision_at_n, recall_at_n),
        coverage_ratio=_ratio(result_count, total_assets),
    )


@dataclass
class SearchMetricRecord:
    """One append-only metrics row per search.

    Query text and the expanded statistics are only populated when the
    search was sampled.
    """
    search_mode: str
    campaign_id: str
    record_type_filter: Optional[str]
    has_results: bool
    result_count: int
    requested_limit: int
    min_score: float
    total_time_ms: float
    embedding_time_ms: float
    vector_search_time_ms: float
    text_search_time_ms: float
    fusion_time_ms: float
    conversion_time_ms: float
    query_length: int
    sampled: bool
    result_scores: List[float]
    search_type: str = SEARCH_TYPE
    query: Optional[str] = None
    keywords: Optional[str] = None
    expanded_scores: Optional[List[float]] = None
    total_assets: Optional[int] = None
    precision_at_k: Optional[float] = None
    recall_at_k: Optional[float] = None
    f1_at_k: Optional[float] = None
    precision_at_n: Optional[float] = None
    recall_at_n: Optional[float] = None
    f1_at_n: Optional[float] = None
    coverage_ratio: Optional[float] = None
    score_mean: Optional[float] = None
    score_median: Optional[float] = None
    score_min: Optional[float] = None
    score_max: Optional[float] = None
    score_std_dev: Optional[float] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def build_metric_record(
    request: SearchRequest,
    result_scores: Sequence[float],
    timings: SearchTimings,
    mode: SearchMode,
    expanded_scores: Optional[Sequence[float]] = None,
    total_assets: Optional[int] = None,
    expanded_limit: int = 200
) -> SearchMetricRecord:
    """Assemble the record; sampled fields are filled when ``expanded_scores`` is given."""
    scores = [float(score) for score in result_scores]
    sampled = expanded_scores is not None

    record = SearchMetricRecord(
        search_mode=mode.value,
        campaign_id=request.campaign_id,
        record_type_filter=request.record_type.value if request.record_type else None,
        has_results=bool(scores),
        result_count=len(scores),
        requested_limit=request.limit,
        min_score=request.min_score,
        total_time_ms=timings.total,
        embedding_time_ms=timings.embedding,
        vector_search_time_ms=timings.vector_search,
        text_search_time_ms=timings.text_search,
        fusion_time_ms=timings.fusion,
        conversion_time_ms=timings.conversion,
        query_length=request.query_length,
        sampled=sampled,
        result_scores=scores,
    )

    if not sampled:
        return record

    expanded = [float(score) for score in expanded_scores]
    total = int(total_assets or 0)
    quality = quality_statistics(len(scores), len(expanded), total, request.limit, expanded_limit)
    stats = score_statistics(scores)

    record.query = request.free_text_query
    record.keywords = request.keywords
    record.expanded_scores = expanded
    record.total_assets = total
    record.precision_at_k = quality.precision_at_k
    record.recall_at_k = quality.recall_at_k
    record.f1_at_k = quality.f1_at_k
    record.precision_at_n = quality.precision_at_n
    record.recall_at_n = quality.recall_at_n
    record.f1_at_n = quality.f1_at_n
    record.coverage_ratio = quality.coverage_ratio
    record.score_mean = stats.mean
    record.score_median = stats.median
    record.score_min = stats.min
    record.score_max = stats.max
    record.score_std_dev = stats.std_dev
    return record
