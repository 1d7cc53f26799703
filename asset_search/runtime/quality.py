"""Sampled search-quality metrics.

Every search produces a metrics record. A Bernoulli draw against
``sample_rate`` additionally re-runs the search with a wide candidate window
and counts the assets in scope so precision/recall proxies can be computed.

All of this runs in a detached task: the caller's response never waits on
it and never sees its failures.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Sequence, Set

import structlog

from libs.asset_store.base import AssetStore
from libs.common.metrics import MetricsCollector

from ..models import RankedResult, SearchMode, SearchRequest, SearchResponse, SearchTimings
from .records import build_metric_record
from .sinks import MetricsSink

logger = structlog.get_logger("search_service.quality")

ExpandedSearch = Callable[[SearchRequest], Awaitable[SearchResponse]]


class QualityMetricsSampler:
    """Records per-search metrics and samples expanded quality statistics.

    Parameters
    - store: Used to count assets in the searched scope
    - sink: Append-only destination for records
    - sample_rate: Probability of an expanded re-run, clamped into [0, 1]
    - expanded_limit: Result limit of the expanded re-run
    - rng: Source of uniform draws in [0, 1) (injectable for tests)
    - metrics: Optional Prometheus collector
    """

    def __init__(
        self,
        store: AssetStore,
        sink: MetricsSink,
        sample_rate: float = 0.05,
        expanded_limit: int = 200,
        rng: Callable[[], float] = random.random,
        metrics: Optional[MetricsCollector] = None
    ):
        self.store = store
        self.sink = sink
        self.sample_rate = min(max(sample_rate, 0.0), 1.0)
        self.expanded_limit = expanded_limit
        self._rng = rng
        self.metrics = metrics
        self._tasks: Set[asyncio.Task] = set()

    def should_sample(self) -> bool:
        return self._rng() < self.sample_rate

    def maybe_sample(
        self,
        request: SearchRequest,
        results: Sequence[RankedResult],
        timings: SearchTimings,
        mode: SearchMode,
        rerun: Optional[ExpandedSearch] = None
    ) -> Optional[asyncio.Task]:
        """Schedule metrics capture for a finished search and return at once.

        ``rerun`` performs the expanded search; it must not itself capture
        metrics. Without it the search is recorded but never sampled.
        """
        try:
            sampled = rerun is not None and self.should_sample()
            task = asyncio.create_task(self._capture(
                request,
                [result.score for result in results],
                timings,
                mode,
                rerun if sampled else None
            ))
        except Exception as e:
            logger.error("Failed to schedule search metrics capture", error=str(e))
            return None

        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _capture(
        self,
        request: SearchRequest,
        result_scores: Sequence[float],
        timings: SearchTimings,
        mode: SearchMode,
        rerun: Optional[ExpandedSearch]
    ) -> None:
        try:
            expanded_scores = None
            total_assets = None
            if rerun is not None:
                expanded = await rerun(request.model_copy(update={"limit": self.expanded_limit}))
                expanded_scores = expanded.scores
                total_assets = await self.store.count_assets(
                    request.campaign_id,
                    request.record_type
                )

            record = build_metric_record(
                request,
                result_scores,
                timings,
                mode,
                expanded_scores=expanded_scores,
                total_assets=total_assets,
                expanded_limit=self.expanded_limit
            )
            await self.sink.append(record)

            if record.sampled and self.metrics:
                self.metrics.record_quality_sample(mode.value, record.precision_at_k)

            logger.debug(
                "Search metrics captured",
                search_mode=mode.value,
                campaign_id=request.campaign_id,
                sampled=record.sampled
            )

        except Exception as e:
            logger.error(
                "Search metrics capture failed",
                search_mode=mode.value,
                campaign_id=request.campaign_id,
                error=str(e)
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding captures (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
