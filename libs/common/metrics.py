"""Metrics collection for the asset search services.

Provides a thin convenience wrapper around ``prometheus_client`` so services
can consistently record HTTP, search, embedding-cache, and search-quality
metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A registry is kept per collector (inject one in tests to stay isolated)
"""

from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for search services.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)

    Exposes typed helpers for common events to keep label sets consistent.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        # HTTP adapter
        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        # Search engine
        self.search_requests = Counter(
            'asset_search_requests_total',
            'Total asset search requests',
            ['mode', 'status'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'asset_search_duration_seconds',
            'Asset search duration',
            ['mode'],
            registry=self.registry
        )

        self.search_result_count = Histogram(
            'asset_search_result_count',
            'Number of results returned per search',
            ['mode'],
            buckets=(0, 1, 2, 5, 10, 20, 50, 100, 200),
            registry=self.registry
        )

        # Embedding cache
        self.cache_hits = Counter(
            'embedding_cache_hits_total',
            'Total embedding cache hits',
            registry=self.registry
        )

        self.cache_misses = Counter(
            'embedding_cache_misses_total',
            'Total embedding cache misses',
            registry=self.registry
        )

        self.cache_evictions = Counter(
            'embedding_cache_evictions_total',
            'Total embedding cache evictions',
            registry=self.registry
        )

        self.cache_size = Gauge(
            'embedding_cache_size',
            'Current number of cached query embeddings',
            registry=self.registry
        )

        # Search quality sampling
        self.quality_samples = Counter(
            'asset_search_quality_samples_total',
            'Searches selected for expanded quality sampling',
            ['mode'],
            registry=self.registry
        )

        self.precision_at_k = Histogram(
            'asset_search_precision_at_k',
            'Sampled precision@k proxy',
            ['mode'],
            buckets=(0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
            registry=self.registry
        )

        self._cache_snapshot: Dict[str, int] = {"hits": 0, "misses": 0, "evictions": 0}

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_search(
        self,
        mode: str,
        duration: float,
        result_count: int
    ) -> None:
        """Record a successful search."""
        self.search_requests.labels(mode=mode, status="success").inc()
        self.search_duration.labels(mode=mode).observe(duration)
        self.search_result_count.labels(mode=mode).observe(result_count)

    def record_search_failure(self, mode: str) -> None:
        """Record a failed search."""
        self.search_requests.labels(mode=mode, status="error").inc()

    def record_cache_metrics(self, cache_metrics: Dict[str, float]) -> None:
        """Fold an embedding cache snapshot into the counters.

        The cache reports cumulative totals; only the delta since the
        previous snapshot is added. A total lower than the snapshot means the
        cache was cleared, in which case counting restarts from zero.
        """
        for key, counter in (
            ("hits", self.cache_hits),
            ("misses", self.cache_misses),
            ("evictions", self.cache_evictions),
        ):
            current = int(cache_metrics.get(key, 0))
            previous = self._cache_snapshot.get(key, 0)
            delta = current - previous if current >= previous else current
            if delta:
                counter.inc(delta)
            self._cache_snapshot[key] = current

        self.cache_size.set(cache_metrics.get("size", 0))

    def record_quality_sample(self, mode: str, precision_at_k: Optional[float]) -> None:
        """Record that a search was sampled for quality metrics."""
        self.quality_samples.labels(mode=mode).inc()
        if precision_at_k is not None:
            self.precision_at_k.labels(mode=mode).observe(precision_at_k)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')
