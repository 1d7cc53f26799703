"""Shared fixtures and in-memory fakes for the search tests."""

from typing import Dict, List, Optional, Sequence

import pytest

from libs.asset_store.base import (
    AssetStore,
    AssetStoreCapabilityError,
    CandidateItem,
    RecordType,
)
from asset_search.retrievers.embedding_client import EmbeddingProvider
from asset_search.runtime.sinks import MetricsSink


def make_items(*ids: str, scores: Optional[Sequence[float]] = None) -> List[CandidateItem]:
    """Build candidates in the given order, with descending scores by default."""
    if scores is None:
        scores = [1.0 - index * 0.1 for index in range(len(ids))]
    return [
        CandidateItem(id=item_id, attributes={"id": item_id, "name": item_id.upper()}, relevance_score=score)
        for item_id, score in zip(ids, scores)
    ]


class FakeAssetStore(AssetStore):
    """Asset store returning canned candidate lists and recording calls."""

    def __init__(
        self,
        vector_results: Optional[List[CandidateItem]] = None,
        text_results: Optional[List[CandidateItem]] = None,
        fused_results: Optional[List[CandidateItem]] = None,
        native: bool = False,
        asset_count: int = 0,
        vector_error: Optional[Exception] = None,
        text_error: Optional[Exception] = None,
    ):
        self.vector_results = vector_results or []
        self.text_results = text_results or []
        self.fused_results = fused_results or []
        self.native = native
        self.asset_count = asset_count
        self.vector_error = vector_error
        self.text_error = text_error
        self.calls: List[Dict] = []
        self.closed = False

    @property
    def supports_native_fusion(self) -> bool:
        return self.native

    async def vector_search(self, query_vector, campaign_id, record_type=None, limit=10):
        self.calls.append({"op": "vector", "campaign_id": campaign_id, "record_type": record_type, "limit": limit})
        if self.vector_error:
            raise self.vector_error
        return self.vector_results[:limit]

    async def text_search(self, keywords, campaign_id, record_type=None, limit=10):
        self.calls.append({"op": "text", "keywords": keywords, "campaign_id": campaign_id, "limit": limit})
        if self.text_error:
            raise self.text_error
        return self.text_results[:limit]

    async def rank_fusion_search(
        self, query_vector, keywords, campaign_id, record_type=None,
        limit=10, vector_weight=0.5, rank_constant=60.0
    ):
        if not self.native:
            raise AssetStoreCapabilityError("no native fusion")
        self.calls.append({
            "op": "fused",
            "limit": limit,
            "vector_weight": vector_weight,
            "rank_constant": rank_constant,
        })
        return self.fused_results[:limit]

    async def count_assets(self, campaign_id: str, record_type: Optional[RecordType] = None) -> int:
        self.calls.append({"op": "count", "campaign_id": campaign_id, "record_type": record_type})
        return self.asset_count

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True

    def ops(self) -> List[str]:
        return [call["op"] for call in self.calls]


class FakeEmbedder(EmbeddingProvider):
    """Embedding provider returning a fixed vector (or nothing)."""

    def __init__(self, vector: Optional[List[float]] = None, error: Optional[Exception] = None):
        self.vector = [0.1, 0.2, 0.3] if vector is None else vector
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return list(self.vector)


class InMemoryMetricsSink(MetricsSink):
    """Metrics sink keeping records in a list."""

    def __init__(self, error: Optional[Exception] = None):
        self.records = []
        self.error = error

    async def append(self, record) -> None:
        if self.error:
            raise self.error
        self.records.append(record)


@pytest.fixture
def fake_store():
    return FakeAssetStore(
        vector_results=make_items("a", "b", "c"),
        text_results=make_items("b", "d", scores=[4.0, 1.0]),
    )


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def metrics_sink():
    return InMemoryMetricsSink()
