"""Tests for the asset store backends and the metrics sink."""

import json

import numpy as np
import pytest

from libs.asset_store import (
    AssetStore,
    AssetStoreCapabilityError,
    AssetStoreFactory,
    AssetStoreQueryError,
    AssetStoreType,
    RecordType,
    create_asset_store,
)
from libs.asset_store.opensearch import OpenSearchAssetStore
from libs.asset_store.pgvector import PgVectorAssetStore
from libs.common.config import SearchConfig
from asset_search.models import SearchMode, SearchTimings, build_search_request
from asset_search.retrievers.candidates import asymptotic_score
from asset_search.runtime.records import build_metric_record
from asset_search.runtime.sinks import RedisStreamMetricsSink

from .conftest import FakeAssetStore

# ts_rank of a single occurrence at label weight 1.0 (1 / zeta(2)).
SINGLE_OCCURRENCE_RANK = 1 / 1.64493406685


class FakeIndices:
    def __init__(self, exists=True):
        self._exists = exists
        self.created = []

    def exists(self, index):
        return self._exists

    def create(self, index, body):
        self.created.append((index, body))


class FakeOpenSearchClient:
    """Synchronous stand-in for ``opensearchpy.OpenSearch``."""

    def __init__(self, hits=None, count=0, exists=True):
        self.indices = FakeIndices(exists)
        self.hits = hits or []
        self.count_value = count
        self.searches = []
        self.counts = []
        self.closed = False

    def search(self, index, body):
        self.searches.append(body)
        return {"hits": {"hits": self.hits}}

    def count(self, index, body):
        self.counts.append(body)
        return {"count": self.count_value}

    def ping(self):
        return True

    def close(self):
        self.closed = True


def opensearch_store(client, **kwargs) -> OpenSearchAssetStore:
    return OpenSearchAssetStore(hosts=["http://localhost:9200"], client=client, **kwargs)


class TestFactory:
    """Backend selection from settings."""

    def test_creates_pgvector_store(self):
        store = create_asset_store("pgvector", SearchConfig(ml_vector_dimension=8))

        assert isinstance(store, PgVectorAssetStore)
        assert store.vector_dimension == 8
        assert not store.supports_native_fusion

    def test_creates_opensearch_store_from_host_list(self):
        config = SearchConfig(ml_opensearch_hosts="http://os-1:9200, http://os-2:9200")
        store = create_asset_store("opensearch", config)

        assert isinstance(store, OpenSearchAssetStore)
        assert store.hosts == ["http://os-1:9200", "http://os-2:9200"]
        assert store.supports_native_fusion

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError):
            create_asset_store("sqlite", SearchConfig())

    def test_pgvector_requires_dsn(self):
        with pytest.raises(ValueError):
            AssetStoreFactory.create(AssetStoreType.PGVECTOR, {})


class TestPgVectorAssetStore:
    """Query helpers that need no database."""

    def test_text_score_uses_raw_boosts(self):
        """Each field is ranked separately and multiplied by its own boost."""
        sql = PgVectorAssetStore(dsn="postgresql://localhost/test")._text_score_sql("query")

        assert "5 * ts_rank('{1,1,1,1}', to_tsvector('english', coalesce(name, '')), query)" in sql
        assert "2 * ts_rank(" in sql
        assert "1 * ts_rank(" in sql

    def test_zero_boost_fields_do_not_score(self):
        store = PgVectorAssetStore(
            dsn="postgresql://localhost/test",
            field_boosts={"name": 3.0, "gm_summary": 0.0, "gm_notes": 0.0}
        )
        sql = store._text_score_sql("query")

        assert sql.count("ts_rank(") == 1
        assert "gm_summary" not in sql

    def test_single_name_match_clears_default_threshold(self):
        """A one-term name hit lands near 0.75 on the canonical scale."""
        store = PgVectorAssetStore(dsn="postgresql://localhost/test")

        name_hit = asymptotic_score(store.field_boosts["name"] * SINGLE_OCCURRENCE_RANK)
        notes_hit = asymptotic_score(store.field_boosts["gm_notes"] * SINGLE_OCCURRENCE_RANK)

        assert 0.7 <= name_hit <= 0.8
        assert 0.3 <= notes_hit < name_hit

    @pytest.mark.asyncio
    async def test_text_search_query_shape(self):
        store = PgVectorAssetStore(dsn="postgresql://localhost/test")
        calls = []

        async def fake_execute(query, *args, **kwargs):
            calls.append((query, args))
            return [{"id": "a1", "campaign_id": "c1", "name": "Ruined Keep", "score": 3.04}]

        store._execute_query = fake_execute
        results = await store.text_search("keep", "c1", RecordType.NPC, limit=6)

        query, args = calls[0]
        assert args == ("keep", "c1", "NPC", 6)
        assert "* term_count AS score" in query
        assert "@@ query" in query
        assert results[0].id == "a1"
        assert results[0].relevance_score == pytest.approx(3.04)

    def test_scope_clause_numbers_parameters(self):
        params = ["vector"]
        clause = PgVectorAssetStore._scope_clause("c1", RecordType.NPC, params)

        assert clause == "campaign_id = $2 AND record_type = $3"
        assert params == ["vector", "c1", "NPC"]

    def test_scope_clause_without_type(self):
        params = []
        assert PgVectorAssetStore._scope_clause("c1", None, params) == "campaign_id = $1"
        assert params == ["c1"]

    def test_vector_dimension_enforced(self):
        store = PgVectorAssetStore(dsn="postgresql://localhost/test", vector_dimension=3)

        array = store._ensure_vector_dimension([0.1, 0.2, 0.3])
        assert array.dtype == np.float32
        with pytest.raises(AssetStoreQueryError):
            store._ensure_vector_dimension([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_no_native_fusion(self):
        store = PgVectorAssetStore(dsn="postgresql://localhost/test")
        with pytest.raises(AssetStoreCapabilityError):
            await store.rank_fusion_search([0.1], "keep", "c1")


class TestOpenSearchAssetStore:
    """Request bodies sent to OpenSearch."""

    @pytest.mark.asyncio
    async def test_vector_search_body(self):
        client = FakeOpenSearchClient(hits=[
            {"_id": "a", "_score": 0.92, "_source": {"name": "Keep"}},
        ])
        store = opensearch_store(client)

        results = await store.vector_search([0.1, 0.2], "c1", RecordType.LOCATION, limit=5)

        body = client.searches[0]
        knn = body["query"]["knn"]["embedding"]
        assert body["size"] == 5
        assert knn["k"] == 50
        assert knn["filter"]["bool"]["filter"] == [
            {"term": {"campaign_id": "c1"}},
            {"term": {"record_type": "Location"}},
        ]
        assert results[0].id == "a"
        assert results[0].relevance_score == 0.92
        assert results[0].attributes["name"] == "Keep"

    @pytest.mark.asyncio
    async def test_text_search_uses_field_boosts(self):
        client = FakeOpenSearchClient()
        store = opensearch_store(client)

        await store.text_search("blacksmith", "c1")

        match = client.searches[0]["query"]["bool"]["must"][0]["multi_match"]
        assert match["query"] == "blacksmith"
        assert match["fields"] == ["name^5", "gm_summary^2", "gm_notes^1"]
        assert client.searches[0]["query"]["bool"]["filter"] == [{"term": {"campaign_id": "c1"}}]

    @pytest.mark.asyncio
    async def test_rank_fusion_body_carries_pipeline(self):
        client = FakeOpenSearchClient()
        store = opensearch_store(client)

        await store.rank_fusion_search([0.1], "keep", "c1", limit=6, vector_weight=0.7, rank_constant=40)

        body = client.searches[0]
        assert len(body["query"]["hybrid"]["queries"]) == 2
        processor = body["search_pipeline"]["phase_results_processors"][0]["score-ranker-processor"]
        assert processor["combination"]["technique"] == "rrf"
        assert processor["combination"]["rank_constant"] == 40
        assert processor["combination"]["parameters"]["weights"] == pytest.approx([0.7, 0.3])

    @pytest.mark.asyncio
    async def test_equal_weights_omitted(self):
        client = FakeOpenSearchClient()
        await opensearch_store(client).rank_fusion_search([0.1], "keep", "c1")

        combination = client.searches[0]["search_pipeline"]["phase_results_processors"][0][
            "score-ranker-processor"]["combination"]
        assert "parameters" not in combination
        assert combination["rank_constant"] == 60

    @pytest.mark.asyncio
    async def test_fractional_rank_constant_rejected(self):
        client = FakeOpenSearchClient()

        with pytest.raises(AssetStoreQueryError):
            await opensearch_store(client).rank_fusion_search([0.1], "keep", "c1", rank_constant=60.5)
        assert client.searches == []

    @pytest.mark.asyncio
    async def test_rank_fusion_disabled(self):
        client = FakeOpenSearchClient()
        store = opensearch_store(client, native_fusion=False)

        with pytest.raises(AssetStoreCapabilityError):
            await store.rank_fusion_search([0.1], "keep", "c1")
        assert client.searches == []

    @pytest.mark.asyncio
    async def test_initialize_creates_missing_index(self):
        client = FakeOpenSearchClient(exists=False)
        store = opensearch_store(client, vector_dimension=8)

        await store.initialize()

        index, mapping = client.indices.created[0]
        assert index == "campaign_assets"
        assert mapping["mappings"]["properties"]["embedding"]["dimension"] == 8

    @pytest.mark.asyncio
    async def test_count_health_and_close(self):
        client = FakeOpenSearchClient(count=17)
        store = opensearch_store(client)

        assert await store.count_assets("c1", RecordType.PLOT) == 17
        assert await store.health_check()
        await store.close()
        assert client.closed


@pytest.mark.asyncio
async def test_base_store_has_no_native_fusion():
    with pytest.raises(AssetStoreCapabilityError):
        await AssetStore.rank_fusion_search(FakeAssetStore(), [0.1], "k", "c1")


class FakeRedis:
    def __init__(self):
        self.entries = []
        self.closed = False

    async def xadd(self, stream, fields):
        self.entries.append((stream, fields))
        return b"1-0"

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_redis_stream_sink_appends_record():
    client = FakeRedis()
    sink = RedisStreamMetricsSink(client=client, stream="test:metrics")
    record = build_metric_record(
        build_search_request(keywords="keep", campaign_id="c1"),
        [0.8],
        SearchTimings(total=3.0),
        SearchMode.TEXT_ONLY
    )

    await sink.append(record)
    await sink.close()

    stream, fields = client.entries[0]
    assert stream == "test:metrics"
    assert fields["search_mode"] == "text_only"
    assert fields["sampled"] == "0"
    assert json.loads(fields["payload"])["result_scores"] == [0.8]
    assert client.closed


def test_redis_sink_requires_url_or_client():
    with pytest.raises(ValueError):
        RedisStreamMetricsSink()
