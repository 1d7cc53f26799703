"""OpenSearch implementation of the asset store.

Offers all three primitives:
- k-NN vector search on the ``embedding`` field
- boosted ``multi_match`` lexical search over name/summary/notes
- store-side fusion through a ``hybrid`` query whose scores are combined by
  a request-scoped search pipeline running RRF (``score-ranker-processor``)

The client is synchronous; calls are moved off the event loop with
``asyncio.to_thread`` so concurrent retrievals do not block each other.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import structlog
from opensearchpy import OpenSearch, exceptions

from .base import (
    ANN_CANDIDATE_MULTIPLIER,
    ASSET_FIELDS,
    DEFAULT_TEXT_FIELD_BOOSTS,
    AssetStore,
    AssetStoreCapabilityError,
    AssetStoreConnectionError,
    AssetStoreQueryError,
    CandidateItem,
    RecordType,
)

logger = structlog.get_logger("asset_store.opensearch")


class OpenSearchAssetStore(AssetStore):
    """OpenSearch-based asset store implementation."""

    def __init__(
        self,
        hosts: List[str],
        index_name: str = "campaign_assets",
        vector_dimension: int = 1536,
        username: Optional[str] = None,
        password: Optional[str] = None,
        verify_certs: bool = False,
        ssl_assert_hostname: bool = False,
        ssl_show_warn: bool = False,
        native_fusion: bool = True,
        field_boosts: Optional[Dict[str, float]] = None,
        client: Optional[OpenSearch] = None,
    ):
        """Initialize OpenSearch asset store.

        Args:
            hosts: List of OpenSearch host URLs
            index_name: Name of the index holding campaign assets
            vector_dimension: Dimension of the stored embeddings
            username: OpenSearch username
            password: OpenSearch password
            verify_certs: Whether to verify SSL certificates
            ssl_assert_hostname: Whether to assert hostname
            ssl_show_warn: Whether to show SSL warnings
            native_fusion: Whether the cluster supports hybrid query + RRF
            field_boosts: Lexical boosts per field
            client: Pre-built client (mainly for tests)
        """
        self.hosts = hosts
        self.index_name = index_name
        self.vector_dimension = vector_dimension
        self.native_fusion = native_fusion
        self.field_boosts = dict(field_boosts or DEFAULT_TEXT_FIELD_BOOSTS)

        self.client = client or OpenSearch(
            hosts=hosts,
            http_auth=(username, password) if username and password else None,
            verify_certs=verify_certs,
            ssl_assert_hostname=ssl_assert_hostname,
            ssl_show_warn=ssl_show_warn,
            use_ssl=True if hosts[0].startswith('https') else False,
        )

        self._initialized = False

    @property
    def supports_native_fusion(self) -> bool:
        return self.native_fusion

    async def initialize(self) -> None:
        """Create the asset index if it doesn't exist."""
        try:
            exists = await asyncio.to_thread(self.client.indices.exists, index=self.index_name)
            if not exists:
                mapping = {
                    "mappings": {
                        "properties": {
                            "id": {"type": "keyword"},
                            "campaign_id": {"type": "keyword"},
                            "record_type": {"type": "keyword"},
                            "name": {"type": "text"},
                            "gm_summary": {"type": "text"},
                            "gm_notes": {"type": "text"},
                            "player_summary": {"type": "text"},
                            "player_notes": {"type": "text"},
                            "embedding": {
                                "type": "knn_vector",
                                "dimension": self.vector_dimension,
                                "method": {
                                    "name": "hnsw",
                                    "space_type": "cosinesimil",
                                    "engine": "lucene",
                                    "parameters": {
                                        "ef_construction": 128,
                                        "m": 24
                                    }
                                }
                            },
                            "location_data": {"type": "object", "enabled": False},
                            "npc_data": {"type": "object", "enabled": False},
                            "plot_data": {"type": "object", "enabled": False},
                            "created_at": {"type": "date"},
                            "updated_at": {"type": "date"}
                        }
                    },
                    "settings": {
                        "index": {
                            "knn": True,
                            "number_of_shards": 1,
                            "number_of_replicas": 0
                        }
                    }
                }

                await asyncio.to_thread(
                    self.client.indices.create, index=self.index_name, body=mapping
                )
                logger.info("OpenSearch index created", index_name=self.index_name)

            self._initialized = True
            logger.info("OpenSearch asset store initialized", index_name=self.index_name)

        except exceptions.ConnectionError as e:
            logger.error("Failed to reach OpenSearch", error=str(e))
            raise AssetStoreConnectionError(f"OpenSearch unavailable: {e}") from e
        except Exception as e:
            logger.error("Failed to initialize OpenSearch asset store", error=str(e))
            raise AssetStoreQueryError(f"Index initialization failed: {e}") from e

    @staticmethod
    def _scope_filters(campaign_id: str, record_type: Optional[RecordType]) -> List[Dict[str, Any]]:
        filters: List[Dict[str, Any]] = [{"term": {"campaign_id": campaign_id}}]
        if record_type:
            filters.append({"term": {"record_type": RecordType(record_type).value}})
        return filters

    def _knn_query(
        self,
        query_vector: Sequence[float],
        filters: List[Dict[str, Any]],
        limit: int
    ) -> Dict[str, Any]:
        return {
            "knn": {
                "embedding": {
                    "vector": [float(v) for v in query_vector],
                    "k": limit * ANN_CANDIDATE_MULTIPLIER,
                    "filter": {"bool": {"filter": filters}},
                }
            }
        }

    def _text_query(self, keywords: str, filters: List[Dict[str, Any]]) -> Dict[str, Any]:
        fields = [f"{name}^{boost:g}" for name, boost in self.field_boosts.items()]
        return {
            "bool": {
                "must": [
                    {
                        "multi_match": {
                            "query": keywords,
                            "fields": fields,
                            "type": "most_fields",
                        }
                    }
                ],
                "filter": filters,
            }
        }

    async def _search(self, body: Dict[str, Any], operation: str) -> List[CandidateItem]:
        """Execute a search body and convert hits into candidates."""
        if not self._initialized:
            await self.initialize()

        body = {"_source": list(ASSET_FIELDS), **body}
        try:
            response = await asyncio.to_thread(
                self.client.search, index=self.index_name, body=body
            )
        except exceptions.ConnectionError as e:
            logger.error("OpenSearch unavailable", operation=operation, error=str(e))
            raise AssetStoreConnectionError(f"OpenSearch unavailable: {e}") from e
        except Exception as e:
            logger.error("OpenSearch search failed", operation=operation, error=str(e))
            raise AssetStoreQueryError(f"{operation} failed: {e}") from e

        candidates = []
        for hit in response['hits']['hits']:
            source = dict(hit.get('_source', {}))
            source.setdefault("id", hit['_id'])
            candidates.append(CandidateItem(
                id=str(source["id"]),
                attributes=source,
                relevance_score=float(hit['_score'] or 0.0),
            ))

        logger.info(
            "OpenSearch search completed",
            operation=operation,
            results_count=len(candidates)
        )
        return candidates

    async def vector_search(
        self,
        query_vector: Sequence[float],
        campaign_id: str,
        record_type: Optional[RecordType] = None,
        limit: int = 10
    ) -> List[CandidateItem]:
        """Search for similar assets using k-NN."""
        filters = self._scope_filters(campaign_id, record_type)
        body = {
            "size": limit,
            "query": self._knn_query(query_vector, filters, limit),
        }
        return await self._search(body, "vector_search")

    async def text_search(
        self,
        keywords: str,
        campaign_id: str,
        record_type: Optional[RecordType] = None,
        limit: int = 10
    ) -> List[CandidateItem]:
        """Search assets with boosted multi-field matching."""
        filters = self._scope_filters(campaign_id, record_type)
        body = {
            "size": limit,
            "query": self._text_query(keywords, filters),
        }
        return await self._search(body, "text_search")

    async def rank_fusion_search(
        self,
        query_vector: Sequence[float],
        keywords: str,
        campaign_id: str,
        record_type: Optional[RecordType] = None,
        limit: int = 10,
        vector_weight: float = 0.5,
        rank_constant: int = 60
    ) -> List[CandidateItem]:
        """Hybrid query fused with RRF by a temporary search pipeline."""
        if not self.native_fusion:
            raise AssetStoreCapabilityError("Native rank fusion is disabled for this cluster")

        if isinstance(rank_constant, bool) or int(rank_constant) != rank_constant:
            raise AssetStoreQueryError(f"rank_constant must be a whole number, got {rank_constant!r}")

        filters = self._scope_filters(campaign_id, record_type)
        combination: Dict[str, Any] = {
            "technique": "rrf",
            "rank_constant": int(rank_constant),
        }
        if vector_weight != 0.5:
            combination["parameters"] = {"weights": [vector_weight, 1.0 - vector_weight]}

        body = {
            "size": limit,
            "query": {
                "hybrid": {
                    "queries": [
                        self._knn_query(query_vector, filters, limit),
                        self._text_query(keywords, filters),
                    ]
                }
            },
            "search_pipeline": {
                "phase_results_processors": [
                    {"score-ranker-processor": {"combination": combination}}
                ]
            },
        }
        return await self._search(body, "rank_fusion_search")

    async def count_assets(
        self,
        campaign_id: str,
        record_type: Optional[RecordType] = None
    ) -> int:
        """Count assets within a campaign."""
        body = {"query": {"bool": {"filter": self._scope_filters(campaign_id, record_type)}}}
        try:
            response = await asyncio.to_thread(
                self.client.count, index=self.index_name, body=body
            )
        except Exception as e:
            logger.error("OpenSearch count failed", campaign_id=campaign_id, error=str(e))
            raise AssetStoreQueryError(f"Count failed: {e}") from e
        return int(response.get("count", 0))

    async def health_check(self) -> bool:
        """Check cluster reachability."""
        try:
            return bool(await asyncio.to_thread(self.client.ping))
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the OpenSearch client connection."""
        try:
            await asyncio.to_thread(self.client.close)
            logger.info("OpenSearch client connection closed")
        except Exception as e:
            logger.error("Failed to close OpenSearch client", error=str(e))
