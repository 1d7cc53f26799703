"""PostgreSQL/pgvector implementation of the asset store.

Vectors live in the ``embedding`` column of ``campaign_assets`` and are
compared with the cosine distance operator ``<=>``. The distance (``[0, 2]``)
is reported as a similarity ``1 - distance / 2`` in ``[0, 1]``.

Lexical relevance is an unbounded, boost-weighted sum: each of ``name``,
``gm_summary`` and ``gm_notes`` is ranked on its own with ``ts_rank`` (unit
weights), multiplied by its raw boost (5/2/1 by default), and the sum is
scaled by the number of query terms. A single-term name match scores about
3.0, or about 0.75 after the engine's ``s / (s + 1)`` mapping.

This backend has no store-side fusion primitive; the engine fuses results
client-side (``manual_hybrid``).

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

import asyncpg
import numpy as np
import structlog
from asyncpg import Connection, Pool
from pgvector.asyncpg import register_vector

from .base import (
    ANN_CANDIDATE_MULTIPLIER,
    ASSET_FIELDS,
    DEFAULT_TEXT_FIELD_BOOSTS,
    AssetStore,
    AssetStoreConnectionError,
    AssetStoreQueryError,
    CandidateItem,
    RecordType,
)

logger = structlog.get_logger("asset_store.pgvector")

# Per-field vectors are unlabelled, so every ``ts_rank`` label weighs 1.0.
_UNIT_RANK_WEIGHTS = "{1,1,1,1}"

# Columns eligible for lexical matching, in boost-lookup order.
_TEXT_FIELDS = ("name", "gm_summary", "gm_notes")

# pgvector rejects larger hnsw.ef_search values.
_MAX_EF_SEARCH = 1000


class PgVectorAssetStore(AssetStore):
    """PgVector implementation of the asset store."""

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        command_timeout: int = 60,
        vector_dimension: Optional[int] = None,
        table_name: str = "campaign_assets",
        text_search_config: str = "english",
        field_boosts: Optional[Dict[str, float]] = None,
    ):
        """Configure a PgVector-backed asset store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        - vector_dimension: Expected dimensionality of query vectors
        - table_name: Table holding campaign assets and their embeddings
        - text_search_config: PostgreSQL text search configuration
        - field_boosts: Relative weights for ``name``/``gm_summary``/``gm_notes``
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self.vector_dimension = vector_dimension
        self.table_name = table_name
        self.text_search_config = text_search_config
        self.field_boosts = dict(field_boosts or DEFAULT_TEXT_FIELD_BOOSTS)
        self._pool: Optional[Pool] = None

    async def _init_connection(self, conn: Connection) -> None:
        """Register pgvector and JSON codecs for asyncpg connections."""
        await register_vector(conn)
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )

    async def _get_pool(self) -> Pool:
        """Get or create connection pool.

        Lazily initializes an asyncpg pool so callers don't pay startup cost
        unless/until they make a call that requires the database.
        """
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=self.command_timeout,
                    init=self._init_connection,
                )
                logger.info("Created PgVector connection pool", pool_size=self.pool_size)
            except Exception as e:
                logger.error("Failed to create PgVector connection pool", error=str(e))
                raise AssetStoreConnectionError(f"Failed to create connection pool: {e}") from e

        return self._pool

    async def initialize(self) -> None:
        """Open the connection pool eagerly."""
        await self._get_pool()

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_val: bool = False,
        ef_search: Optional[int] = None
    ) -> Any:
        """Execute a query with error handling.

        ``ef_search`` widens the HNSW candidate list for this query only.
        All driver failures are wrapped in ``AssetStoreQueryError``.
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if ef_search:
                    async with conn.transaction():
                        await conn.execute(f"SET LOCAL hnsw.ef_search = {int(ef_search)}")
                        return await conn.fetch(query, *args)
                if fetch_val:
                    return await conn.fetchval(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except Exception as e:
            logger.error("Query execution failed", table=self.table_name, error=str(e))
            raise AssetStoreQueryError(f"Query failed: {e}") from e

    @staticmethod
    def _scope_clause(
        campaign_id: str,
        record_type: Optional[RecordType],
        params: List[Any]
    ) -> str:
        """Append scope parameters and return the matching ``WHERE`` fragment."""
        params.append(campaign_id)
        clause = f"campaign_id = ${len(params)}"
        if record_type:
            params.append(RecordType(record_type).value)
            clause += f" AND record_type = ${len(params)}"
        return clause

    def _document_sql(self) -> str:
        """Concatenated ``tsvector`` of every lexical field (the match filter)."""
        config = self.text_search_config
        return " || ".join(
            f"to_tsvector('{config}', coalesce({field_name}, ''))" for field_name in _TEXT_FIELDS
        )

    def _text_score_sql(self, query_ref: str) -> str:
        """Sum of ``boost * ts_rank`` over the boosted lexical fields."""
        config = self.text_search_config
        terms = []
        for field_name in _TEXT_FIELDS:
            boost = float(self.field_boosts.get(field_name, 0.0))
            if boost > 0:
                terms.append(
                    f"{boost:g} * ts_rank('{_UNIT_RANK_WEIGHTS}', "
                    f"to_tsvector('{config}', coalesce({field_name}, '')), {query_ref})"
                )
        return "(" + " + ".join(terms or ["0"]) + ")"

    @staticmethod
    def _to_candidate(row: Any) -> CandidateItem:
        attributes = {key: row[key] for key in ASSET_FIELDS if key in row.keys()}
        attributes["id"] = str(row["id"])
        attributes["campaign_id"] = str(row["campaign_id"])
        return CandidateItem(
            id=attributes["id"],
            attributes=attributes,
            relevance_score=float(row["score"]),
        )

    async def vector_search(
        self,
        query_vector: Sequence[float],
        campaign_id: str,
        record_type: Optional[RecordType] = None,
        limit: int = 10
    ) -> List[CandidateItem]:
        """Search for similar assets using cosine similarity."""
        vector_array = self._ensure_vector_dimension(query_vector)

        params: List[Any] = [vector_array]
        scope = self._scope_clause(campaign_id, record_type, params)
        params.append(limit)

        query = f"""
            SELECT {", ".join(ASSET_FIELDS)},
                   1 - (embedding <=> $1) / 2 AS score
            FROM {self.table_name}
            WHERE {scope} AND embedding IS NOT NULL
            ORDER BY embedding <=> $1
            LIMIT ${len(params)}
        """

        rows = await self._execute_query(
            query,
            *params,
            fetch=True,
            ef_search=min(limit * ANN_CANDIDATE_MULTIPLIER, _MAX_EF_SEARCH)
        )
        candidates = [self._to_candidate(row) for row in rows]

        logger.info(
            "Vector similarity search completed",
            query_vector_dim=len(vector_array),
            campaign_id=campaign_id,
            record_type=record_type,
            limit=limit,
            results_count=len(candidates)
        )
        return candidates

    async def text_search(
        self,
        keywords: str,
        campaign_id: str,
        record_type: Optional[RecordType] = None,
        limit: int = 10
    ) -> List[CandidateItem]:
        """Search assets by weighted full-text relevance."""
        params: List[Any] = [keywords]
        scope = self._scope_clause(campaign_id, record_type, params)
        params.append(limit)
        config = self.text_search_config

        query = f"""
            WITH scoped AS (
                SELECT {", ".join(ASSET_FIELDS)},
                       websearch_to_tsquery('{config}', $1) AS query,
                       GREATEST(cardinality(tsvector_to_array(to_tsvector('{config}', $1))), 1) AS term_count
                FROM {self.table_name}
                WHERE {scope}
            )
            SELECT {", ".join(ASSET_FIELDS)},
                   {self._text_score_sql("query")} * term_count AS score
            FROM scoped
            WHERE ({self._document_sql()}) @@ query
            ORDER BY score DESC
            LIMIT ${len(params)}
        """

        rows = await self._execute_query(query, *params, fetch=True)
        candidates = [self._to_candidate(row) for row in rows]

        logger.info(
            "Lexical search completed",
            campaign_id=campaign_id,
            record_type=record_type,
            limit=limit,
            results_count=len(candidates)
        )
        return candidates

    async def count_assets(
        self,
        campaign_id: str,
        record_type: Optional[RecordType] = None
    ) -> int:
        """Count assets within a campaign."""
        params: List[Any] = []
        scope = self._scope_clause(campaign_id, record_type, params)
        count = await self._execute_query(
            f"SELECT COUNT(*) FROM {self.table_name} WHERE {scope}",
            *params,
            fetch_val=True
        )
        return int(count or 0)

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            await self._execute_query("SELECT 1", fetch_val=True)
            return True
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed PgVector connection pool")

    def _ensure_vector_dimension(self, vector: Iterable[float]) -> np.ndarray:
        """Ensure a vector matches the expected dimensionality."""
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1:
            raise AssetStoreQueryError("Vector must be one-dimensional")

        if self.vector_dimension is not None and array.shape[0] != self.vector_dimension:
            raise AssetStoreQueryError(
                f"Expected vector dimension {self.vector_dimension}, "
                f"got {array.shape[0]}"
            )
        return array
