"""Base asset store interface.

Defines the abstract contract the search engine depends on, independent of
the backing document store (PostgreSQL/pgvector, OpenSearch, ...).

Stores expose up to three search primitives:
- vector similarity search (always)
- lexical relevance search (always)
- store-side rank fusion of both (only when ``supports_native_fusion``)

All methods are asynchronous to support high-throughput services.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence


class RecordType(str, Enum):
    """Kinds of campaign assets."""
    NPC = "NPC"
    LOCATION = "Location"
    PLOT = "Plot"


# Lexical field weighting: name matches dominate, notes are the baseline.
DEFAULT_TEXT_FIELD_BOOSTS: Dict[str, float] = {
    "name": 5.0,
    "gm_summary": 2.0,
    "gm_notes": 1.0,
}

# Fields projected back to callers; the embedding itself is never returned.
ASSET_FIELDS = (
    "id",
    "campaign_id",
    "name",
    "record_type",
    "gm_summary",
    "gm_notes",
    "player_summary",
    "player_notes",
    "created_at",
    "updated_at",
    "location_data",
    "npc_data",
    "plot_data",
)

# ANN breadth relative to the number of results requested.
ANN_CANDIDATE_MULTIPLIER = 10


@dataclass(frozen=True)
class CandidateItem:
    """A single retrieval hit.

    ``relevance_score`` uses the scale of the primitive that produced it
    until the search engine normalizes it.
    """
    id: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    relevance_score: float = 0.0


class AssetStore(ABC):
    """Abstract base class for campaign asset stores.

    Implementations return candidates ordered by descending relevance and
    raise ``AssetStoreError`` subclasses on failure; they never swallow
    errors into empty results.
    """

    @property
    def supports_native_fusion(self) -> bool:
        """Whether ``rank_fusion_search`` is available on this store."""
        return False

    async def initialize(self) -> None:
        """Prepare backing structures (indexes, pools). Safe to call twice."""
        return None

    @abstractmethod
    async def vector_search(
        self,
        query_vector: Sequence[float],
        campaign_id: str,
        record_type: Optional[RecordType] = None,
        limit: int = 10
    ) -> List[CandidateItem]:
        """Search by embedding similarity.

        Returns at most ``limit`` candidates sorted by descending similarity.
        """
        pass

    @abstractmethod
    async def text_search(
        self,
        keywords: str,
        campaign_id: str,
        record_type: Optional[RecordType] = None,
        limit: int = 10
    ) -> List[CandidateItem]:
        """Search by lexical relevance with field boosting.

        Scores are the store's raw (unbounded, positive) relevance values.
        """
        pass

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
        """Run vector and lexical retrieval fused on the store side.

        The returned score is opaque; callers must normalize it.
        """
        raise AssetStoreCapabilityError(
            f"{type(self).__name__} does not support native rank fusion"
        )

    @abstractmethod
    async def count_assets(
        self,
        campaign_id: str,
        record_type: Optional[RecordType] = None
    ) -> int:
        """Count assets in a campaign (optionally of one type)."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the asset store is healthy."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class AssetStoreError(Exception):
    """Base exception for asset store operations."""
    pass


class AssetStoreConnectionError(AssetStoreError):
    """Connection error to the asset store."""
    pass


class AssetStoreQueryError(AssetStoreError):
    """Query error in the asset store."""
    pass


class AssetStoreCapabilityError(AssetStoreError):
    """Requested primitive is not offered by this store tier."""
    pass
