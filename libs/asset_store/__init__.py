"""Campaign asset store abstraction and implementations.

Provides a unified async interface for the retrieval primitives the search
engine needs (vector similarity, lexical relevance, store-side fusion) across
PostgreSQL/pgvector and OpenSearch.
"""

from .base import (
    AssetStore,
    AssetStoreCapabilityError,
    AssetStoreConnectionError,
    AssetStoreError,
    AssetStoreQueryError,
    CandidateItem,
    RecordType,
)
from .factory import AssetStoreFactory, AssetStoreType, create_asset_store

__all__ = [
    "AssetStore",
    "AssetStoreCapabilityError",
    "AssetStoreConnectionError",
    "AssetStoreError",
    "AssetStoreQueryError",
    "AssetStoreFactory",
    "AssetStoreType",
    "CandidateItem",
    "RecordType",
    "create_asset_store",
]
