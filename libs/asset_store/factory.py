"""Asset store factory.

Centralizes creation of concrete ``AssetStore`` backends so the search
service only depends on the abstract interface.
"""

from enum import Enum
from typing import Any, Dict

import structlog

from libs.common.config import BaseConfig

from .base import AssetStore
from .opensearch import OpenSearchAssetStore
from .pgvector import PgVectorAssetStore

logger = structlog.get_logger("asset_store.factory")


class AssetStoreType(Enum):
    """Supported asset store backends."""
    PGVECTOR = "pgvector"
    OPENSEARCH = "opensearch"


class AssetStoreFactory:
    """Factory for creating asset store instances."""

    @staticmethod
    def create(store_type: AssetStoreType, config: Dict[str, Any]) -> AssetStore:
        """Create an asset store instance.

        Parameters
        - store_type: An ``AssetStoreType`` enum value
        - config: Backend-specific parameters (e.g., DSN for pgvector)
        """
        if store_type == AssetStoreType.PGVECTOR:
            dsn = config.get("dsn")
            if not dsn:
                raise ValueError("PgVector requires 'dsn' in config")

            return PgVectorAssetStore(
                dsn=dsn,
                pool_size=config.get("pool_size", 10),
                command_timeout=config.get("command_timeout", 60),
                vector_dimension=config.get("vector_dimension"),
                table_name=config.get("table_name", "campaign_assets"),
            )

        elif store_type == AssetStoreType.OPENSEARCH:
            hosts = config.get("hosts")
            if not hosts:
                raise ValueError("OpenSearch requires 'hosts' in config")

            return OpenSearchAssetStore(
                hosts=hosts,
                index_name=config.get("index_name", "campaign_assets"),
                vector_dimension=config.get("vector_dimension", 1536),
                username=config.get("username"),
                password=config.get("password"),
                verify_certs=config.get("verify_certs", False),
                ssl_assert_hostname=config.get("ssl_assert_hostname", False),
                ssl_show_warn=config.get("ssl_show_warn", False),
                native_fusion=config.get("native_fusion", True),
            )

        else:
            raise ValueError(f"Unsupported asset store type: {store_type}")


def create_asset_store(backend: str, config: BaseConfig) -> AssetStore:
    """Create the configured asset store from typed settings.

    Parameters
    - backend: ``pgvector`` or ``opensearch``
    - config: Settings carrying connection details for both backends

    Returns
    - An ``AssetStore`` ready for lazy connection on first use
    """
    try:
        store_type = AssetStoreType(backend)
    except ValueError:
        raise ValueError(f"Unsupported asset store backend: {backend}")

    if store_type == AssetStoreType.PGVECTOR:
        store_config: Dict[str, Any] = {
            "dsn": config.ml_vector_db_dsn,
            "pool_size": config.ml_vector_pool_size,
            "command_timeout": config.ml_vector_command_timeout,
            "vector_dimension": config.ml_vector_dimension,
        }
    else:
        store_config = {
            "hosts": [h.strip() for h in config.ml_opensearch_hosts.split(",") if h.strip()],
            "index_name": config.ml_opensearch_index,
            "vector_dimension": config.ml_vector_dimension,
            "username": config.ml_opensearch_username,
            "password": config.ml_opensearch_password,
            "verify_certs": config.ml_opensearch_verify_certs,
            "ssl_assert_hostname": config.ml_opensearch_ssl_assert_hostname,
            "ssl_show_warn": config.ml_opensearch_ssl_show_warn,
            "native_fusion": config.ml_opensearch_native_fusion,
        }

    logger.info("Creating asset store", backend=backend)
    return AssetStoreFactory.create(store_type, store_config)
