"""Durable destinations for search metric records.

The engine only ever appends; there is no read path.
"""

from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis
import structlog

from .records import SearchMetricRecord

logger = structlog.get_logger("search_service.metrics_sink")


class MetricsSink(ABC):
    """Append-only store of ``SearchMetricRecord`` rows."""

    @abstractmethod
    async def append(self, record: SearchMetricRecord) -> None:
        pass

    async def close(self) -> None:
        return None


class RedisStreamMetricsSink(MetricsSink):
    """Appends records to a Redis Stream with ``XADD``.

    Entries carry a few flat fields for cheap filtering plus the full record
    as JSON under ``payload``. The stream is never trimmed here.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        stream: str = "search:metrics",
        client: Optional[redis.Redis] = None
    ):
        if client is None and not redis_url:
            raise ValueError("RedisStreamMetricsSink requires redis_url or client")
        self.redis_client = client or redis.from_url(redis_url)
        self.stream = stream

    async def append(self, record: SearchMetricRecord) -> None:
        entry_id = await self.redis_client.xadd(
            self.stream,
            {
                "search_mode": record.search_mode,
                "campaign_id": record.campaign_id,
                "sampled": "1" if record.sampled else "0",
                "payload": record.to_json(),
            }
        )
        logger.debug("Search metrics appended", stream=self.stream, entry_id=entry_id)

    async def close(self) -> None:
        """Close the Redis client used by the sink."""
        try:
            await self.redis_client.aclose()
        except Exception as e:
            logger.warning("Error closing redis client", error=str(e))
