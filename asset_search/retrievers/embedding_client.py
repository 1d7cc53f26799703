"""Embedding provider client.

The search engine only needs ``embed(text) -> vector``; an empty vector means
the provider could not produce one. ``EmbeddingServiceClient`` talks to the
embedding service over HTTP and retries transport failures with capped
exponential backoff before giving up.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

import httpx
import structlog

from libs.common.config import EmbeddingConfig

logger = structlog.get_logger("search_service.embedding_client")


class EmbeddingProvider(ABC):
    """Text to vector, or an empty list on failure."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        pass

    async def close(self) -> None:
        return None


class EmbeddingServiceClient(EmbeddingProvider):
    """HTTP client for the embedding service's ``/api/v1/embed`` endpoint."""

    def __init__(
        self,
        base_url: str,
        model: str = "default",
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Construct an embedding service client.

        Parameters
        - base_url: Service root, e.g. ``http://embedding:9006``
        - model: Model name forwarded in each request
        - timeout: Per-request timeout in seconds
        - retry_attempts: Total attempts per embedding (>= 1)
        - retry_base_delay / retry_max_delay: Backoff bounds in seconds
        - http_client: Pre-built client (tests inject one with a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.retry_attempts = max(1, retry_attempts)
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> "EmbeddingServiceClient":
        return cls(
            base_url=config.ml_embedding_service_url,
            model=config.ml_embedding_model,
            timeout=config.ml_embedding_timeout,
            retry_attempts=config.ml_embedding_retry_attempts,
            retry_base_delay=config.ml_embedding_retry_base_delay,
            retry_max_delay=config.ml_embedding_retry_max_delay,
        )

    async def _call_with_retry(
        self,
        func: Callable[[], Awaitable[Any]],
        operation_name: str
    ) -> Any:
        """Execute a coroutine-returning callable with retry and backoff."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await func()
            except Exception as exc:
                if attempt == self.retry_attempts:
                    logger.error(
                        "Operation failed after retries",
                        operation=operation_name,
                        attempts=attempt,
                        error=str(exc)
                    )
                    raise

                delay = min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)
                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=self.retry_attempts,
                    delay_seconds=delay,
                    error=str(exc)
                )
                await asyncio.sleep(delay)

        raise RuntimeError(f"Retry logic failed for {operation_name}")

    async def _request_embedding(self, text: str) -> List[float]:
        response = await self.http_client.post(
            f"{self.base_url}/api/v1/embed",
            json={
                "items": [{"text": text}],
                "model": self.model
            }
        )
        response.raise_for_status()

        vectors = response.json().get("vectors", [])
        if not vectors:
            return []
        return [float(v) for v in vectors[0]]

    async def embed(self, text: str) -> List[float]:
        """Embed ``text``; returns ``[]`` for blank input or on failure."""
        if not text or not text.strip():
            return []

        try:
            return await self._call_with_retry(
                lambda: self._request_embedding(text),
                operation_name="embedding_service_request"
            )
        except Exception as e:
            logger.error("Embedding service call failed", query_length=len(text), error=str(e))
            return []

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
