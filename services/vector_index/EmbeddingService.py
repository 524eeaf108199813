"""Batched, retried and optionally cached access to the embedding provider."""

import asyncio
import hashlib
import math
import time
from typing import Awaitable, Callable

import httpx

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.errors import ClientRequestError, EmbeddingProviderError
from shared.helper.HelperConfig import HelperConfig

CACHE_PREFIX = "vector_embedding:"
# advisory pricing, USD per 1K tokens
COST_PER_1K_TOKENS = 0.00013
CHARS_PER_TOKEN = 4


class EmbeddingCache:
    """Process-local content-addressed cache with a per-entry TTL."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, list[float]]] = {}

    def get(self, key: str) -> list[float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, vector = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return vector

    def put(self, key: str, vector: list[float]) -> None:
        self._entries[key] = (self._clock() + self.ttl, vector)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class EmbeddingService:
    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        cache: EmbeddingCache | None = None,
    ):
        self.logging = helper_config.get_logger()
        self.embed_client = embed_client
        self._sleep = sleep

        self.max_retries = max(1, int(helper_config.get_number_val("EMBED_MAX_RETRIES", default=3)))
        self.batch_size = max(1, int(helper_config.get_number_val("EMBED_BATCH_SIZE", default=100)))
        self.cache_enabled = helper_config.get_bool_val("EMBED_CACHE_ENABLED", default=False) or cache is not None
        cache_ttl = helper_config.get_number_val("EMBED_CACHE_TTL", default=86400)
        self.cache = cache or EmbeddingCache(ttl=cache_ttl)

        self._provider_calls = 0
        self._cache_hits = 0
        self._cache_misses = 0

    ##########################################
    ################ CACHE ###################
    ##########################################

    def cache_key(self, text: str) -> str:
        dimensions = self.embed_client.embed_dimensions or ""
        raw = f"{text}\x00{self.embed_client.get_model_identifier()}\x00{dimensions}"
        return CACHE_PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def clear_cache(self) -> None:
        self.cache.clear()
        self.logging.info("Embedding cache cleared")

    ##########################################
    ################ EMBED ###################
    ##########################################

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in input order.

        Blank texts are dropped before the call and are missing from the result,
        so the result can be shorter than ``texts``.

        Raises:
            EmbeddingProviderError: If a batch still fails after all retries.
        """
        texts = [t for t in texts if t and t.strip()]
        if not texts:
            return []

        vectors: list[list[float] | None] = [None] * len(texts)
        missing: list[int] = []
        for i, text in enumerate(texts):
            cached = self.cache.get(self.cache_key(text)) if self.cache_enabled else None
            if cached is not None:
                vectors[i] = cached
                self._cache_hits += 1
            else:
                missing.append(i)
        if self.cache_enabled:
            self._cache_misses += len(missing)

        for start in range(0, len(missing), self.batch_size):
            batch_idx = missing[start:start + self.batch_size]
            batch = [texts[i] for i in batch_idx]
            batch_vectors = await self._embed_with_retry(batch)
            for i, vector in zip(batch_idx, batch_vectors):
                vectors[i] = vector
                if self.cache_enabled:
                    self.cache.put(self.cache_key(texts[i]), vector)

        return [v for v in vectors if v is not None]

    async def _embed_with_retry(self, batch: list[str]) -> list[list[float]]:
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                start = time.perf_counter()
                self._provider_calls += 1
                vectors = await self.embed_client.do_embed(batch)
                if len(vectors) != len(batch):
                    raise ValueError(f"Provider returned {len(vectors)} vectors for {len(batch)} texts")
                self.logging.debug(
                    "Embedded %d texts with %s in %.0f ms (attempt %d)",
                    len(batch), self.embed_client.get_model_identifier(), (time.perf_counter() - start) * 1000, attempt,
                )
                return vectors
            except (ClientRequestError, httpx.HTTPError, ValueError, KeyError) as e:
                last_error = e
                self.logging.warning(
                    "Embedding attempt %d/%d failed: %s", attempt, self.max_retries, e
                )
                if attempt < self.max_retries:
                    await self._sleep(2 ** attempt)

        self.logging.error("Embedding failed after %d attempts: %s", self.max_retries, last_error)
        raise EmbeddingProviderError(
            f"Failed to generate embeddings after {self.max_retries} attempts: {last_error}",
            last_error=last_error,
            attempts=self.max_retries,
        )

    async def embed_single(self, text: str) -> list[float]:
        vectors = await self.embed([text])
        return vectors[0] if vectors else []

    async def test_connection(self) -> bool:
        try:
            await self.embed_single("test")
            return True
        except EmbeddingProviderError as e:
            self.logging.error("Embedding connection test failed: %s", e)
            return False

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def cosine_similarity(a: list[float], b: list[float]) -> float:
        if len(a) != len(b):
            raise ValueError("Embeddings must have the same dimensions")
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return dot / (norm_a * norm_b)

    def estimate_cost(self, texts: list[str]) -> dict:
        """Rough token and cost estimate. Advisory only, nothing is gated on it."""
        tokens = sum(len(text) // CHARS_PER_TOKEN for text in texts)
        return {
            "total_texts": len(texts),
            "estimated_tokens": tokens,
            "estimated_cost_usd": round(tokens / 1000 * COST_PER_1K_TOKENS, 4),
            "model": self.embed_client.embed_model,
        }

    def stats(self) -> dict:
        return {
            "model": self.embed_client.get_model_identifier(),
            "dimensions": self.embed_client.embed_dimensions,
            "batch_size": self.batch_size,
            "max_retries": self.max_retries,
            "cache_enabled": self.cache_enabled,
            "cache_ttl": self.cache.ttl,
            "cache_size": len(self.cache),
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "provider_calls": self._provider_calls,
        }
