"""
Text embeddings through the Voyage AI embeddings API.
"""

from __future__ import annotations

import math
import threading
from typing import List, Optional, Protocol, Sequence

import httpx

import kb.config as config
from kb.errors import EmbeddingUnavailable
from kb.providers.http import build_client, new_circuit_breaker, post_json

logger = config.logger


class Embedder(Protocol):
    model: str

    def embed(self, text: str) -> List[float]:
        ...


def _parse_embeddings(data: dict, expected: int) -> List[List[float]]:
    rows = data.get("data") if isinstance(data, dict) else None
    if not isinstance(rows, list) or len(rows) != expected:
        raise EmbeddingUnavailable("embedding response has an unexpected shape")
    if all(isinstance(row, dict) and isinstance(row.get("index"), int) for row in rows):
        rows = sorted(rows, key=lambda row: row["index"])

    vectors = []
    for row in rows:
        vector = row.get("embedding") if isinstance(row, dict) else None
        if not isinstance(vector, list) or not vector:
            raise EmbeddingUnavailable("embedding response is missing a vector")
        try:
            values = [float(x) for x in vector]
        except (TypeError, ValueError) as exc:
            raise EmbeddingUnavailable("embedding vector contains non-numeric values") from exc
        if not all(math.isfinite(x) for x in values):
            raise EmbeddingUnavailable("embedding vector contains non-finite values")
        vectors.append(values)
    return vectors


class VoyageEmbedder:
    """Embedder backed by the Voyage AI embeddings API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else config.VOYAGE_API_KEY
        self.model = model or config.EMBEDDING_MODEL
        self.timeout_seconds = timeout_seconds or config.EMBEDDING_TIMEOUT_SECONDS
        self.breaker = new_circuit_breaker("embedder")
        self._client = client

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = build_client(
                self.timeout_seconds,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key or ''}",
                },
            )
        return self._client

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not self.api_key:
            raise EmbeddingUnavailable("VOYAGE_API_KEY environment variable not set")
        if not texts:
            return []
        payload = {"input": list(texts), "model": self.model}
        data = post_json(self._http(), config.VOYAGE_API_URL, payload, self.breaker, EmbeddingUnavailable)
        return _parse_embeddings(data, len(texts))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


_embedder: Optional[VoyageEmbedder] = None
_embedder_lock = threading.Lock()


def get_embedder() -> VoyageEmbedder:
    """Get or create the process-wide embedder."""
    global _embedder
    with _embedder_lock:
        if _embedder is None:
            _embedder = VoyageEmbedder()
        return _embedder


def close_embedder() -> None:
    global _embedder
    with _embedder_lock:
        if _embedder is not None:
            _embedder.close()
            _embedder = None
