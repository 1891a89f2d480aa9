"""
Embedding backends
==================

A backend turns a list of strings into a list of float32 vectors. Two ship
with the package:

- :class:`SentenceTransformerBackend` runs a local model (default
  ``all-MiniLM-L6-v2``, 384 dims). No network once the weights are cached.
- :class:`OpenAIBackend` calls an OpenAI-compatible ``/embeddings`` endpoint.

Backends know nothing about readiness; :class:`EmbeddingProvider` owns that.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Protocol, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class EmbeddingBackend(Protocol):
    model_id: str

    async def load(self) -> None: ...

    async def embed_many(self, texts: Sequence[str]) -> List[np.ndarray]: ...


class SentenceTransformerBackend:
    """Local sentence-transformers model, mean pooled and L2 normalized."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        self._model = None

    async def load(self) -> None:
        from sentence_transformers import SentenceTransformer

        self._model = await asyncio.to_thread(SentenceTransformer, self.model_id)

    async def embed_many(self, texts: Sequence[str]) -> List[np.ndarray]:
        if self._model is None:
            raise RuntimeError(f"Model {self.model_id} is not loaded")

        def _encode():
            # The model truncates to its own max_seq_length
            return self._model.encode(
                list(texts),
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False,
            )

        matrix = await asyncio.to_thread(_encode)
        return [np.asarray(row, dtype=np.float32) for row in matrix]


class OpenAIBackend:
    """OpenAI (or OpenRouter-style compatible) embeddings endpoint."""

    def __init__(self, model_id: str, api_key: str | None, base_url: str | None = None) -> None:
        self.model_id = model_id
        self._api_key = api_key
        self._base_url = base_url
        self._client = None

    async def load(self) -> None:
        from openai import AsyncOpenAI

        if not self._api_key:
            raise RuntimeError("OpenAI API key not configured")
        self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)

    async def embed_many(self, texts: Sequence[str]) -> List[np.ndarray]:
        if self._client is None:
            raise RuntimeError("OpenAI client is not initialized")

        resp = await self._client.embeddings.create(model=self.model_id, input=list(texts))
        # The API may return items out of order; ``index`` is authoritative
        items = sorted(resp.data, key=lambda d: d.index)
        if len(items) != len(texts):
            raise ValueError(f"Embedding API returned {len(items)} vectors for {len(texts)} inputs")
        return [np.asarray(item.embedding, dtype=np.float32) for item in items]


def backend_from_config(cfg) -> EmbeddingBackend:
    """Build the backend selected by ``cfg.BACKEND``."""

    if cfg.BACKEND == "openai":
        return OpenAIBackend(cfg.EMB_MODEL_ID, cfg.OPENAI_API_KEY, cfg.OPENAI_BASE_URL)
    return SentenceTransformerBackend(cfg.EMB_MODEL_ID)
