"""
Embedding provider
==================

Wraps a backend with an explicit ``UNINITIALIZED -> READY`` state machine.
The transition happens once, on a successful :meth:`EmbeddingProvider.load`;
a failed load leaves the provider uninitialized for the life of the process
and later ``load()`` calls re-raise instead of retrying.
"""

from __future__ import annotations

import enum
import logging
from typing import List, Sequence

import numpy as np

from recall.errors import ConfigurationError, ExecutionError, InvalidParametersError
from .backends import EmbeddingBackend

logger = logging.getLogger(__name__)


class ProviderState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of ``a`` and ``b`` clamped to ``[-1, 1]``.

    Returns exactly ``0.0`` when the lengths differ or either norm is zero.
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape[0] != b.shape[0]:
        return 0.0
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na == 0.0 or nb == 0.0:
        return 0.0
    sim = float(np.dot(a, b)) / (na * nb)
    return max(-1.0, min(1.0, sim))


class EmbeddingProvider:
    """Single authority for embedding readiness and model calls."""

    def __init__(self, backend: EmbeddingBackend, dim: int, *, batch_size: int = 32) -> None:
        self._backend = backend
        self.dim = int(dim)
        self.batch_size = max(1, int(batch_size))
        self._state = ProviderState.UNINITIALIZED
        self._load_error: BaseException | None = None

    @property
    def model_id(self) -> str:
        return self._backend.model_id

    @property
    def state(self) -> ProviderState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is ProviderState.READY

    async def load(self) -> None:
        """Load the backend model. Idempotent once ready."""

        if self._state is ProviderState.READY:
            return
        if self._load_error is not None:
            raise ConfigurationError(
                f"Embedding model {self.model_id} failed to load: {self._load_error}"
            ) from self._load_error

        try:
            await self._backend.load()
        except Exception as exc:
            self._load_error = exc
            logger.error("Embedding model %s failed to load: %s", self.model_id, exc)
            raise ConfigurationError(f"Embedding model {self.model_id} failed to load: {exc}") from exc

        self._state = ProviderState.READY
        logger.info("Embedder ready: %s (%d dimensions)", self.model_id, self.dim)

    def _require_ready(self) -> None:
        if not self.is_ready():
            raise ConfigurationError("Embedding model not ready")

    def _check(self, vec: np.ndarray) -> np.ndarray:
        vec = np.asarray(vec, dtype=np.float32).reshape(-1)
        if vec.shape[0] != self.dim:
            raise ExecutionError(
                f"Unexpected embedding size {vec.shape[0]} != {self.dim} for model {self.model_id}"
            )
        return vec

    async def embed(self, text: str) -> np.ndarray:
        """
        Embed one text.

        :raises ConfigurationError: provider not ready.
        :raises InvalidParametersError: ``text`` is empty.
        :raises ExecutionError: the backend failed or returned a bad vector.
        """
        self._require_ready()
        if not text or not text.strip():
            raise InvalidParametersError("Cannot embed empty text")

        try:
            vecs = await self._backend.embed_many([text])
        except Exception as exc:
            logger.error("Error embedding text (model=%s): %s", self.model_id, exc)
            raise ExecutionError(f"Embedding failed: {exc}") from exc
        if len(vecs) != 1:
            raise ExecutionError(f"Backend returned {len(vecs)} vectors for 1 input")
        return self._check(vecs[0])

    async def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        """
        Embed ``texts`` in chunks of ``batch_size``.

        The result has the same length and order as ``texts``.
        """
        if not texts:
            return []
        self._require_ready()

        out: List[np.ndarray] = []
        for start in range(0, len(texts), self.batch_size):
            chunk = list(texts[start : start + self.batch_size])
            try:
                vecs = await self._backend.embed_many(chunk)
            except Exception as exc:
                logger.error("Batch embedding failed (model=%s size=%d): %s", self.model_id, len(chunk), exc)
                raise ExecutionError(f"Batch embedding failed: {exc}") from exc
            if len(vecs) != len(chunk):
                raise ExecutionError(f"Backend returned {len(vecs)} vectors for {len(chunk)} inputs")
            out.extend(self._check(v) for v in vecs)
        return out
