"""
Vector codec
============

Embeddings are stored as raw little-endian float32 bytes. No compression or
quantization, so ``decode(encode(v))`` is bit-identical to ``v``.
"""

from __future__ import annotations

import numpy as np

from recall.errors import CorruptDataError

FLOAT_WIDTH = 4
_DTYPE = np.dtype("<f4")


def encode(vec) -> bytes:
    """Serialize an embedding to raw float32 bytes."""
    return np.asarray(vec, dtype=_DTYPE).reshape(-1).tobytes()


def decode(blob: bytes) -> np.ndarray:
    """
    Deserialize raw bytes into a float32 embedding.

    :raises CorruptDataError: if ``len(blob)`` is not a multiple of 4.
    """
    if blob is None:
        raise CorruptDataError("embedding blob is NULL")
    if len(blob) % FLOAT_WIDTH:
        raise CorruptDataError(f"embedding blob of {len(blob)} bytes is not a multiple of {FLOAT_WIDTH}")
    # ``frombuffer`` is a read-only view; copy so callers own the array
    return np.frombuffer(blob, dtype=_DTYPE).astype(np.float32)
