"""Deterministic stand-ins for embedding backends."""

import asyncio
import hashlib

import numpy as np


class FakeBackend:
    """Looks texts up in ``vectors``; anything else gets a seeded random vector."""

    def __init__(self, dim=3, vectors=None, fail_load=False):
        self.model_id = "fake-embedder"
        self.dim = dim
        self.vectors = dict(vectors or {})
        self.fail_load = fail_load
        self.fail_on = set()
        self.load_calls = 0
        self.calls = []

    async def load(self):
        self.load_calls += 1
        if self.fail_load:
            raise RuntimeError("model weights not found")

    async def embed_many(self, texts):
        self.calls.append(list(texts))
        await asyncio.sleep(0)
        out = []
        for text in texts:
            if text in self.fail_on:
                raise RuntimeError(f"cannot embed {text!r}")
            out.append(self.vector_for(text))
        return out

    def vector_for(self, text):
        if text in self.vectors:
            return np.asarray(self.vectors[text], dtype=np.float32)
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "little")
        return np.random.default_rng(seed).standard_normal(self.dim).astype(np.float32)

    @property
    def embedded_texts(self):
        return [t for batch in self.calls for t in batch]
