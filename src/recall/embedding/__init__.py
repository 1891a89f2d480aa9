"""
Embedding utilities
===================

Centralizes embedding logic so the rest of the codebase does not care
about model details (dimensionality, provider, etc.).
"""

from .backends import EmbeddingBackend, OpenAIBackend, SentenceTransformerBackend, backend_from_config
from .codec import decode, encode
from .provider import EmbeddingProvider, ProviderState, cosine_similarity

__all__ = [
    "EmbeddingBackend",
    "EmbeddingProvider",
    "OpenAIBackend",
    "ProviderState",
    "SentenceTransformerBackend",
    "backend_from_config",
    "cosine_similarity",
    "decode",
    "encode",
]
