import asyncio

import pytest

from fakes import FakeBackend
from recall.embedding import EmbeddingProvider
from recall.errors import ExecutionError
from recall.retrieval import EmbeddingCache


def _provider(backend):
    provider = EmbeddingProvider(backend, 3)
    asyncio.run(provider.load())
    return provider


def test_concurrent_requests_share_one_call():
    backend = FakeBackend()
    cache = EmbeddingCache(_provider(backend))

    async def scenario():
        return await asyncio.gather(*(cache.embed("pizza night") for _ in range(5)))

    vecs = asyncio.run(scenario())
    assert backend.embedded_texts == ["pizza night"]
    assert all((v == vecs[0]).all() for v in vecs)


def test_keys_are_stripped_and_reused():
    backend = FakeBackend()
    cache = EmbeddingCache(_provider(backend))

    async def scenario():
        await cache.embed("pizza night")
        await cache.embed("  pizza night \n")

    asyncio.run(scenario())
    assert backend.embedded_texts == ["pizza night"]
    assert "pizza night " in cache


def test_lru_eviction():
    backend = FakeBackend()
    cache = EmbeddingCache(_provider(backend), max_size=2)

    async def scenario():
        await cache.embed("alpha")
        await cache.embed("beta")
        await cache.embed("alpha")
        await cache.embed("gamma")

    asyncio.run(scenario())
    assert len(cache) == 2
    assert "alpha" in cache
    assert "beta" not in cache


def test_failures_are_not_cached():
    backend = FakeBackend()
    backend.fail_on.add("broken")
    cache = EmbeddingCache(_provider(backend))

    async def scenario():
        with pytest.raises(ExecutionError):
            await cache.embed("broken")
        backend.fail_on.clear()
        return await cache.embed("broken")

    vec = asyncio.run(scenario())
    assert vec.shape == (3,)
    assert backend.embedded_texts == ["broken", "broken"]
