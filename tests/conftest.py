import os
import warnings

import pytest

# Config is read at import time; keep tests off the real model and DB path
os.environ.setdefault("EMB_BACKEND", "local")
os.environ.setdefault("RECALL_DB_PATH", ":memory:")
os.environ.setdefault("RECALL_DECAY_FACTOR", "0.98")

# Silence deprecation warnings surfaced from third-party dependencies during tests
warnings.filterwarnings("ignore", category=DeprecationWarning, module=r"^sentence_transformers")

from fakes import FakeBackend  # noqa: E402
from recall.embedding import EmbeddingProvider  # noqa: E402
from recall.retrieval import Retrieval  # noqa: E402
from recall.store import RecordStore  # noqa: E402

NOW = 1_700_000_000_000


@pytest.fixture
def make_retrieval(tmp_path):
    """Factory for a file-backed facade over a :class:`FakeBackend`.

    Returns ``(retrieval, backend)``; the provider is *not* loaded, so call
    ``await retrieval.start()`` when the test needs semantic search.
    """
    created = []

    def _make(vectors=None, *, dim=3, fail_load=False, settings=None, clock=lambda: NOW, name="recall.db"):
        backend = FakeBackend(dim=dim, vectors=vectors, fail_load=fail_load)
        store = RecordStore(str(tmp_path / name))
        provider = EmbeddingProvider(backend, dim, batch_size=4)
        retrieval = Retrieval(store, provider, settings=settings, clock=clock)
        created.append(retrieval)
        return retrieval, backend

    yield _make
    for retrieval in created:
        retrieval.store.close()
