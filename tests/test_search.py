import asyncio
import math

import numpy as np
import pytest

from recall.search import MS_PER_DAY, SearchEngine, decay_weight, rank
from recall.store import MessageRecord, RecordStore, Scope, ScopeFilter

NOW = 1_700_000_000_000

V_CAT = [1.0, 0.0, 0.0]
V_KITTEN = [0.9, math.sqrt(1 - 0.81), 0.0]
V_DATABASE = [0.1, 0.0, math.sqrt(1 - 0.01)]


def _rec(rid, content, vec, created_at=NOW, channel="c1", guild="g1"):
    return MessageRecord(
        id=rid,
        content=content,
        scope=Scope(channel_id=channel, guild_id=guild, user_id="u1"),
        created_at=created_at,
        embedding=np.asarray(vec, dtype=np.float32),
    )


def test_cat_kitten_database_ranking():
    candidates = [_rec(1, "cat", V_CAT), _rec(2, "kitten", V_KITTEN), _rec(3, "database", V_DATABASE)]

    results = rank(V_CAT, candidates, limit=2, decay_factor=1.0, now=NOW)

    assert [r.record.id for r in results] == [1, 2]
    assert results[0].score == pytest.approx(1.0, abs=1e-6)
    assert results[1].score == pytest.approx(0.9, abs=1e-6)


def test_negative_similarity_never_returned():
    candidates = [_rec(1, "opposite", [-1.0, 0.0, 0.0]), _rec(2, "orthogonal", [0.0, 1.0, 0.0])]
    assert rank(V_CAT, candidates, limit=10, now=NOW) == []


def test_decay_is_monotone_in_age():
    candidates = [_rec(i, f"m{i}", V_CAT, created_at=NOW - i * MS_PER_DAY) for i in range(1, 6)]

    results = rank(V_CAT, candidates, limit=10, decay_factor=0.9, now=NOW)

    assert [r.record.id for r in results] == [1, 2, 3, 4, 5]
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == pytest.approx(0.9, rel=1e-6)
    assert scores[4] == pytest.approx(0.9 ** 5, rel=1e-6)


def test_future_records_are_not_boosted():
    assert decay_weight(NOW + MS_PER_DAY, NOW, 0.5) == 1.0


def test_ties_break_by_recency_then_id():
    candidates = [
        _rec(3, "same", V_CAT, created_at=NOW - 10),
        _rec(2, "same", V_CAT, created_at=NOW),
        _rec(1, "same", V_CAT, created_at=NOW),
    ]
    results = rank(V_CAT, candidates, limit=3, decay_factor=1.0, now=NOW)
    assert [r.record.id for r in results] == [1, 2, 3]


def test_ranking_is_deterministic():
    rng = np.random.default_rng(11)
    candidates = [_rec(i, f"m{i}", rng.standard_normal(3), created_at=NOW - i * 1000) for i in range(1, 40)]
    query = rng.standard_normal(3)

    first = rank(query, candidates, limit=10, decay_factor=0.98, now=NOW)
    second = rank(query, list(reversed(candidates)), limit=10, decay_factor=0.98, now=NOW)

    assert [r.record.id for r in first] == [r.record.id for r in second]
    assert [r.score for r in first] == pytest.approx([r.score for r in second])


def test_limit_caps_results():
    candidates = [_rec(i, f"m{i}", [1.0, 0.01 * i, 0.0]) for i in range(1, 51)]
    results = rank(V_CAT, candidates, limit=5, now=NOW)
    assert len(results) == 5
    assert all(r.score > 0 for r in results)


def test_dimension_mismatch_candidates_are_skipped():
    candidates = [_rec(1, "short", [1.0, 0.0]), _rec(2, "ok", V_CAT)]
    assert [r.record.id for r in rank(V_CAT, candidates, limit=5, now=NOW)] == [2]


def test_zero_query_and_zero_limit_return_nothing():
    candidates = [_rec(1, "cat", V_CAT)]
    assert rank([0.0, 0.0, 0.0], candidates, limit=5, now=NOW) == []
    assert rank(V_CAT, candidates, limit=0, now=NOW) == []


def test_invalid_decay_factor():
    with pytest.raises(ValueError):
        rank(V_CAT, [], limit=5, decay_factor=0.0)
    with pytest.raises(ValueError):
        rank(V_CAT, [], limit=5, decay_factor=1.5)


def test_engine_respects_scope_and_skips_unembedded(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))
    engine = SearchEngine(store)

    async def scenario():
        a = await store.insert(_rec(None, "guild a", V_CAT, guild="A", channel="ca"))
        await store.insert(_rec(None, "guild b", V_CAT, guild="B", channel="cb"))
        await store.insert(
            MessageRecord(content="no vector", scope=Scope(channel_id="ca", guild_id="A"), created_at=NOW)
        )
        in_a = await engine.search(V_CAT, ScopeFilter(guild_id="A"), 10, now=NOW)
        empty = await engine.search(V_CAT, ScopeFilter(guild_id="nobody"), 10, now=NOW)
        return a, in_a, empty

    a, in_a, empty = asyncio.run(scenario())
    store.close()

    assert [r.record.id for r in in_a] == [a]
    assert in_a[0].record.content == "guild a"
    assert empty == []


def test_engine_can_exclude_bots(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))
    engine = SearchEngine(store)

    async def scenario():
        await store.insert(
            MessageRecord(
                content="bot says cat",
                scope=Scope(channel_id="c1"),
                created_at=NOW,
                is_bot=True,
                embedding=np.asarray(V_CAT, dtype=np.float32),
            )
        )
        with_bots = await engine.search(V_CAT, ScopeFilter(channel_id="c1"), 10, now=NOW)
        without = await engine.search(V_CAT, ScopeFilter(channel_id="c1"), 10, exclude_bot=True, now=NOW)
        return with_bots, without

    with_bots, without = asyncio.run(scenario())
    store.close()
    assert len(with_bots) == 1
    assert without == []
