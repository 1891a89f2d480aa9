import asyncio

import numpy as np

from recall.store import (
    KnowledgeEntry,
    MemoryRecord,
    MessageRecord,
    RecordKind,
    RecordStore,
    Scope,
    ScopeFilter,
)

NOW = 1_700_000_000_000


def _msg(content, channel="c1", guild="g1", user="u1", created_at=NOW, **kw):
    return MessageRecord(
        content=content,
        scope=Scope(channel_id=channel, guild_id=guild, user_id=user),
        created_at=created_at,
        **kw,
    )


def test_insert_and_get_round_trip(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        rid = await store.insert(_msg("hello", author_name="alice", platform_message_id="m1"))
        return rid, await store.get(rid), await store.get(rid + 100)

    rid, rec, missing = asyncio.run(scenario())
    store.close()

    assert isinstance(rec, MessageRecord)
    assert rec.id == rid
    assert rec.content == "hello"
    assert rec.author_name == "alice"
    assert rec.author_id == "u1"
    assert rec.scope == Scope(channel_id="c1", guild_id="g1", user_id="u1")
    assert rec.created_at == NOW
    assert rec.embedding is None
    assert missing is None


def test_ids_are_unique_across_kinds(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        return [
            await store.insert(_msg("a")),
            await store.insert(KnowledgeEntry(content="b", scope=Scope(guild_id="g1"), tags=("faq",))),
            await store.insert(MemoryRecord(content="c", scope=Scope(user_id="u1"))),
        ]

    ids = asyncio.run(scenario())
    store.close()
    assert len(set(ids)) == 3
    assert ids == sorted(ids)


def test_message_insert_is_idempotent_on_platform_id(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        first = await store.insert(_msg("hello", platform_message_id="m1"))
        second = await store.insert(_msg("hello again", platform_message_id="m1"))
        total = await store.count(ScopeFilter(kind=RecordKind.MESSAGE))
        return first, second, total

    first, second, total = asyncio.run(scenario())
    store.close()
    assert first == second
    assert total == 1


def test_scan_filters_by_scope(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        await store.insert(_msg("c1 old", created_at=NOW - 1000))
        await store.insert(_msg("c1 new"))
        await store.insert(_msg("c2", channel="c2"))
        await store.insert(_msg("bot", is_bot=True))
        await store.insert(_msg("other guild", channel="c9", guild="g2"))
        return (
            await store.scan_by_scope(ScopeFilter(channel_id="c1")),
            await store.scan_by_scope(ScopeFilter(guild_id="g1", exclude_bot=True), order_by="created_at_asc"),
            await store.scan_by_scope(ScopeFilter(channel_id="c1", since_ms=NOW - 500)),
        )

    by_channel, by_guild, recent = asyncio.run(scenario())
    store.close()

    assert [r.content for r in by_channel] == ["bot", "c1 new", "c1 old"]
    assert [r.content for r in by_guild] == ["c1 old", "c1 new", "c2"]
    assert {r.content for r in recent} == {"c1 new", "bot"}


def test_tags_filter_and_listing(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        await store.insert(KnowledgeEntry(content="rules", scope=Scope(guild_id="g1"), tags=("Rules", "faq")))
        await store.insert(KnowledgeEntry(content="guide", scope=Scope(guild_id="g1"), tags=("guide",)))
        await store.insert(KnowledgeEntry(content="elsewhere", scope=Scope(guild_id="g2"), tags=("secret",)))
        return (
            await store.scan_by_scope(ScopeFilter(kind=RecordKind.KNOWLEDGE, guild_id="g1", tag="rules")),
            await store.list_tags("g1"),
        )

    tagged, tags = asyncio.run(scenario())
    store.close()

    assert [r.content for r in tagged] == ["rules"]
    assert tagged[0].tags == ("Rules", "faq")
    assert tags == ["faq", "guide", "rules"]


def test_attach_embedding_happens_once(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))
    first = np.array([1.0, 0.0, 0.0], dtype=np.float32)

    async def scenario():
        rid = await store.insert(_msg("hello"))
        pending_before = await store.pending_embeddings(10)
        ok = await store.attach_embedding(rid, first)
        again = await store.attach_embedding(rid, [0.0, 1.0, 0.0])
        missing = await store.attach_embedding(rid + 50, first)
        return pending_before, ok, again, missing, await store.get(rid), await store.pending_embeddings(10)

    pending_before, ok, again, missing, rec, pending_after = asyncio.run(scenario())
    store.close()

    assert [r.content for r in pending_before] == ["hello"]
    assert ok is True
    assert again is False
    assert missing is False
    assert np.array_equal(rec.embedding, first)
    assert pending_after == []


def test_corrupt_embedding_is_skipped(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        rid = await store.insert(_msg("broken"))
        store.conn.execute("UPDATE records SET embedding = ? WHERE id = ?", (b"\x00" * 5, rid))
        return await store.scan_by_scope(ScopeFilter(channel_id="c1"))

    rows = asyncio.run(scenario())
    store.close()
    assert len(rows) == 1
    assert rows[0].embedding is None


def test_memory_scope_with_globals(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        await store.insert(MemoryRecord(content="guild one", scope=Scope(guild_id="g1", user_id="u1")))
        await store.insert(MemoryRecord(content="guild two", scope=Scope(guild_id="g2", user_id="u1")))
        await store.insert(MemoryRecord(content="dm", scope=Scope(user_id="u1")))
        await store.insert(MemoryRecord(content="global", scope=Scope(user_id="u1"), is_global=True))
        await store.insert(MemoryRecord(content="someone else", scope=Scope(guild_id="g1", user_id="u2")))
        in_guild = await store.scan_by_scope(
            ScopeFilter(kind=RecordKind.MEMORY, user_id="u1", guild_id="g1", include_global=True)
        )
        in_dm = await store.scan_by_scope(
            ScopeFilter(kind=RecordKind.MEMORY, user_id="u1", direct_only=True, include_global=True)
        )
        return in_guild, in_dm

    in_guild, in_dm = asyncio.run(scenario())
    store.close()

    assert {r.content for r in in_guild} == {"guild one", "global"}
    assert {r.content for r in in_dm} == {"dm", "global"}


def test_in_memory_database(tmp_path):
    store = RecordStore(":memory:")

    async def scenario():
        rid = await store.insert(_msg("hello"))
        return await store.get(rid)

    rec = asyncio.run(scenario())
    store.close()
    assert rec.content == "hello"


def test_pending_skips_blank_content_and_pages_by_id(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))

    async def scenario():
        await store.insert(_msg(""))
        await store.insert(_msg(" \n\t "))
        a = await store.insert(_msg("first"))
        b = await store.insert(_msg("second", created_at=NOW - 5000))
        c = await store.insert(_msg("third"))
        first_page = await store.pending_embeddings(2)
        next_page = await store.pending_embeddings(2, after_id=first_page[-1].id)
        return (a, b, c), first_page, next_page

    (a, b, c), first_page, next_page = asyncio.run(scenario())
    store.close()

    assert [r.id for r in first_page] == [a, b]
    assert [r.id for r in next_page] == [c]


def test_corrupt_embedding_is_repaired(tmp_path):
    store = RecordStore(str(tmp_path / "r.db"))
    fresh = np.array([0.0, 1.0, 0.0], dtype=np.float32)

    async def scenario():
        rid = await store.insert(_msg("broken"))
        store.conn.execute("UPDATE records SET embedding = ? WHERE id = ?", (b"\x00" * 5, rid))
        pending = await store.pending_embeddings(10)
        repaired = await store.attach_embedding(rid, fresh)
        return rid, pending, repaired, await store.get(rid), await store.pending_embeddings(10)

    rid, pending, repaired, rec, after = asyncio.run(scenario())
    store.close()

    assert [r.id for r in pending] == [rid]
    assert repaired is True
    assert np.array_equal(rec.embedding, fresh)
    assert after == []


def test_checkpoint_runs_on_file_and_memory_stores(tmp_path):
    file_store = RecordStore(str(tmp_path / "r.db"))
    mem_store = RecordStore(":memory:")

    async def scenario():
        await file_store.insert(_msg("hello"))
        await file_store.checkpoint()
        await mem_store.checkpoint()
        return await file_store.count(ScopeFilter())

    assert asyncio.run(scenario()) == 1
    file_store.close()
    mem_store.close()
