import json

import pytest

from core.cache import LLMCache
from tests.mocks import FakeClock


@pytest.mark.asyncio
async def test_set_get_and_stats():
    cache = LLMCache()
    await cache.set("k", {"a": 1})
    assert await cache.get("k") == {"a": 1}
    assert await cache.get("missing") is None

    stats = cache.get_stats()
    assert stats["hit_count"] == 1
    assert stats["miss_count"] == 1
    assert stats["entry_count"] == 1
    assert stats["hit_rate"] == 0.5
    assert stats["size_estimate"] == len(json.dumps({"a": 1}, sort_keys=True))


@pytest.mark.asyncio
async def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = LLMCache(clock=clock)
    await cache.set("k", "v", ttl=10)

    clock.advance(9)
    assert await cache.get("k") == "v"
    clock.advance(1)
    assert await cache.get("k") is None
    assert cache.get_stats()["entry_count"] == 0


@pytest.mark.asyncio
async def test_zero_ttl_stores_nothing():
    cache = LLMCache()
    assert await cache.set("k", "v", ttl=0) is False
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_returned_value_is_a_copy():
    cache = LLMCache()
    await cache.set("k", {"items": [1]})
    first = await cache.get("k")
    first["items"].append(2)
    assert await cache.get("k") == {"items": [1]}


@pytest.mark.asyncio
async def test_lru_eviction_respects_recent_hits():
    value = "x" * 400
    # room for two 400-byte entries, not three
    cache = LLMCache(max_size_mb=1000 / (1024 * 1024))
    await cache.set("a", value)
    await cache.set("b", value)
    assert await cache.get("a") == value  # "b" is now least recently used

    await cache.set("c", value)
    assert await cache.get("b") is None
    assert await cache.get("a") == value
    assert await cache.get("c") == value
    assert cache.get_stats()["evictions"] == 1
    assert cache.get_stats()["size_estimate"] <= cache.max_size_bytes


@pytest.mark.asyncio
async def test_oversized_entry_is_rejected():
    cache = LLMCache(max_size_mb=100 / (1024 * 1024))
    assert await cache.set("big", "y" * 500) is False
    assert cache.get_stats()["entry_count"] == 0


@pytest.mark.asyncio
async def test_clear_by_pattern_substring_and_glob():
    cache = LLMCache()
    await cache.set("gemini-structured-resumeParsing:1", 1)
    await cache.set("gemini-structured-resumeParsing:2", 2)
    await cache.set("gemini-text-coverLetterGeneration:3", 3)
    await cache.set("mock-text:4", 4)

    assert await cache.clear_by_pattern("resumeParsing") == 2
    assert await cache.clear_by_pattern("gemini-*") == 1
    assert await cache.get("mock-text:4") == 4


@pytest.mark.asyncio
async def test_clear_removes_everything():
    cache = LLMCache()
    for i in range(3):
        await cache.set(f"k{i}", i)
    assert await cache.clear() == 3
    assert cache.get_stats()["entry_count"] == 0


@pytest.mark.asyncio
async def test_entries_summary_orders_by_hits():
    clock = FakeClock()
    cache = LLMCache(clock=clock)
    await cache.set("cold", 1, ttl=100)
    await cache.set("hot", 2, ttl=100)
    await cache.get("hot")
    await cache.get("hot")
    clock.advance(10)

    summary = cache.get_entries_summary()
    assert [s["key"] for s in summary] == ["hot", "cold"]
    assert summary[0]["hits"] == 2
    assert summary[0]["expires_in"] == pytest.approx(90)
    assert summary[0]["age"] == pytest.approx(10)


@pytest.mark.asyncio
async def test_purge_expired():
    clock = FakeClock()
    cache = LLMCache(clock=clock)
    await cache.set("short", 1, ttl=1)
    await cache.set("long", 2, ttl=100)
    clock.advance(5)
    assert await cache.purge_expired() == 1
    assert [s["key"] for s in cache.get_entries_summary()] == ["long"]


def test_generate_key_is_deterministic():
    a = LLMCache.generate_key("op", "prompt", {"model": "m", "params": {"t": 0.1}})
    b = LLMCache.generate_key("op", "prompt", {"params": {"t": 0.1}, "model": "m"})
    c = LLMCache.generate_key("op", "prompt", {"model": "other", "params": {"t": 0.1}})
    assert a == b
    assert a != c
    assert a.startswith("op:")


@pytest.mark.asyncio
async def test_disk_persistence(tmp_path):
    cache1 = LLMCache(persist_dir=tmp_path / "cache")
    await cache1.set("k", {"v": 1})

    cache2 = LLMCache(persist_dir=tmp_path / "cache")
    assert await cache2.get("k") == {"v": 1}

    cache3 = LLMCache(persist_dir=tmp_path / "cache")
    assert await cache3.load_from_disk() == 1
    assert cache3.get_stats()["entry_count"] == 1


@pytest.mark.asyncio
async def test_disk_entries_removed_on_clear(tmp_path):
    cache = LLMCache(persist_dir=tmp_path)
    await cache.set("k", "v")
    assert list(tmp_path.glob("*.json"))
    await cache.clear()
    assert not list(tmp_path.glob("*.json"))

    fresh = LLMCache(persist_dir=tmp_path)
    assert await fresh.get("k") is None


@pytest.mark.asyncio
async def test_disk_entry_larger_than_memory_limit_is_still_served(tmp_path):
    value = "x" * 200_000
    writer = LLMCache(max_size_mb=1, persist_dir=tmp_path)
    await writer.set("k", value)

    # restarted with a smaller limit than the entry
    reader = LLMCache(max_size_mb=0.1, persist_dir=tmp_path)
    assert await reader.get("k") == value

    stats = reader.get_stats()
    assert stats["hit_count"] == 1
    assert stats["entry_count"] == 0
    assert stats["size_estimate"] == 0


@pytest.mark.asyncio
async def test_clear_by_pattern_after_restart_removes_persisted_entries(tmp_path):
    first = LLMCache(persist_dir=tmp_path)
    await first.set("mock-structured-resumeParsing:1", {"a": 1})
    await first.set("mock-structured-resumeParsing:2", {"a": 2})
    await first.set("mock-text-coverLetterGeneration:3", "letter")

    restarted = LLMCache(persist_dir=tmp_path)
    assert await restarted.clear_by_pattern("resumeParsing") == 2
    assert await restarted.get("mock-structured-resumeParsing:1") is None
    assert await restarted.get("mock-text-coverLetterGeneration:3") == "letter"
    assert len(list(tmp_path.glob("*.json"))) == 1


@pytest.mark.asyncio
async def test_clear_by_pattern_counts_memory_and_disk_copies_once(tmp_path):
    cache = LLMCache(persist_dir=tmp_path)
    await cache.set("gemini-text:1", "a")
    await cache.set("gemini-text:2", "b")

    assert await cache.clear_by_pattern("gemini-*") == 2
    assert not list(tmp_path.glob("*.json"))
