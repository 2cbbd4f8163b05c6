"""Tests for the in-process store."""

import pytest

from hedgefund.database.memory_store import InMemoryStore


@pytest.mark.asyncio
async def test_records_are_copies():
    store = InMemoryStore()
    record = {"order_id": "a", "details": {"x": 1}}
    await store.save_trade(record)
    record["details"]["x"] = 2
    assert store.trades[0]["details"]["x"] == 1


@pytest.mark.asyncio
async def test_max_records_trims_oldest():
    store = InMemoryStore(max_records=2)
    for i in range(3):
        await store.log_activity({"n": i})
    assert [e["n"] for e in store.activity] == [1, 2]


@pytest.mark.asyncio
async def test_performance_upsert_and_load():
    store = InMemoryStore()
    assert await store.load_strategy_performance("momentum") is None
    await store.save_strategy_performance({"strategy_id": "momentum", "total_trades": 1})
    await store.save_strategy_performance({"strategy_id": "momentum", "total_trades": 2})
    assert (await store.load_strategy_performance("momentum"))["total_trades"] == 2


@pytest.mark.asyncio
async def test_recent_trades_newest_first():
    store = InMemoryStore()
    for i in range(5):
        await store.save_trade({"n": i})
    assert [t["n"] for t in await store.get_recent_trades(limit=3)] == [4, 3, 2]
    assert await store.health_check()
