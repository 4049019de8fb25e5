"""Test Suite - Change-based publishing."""

import asyncio

import pytest

from vplant.publisher import ChangePublisher, has_changed, normalize
from vplant.store import MemoryStateStore


@pytest.mark.parametrize("prev, value, changed", [
    (1.0, 1.0 + 5e-7, False),
    (1.0, 1.0 + 2e-6, True),
    (1, 1.0, False),
    (True, 1, True),
    (False, False, False),
    ("Charging", "Charging", False),
    ("Charging", "Finished", True),
    (None, None, False),
    (None, 0.0, True),
])
@pytest.mark.case("VP-PUB-001")
def test_has_changed(prev, value, changed):
    assert has_changed(prev, value) is changed


@pytest.mark.case("VP-PUB-002")
def test_nan_normalized_to_none():
    assert normalize(float("nan")) is None
    assert normalize(3.5) == 3.5


@pytest.mark.case("VP-PUB-003")
def test_only_changes_are_written():
    store = MemoryStateStore()
    pub = ChangePublisher(store)

    async def scenario():
        return [
            await pub.publish("grid.power_kw", 12.0),
            await pub.publish("grid.power_kw", 12.0000001),
            await pub.publish("grid.power_kw", 12.5),
            await pub.publish("grid.over_limit", False),
            await pub.publish("grid.over_limit", False),
        ]

    assert asyncio.run(scenario()) == [True, False, True, True, False]
    assert store.written("grid.power_kw") == [12.0, 12.5]
    assert all(ack for _, _, ack in store.writes)


@pytest.mark.case("VP-PUB-004")
def test_failed_write_is_retried():
    """Test Case - Store failure and recovery.

    Description:
    -----------------
    A failed write leaves the cache untouched, so the same value is written
    on the next pass once the store recovers.

    Steps:
    ----------
    1. Make the store reject writes, publish a value
    2. Let the store recover, publish the same value again

    Expected Results:
    ---------------------------
    1. publish returns False, failed_writes 1, nothing stored
    2. publish returns True, value stored
    """
    store = MemoryStateStore()
    pub = ChangePublisher(store)

    async def scenario():
        store.fail_writes = True
        first = await pub.publish("storage.soc_pct", 55.0)
        store.fail_writes = False
        second = await pub.publish("storage.soc_pct", 55.0)
        return first, second

    assert asyncio.run(scenario()) == (False, True)
    assert pub.failed_writes == 1
    assert store.written("storage.soc_pct") == [55.0]


@pytest.mark.case("VP-PUB-005")
def test_publish_many_and_reset():
    store = MemoryStateStore()
    pub = ChangePublisher(store)
    items = [("a", 1), ("b", "x"), ("c", None)]

    async def scenario():
        first = await pub.publish_many(items)
        second = await pub.publish_many(items)
        pub.reset()
        third = await pub.publish_many(items)
        return first, second, third

    assert asyncio.run(scenario()) == (3, 0, 3)
