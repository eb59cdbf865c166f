import asyncio

from bootstrapper.dependency_map import DependencyMap
from bootstrapper.report import DeletionVerifiers, InsertionVerifiers, LookupTables


def test_get_after_set():
    async def scenario():
        dep_map = DependencyMap()
        tables = LookupTables()
        await dep_map.set(tables)
        return await dep_map.get(LookupTables), tables

    value, tables = asyncio.run(scenario())
    assert value is tables


def test_every_waiter_is_woken():
    async def scenario():
        dep_map = DependencyMap()
        waiters = [asyncio.create_task(dep_map.get(LookupTables)) for _ in range(5)]
        await asyncio.sleep(0)
        assert not any(waiter.done() for waiter in waiters)

        tables = LookupTables()
        await dep_map.set(tables)
        results = await asyncio.wait_for(asyncio.gather(*waiters), timeout=1)
        return results, tables

    results, tables = asyncio.run(scenario())
    assert len(results) == 5
    assert all(result is tables for result in results)


def test_waiters_on_other_types_stay_parked():
    async def scenario():
        dep_map = DependencyMap()
        waiter = asyncio.create_task(dep_map.get(DeletionVerifiers))
        await dep_map.set(InsertionVerifiers())
        await asyncio.sleep(0)
        parked = not waiter.done()
        waiter.cancel()
        return parked

    assert asyncio.run(scenario())


def test_set_overwrites():
    async def scenario():
        dep_map = DependencyMap()
        first, second = LookupTables(), LookupTables()
        await dep_map.set(first)
        await dep_map.set(second)
        return await dep_map.get(LookupTables), second

    value, second = asyncio.run(scenario())
    assert value is second
