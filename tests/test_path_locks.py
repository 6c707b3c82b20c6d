from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from webbot.shared.services.path_locks import PathLockTable


@pytest.mark.asyncio
async def test_hold_serializes_same_path() -> None:
    table = PathLockTable()
    order: list[str] = []

    async def writer(name: str) -> None:
        async with table.hold([Path("/site/index.html")]):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(writer("a"), writer("b"))
    assert order == ["a-start", "a-end", "b-start", "b-end"]
    assert not table.is_locked("/site/index.html")


@pytest.mark.asyncio
async def test_distinct_paths_do_not_block() -> None:
    table = PathLockTable()
    keys = await table.acquire(["/site/a.html"])
    other = await asyncio.wait_for(table.acquire(["/site/b.html"]), timeout=1)
    assert table.is_locked("/site/a.html")
    table.release(keys + other)
    assert not table.is_locked("/site/b.html")


@pytest.mark.asyncio
async def test_acquire_dedupes_and_sorts() -> None:
    table = PathLockTable()
    keys = await table.acquire(["/b", "/a", "/b"])
    assert keys == ["/a", "/b"]
    table.release(keys)
    # Releasing twice is harmless.
    table.release(keys)
    assert len(table) == 0


@pytest.mark.asyncio
async def test_entries_are_dropped_once_nobody_holds_or_waits() -> None:
    table = PathLockTable()
    keys = await table.acquire(["/site/a.html"])
    waiter = asyncio.create_task(table.acquire(["/site/a.html"]))
    await asyncio.sleep(0)
    table.release(keys)
    # The waiter still needs the entry.
    assert len(table) == 1
    second = await asyncio.wait_for(waiter, timeout=1)
    assert table.is_locked("/site/a.html")
    table.release(second)
    assert len(table) == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_no_entry_behind() -> None:
    table = PathLockTable()
    keys = await table.acquire(["/site/a.html"])
    waiter = asyncio.create_task(table.acquire(["/site/a.html"]))
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    table.release(keys)
    assert len(table) == 0

