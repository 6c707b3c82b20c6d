"""Path-scoped locks shared by every session.

Per-session single-flight does not stop two sessions from editing the
same file at once. The gateway takes these locks around each
destructive tool call, from the snapshot through the change-log entry.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


class PathLockTable:
    """One ``asyncio.Lock`` per resolved absolute path.

    An entry lives only while someone holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _drop(self, key: str) -> None:
        remaining = self._users.get(key, 0) - 1
        if remaining > 0:
            self._users[key] = remaining
            return
        self._users.pop(key, None)
        self._locks.pop(key, None)

    def is_locked(self, path: str | Path) -> bool:
        lock = self._locks.get(str(path))
        return lock is not None and lock.locked()

    async def acquire(self, paths: Iterable[str | Path]) -> list[str]:
        """Acquire every path in sorted order; returns the keys held."""
        keys = sorted({str(p) for p in paths})
        held: list[str] = []
        try:
            for key in keys:
                lock = self._lock_for(key)
                if lock.locked():
                    logger.debug("Waiting for path lock %s", key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._drop(key)
                    raise
                held.append(key)
        except BaseException:
            self.release(held)
            raise
        return held

    def release(self, keys: Iterable[str]) -> None:
        for key in keys:
            lock = self._locks.get(key)
            if lock is None or not lock.locked():
                continue
            lock.release()
            self._drop(key)

    @contextlib.asynccontextmanager
    async def hold(self, paths: Iterable[str | Path]) -> AsyncIterator[list[str]]:
        keys = await self.acquire(paths)
        try:
            yield keys
        finally:
            self.release(keys)

    def __len__(self) -> int:
        return len(self._locks)
