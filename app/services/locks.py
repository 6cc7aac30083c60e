from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLocks:
    """asyncio.Lock на каждый ключ (id сессии / id истории).

    Локи живут, пока их кто-то держит или ждёт, потом собираются GC.
    Работает в пределах одного процесса; между процессами сессию
    защищает version-колонка.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._lock_for(key)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


session_locks = KeyedLocks()
story_locks = KeyedLocks()
