"""
Entity Locks
============

Per-entity asyncio locks for single-writer read-modify-write sections
(one scoring model, one auditor profile). Writes to different entities
proceed independently.

Version: 0.1.0
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class EntityLocks:
    """Lazily created lock per entity key."""

    def __init__(self) -> None:
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, kind: str, entity_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``kind:entity_id`` for the duration of the block."""
        async with self._locks[f"{kind}:{entity_id}"]:
            yield

    def is_locked(self, kind: str, entity_id: str) -> bool:
        key = f"{kind}:{entity_id}"
        return key in self._locks and self._locks[key].locked()
