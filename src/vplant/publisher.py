# publisher.py
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, Tuple

from vplant.store import StateStore, StoreError

log = logging.getLogger(__name__)

EPSILON = 1e-6


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def normalize(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def has_changed(prev: Any, value: Any) -> bool:
    if _is_number(prev) and _is_number(value):
        return abs(value - prev) > EPSILON
    if type(prev) is not type(value):
        return True
    return prev != value


class ChangePublisher:
    """
    Writes a point to the store only when it differs from the last value that
    was written successfully. A failed write leaves the cache untouched so the
    next pass tries again.
    """

    _MISSING = object()

    def __init__(self, store: StateStore):
        self.store = store
        self.cache: Dict[str, Any] = {}
        self.failed_writes = 0

    def reset(self) -> None:
        self.cache.clear()

    async def publish(self, key: str, value: Any) -> bool:
        value = normalize(value)
        prev = self.cache.get(key, self._MISSING)
        if prev is not self._MISSING and not has_changed(prev, value):
            return False

        try:
            await self.store.write(key, value, ack=True)
        except StoreError as e:
            self.failed_writes += 1
            log.warning(f"[PUB] write {key} failed: {e!r}")
            return False

        self.cache[key] = value
        return True

    async def publish_many(self, items: Iterable[Tuple[str, Any]]) -> int:
        sent = 0
        for key, value in items:
            if await self.publish(key, value):
                sent += 1
        return sent
