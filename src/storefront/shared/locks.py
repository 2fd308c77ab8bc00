"""Per-key mutual exclusion for check-and-write sequences on one aggregate."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class _Slot:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


class KeyedLock:
    """Hands out one re-entrant lock per key (order id, coupon code, ...).

    Different keys never contend. The same thread may re-acquire a key it
    already holds, so a service holding an order lock can call into another
    that takes the same lock. A key's lock is dropped once nobody holds or
    waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[str, _Slot] = {}

    def _checkout(self, key: str) -> _Slot:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.holders += 1
            return slot

    def _checkin(self, key: str, slot: _Slot) -> None:
        with self._guard:
            slot.holders -= 1
            if slot.holders == 0:
                del self._slots[key]

    @contextmanager
    def hold(self, key) -> Iterator[None]:
        key = str(key)
        slot = self._checkout(key)
        try:
            with slot.lock:
                yield
        finally:
            self._checkin(key, slot)

    def __contains__(self, key) -> bool:
        with self._guard:
            return str(key) in self._slots
