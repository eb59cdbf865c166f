import asyncio
from typing import Any, Dict, Type, TypeVar

T = TypeVar("T")

_EMPTY = object()


class _Slot:
    """A single-value cell plus a broadcast notification for its waiters."""

    def __init__(self):
        self.value: Any = _EMPTY
        self.ready = asyncio.Event()


class DependencyMap:
    """
    A type-keyed store used to pass the output of one deployment step to another.

    ``get`` parks the calling task until a value of that type has been ``set``;
    any number of tasks may wait on the same type. Use one distinct wrapper type
    per logical dependency.
    """

    def __init__(self):
        self._slots: Dict[type, _Slot] = dict()
        self._lock = asyncio.Lock()

    def _slot(self, key: type) -> _Slot:
        # callers hold self._lock
        slot = self._slots.get(key)
        if slot is None:
            slot = _Slot()
            self._slots[key] = slot
        return slot

    async def set(self, value: Any) -> None:
        async with self._lock:
            slot = self._slot(type(value))
            slot.value = value
            slot.ready.set()

    async def get(self, key: Type[T]) -> T:
        while True:
            async with self._lock:
                slot = self._slot(key)
                if slot.value is not _EMPTY:
                    return slot.value
                ready = slot.ready
            # wait outside the lock so a concurrent set is never blocked
            await ready.wait()
