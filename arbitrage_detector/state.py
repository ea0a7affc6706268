"""
Single-writer, multi-reader slot for immutable snapshots.

Writers install a fully built record; the lock is held only for the reference
swap so readers never see a partial record and never wait on I/O.
"""

import asyncio
import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class SnapshotSlot(Generic[T]):
    """Holds the latest snapshot of one feed (pool state, gas price)."""

    def __init__(self, name: str, initial: Optional[T] = None):
        self.name = name
        self._lock = threading.Lock()
        self._value: Optional[T] = initial
        self._version = 0 if initial is None else 1
        self._changed = asyncio.Event()

    def install(self, value: T) -> None:
        with self._lock:
            self._value = value
            self._version += 1
        self._changed.set()

    def snapshot(self) -> Optional[T]:
        with self._lock:
            return self._value

    @property
    def version(self) -> int:
        """Number of values installed so far."""
        with self._lock:
            return self._version

    @property
    def is_ready(self) -> bool:
        return self.snapshot() is not None

    async def wait_for_update(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._changed.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        self._changed.clear()
        return True
