from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from stocksense.core.exceptions import StockBusy


class ProductLocks:
    """Per-product re-entrant locks.

    Every read-modify-write of ``Product.stock`` runs while holding the lock for
    that product, so two writers on the same product serialize and writers on
    different products never wait on each other. Locks are re-entrant so a
    reconciler can hold the lock while it reads stock and then call the
    movement recorder, which takes the same lock again.
    """

    def __init__(self, *, timeout: float = 10.0):
        self._timeout = float(timeout)
        self._guard = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}

    @property
    def timeout(self) -> float:
        return self._timeout

    def _lock_for(self, product_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_id: int, *, timeout: float | None = None) -> Iterator[None]:
        wait = self._timeout if timeout is None else float(timeout)
        lock = self._lock_for(int(product_id))
        if not lock.acquire(timeout=wait):
            raise StockBusy(product_id, wait)
        try:
            yield
        finally:
            lock.release()


__all__ = ["ProductLocks"]
