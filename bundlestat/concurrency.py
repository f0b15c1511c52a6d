"""Bounded install and build pools shared across a batch of packages."""

from __future__ import annotations

import threading
from collections import deque
from contextlib import contextmanager
from typing import Deque, Iterator, Optional


class FairPool:
    """A counting semaphore that admits waiters strictly in arrival order.

    ``capacity=None`` means unbounded: every acquire succeeds immediately
    but is still counted.
    """

    def __init__(self, name: str, capacity: Optional[int]) -> None:
        if capacity is not None and capacity < 1:
            raise ValueError(f"{name} pool capacity must be at least 1")
        self.name = name
        self.capacity = capacity
        self._lock = threading.Lock()
        self._waiters: Deque[threading.Event] = deque()
        self._in_flight = 0
        self._peak = 0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak

    @property
    def waiting(self) -> int:
        with self._lock:
            return len(self._waiters)

    def acquire(self) -> None:
        with self._lock:
            if not self._waiters and self._has_room():
                self._take()
                return
            ticket = threading.Event()
            self._waiters.append(ticket)
        # Ownership is handed over by release(); the waiter never re-checks capacity.
        ticket.wait()

    def release(self) -> None:
        with self._lock:
            if self._in_flight <= 0:
                raise RuntimeError(f"{self.name} pool released more times than acquired")
            self._in_flight -= 1
            while self._waiters and self._has_room():
                self._take()
                self._waiters.popleft().set()

    @contextmanager
    def permit(self) -> Iterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()

    def _has_room(self) -> bool:
        return self.capacity is None or self._in_flight < self.capacity

    def _take(self) -> None:
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)


class ConcurrencyGovernor:
    """Two independent pools: network/disk-bound installs and CPU-bound builds.

    A pipeline holds an install permit only while installing and a build
    permit only while building, never both at once.
    """

    def __init__(
        self,
        install_limit: Optional[int] = 4,
        build_limit: Optional[int] = 4,
    ) -> None:
        self.install_pool = FairPool("install", install_limit)
        self.build_pool = FairPool("build", build_limit)

    @classmethod
    def from_options(cls, *, limit_concurrency: bool, network_concurrency: Optional[int]) -> "ConcurrencyGovernor":
        if not limit_concurrency:
            return cls(install_limit=None, build_limit=None)
        size = 4 if network_concurrency is None else network_concurrency
        return cls(install_limit=size, build_limit=size)

    def install(self):  # type: ignore[no-untyped-def]
        """Context manager holding an install permit for the duration of the block."""
        return self.install_pool.permit()

    def build(self):  # type: ignore[no-untyped-def]
        """Context manager holding a build permit for the duration of the block."""
        return self.build_pool.permit()


__all__ = ["ConcurrencyGovernor", "FairPool"]
