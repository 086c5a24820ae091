"""In-process locks keyed by name."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class NamedLocks:
    """Registry of per-name mutexes.

    Entries are reference counted and dropped once no thread holds or waits
    on them, so the registry does not grow with the number of names seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        with self._guard:
            lock, waiters = self._locks.get(name, (threading.Lock(), 0))
            self._locks[name] = (lock, waiters + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock, waiters = self._locks[name]
                if waiters <= 1:
                    del self._locks[name]
                else:
                    self._locks[name] = (lock, waiters - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
