"""At-most-one build per image reference per process.

The coordinator is a cache, not a queue: the first request for a key
starts the build and every later request for the same key awaits the
same task, whether it is still running or already finished (including
finished with an error).  Entries never expire within a process.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Iterator
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BuildCoordinator(Generic[T]):
    """Process-scoped registry of in-flight and completed builds.

    Create one instance per process (or per test) and inject it; there
    is no module-level global.  Reserving a key and starting its build
    happen under one lock with no ``await`` in between, so two
    concurrent callers can never both start a build for the same key.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, asyncio.Task[T]] = {}

    @staticmethod
    def key(backend: str, reference: str) -> str:
        """Namespace a reference by backend; local and remote builds never mix."""
        return f"{backend}:{reference}"

    def get_or_create(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
    ) -> Awaitable[T]:
        """Return the pending or completed result for ``key``.

        ``factory`` is invoked only when no entry exists.  The returned
        awaitable is shielded: a caller that stops waiting does not
        cancel the build other callers are sharing.
        """
        with self._lock:
            task = self._jobs.get(key)
            if task is None:
                logger.debug("Starting build for %s", key)
                task = asyncio.ensure_future(factory())
                self._jobs[key] = task
            else:
                logger.info("Joining existing build for %s", key)
        return asyncio.shield(task)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._jobs))

    def clear(self) -> None:
        """Forget all entries.  Running builds are not stopped."""
        with self._lock:
            self._jobs.clear()
