"""Consistency coordinator: the process-wide revision clock.

Revisions are minted by writers inside their commit critical section and
published once the batch is fully applied. Readers only ever pin to a
published revision, so a pinned read can never observe a partial batch.
"""

from __future__ import annotations

import asyncio
import threading
import time

from authz.domain.value_objects import Revision
from authz.infrastructure.observability import (
    ConsistencyProbe,
    DefaultConsistencyProbe,
)
from authz.ports.exceptions import ConsistencyTimeoutError


class ConsistencyCoordinator:
    """Implementation of IConsistencyCoordinator.

    Waiters are futures parked until the head revision reaches their
    token. ``publish`` resolves them through their own event loop, so it
    may be called from any thread.
    """

    def __init__(self, probe: ConsistencyProbe | None = None) -> None:
        self._lock = threading.Lock()
        self._minted: Revision = 0
        self._head: Revision = 0
        self._waiters: list[tuple[Revision, asyncio.Future[Revision]]] = []
        self._probe = probe or DefaultConsistencyProbe()

    def mint_token(self) -> Revision:
        """Reserve the next revision."""
        with self._lock:
            self._minted += 1
            return self._minted

    def publish(self, revision: Revision) -> None:
        """Make ``revision`` (and everything before it) visible to readers."""
        with self._lock:
            if revision <= self._head:
                return
            self._head = revision
            ready = [(t, f) for t, f in self._waiters if t <= revision]
            self._waiters = [(t, f) for t, f in self._waiters if t > revision]

        for _, future in ready:
            future.get_loop().call_soon_threadsafe(_resolve, future, revision)
        self._probe.revision_published(revision=revision)

    def head(self) -> Revision:
        """Return the latest published revision."""
        return self._head

    async def wait_for(self, token: Revision, timeout: float) -> Revision:
        """Wait until the head revision is at least ``token``.

        Raises:
            ConsistencyTimeoutError: If the head does not reach the token in time
        """
        if self._head >= token:
            return self._head

        future: asyncio.Future[Revision] = asyncio.get_running_loop().create_future()
        with self._lock:
            if self._head >= token:
                return self._head
            self._waiters.append((token, future))

        started = time.monotonic()
        try:
            async with asyncio.timeout(timeout):
                await future
        except TimeoutError:
            self._probe.wait_timed_out(token=token, head=self._head, timeout=timeout)
            raise ConsistencyTimeoutError(
                revision=token,
                head=self._head,
                timeout=timeout,
            ) from None
        finally:
            with self._lock:
                self._waiters = [(t, f) for t, f in self._waiters if f is not future]

        self._probe.wait_completed(
            token=token,
            head=self._head,
            waited_seconds=time.monotonic() - started,
        )
        return self._head


def _resolve(future: asyncio.Future[Revision], revision: Revision) -> None:
    if not future.done():
        future.set_result(revision)
