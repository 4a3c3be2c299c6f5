"""Revision-scoped cache of check answers.

Keys include the revision the answer was computed at, so a hit is always
exact for that snapshot. Entries expire after a TTL, are evicted least
recently used first, and are dropped when a committed write touches their
object or subject.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict, defaultdict
from collections.abc import Sequence

from authz.domain.value_objects import ObjectRef, RelationTuple, Revision, SubjectRef

CacheKey = tuple[SubjectRef, str, ObjectRef, Revision]


class CheckCache:
    """Bounded LRU + TTL map from (subject, relation, object, revision) to bool."""

    def __init__(self, max_entries: int = 100_000, ttl_seconds: float = 60.0) -> None:
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, tuple[bool, float]] = OrderedDict()
        self._by_object: dict[ObjectRef, set[CacheKey]] = defaultdict(set)
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(
        self,
        subject: SubjectRef,
        relation: str,
        obj: ObjectRef,
        revision: Revision,
    ) -> bool | None:
        key = (subject, relation, obj, revision)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            allowed, expires_at = entry
            if expires_at <= time.monotonic():
                self._remove(key)
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return allowed

    def put(
        self,
        subject: SubjectRef,
        relation: str,
        obj: ObjectRef,
        revision: Revision,
        allowed: bool,
    ) -> None:
        key = (subject, relation, obj, revision)
        with self._lock:
            self._entries[key] = (allowed, time.monotonic() + self._ttl)
            self._entries.move_to_end(key)
            self._by_object[obj].add(key)
            self._by_object[subject.as_object()].add(key)
            while len(self._entries) > self._max_entries:
                oldest = next(iter(self._entries))
                self._remove(oldest)

    def invalidate(self, revision: Revision, touched: Sequence[RelationTuple]) -> None:
        """Drop entries whose object or subject a committed write touched.

        Matches the store's write-listener signature.
        """
        with self._lock:
            for relation_tuple in touched:
                for ref in (relation_tuple.object, relation_tuple.subject.as_object()):
                    for key in list(self._by_object.get(ref, ())):
                        self._remove(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._by_object.clear()

    def _remove(self, key: CacheKey) -> None:
        self._entries.pop(key, None)
        subject, _, obj, _ = key
        for ref in (obj, subject.as_object()):
            keys = self._by_object.get(ref)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._by_object[ref]
