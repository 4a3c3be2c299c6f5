"""Unit tests for the revision-scoped check cache."""

from unittest.mock import patch

from authz.application.check_cache import CheckCache
from authz.domain.value_objects import ObjectRef, RelationTuple, SubjectRef

ALICE = SubjectRef.parse("user:alice")
ENG = SubjectRef.parse("group:eng#member")
DOC = ObjectRef.parse("document:1")
OTHER = ObjectRef.parse("document:2")


class TestCheckCache:
    def test_hit_is_scoped_to_revision(self):
        cache = CheckCache()
        cache.put(ALICE, "view", DOC, 3, True)

        assert cache.get(ALICE, "view", DOC, 3) is True
        assert cache.get(ALICE, "view", DOC, 4) is None
        assert (cache.hits, cache.misses) == (1, 1)

    def test_negative_answers_are_cached(self):
        cache = CheckCache()
        cache.put(ALICE, "view", DOC, 3, False)

        assert cache.get(ALICE, "view", DOC, 3) is False

    def test_entries_expire_after_ttl(self):
        cache = CheckCache(ttl_seconds=10)
        with patch("authz.application.check_cache.time.monotonic", return_value=100.0):
            cache.put(ALICE, "view", DOC, 1, True)
        with patch("authz.application.check_cache.time.monotonic", return_value=111.0):
            assert cache.get(ALICE, "view", DOC, 1) is None
        assert len(cache) == 0

    def test_least_recently_used_entry_is_evicted(self):
        cache = CheckCache(max_entries=2)
        cache.put(ALICE, "view", DOC, 1, True)
        cache.put(ALICE, "edit", DOC, 1, True)
        cache.get(ALICE, "view", DOC, 1)

        cache.put(ALICE, "comment", DOC, 1, True)

        assert len(cache) == 2
        assert cache.get(ALICE, "edit", DOC, 1) is None
        assert cache.get(ALICE, "view", DOC, 1) is True

    def test_write_invalidates_entries_on_touched_object(self):
        cache = CheckCache()
        cache.put(ALICE, "view", DOC, 1, True)
        cache.put(ALICE, "view", OTHER, 1, True)

        cache.invalidate(2, [RelationTuple.parse("document:1#viewer@user:bob")])

        assert cache.get(ALICE, "view", DOC, 1) is None
        assert cache.get(ALICE, "view", OTHER, 1) is True

    def test_write_invalidates_entries_on_touched_subject(self):
        cache = CheckCache()
        cache.put(ENG, "view", DOC, 1, True)

        cache.invalidate(2, [RelationTuple.parse("group:eng#member@user:bob")])

        assert len(cache) == 0

    def test_clear(self):
        cache = CheckCache()
        cache.put(ALICE, "view", DOC, 1, True)
        cache.clear()
        assert len(cache) == 0
