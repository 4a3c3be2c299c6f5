"""Unit tests for consistency-to-revision selection."""

from types import SimpleNamespace

import pytest

from authz.domain.value_objects import Consistency, ConsistencyMode
from authz.ports.exceptions import ConsistencyTimeoutError


class TestSnapshotSelector:
    @pytest.mark.asyncio
    async def test_default_is_head(self, selector, touch):
        revision = await touch("document:readme#viewer@user:alice")

        assert await selector.select(None) == revision

    @pytest.mark.asyncio
    async def test_exact_snapshot_returns_requested_revision(self, selector, touch):
        first = await touch("document:readme#viewer@user:alice")
        await touch("document:readme#viewer@user:bob")

        assert await selector.select(Consistency.at_exact_snapshot(first)) == first

    @pytest.mark.asyncio
    async def test_unreached_revision_times_out(self, selector, touch):
        revision = await touch("document:readme#viewer@user:alice")

        with pytest.raises(ConsistencyTimeoutError):
            await selector.select(Consistency.at_least_as_fresh_as(revision + 5))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mode", [ConsistencyMode.AT_LEAST_AS_FRESH, ConsistencyMode.AT_EXACT_SNAPSHOT]
    )
    async def test_revision_mode_without_revision_raises_value_error(
        self, selector, mode
    ):
        # Consistency rejects this combination, so build a stand-in.
        consistency = SimpleNamespace(mode=mode, revision=None)

        with pytest.raises(ValueError, match="cannot be resolved"):
            await selector.select(consistency)
