"""Unit tests for RecentIdSet."""

from __future__ import annotations

import pytest

from courier.core.dispatch.dedup import RecentIdSet


@pytest.mark.unit
class TestRecentIdSet:
    def test_first_add_returns_true(self) -> None:
        ids = RecentIdSet(capacity=3)
        assert ids.add('a') is True
        assert 'a' in ids
        assert len(ids) == 1

    def test_duplicate_add_returns_false(self) -> None:
        ids = RecentIdSet(capacity=3)
        ids.add('a')
        assert ids.add('a') is False
        assert len(ids) == 1

    def test_evicts_oldest_when_over_capacity(self) -> None:
        ids = RecentIdSet(capacity=1000)
        for i in range(1001):
            ids.add(f'id-{i}')
        assert len(ids) == 1000
        assert 'id-0' not in ids
        assert 'id-1' in ids
        assert 'id-1000' in ids

    def test_evicted_id_is_accepted_again(self) -> None:
        ids = RecentIdSet(capacity=2)
        ids.add('a')
        ids.add('b')
        ids.add('c')
        assert ids.add('a') is True

    def test_duplicate_does_not_refresh_position(self) -> None:
        ids = RecentIdSet(capacity=2)
        ids.add('a')
        ids.add('b')
        ids.add('a')  # still oldest
        ids.add('c')
        assert 'a' not in ids
        assert 'b' in ids
        assert 'c' in ids

    def test_default_capacity(self) -> None:
        assert RecentIdSet().capacity == 1000

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            RecentIdSet(capacity=0)
