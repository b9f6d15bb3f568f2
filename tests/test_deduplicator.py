"""Tests for Deduplicator."""

import pytest

from escalator.processing.deduplicator import Deduplicator


class TestDeduplicator:
    """Test cases for Deduplicator."""

    @pytest.fixture
    def deduplicator(self):
        return Deduplicator(capacity=5, eviction_batch_size=2)

    def test_first_id_is_new(self, deduplicator):
        """An unseen ID should be new."""
        assert deduplicator.is_new("log-1")

    def test_is_new_has_no_side_effect(self, deduplicator):
        """Checking an ID must not record it."""
        deduplicator.is_new("log-1")
        assert deduplicator.is_new("log-1")
        assert len(deduplicator) == 0

    def test_marked_id_is_not_new(self, deduplicator):
        """An ID marked seen should no longer be new."""
        deduplicator.mark_seen("log-1")
        assert not deduplicator.is_new("log-1")
        assert "log-1" in deduplicator

    def test_different_id_is_new(self, deduplicator):
        """Marking one ID does not affect another."""
        deduplicator.mark_seen("log-1")
        assert deduplicator.is_new("log-2")

    def test_empty_string_is_valid_id(self, deduplicator):
        """The empty string is an ordinary identity."""
        assert deduplicator.is_new("")
        deduplicator.mark_seen("")
        assert not deduplicator.is_new("")

    def test_mark_twice_is_noop(self, deduplicator):
        """Marking an existing ID does not grow the cache."""
        deduplicator.mark_seen("log-1")
        deduplicator.mark_seen("log-1")
        assert len(deduplicator) == 1

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity_rejected(self, capacity):
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            Deduplicator(capacity=capacity)

    def test_invalid_eviction_batch_rejected(self):
        with pytest.raises(ValueError):
            Deduplicator(capacity=10, eviction_batch_size=0)

    def test_evicts_oldest_batch(self, deduplicator):
        """Overflow evicts the oldest IDs in one batch."""
        for i in range(5):
            deduplicator.mark_seen(f"log-{i}")
        assert len(deduplicator) == 5

        deduplicator.mark_seen("log-5")

        # Two oldest evicted together
        assert len(deduplicator) == 4
        assert deduplicator.is_new("log-0")
        assert deduplicator.is_new("log-1")
        for i in range(2, 6):
            assert not deduplicator.is_new(f"log-{i}")

    @pytest.mark.parametrize("capacity", [1, 2, 3, 7, 50])
    def test_size_never_exceeds_capacity(self, capacity):
        """The cache stays within capacity after every insert."""
        dedup = Deduplicator(capacity=capacity, eviction_batch_size=3)
        for i in range(capacity * 4 + 1):
            dedup.mark_seen(f"id-{i}")
            assert len(dedup) <= capacity
            # The ID just inserted is always retained
            assert not dedup.is_new(f"id-{i}")

    def test_capacity_one_keeps_latest(self):
        """With capacity 1 only the most recent ID is remembered."""
        dedup = Deduplicator(capacity=1, eviction_batch_size=1000)
        dedup.mark_seen("a")
        dedup.mark_seen("b")
        assert len(dedup) == 1
        assert dedup.is_new("a")
        assert not dedup.is_new("b")

    def test_earliest_evicted_first(self):
        """Eviction follows insertion order."""
        dedup = Deduplicator(capacity=3, eviction_batch_size=1)
        for event_id in ["a", "b", "c", "d", "e"]:
            dedup.mark_seen(event_id)

        assert dedup.is_new("a")
        assert dedup.is_new("b")
        assert not dedup.is_new("c")
        assert not dedup.is_new("d")
        assert not dedup.is_new("e")

    def test_check_and_mark(self, deduplicator):
        """The atomic variant reports new IDs once."""
        assert deduplicator.check_and_mark("log-1")
        assert not deduplicator.check_and_mark("log-1")

    def test_clear(self, deduplicator):
        deduplicator.mark_seen("log-1")
        deduplicator.clear()
        assert deduplicator.is_new("log-1")
        assert len(deduplicator) == 0
