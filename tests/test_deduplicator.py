import pytest

from deduplicator import Deduplicator


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_mark_seen_is_remembered():
    dedup = Deduplicator()

    assert not dedup.has_seen("A")
    dedup.mark_seen("A")

    assert dedup.has_seen("A")
    assert dedup.has_seen("A")
    assert not dedup.has_seen("B")


def test_try_claim_succeeds_once_per_address():
    dedup = Deduplicator()

    assert dedup.try_claim("A") is True
    assert dedup.try_claim("A") is False
    assert dedup.try_claim("B") is True
    assert dedup.has_seen("A") and dedup.has_seen("B")
    assert dedup.get_stats() == {"claimed": 2, "duplicates": 1, "evicted": 0, "size": 2}


def test_try_claim_after_mark_seen_fails():
    dedup = Deduplicator()
    dedup.mark_seen("A")

    assert dedup.try_claim("A") is False


def test_without_ttl_entries_never_expire():
    clock = Clock()
    dedup = Deduplicator(clock=clock)
    dedup.try_claim("A")

    clock.now += 10 * 365 * 86400

    assert dedup.has_seen("A")
    assert dedup.try_claim("A") is False


def test_ttl_window_expires_entries():
    clock = Clock()
    dedup = Deduplicator(ttl_seconds=60, clock=clock)
    dedup.try_claim("A")

    clock.now += 59
    assert dedup.has_seen("A")

    clock.now += 1
    assert not dedup.has_seen("A")
    assert dedup.try_claim("A") is True


def test_ttl_eviction_drops_old_entries_on_insert():
    clock = Clock()
    dedup = Deduplicator(ttl_seconds=60, clock=clock)
    dedup.try_claim("A")
    dedup.try_claim("B")

    clock.now += 120
    dedup.try_claim("C")

    assert len(dedup) == 1
    assert dedup.get_stats()["evicted"] == 2


def test_capacity_evicts_oldest_claim_first():
    dedup = Deduplicator(max_entries=2)
    dedup.try_claim("A")
    dedup.try_claim("B")
    dedup.try_claim("C")

    assert len(dedup) == 2
    assert not dedup.has_seen("A")
    assert dedup.has_seen("B") and dedup.has_seen("C")


def test_seed_preclaims_addresses():
    clock = Clock()
    dedup = Deduplicator(clock=clock)

    added = dedup.seed(["A", "B"], {"A": 900.0, "B": 950.0})

    assert added == 2
    assert dedup.try_claim("A") is False
    assert dedup.try_claim("C") is True


def test_seed_keeps_recorded_timestamps_with_ttl():
    clock = Clock(now=1000.0)
    dedup = Deduplicator(ttl_seconds=100, clock=clock)
    dedup.seed(["A"], {"A": 950.0})

    clock.now = 1049.0
    assert dedup.has_seen("A")
    clock.now = 1050.0
    assert not dedup.has_seen("A")


def test_invalid_capacity():
    with pytest.raises(ValueError):
        Deduplicator(max_entries=0)
