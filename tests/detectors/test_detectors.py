"""
Signal Detector Tests

Window pruning and the three pure detectors.
"""

from lockout.detectors import (
    failed_login_excess,
    is_ip_change,
    is_rapid_activity,
    prune_records,
    prune_timestamps,
)


class TestPruning:
    """Entries at or before now - window are dropped."""

    def test_prune_timestamps(self):
        assert prune_timestamps([10.0, 40.0, 41.0, 100.0], now=100.0, window=60.0) == [41.0, 100.0]

    def test_boundary_is_exclusive(self):
        assert prune_timestamps([40.0], now=100.0, window=60.0) == []

    def test_prune_records(self):
        records = [
            {"timestamp": 0.0, "ip": "a"},
            {"timestamp": 250.0, "ip": "b"},
        ]
        assert prune_records(records, now=300.0, window=300.0) == [records[1]]

    def test_prune_does_not_mutate_input(self):
        timestamps = [1.0, 2.0]
        prune_timestamps(timestamps, now=100.0, window=10.0)
        assert timestamps == [1.0, 2.0]


class TestFailedLoginExcess:

    def test_free_failures(self):
        assert failed_login_excess(0, 3) == 0
        assert failed_login_excess(2, 3) == 0

    def test_excess_grows_linearly(self):
        assert [failed_login_excess(n, 3) for n in (3, 4, 5, 6)] == [1, 2, 3, 4]

    def test_threshold_of_one(self):
        assert failed_login_excess(1, 1) == 1


class TestRapidActivity:

    def test_threshold_inclusive(self):
        assert is_rapid_activity(9, 10) is False
        assert is_rapid_activity(10, 10) is True


class TestIPChange:

    def test_first_sighting(self):
        assert is_ip_change([], "1.1.1.1") is False

    def test_known_ip(self):
        assert is_ip_change([{"ip": "1.1.1.1", "timestamp": 0.0}], "1.1.1.1") is False

    def test_new_ip(self):
        assert is_ip_change([{"ip": "1.1.1.1", "timestamp": 0.0}], "2.2.2.2") is True
