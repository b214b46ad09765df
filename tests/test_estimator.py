"""
Tests for the HyperLogLog estimator and visitor fingerprints.
"""

import pytest

from visit_analytics.core.exceptions import CorruptEstimatorError
from visit_analytics.services.estimator import Estimator
from visit_analytics.services.fingerprint import visitor_fingerprint, visitor_identifier


def fingerprints(start: int, stop: int) -> list[int]:
    return [visitor_fingerprint(f"10.{i // 65536}.{(i // 256) % 256}.{i % 256}", "agent") for i in range(start, stop)]


def filled(start: int, stop: int, precision: int = 14) -> Estimator:
    estimator = Estimator(precision)
    for value in fingerprints(start, stop):
        estimator.add(value)
    return estimator


class TestFingerprint:
    """Test visitor fingerprint hashing."""

    def test_identifier_joins_with_pipe(self):
        assert visitor_identifier("1.2.3.4", "Mozilla") == "1.2.3.4|Mozilla"
        assert visitor_identifier("1.2.3.4", None) == "1.2.3.4|"

    def test_fingerprint_is_deterministic_unsigned_64_bit(self):
        first = visitor_fingerprint("203.0.113.7", "Mozilla/5.0")
        assert first == visitor_fingerprint("203.0.113.7", "Mozilla/5.0")
        assert 0 <= first < 2 ** 64

    def test_missing_user_agent_matches_empty(self):
        assert visitor_fingerprint("203.0.113.7", None) == visitor_fingerprint("203.0.113.7", "")

    def test_user_agent_changes_fingerprint(self):
        assert visitor_fingerprint("203.0.113.7", "A") != visitor_fingerprint("203.0.113.7", "B")


class TestEstimator:
    """Test cardinality estimation."""

    def test_new_estimator_is_empty(self):
        estimator = Estimator(14)
        assert estimator.is_empty()
        assert estimator.cardinality() == 0
        assert estimator.num_registers == 16384

    @pytest.mark.parametrize("precision", [3, 17])
    def test_precision_bounds(self, precision):
        with pytest.raises(ValueError):
            Estimator(precision)

    def test_add_rejects_values_outside_uint64(self):
        estimator = Estimator(14)
        with pytest.raises(ValueError):
            estimator.add(-1)
        with pytest.raises(ValueError):
            estimator.add(2 ** 64)

    def test_duplicates_never_increase_estimate(self):
        estimator = filled(0, 500)
        before = estimator.cardinality()
        for value in fingerprints(0, 500):
            estimator.add(value)
        assert estimator.cardinality() == before

    def test_two_visitors_repeated(self):
        """3 views from visitor A and 2 from visitor B estimate 2."""
        visitor_a = visitor_fingerprint("198.51.100.1", "Firefox")
        visitor_b = visitor_fingerprint("198.51.100.2", "Chrome")
        estimator = Estimator(14)
        for value in [visitor_a, visitor_a, visitor_a, visitor_b, visitor_b]:
            estimator.add(value)
        assert estimator.cardinality() == 2

    @pytest.mark.parametrize("count", [1000, 20000])
    def test_estimate_within_error_bound(self, count):
        estimator = filled(0, count)
        relative_error = abs(estimator.cardinality() - count) / count
        assert relative_error <= 0.03, f"{estimator.cardinality()} vs {count}"

    def test_standard_error(self):
        assert Estimator(14).standard_error == pytest.approx(1.04 / 128)


class TestMerge:
    """Test union semantics."""

    def test_merge_is_commutative(self):
        a, b = filled(0, 3000), filled(2000, 6000)
        assert a.merge(b) == b.merge(a)
        assert a.merge(b).cardinality() == b.merge(a).cardinality()

    def test_merge_is_associative(self):
        a, b, c = filled(0, 3000), filled(2000, 5000), filled(4500, 9000)
        left = a.merge(b).merge(c)
        right = a.merge(b.merge(c))
        assert left == right
        assert left.cardinality() == right.cardinality()

    def test_merge_estimates_union(self):
        merged = filled(0, 3000).merge(filled(2000, 6000))
        assert abs(merged.cardinality() - 6000) / 6000 <= 0.03

    def test_merge_with_self_is_idempotent(self):
        a = filled(0, 1000)
        assert a.merge(a) == a

    def test_merge_leaves_inputs_untouched(self):
        a, b = filled(0, 100), filled(100, 200)
        a_before, b_before = a.copy(), b.copy()
        a.merge(b)
        assert a == a_before
        assert b == b_before

    def test_merge_rejects_different_precision(self):
        with pytest.raises(ValueError):
            Estimator(12).merge(Estimator(14))


class TestSerialization:
    """Test the byte encoding."""

    def test_round_trip_preserves_cardinality(self):
        original = filled(0, 2500)
        restored = Estimator.deserialize(original.serialize())
        assert restored == original
        assert restored.cardinality() == original.cardinality()

    def test_round_trip_of_empty_estimator(self):
        restored = Estimator.deserialize(Estimator(10).serialize())
        assert restored.precision == 10
        assert restored.is_empty()

    def test_layout(self):
        data = Estimator(10).serialize()
        assert data[0] == 1
        assert data[1] == 10
        assert len(data) == 2 + 1024

    def test_restored_estimator_keeps_counting(self):
        restored = Estimator.deserialize(filled(0, 100).serialize())
        restored.add(visitor_fingerprint("192.0.2.200", "new"))
        assert restored.cardinality() >= 100

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"\x01",
            b"\x02\x0e" + bytes(16384),  # unknown version
            b"\x01\x02" + bytes(4),  # precision too small
            b"\x01\x0e" + bytes(100),  # wrong length
            b"\x01\x0a" + bytes([60]) * 1024,  # register above 65 - p
        ],
    )
    def test_malformed_bytes_raise(self, data):
        with pytest.raises(CorruptEstimatorError):
            Estimator.deserialize(data)

    def test_non_bytes_raise(self):
        with pytest.raises(CorruptEstimatorError):
            Estimator.deserialize("not bytes")

    def test_precision_mismatch_is_corrupt(self):
        with pytest.raises(CorruptEstimatorError):
            Estimator.deserialize(Estimator(12).serialize(), precision=14)
