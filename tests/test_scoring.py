import math
import random
import struct

import pytest

from genomicdao.errors import EmptyPayload, InvalidMarkerLength, InvalidMarkerValue
from genomicdao.scoring import (
    THRESHOLDS,
    RiskLevel,
    bucket,
    markers_from_bytes,
    markers_to_bytes,
    score,
    score_payload,
    weighted_sum,
)


def test_forty_zero_markers_is_low():
    assert score_payload(bytes(8 * 40)) == RiskLevel.LOW


@pytest.mark.parametrize("edge, level", [
    (0.25, RiskLevel.MODERATE),
    (0.50, RiskLevel.ELEVATED),
    (0.75, RiskLevel.HIGH),
])
def test_bucket_edges(edge, level):
    assert bucket(edge) == level
    assert bucket(math.nextafter(edge, 0.0)) == RiskLevel(level - 1)
    assert bucket(math.nextafter(edge, 1.0)) == level


def test_bucket_extremes():
    assert bucket(0.0) == RiskLevel.LOW
    assert bucket(-1.0) == RiskLevel.LOW
    assert bucket(1.0) == RiskLevel.HIGH
    assert bucket(2.0) == RiskLevel.HIGH


def test_monotonic_over_sums():
    rng = random.Random(1234)
    values = sorted(rng.uniform(0.0, 2.0) for _ in range(500))
    values += list(THRESHOLDS)
    values.sort()
    levels = [bucket(v) for v in values]
    assert levels == sorted(levels)


def test_marker_normalization():
    assert markers_from_bytes(struct.pack("<Q", 0)) == [0.0]
    assert markers_from_bytes(struct.pack("<Q", 1 << 62)) == [0.5]
    assert markers_from_bytes(struct.pack("<Q", 1 << 63)) == [1.0]


def test_marker_upper_range_exceeds_one():
    (m,) = markers_from_bytes(b"\xff" * 8)
    assert 1.99 < m <= 2.0


def test_markers_are_little_endian():
    assert markers_from_bytes(b"\x00" * 7 + b"\x40") == [0.5]


def test_only_first_four_markers_weighted():
    assert weighted_sum([0.0, 0.0, 0.0, 0.0, 1.0, 1.0]) == 0.0
    assert score([1.0, 1.0, 1.0, 1.0]) == RiskLevel.HIGH
    assert score([0.0, 0.0, 0.0, 1.0, 0.0]) == RiskLevel.MODERATE


def test_fewer_than_four_markers():
    assert score([1.0]) == RiskLevel.LOW
    assert score([1.0, 1.0]) == RiskLevel.MODERATE
    assert score([1.0, 1.0, 1.0]) == RiskLevel.ELEVATED


def test_score_payload_round_trip_through_bytes():
    payload = markers_to_bytes([1.0, 1.0, 1.0, 1.0])
    assert score_payload(payload) == RiskLevel.HIGH


@pytest.mark.parametrize("length", [1, 7, 9, 15, 321])
def test_invalid_marker_length(length):
    with pytest.raises(InvalidMarkerLength):
        markers_from_bytes(bytes(length))


def test_empty_payload():
    assert markers_from_bytes(b"") == []
    with pytest.raises(EmptyPayload):
        score_payload(b"")


@pytest.mark.parametrize("bad", [2.0, 2.5, -0.1, float("nan")])
def test_markers_to_bytes_rejects_out_of_range(bad):
    with pytest.raises(InvalidMarkerValue):
        markers_to_bytes([0.5, bad])


def test_markers_to_bytes_accepts_top_of_range():
    top = math.nextafter(2.0, 0.0)
    assert markers_to_bytes([top]) == struct.pack("<Q", int(top * (1 << 63)))
