"""
Risk Scorer

Turns a genomic payload into a coarse risk level. Each 8-byte little-endian
word of the payload is one marker, normalized by 2**63; the first four
markers are combined with fixed weights and bucketed into levels 1-4.
"""

import struct
from enum import IntEnum
from typing import List, Sequence

from .errors import EmptyPayload, InvalidMarkerLength, InvalidMarkerValue

MARKER_SIZE = 8
MARKER_SCALE = float(1 << 63)
MARKER_MAX = 2.0

WEIGHTS = (0.1, 0.2, 0.3, 0.4)
THRESHOLDS = (0.25, 0.50, 0.75)


class RiskLevel(IntEnum):
    LOW = 1
    MODERATE = 2
    ELEVATED = 3
    HIGH = 4


def markers_from_bytes(payload: bytes) -> List[float]:
    """Split a payload into normalized markers."""
    if len(payload) % MARKER_SIZE != 0:
        raise InvalidMarkerLength(len(payload))
    count = len(payload) // MARKER_SIZE
    return [word / MARKER_SCALE for word in struct.unpack(f"<{count}Q", payload)]


def markers_to_bytes(markers: Sequence[float]) -> bytes:
    """
    Inverse of markers_from_bytes, truncating toward zero.

    Each marker must lie in [0, 2), the range a uint64 word can carry.
    """
    for m in markers:
        if not 0.0 <= m < MARKER_MAX:
            raise InvalidMarkerValue(m)
    return struct.pack(f"<{len(markers)}Q", *(int(m * MARKER_SCALE) for m in markers))


def weighted_sum(markers: Sequence[float]) -> float:
    """Markers beyond the fourth are ignored; fewer markers contribute fewer terms."""
    return sum(w * m for w, m in zip(WEIGHTS, markers))


def bucket(value: float) -> RiskLevel:
    """Map a weighted sum onto a level; each threshold belongs to the level above it."""
    if value < THRESHOLDS[0]:
        return RiskLevel.LOW
    if value < THRESHOLDS[1]:
        return RiskLevel.MODERATE
    if value < THRESHOLDS[2]:
        return RiskLevel.ELEVATED
    return RiskLevel.HIGH


def score(markers: Sequence[float]) -> RiskLevel:
    return bucket(weighted_sum(markers))


def score_payload(payload: bytes) -> RiskLevel:
    """Validate and score a raw payload. Empty payloads are rejected."""
    markers = markers_from_bytes(payload)
    if not markers:
        raise EmptyPayload()
    return score(markers)
