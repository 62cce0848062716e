"""Descriptor matches and the usual distance-based match filter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

DISTANCE_FLOOR = 30.0


@dataclass(frozen=True)
class Match:
    """A match between descriptor ``query_idx`` of one image and ``train_idx`` of another."""

    query_idx: int
    train_idx: int
    distance: float


def filter_matches(matches: Iterable[Match]) -> list[Match]:
    """Keep matches whose distance is at most twice the smallest, floored at 30."""
    matches = list(matches)
    if not matches:
        return []
    min_dist = min(m.distance for m in matches)
    threshold = max(2.0 * min_dist, DISTANCE_FLOOR)
    return [m for m in matches if m.distance <= threshold]