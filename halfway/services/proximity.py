#Purpose: Marker disambiguation support.
#Finds pairs of active users standing close enough that their map markers
#overlap. Callers own the alternation timer (which marker renders on top each
#second); this module only answers "which pairs, right now".
#O(n^2) over the active set; fine for tens of concurrent users.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from halfway.core.match_config import PROXIMITY_THRESHOLD_METERS
from halfway.services.geo import distance
from halfway.services.presence_registry import UserPresence


@dataclass(frozen=True)
class ProximityPair:
    user_a: str
    user_b: str
    distance_meters: float


def _pair_low_high(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a < b else (b, a)


def detect_pairs(
    presences: Iterable[UserPresence],
    threshold_m: float = PROXIMITY_THRESHOLD_METERS,
) -> List[ProximityPair]:
    # the caller may hand us a live iterator; freeze it for the double loop
    people = list(presences)
    pairs: List[ProximityPair] = []

    for i in range(len(people)):
        for j in range(i + 1, len(people)):
            first, second = people[i], people[j]
            if first.user_id == second.user_id:
                continue

            meters = distance(first.coordinate, second.coordinate)
            if meters < threshold_m:
                low, high = _pair_low_high(first.user_id, second.user_id)
                pairs.append(ProximityPair(user_a=low, user_b=high, distance_meters=meters))

    pairs.sort(key=lambda pair: (pair.distance_meters, pair.user_a, pair.user_b))
    return pairs


class ProximityPairDetector:
    def __init__(self, threshold_m: float = PROXIMITY_THRESHOLD_METERS):
        if threshold_m <= 0:
            raise ValueError("threshold_m must be > 0")
        self.threshold_m = threshold_m

    def detect(self, presences: Iterable[UserPresence]) -> List[ProximityPair]:
        return detect_pairs(presences, self.threshold_m)
