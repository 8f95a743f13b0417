"""
Purpose: Meeting point candidates between two users.
What it does:
Builds a deterministic synthetic set around the midpoint of both users and,
when a place search collaborator is available, replaces or pads it with real
places scored for fairness (how equal the two trips are) and quality (rating).
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from halfway.core.errors import DegradedCandidates
from halfway.core.match_config import (
    DEFAULT_RATING,
    FAIRNESS_WEIGHT,
    MAX_CANDIDATES,
    MIN_REAL_CANDIDATES,
    RATING_WEIGHT,
    SEARCH_RADIUS_MAX_METERS,
    SEARCH_RADIUS_MIN_METERS,
    SEARCH_RADIUS_PER_KM,
)
from halfway.services.geo import Coordinate, distance, distance_km, midpoint, walking_minutes
from halfway.services.place_search import Place, PlaceSearch

# --------------------------------------------------
# Activity tables
# --------------------------------------------------

PLACE_CATEGORIES_BY_ACTIVITY: Dict[str, Tuple[str, str, str]] = {
    "coffee": ("cafe", "restaurant", "bakery"),
    "lunch": ("restaurant", "cafe", "meal_takeaway"),
    "walk": ("park", "tourist_attraction", "point_of_interest"),
    "drink": ("bar", "restaurant", "night_club"),
    "workout": ("gym", "park", "spa"),
    "explore": ("tourist_attraction", "museum", "shopping_mall"),
    "study": ("library", "cafe", "university"),
    "networking": ("cafe", "restaurant", "shopping_mall"),
    "hobby": ("park", "shopping_mall", "store"),
    "other": ("restaurant", "cafe", "park"),
}

FALLBACK_LABELS: Dict[str, Tuple[str, ...]] = {
    "coffee": (
        "Central Cafe Spot",
        "Midpoint Coffee Meeting",
        "Convenient Coffee Location",
        "Halfway Coffee Point",
        "Central Meeting Spot",
    ),
    "lunch": (
        "Midpoint Restaurant Area",
        "Central Dining Location",
        "Lunch Meeting Point",
        "Convenient Restaurant Spot",
        "Central Food Court Area",
    ),
    "walk": (
        "Scenic Walking Area",
        "Central Park Space",
        "Walking Path Meetup",
        "Green Space Meeting",
        "Nature Walk Starting Point",
    ),
    "drink": (
        "Central Bar District",
        "Nightlife Meeting Point",
        "Social Hub Location",
        "Entertainment Area",
        "Central Pub Area",
    ),
    "workout": (
        "Fitness Meeting Point",
        "Exercise Area",
        "Active Lifestyle Hub",
        "Workout Zone",
        "Sports Center Area",
    ),
    "explore": (
        "Exploration Starting Point",
        "Discovery Hub",
        "Cultural District",
        "Tourist Area",
        "Adventure Meetup Point",
    ),
    "study": (
        "Study Group Location",
        "Academic Meeting Point",
        "Learning Hub",
        "Quiet Study Area",
        "Educational Center",
    ),
    "networking": (
        "Business District",
        "Professional Hub",
        "Networking Center",
        "Commercial Area",
        "Business Meeting Point",
    ),
    "hobby": (
        "Creative Hub",
        "Activity Center",
        "Community Space",
        "Hobby Meetup Point",
        "Interest Group Location",
    ),
    "other": (
        "Central Meeting Point",
        "Convenient Location",
        "Midway Spot",
        "General Meetup Area",
        "Central Hub",
    ),
}

# (lat offset, lng offset, description), constant on every call
FALLBACK_OFFSETS: Tuple[Tuple[float, float, str], ...] = (
    (0.0, 0.0, "Perfect center point between both locations"),
    (0.003, 0.001, "Slightly northeast of center"),
    (-0.002, 0.003, "Southeast of midpoint"),
    (0.001, -0.003, "West of center point"),
    (-0.001, -0.001, "Southwest of midpoint"),
)

KNOWN_ACTIVITIES = tuple(FALLBACK_LABELS.keys())


@dataclass(frozen=True)
class MeetingCandidate:
    id: str
    name: str
    address: str
    coordinate: Coordinate
    distance_to_a: float  # km
    distance_to_b: float  # km
    walk_time_a: int  # minutes
    walk_time_b: int  # minutes
    fairness_score: float
    is_synthetic: bool
    rating: Optional[float] = None
    is_open_now: Optional[bool] = None


@dataclass(frozen=True)
class CandidateSet:
    """Output of one negotiation round, best candidate first."""

    candidates: List[MeetingCandidate] = field(default_factory=list)
    degraded: Optional[DegradedCandidates] = None

    @property
    def is_degraded(self) -> bool:
        return self.degraded is not None

    def find(self, candidate_id: str) -> Optional[MeetingCandidate]:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None


def normalize_activity(activity: Optional[str]) -> str:
    return (activity or "").strip().lower()


def search_radius_m(inter_user_distance_m: float) -> float:
    radius = inter_user_distance_m / 1000 * SEARCH_RADIUS_PER_KM
    return min(max(radius, SEARCH_RADIUS_MIN_METERS), SEARCH_RADIUS_MAX_METERS)


def fairness_score(distance_to_a_km: float, distance_to_b_km: float, rating: Optional[float]) -> float:
    balance = 1 / (1 + abs(distance_to_a_km - distance_to_b_km))
    quality = (rating if rating is not None else DEFAULT_RATING) / 5
    return FAIRNESS_WEIGHT * balance + RATING_WEIGHT * quality


def fallback_candidates(location_a: Coordinate, location_b: Coordinate, activity: str) -> List[MeetingCandidate]:
    activity = normalize_activity(activity)
    labels = FALLBACK_LABELS.get(activity, FALLBACK_LABELS["other"])
    mid = midpoint(location_a, location_b)

    candidates = []
    for index, (lat_offset, lng_offset, description) in enumerate(FALLBACK_OFFSETS):
        # clamp near the poles and the antimeridian
        point = Coordinate(
            min(max(mid.latitude + lat_offset, -90.0), 90.0),
            min(max(mid.longitude + lng_offset, -180.0), 180.0),
        )
        meters_a = distance(location_a, point)
        meters_b = distance(location_b, point)
        candidates.append(
            MeetingCandidate(
                id=f"fallback-{activity or 'other'}-{index}",
                name=labels[index],
                address=description,
                coordinate=point,
                distance_to_a=meters_a / 1000,
                distance_to_b=meters_b / 1000,
                walk_time_a=walking_minutes(meters_a),
                walk_time_b=walking_minutes(meters_b),
                fairness_score=0.5 - 0.1 * index,
                is_synthetic=True,
            )
        )
    return candidates


def score_place(place: Place, location_a: Coordinate, location_b: Coordinate) -> MeetingCandidate:
    km_a = distance_km(location_a, place.coordinate)
    km_b = distance_km(location_b, place.coordinate)
    return MeetingCandidate(
        id=place.id,
        name=place.name,
        address=place.address,
        coordinate=place.coordinate,
        distance_to_a=km_a,
        distance_to_b=km_b,
        walk_time_a=walking_minutes(km_a * 1000),
        walk_time_b=walking_minutes(km_b * 1000),
        fairness_score=fairness_score(km_a, km_b, place.rating),
        is_synthetic=False,
        rating=place.rating,
        is_open_now=place.is_open_now,
    )


def combine(real: List[MeetingCandidate], fallback: List[MeetingCandidate]) -> List[MeetingCandidate]:
    """
    Real places replace the synthetic set once there are enough of them,
    otherwise they are padded with the leading synthetic candidates.
    """
    real = sorted(real, key=lambda candidate: candidate.fairness_score, reverse=True)[:MAX_CANDIDATES]
    if not real:
        return list(fallback)
    if len(real) >= MIN_REAL_CANDIDATES:
        return real

    combined = real + fallback[: MAX_CANDIDATES - len(real)]
    # stable: synthetic candidates keep their own relative order
    combined.sort(key=lambda candidate: candidate.fairness_score, reverse=True)
    return combined


class CandidateGenerator:
    """
    Produces the ordered meeting point options for a pair of users.

    The place search runs on a small worker pool so the whole lookup (all
    categories) is bounded by `timeout_s`; slow or failing providers degrade
    to the synthetic set instead of holding up match creation.
    """

    def __init__(self, place_search: Optional[PlaceSearch] = None, timeout_s: float = 3.0):
        self.place_search = place_search
        self.timeout_s = timeout_s
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=3, thread_name_prefix="place-search"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def generate(self, location_a: Coordinate, location_b: Coordinate, activity: str) -> CandidateSet:
        activity = normalize_activity(activity)
        inter_user_m = distance(location_a, location_b)
        fallback = fallback_candidates(location_a, location_b, activity)

        logger.debug(
            f"Generating meeting points for {activity or 'other'}: "
            f"users {inter_user_m / 1000:.2f} km apart"
        )

        if self.place_search is None:
            return CandidateSet(fallback, DegradedCandidates("place search unavailable"))

        try:
            places = self._search(midpoint(location_a, location_b), search_radius_m(inter_user_m), activity)
        except DegradedCandidates as degraded:
            logger.warning(f"Meeting points degraded to synthetic set: {degraded}")
            return CandidateSet(fallback, degraded)

        real = [score_place(place, location_a, location_b) for place in places]
        candidates = combine(real, fallback)

        logger.info(
            f"Returning {len(candidates)} meeting points "
            f"({sum(1 for c in candidates if not c.is_synthetic)} real)"
        )
        return CandidateSet(candidates)

    def _search(self, center: Coordinate, radius_m: float, activity: str) -> List[Place]:
        categories = PLACE_CATEGORIES_BY_ACTIVITY.get(activity, PLACE_CATEGORIES_BY_ACTIVITY["coffee"])

        futures = [
            self._executor.submit(self.place_search.search_nearby, center, radius_m, category)
            for category in categories
        ]
        done, pending = concurrent.futures.wait(futures, timeout=self.timeout_s)
        if pending:
            for future in pending:
                future.cancel()
            raise DegradedCandidates(f"place search timed out after {self.timeout_s}s")

        # dedupe by place id, first-seen order, category order
        unique: Dict[str, Place] = {}
        for category, future in zip(categories, futures):
            try:
                places = future.result()
            except Exception as e:
                logger.exception(f"Place search failed for {category}")
                raise DegradedCandidates(f"place search failed: {e}") from e

            logger.debug(f"Found {len(places or [])} places for type: {category}")
            for place in places or []:
                unique[place.id] = place

        return list(unique.values())
