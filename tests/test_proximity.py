from datetime import timedelta

import pytest

from halfway.services.geo import Coordinate
from halfway.services.presence_registry import UserPresence
from halfway.services.proximity import ProximityPairDetector, detect_pairs

from conftest import TOKYO_STATION, north_of


def presence(user_id, coordinate, now):
    return UserPresence(user_id=user_id, coordinate=coordinate, is_online=True, last_seen=now)


def test_pair_just_inside_threshold(now):
    people = [presence("A", TOKYO_STATION, now), presence("B", north_of(TOKYO_STATION, 999), now)]

    pairs = detect_pairs(people)
    assert len(pairs) == 1
    assert (pairs[0].user_a, pairs[0].user_b) == ("A", "B")
    assert pairs[0].distance_meters == pytest.approx(999, abs=0.01)


def test_pair_just_outside_threshold(now):
    people = [presence("A", TOKYO_STATION, now), presence("B", north_of(TOKYO_STATION, 1001), now)]
    assert detect_pairs(people) == []


def test_pairs_are_unordered_and_unique(now):
    people = [presence("Z", TOKYO_STATION, now), presence("M", north_of(TOKYO_STATION, 10), now)]

    forward = detect_pairs(people)
    backward = detect_pairs(list(reversed(people)))
    assert forward == backward
    assert (forward[0].user_a, forward[0].user_b) == ("M", "Z")


def test_pairs_sorted_by_distance(now):
    people = [
        presence("A", TOKYO_STATION, now),
        presence("B", north_of(TOKYO_STATION, 500), now),
        presence("C", north_of(TOKYO_STATION, 520), now),
        presence("far", Coordinate(0, 0), now),
    ]

    pairs = detect_pairs(people)
    assert [(p.user_a, p.user_b) for p in pairs] == [("B", "C"), ("A", "B"), ("A", "C")]


def test_detector_rejects_non_positive_threshold():
    with pytest.raises(ValueError):
        ProximityPairDetector(threshold_m=0)


def test_custom_threshold(now):
    people = [presence("A", TOKYO_STATION, now), presence("B", north_of(TOKYO_STATION, 150), now)]
    assert ProximityPairDetector(threshold_m=100).detect(people) == []
    assert len(ProximityPairDetector(threshold_m=200).detect(people)) == 1


def test_engine_skips_stale_and_offline_users(engine, now):
    engine.report_location("A", TOKYO_STATION, now=now)
    engine.report_location("B", north_of(TOKYO_STATION, 100), now=now)
    engine.report_location("old", north_of(TOKYO_STATION, 50), now=now - timedelta(minutes=5))
    engine.report_location("C", north_of(TOKYO_STATION, 200), now=now)
    engine.go_offline("C", now=now)

    pairs = engine.detect_nearby_pairs(now)
    assert [(p.user_a, p.user_b) for p in pairs] == [("A", "B")]
