from datetime import datetime, timedelta, timezone

import pytest

from halfway.core.errors import (
    CandidateNotFound,
    InvalidMatchRequest,
    TargetUnavailable,
    Unauthorized,
)
from halfway.services.candidates import CandidateGenerator
from halfway.services.engine import MatchEngine, _parse_timestamp, build_engine
from halfway.services.geo import midpoint
from halfway.services.match_lifecycle import MatchState
from halfway.services.notifier import LoggingNotifier

from conftest import SHINJUKU, TOKYO_STATION, StaticPlaceSearch, make_place


def test_tokyo_shinjuku_coffee_end_to_end(engine, notifier, online_pair, now):
    result = engine.create_match_request("A", "B", "coffee", now=now)

    assert result.match.state == MatchState.PENDING
    assert result.candidates.is_degraded
    assert len(result.candidates.candidates) == 5
    assert result.candidates.candidates[0].name == "Central Cafe Spot"

    picked = result.candidates.candidates[1]
    accepted = engine.respond_to_match(
        result.match.match_id, "B", "accept", candidate_id=picked.id, now=now + timedelta(minutes=2)
    )
    assert accepted.selected_candidate == picked

    engine.confirm_arrival(result.match.match_id, "A", now + timedelta(minutes=20))
    done = engine.confirm_arrival(result.match.match_id, "B", now + timedelta(minutes=21))

    assert done.state == MatchState.COMPLETED
    assert notifier.types() == ["matchRequested", "matchAccepted", "bothConfirmed"]


def test_request_needs_online_target(engine, now):
    engine.report_location("A", TOKYO_STATION, now=now)

    with pytest.raises(TargetUnavailable):
        engine.create_match_request("A", "B", "coffee", now=now)

    engine.report_location("B", SHINJUKU, now=now - timedelta(minutes=10))
    with pytest.raises(TargetUnavailable):
        engine.create_match_request("A", "B", "coffee", now=now)


def test_request_needs_known_requester(engine, now):
    engine.report_location("B", SHINJUKU, now=now)
    with pytest.raises(TargetUnavailable):
        engine.create_match_request("A", "B", "coffee", now=now)


def test_request_with_self_is_invalid(engine, online_pair, now):
    with pytest.raises(InvalidMatchRequest):
        engine.create_match_request("A", "A", "coffee", now=now)


def test_respond_with_unoffered_candidate(engine, online_pair, now):
    result = engine.create_match_request("A", "B", "coffee", now=now)

    with pytest.raises(CandidateNotFound):
        engine.respond_to_match(result.match.match_id, "B", "accept", candidate_id="nope", now=now)
    assert engine.get_match(result.match.match_id).state == MatchState.PENDING


def test_get_match_is_party_only(engine, online_pair, now):
    match_id = engine.create_match_request("A", "B", "coffee", now=now).match.match_id

    assert engine.get_match(match_id, "A").match_id == match_id
    with pytest.raises(Unauthorized):
        engine.get_match(match_id, "C")


def test_get_candidates_follows_current_positions(engine, online_pair, now):
    match_id = engine.create_match_request("A", "B", "coffee", now=now).match.match_id
    before = engine.get_candidates(match_id, "B").candidates[0].coordinate

    engine.report_location("B", TOKYO_STATION, now=now + timedelta(seconds=10))
    after = engine.get_candidates(match_id, "B").candidates[0].coordinate

    assert before != after
    assert after == TOKYO_STATION


def test_get_candidates_falls_back_to_last_offer(engine, online_pair, now):
    result = engine.create_match_request("A", "B", "coffee", now=now)
    engine.registry.reset()

    assert engine.get_candidates(result.match.match_id, "A") == result.candidates


def test_suggest_meeting_points_uses_place_search(registry, lifecycle, now):
    search = StaticPlaceSearch({"park": [make_place("gardens", midpoint(TOKYO_STATION, SHINJUKU), rating=4.8)]})
    engine = MatchEngine(registry=registry, lifecycle=lifecycle, generator=CandidateGenerator(search, timeout_s=2))
    try:
        result = engine.suggest_meeting_points(TOKYO_STATION, SHINJUKU, "walk")
    finally:
        engine.dispose()

    assert not result.is_degraded
    assert result.candidates[0].id == "gardens"
    assert len(result.candidates) == 5


def test_presence_event_upserts(engine, now):
    presence = engine.handle_presence_event(
        {
            "userId": "A",
            "coordinate": {"latitude": 35.6812, "longitude": 139.7671},
            "isOnline": True,
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "displayName": "Aiko",
        }
    )

    assert presence.coordinate == TOKYO_STATION
    assert presence.last_seen == now
    assert presence.display_name == "Aiko"


def test_offline_event_without_coordinate_keeps_position(engine, now):
    engine.report_location("A", TOKYO_STATION, now=now)
    presence = engine.handle_presence_event({"userId": "A", "isOnline": False, "timestamp": now + timedelta(seconds=1)})

    assert presence.is_online is False
    assert presence.coordinate == TOKYO_STATION


def test_online_event_without_coordinate_is_invalid(engine):
    with pytest.raises(InvalidMatchRequest):
        engine.handle_presence_event({"userId": "A", "isOnline": True})


def test_match_events_drive_the_lifecycle(engine, online_pair, now):
    match_id = engine.create_match_request("A", "B", "coffee", now=now).match.match_id

    record = engine.handle_match_event({"type": "respond", "matchId": match_id, "payload": {"by": "B", "decision": "accept"}})
    assert record.state == MatchState.ACCEPTED

    engine.handle_match_event({"type": "confirm", "matchId": match_id, "payload": {"by": "A"}})
    record = engine.handle_match_event({"type": "confirm", "matchId": match_id, "payload": {"by": "B"}})
    assert record.state == MatchState.COMPLETED


def test_cancel_and_unknown_match_events(engine, online_pair, now):
    match_id = engine.create_match_request("A", "B", "coffee", now=now).match.match_id

    record = engine.handle_match_event({"type": "cancel", "matchId": match_id, "payload": {"by": "A"}})
    assert record.state == MatchState.CANCELLED

    with pytest.raises(InvalidMatchRequest):
        engine.handle_match_event({"type": "teleport", "matchId": match_id, "payload": {"by": "A"}})
    with pytest.raises(InvalidMatchRequest):
        engine.handle_match_event({"type": "confirm", "matchId": match_id})


def test_sweep_expires_and_forgets(engine, online_pair, now):
    match_id = engine.create_match_request("A", "B", "coffee", now=now).match.match_id

    assert engine.sweep(now + timedelta(hours=25)) == 1
    assert engine.get_match(match_id).state == MatchState.EXPIRED

    engine.sweep(now + timedelta(days=4))
    with pytest.raises(KeyError):
        engine.get_match(match_id)
    assert engine._offered(match_id) is None


def test_parse_timestamp_variants():
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    assert _parse_timestamp("2026-10-19T12:00:00Z") == now
    assert _parse_timestamp("2026-10-19T12:00:00+00:00") == now
    assert _parse_timestamp(now.replace(tzinfo=None)) == now
    assert _parse_timestamp(None).tzinfo is not None


def test_build_engine_defaults_without_config():
    engine = build_engine()
    try:
        assert engine.generator.place_search is None
        assert isinstance(engine.lifecycle.notifier, LoggingNotifier)
        assert engine.lifecycle.archive is None
    finally:
        engine.dispose()
