from typing import Optional

from fastapi import APIRouter, Depends

from halfway.api.deps import get_current_user_id, get_engine
from halfway.schemas.base import CoordinateOut
from halfway.schemas.matching import (
    CandidatesResponse,
    MatchOut,
    MatchRequestIn,
    MatchRequestOut,
    MatchRespondIn,
    MeetingCandidateOut,
    MeetingPointsIn,
)
from halfway.services.candidates import CandidateSet, MeetingCandidate
from halfway.services.engine import MatchEngine
from halfway.services.geo import Coordinate
from halfway.services.match_lifecycle import MatchRecord

router = APIRouter()


# ------------------------------------------------------------------
# Utils
# ------------------------------------------------------------------

def candidate_out(candidate: Optional[MeetingCandidate]) -> Optional[MeetingCandidateOut]:
    if candidate is None:
        return None
    return MeetingCandidateOut(
        id=candidate.id,
        name=candidate.name,
        address=candidate.address,
        location=CoordinateOut(lat=candidate.coordinate.latitude, lng=candidate.coordinate.longitude),
        distance_to_a=round(candidate.distance_to_a, 2),
        distance_to_b=round(candidate.distance_to_b, 2),
        walk_time_a=candidate.walk_time_a,
        walk_time_b=candidate.walk_time_b,
        rating=candidate.rating,
        is_open_now=candidate.is_open_now,
        is_synthetic=candidate.is_synthetic,
        fairness_score=candidate.fairness_score,
    )


def candidates_out(candidate_set: CandidateSet) -> CandidatesResponse:
    return CandidatesResponse(
        candidates=[candidate_out(c) for c in candidate_set.candidates],
        degraded=candidate_set.is_degraded,
        degraded_reason=str(candidate_set.degraded) if candidate_set.degraded else None,
    )


def match_out(record: MatchRecord) -> MatchOut:
    return MatchOut(
        match_id=record.match_id,
        requester_id=record.requester_id,
        target_id=record.target_id,
        activity=record.activity,
        state=record.state.value,
        selected_candidate=candidate_out(record.selected_candidate),
        created_at=record.created_at,
        responded_at=record.responded_at,
        confirmed_by=sorted(record.confirmed_by),
        expires_at=record.expires_at,
        meetup_deadline=record.meetup_deadline,
    )


# ------------------------------------------------------------------
# MATCH LIFECYCLE
# ------------------------------------------------------------------

@router.post("/matches", response_model=MatchRequestOut)
def create_match_request(
    payload: MatchRequestIn,
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    result = engine.create_match_request(user_id, payload.target_user_id, payload.activity)
    return MatchRequestOut(match=match_out(result.match), candidates=candidates_out(result.candidates))


@router.get("/matches/{match_id}", response_model=MatchOut)
def get_match(
    match_id: str,
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    return match_out(engine.get_match(match_id, user_id))


@router.post("/matches/{match_id}/respond", response_model=MatchOut)
def respond_to_match(
    match_id: str,
    payload: MatchRespondIn,
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    record = engine.respond_to_match(match_id, user_id, payload.decision, candidate_id=payload.candidate_id)
    return match_out(record)


@router.post("/matches/{match_id}/confirm", response_model=MatchOut)
def confirm_arrival(
    match_id: str,
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    return match_out(engine.confirm_arrival(match_id, user_id))


@router.post("/matches/{match_id}/cancel", response_model=MatchOut)
def cancel_match(
    match_id: str,
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    return match_out(engine.cancel_match(match_id, user_id))


# ------------------------------------------------------------------
# MEETING POINTS
# ------------------------------------------------------------------

@router.get("/matches/{match_id}/candidates", response_model=CandidatesResponse)
def get_match_candidates(
    match_id: str,
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    return candidates_out(engine.get_candidates(match_id, user_id))


@router.post("/meeting-points", response_model=CandidatesResponse)
def suggest_meeting_points(
    payload: MeetingPointsIn,
    engine: MatchEngine = Depends(get_engine),
):
    candidate_set = engine.suggest_meeting_points(
        Coordinate(payload.location_a.lat, payload.location_a.lng),
        Coordinate(payload.location_b.lat, payload.location_b.lng),
        payload.activity,
    )
    return candidates_out(candidate_set)
