from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel

from halfway.schemas.base import BaseSchema, CoordinateIn, CoordinateOut


class MeetingCandidateOut(BaseSchema):
    id: str
    name: str
    address: str
    location: CoordinateOut
    distance_to_a: float
    distance_to_b: float
    walk_time_a: int
    walk_time_b: int
    rating: Optional[float] = None
    is_open_now: Optional[bool] = None
    is_synthetic: bool
    fairness_score: float


class CandidatesResponse(BaseModel):
    candidates: List[MeetingCandidateOut]
    degraded: bool = False
    degraded_reason: Optional[str] = None


class MatchOut(BaseSchema):
    match_id: str
    requester_id: str
    target_id: str
    activity: str
    state: str
    selected_candidate: Optional[MeetingCandidateOut] = None
    created_at: datetime
    responded_at: Optional[datetime] = None
    confirmed_by: List[str]
    expires_at: datetime
    meetup_deadline: Optional[datetime] = None


class MatchRequestIn(BaseModel):
    target_user_id: str
    activity: str = "coffee"


class MatchRequestOut(BaseModel):
    match: MatchOut
    candidates: CandidatesResponse


class MatchRespondIn(BaseModel):
    decision: Literal["accept", "reject"]
    candidate_id: Optional[str] = None


class MeetingPointsIn(BaseModel):
    location_a: CoordinateIn
    location_b: CoordinateIn
    activity: str = "coffee"


class MatchEventIn(BaseModel):
    """Match event as delivered by the real-time transport."""

    type: Literal["respond", "confirm", "cancel", "expire"]
    matchId: str
    payload: Dict[str, Any] = {}
