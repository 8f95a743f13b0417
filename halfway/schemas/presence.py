from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from halfway.schemas.base import BaseSchema, CoordinateOut


class PresenceHeartbeatRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    display_name: Optional[str] = None
    avatar_ref: Optional[str] = None


class PresenceOut(BaseSchema):
    user_id: str
    location: CoordinateOut
    is_online: bool
    last_seen: datetime
    display_name: str
    avatar_ref: str


class PresenceSnapshotResponse(BaseModel):
    users: List[PresenceOut]


class ProximityPairOut(BaseSchema):
    user_a: str
    user_b: str
    distance_meters: float


class ProximityPairsResponse(BaseModel):
    pairs: List[ProximityPairOut]
    alternation_seconds: int


class PresenceEventCoordinate(BaseModel):
    latitude: float
    longitude: float


class PresenceEventIn(BaseModel):
    """Presence event as delivered by the real-time transport."""

    userId: str
    coordinate: Optional[PresenceEventCoordinate] = None
    isOnline: bool = True
    timestamp: Optional[datetime] = None
    displayName: Optional[str] = None
    avatarRef: Optional[str] = None
