from fastapi import APIRouter, Depends

from halfway.api.deps import get_current_user_id, get_engine
from halfway.core.match_config import PROXIMITY_ALTERNATION_SECONDS
from halfway.schemas.base import CoordinateOut
from halfway.schemas.presence import (
    PresenceHeartbeatRequest,
    PresenceOut,
    PresenceSnapshotResponse,
    ProximityPairOut,
    ProximityPairsResponse,
)
from halfway.services.engine import MatchEngine
from halfway.services.geo import Coordinate
from halfway.services.presence_registry import UserPresence

router = APIRouter()


# ------------------------------------------------------------------
# Utils
# ------------------------------------------------------------------

def presence_out(presence: UserPresence) -> PresenceOut:
    return PresenceOut(
        user_id=presence.user_id,
        location=CoordinateOut(lat=presence.coordinate.latitude, lng=presence.coordinate.longitude),
        is_online=presence.is_online,
        last_seen=presence.last_seen,
        display_name=presence.display_name,
        avatar_ref=presence.avatar_ref,
    )


# ------------------------------------------------------------------
# HEARTBEAT
# ------------------------------------------------------------------

@router.post("/heartbeat", response_model=PresenceOut)
def presence_heartbeat(
    payload: PresenceHeartbeatRequest,
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    presence = engine.report_location(
        user_id,
        Coordinate(payload.lat, payload.lng),
        display_name=payload.display_name,
        avatar_ref=payload.avatar_ref,
    )
    return presence_out(presence)


@router.post("/offline")
def presence_offline(
    engine: MatchEngine = Depends(get_engine),
    user_id: str = Depends(get_current_user_id),
):
    presence = engine.go_offline(user_id)
    return {"status": "ok", "known": presence is not None}


# ------------------------------------------------------------------
# SNAPSHOT + PAIRS
# ------------------------------------------------------------------

@router.get("/snapshot", response_model=PresenceSnapshotResponse)
def presence_snapshot(engine: MatchEngine = Depends(get_engine)):
    return {"users": [presence_out(p) for p in engine.get_presence_snapshot()]}


@router.get("/pairs", response_model=ProximityPairsResponse)
def presence_pairs(engine: MatchEngine = Depends(get_engine)):
    pairs = engine.detect_nearby_pairs()
    return {
        "pairs": [
            ProximityPairOut(user_a=p.user_a, user_b=p.user_b, distance_meters=round(p.distance_meters, 1))
            for p in pairs
        ],
        "alternation_seconds": PROXIMITY_ALTERNATION_SECONDS,
    }
