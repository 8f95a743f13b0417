# Inbound real-time transport events. The transport owns the socket; it
# forwards what it receives here and relays our outbound events itself.

from fastapi import APIRouter, Depends

from halfway.api.deps import get_engine
from halfway.api.routes.matching import match_out
from halfway.api.routes.presence import presence_out
from halfway.schemas.matching import MatchEventIn, MatchOut
from halfway.schemas.presence import PresenceEventIn
from halfway.services.engine import MatchEngine

router = APIRouter()


@router.post("/presence")
def presence_event(
    payload: PresenceEventIn,
    engine: MatchEngine = Depends(get_engine),
):
    presence = engine.handle_presence_event(payload.model_dump())
    if presence is None:
        return {"status": "ignored", "presence": None}
    return {"status": "ok", "presence": presence_out(presence)}


@router.post("/match", response_model=MatchOut)
def match_event(
    payload: MatchEventIn,
    engine: MatchEngine = Depends(get_engine),
):
    return match_out(engine.handle_match_event(payload.model_dump()))
