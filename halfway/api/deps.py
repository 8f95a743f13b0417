from fastapi import Header, HTTPException, Request

from halfway.services.engine import MatchEngine


def get_engine(request: Request) -> MatchEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Matching engine not initialized")
    return engine


def get_current_user_id(x_user_id: str = Header(...)) -> str:
    # Identity is asserted by the gateway in front of this service
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id
