from fastapi import APIRouter

from halfway.api.routes import events
from halfway.api.routes import matching
from halfway.api.routes import presence

api_router = APIRouter(prefix="/v1")

api_router.include_router(presence.router, prefix="/presence", tags=["presence"])
api_router.include_router(matching.router, tags=["matching"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
