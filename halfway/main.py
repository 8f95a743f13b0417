from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from loguru import logger

from halfway.api.errors import register_error_handlers
from halfway.api.router import api_router
from halfway.core.logging import setup_logging
from halfway.services.engine import MatchEngine, build_engine

load_dotenv()


def create_app(engine: Optional[MatchEngine] = None) -> FastAPI:
    """
    The app owns exactly one engine (app.state.engine). Tests pass their own;
    otherwise one is built from config on startup and disposed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.engine is None
        if owned:
            app.state.engine = build_engine()
        yield
        if owned:
            app.state.engine.dispose()
            app.state.engine = None

    app = FastAPI(
        title="Halfway Matching Engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    register_error_handlers(app)
    # All API routes (presence, matching, transport events)
    app.include_router(api_router)

    @app.get("/health")
    def health():
        logger.debug("Health check hit")
        return {"status": "ok", "engine": app.state.engine is not None}

    return app


setup_logging()
logger.info("Starting Halfway backend")

app = create_app()
