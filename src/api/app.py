"""Application factory: wires configuration, logging, the change feed and the error mapping around the routes."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.routes import router
from src.core.config import Settings, get_settings
from src.core.exceptions import (
    GameStateError,
    InvalidRequestError,
    NotFoundError,
    StoreUnavailableError,
)
from src.core.log_config import configure_logging
from src.db.database import init_db
from src.games.rules import build_rules
from src.services.leaderboard_service import LeaderboardCache
from src.sync.feed import ChangeFeed

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, init_database: bool = True) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if init_database:
            init_db()
        logger.info("CSGames backend started")
        yield

    app = FastAPI(title="CSGames.dev", lifespan=lifespan)
    app.state.settings = settings
    app.state.feed = ChangeFeed()
    app.state.rules = build_rules(settings)
    app.state.leaderboard_cache = LeaderboardCache(
        settings.leaderboard_cache_ttl_seconds, settings.leaderboard_refresh_threshold
    )
    app.include_router(router)
    _add_error_handlers(app)
    return app


def _add_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503, content={"detail": "The service is unavailable, try again."}
        )

    @app.exception_handler(GameStateError)
    async def inconsistent_state(request: Request, exc: GameStateError) -> JSONResponse:
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Something went wrong."})
