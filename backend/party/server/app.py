from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from party.games.registry import GameRegistry
from party.logs import setup_logging
from party.messaging.router import MessageRouter
from party.server.settings import PartyServerSettings
from party.server.websocket import websocket_endpoint
from party.session.manager import SessionManager

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    return JSONResponse({"status": "ok", "games": len(session_manager.games)})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: PartyServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            **session_manager.status(),
            "max_players": settings.max_players,
        },
    )


async def games(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    return JSONResponse({"games": [entry.model_dump() for entry in session_manager.catalogue()]})


def create_app(
    settings: PartyServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = PartyServerSettings()

    if session_manager is None:
        session_manager = SessionManager.from_settings(
            settings,
            GameRegistry.default(time_scale=settings.game_time_scale),
        )

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/games", games, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        session_manager.start()
        logger.info("party server ready", games=len(session_manager.games))
        try:
            yield
        finally:
            await session_manager.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = PartyServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
