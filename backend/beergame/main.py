from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, get_settings
from .core.logging import setup_logging
from .services.decisions import DecisionProvider
from .services.game_service import GameService
from .services.llm_agent import build_provider_router
from .websockets import ConnectionManager
from .websockets.endpoints import router as websocket_router


def create_app(
    settings: Optional[Settings] = None,
    decisions: Optional[DecisionProvider] = None,
) -> FastAPI:
    """Build the API with a fresh in-memory game; nothing survives a restart."""

    settings = settings or get_settings()
    logger = setup_logging(settings)

    manager = ConnectionManager()
    service = GameService(settings, manager, decisions or build_provider_router(settings))
    manager.bind_state(service.state)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Beer Distribution Game Simulator engaged! Listening...")
        yield
        await service.shutdown()

    app = FastAPI(
        title=settings.PROJECT_NAME, version=settings.VERSION, debug=settings.DEBUG, lifespan=lifespan
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.game_service = service
    app.state.connection_manager = manager
    app.include_router(websocket_router)

    @app.get("/health")
    async def health():
        summary = service.summary()
        return {"status": "ok", "game": summary.status, "groups": len(summary.groups)}

    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
