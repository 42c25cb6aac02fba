
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.logger import get_logger
from core.mindmap_service import MindMapService
from web.backend.routers import goals, interaction

logger = get_logger("api")


def create_app(service: Optional[MindMapService] = None) -> FastAPI:
    app = FastAPI(title="Habit Mindmap API", version="1.0")

    raw_origins = os.getenv("HABIT_MINDMAP_ALLOWED_ORIGINS", "*")
    allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    allow_credentials = "*" not in allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = service or MindMapService()
    logger.info("State file: %s", app.state.service.repository.path)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "Habit Mindmap"}

    app.include_router(goals.router, prefix="/api/v1/goals", tags=["goals"])
    app.include_router(interaction.router, prefix="/api/v1/interaction", tags=["interaction"])

    return app
