"""
triviabox.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn triviabox.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from triviabox import __version__  # noqa: E402
from triviabox.api.deps import build_services  # noqa: E402
from triviabox.api.routes.achievements import router as achievements_router  # noqa: E402
from triviabox.api.routes.game import router as game_router  # noqa: E402
from triviabox.api.routes.scores import router as scores_router  # noqa: E402
from triviabox.config import TriviaConfig, load_config  # noqa: E402
from triviabox.database.engine import create_db_engine  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


def _load_app_config() -> TriviaConfig:
    path = Path(os.getenv("TRIVIABOX_CONFIG", "config.yaml"))
    if path.exists():
        return load_config(path)
    logger.warning("No config file at %s; using built-in defaults", path)
    return TriviaConfig()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — build the engine and service container."""
    engine = create_db_engine()
    config = _load_app_config()
    app.state.services = build_services(engine, config)
    logger.info("Trivia API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Trivia API shutting down")
    engine.dispose()


app = FastAPI(
    title="Trivia Scoring API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(game_router, prefix="/api")
app.include_router(scores_router, prefix="/api")
app.include_router(achievements_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
