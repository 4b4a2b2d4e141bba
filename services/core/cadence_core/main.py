"""Cadence Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cadence_core import __version__
from cadence_core.api.routes import auth as auth_routes
from cadence_core.api.routes import persona as persona_routes
from cadence_core.api.routes import suggestions as suggestions_routes
from cadence_core.config import get_settings
from cadence_core.infra.db import dispose_engine
from cadence_core.observability import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="cadence-core",
    )
    if not hasattr(app.state, "settings"):
        app.state.settings = settings
    yield
    dispose_engine()


app = FastAPI(
    title="Cadence Core API",
    description="X account linking, voice persona analysis and reply suggestions",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_routes.router)
app.include_router(persona_routes.router)
app.include_router(suggestions_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "cadence-core"}
