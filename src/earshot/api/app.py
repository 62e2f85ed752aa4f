"""FastAPI application factory."""

from __future__ import annotations

import os
from typing import Generator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from earshot.db.repo import DbSession
from earshot.db.session import get_session


def get_db_session() -> Generator[DbSession, None, None]:
    """Dependency to get database session.

    Yields:
        Database session that is automatically closed after request.
    """
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def _cors_origins() -> list[str]:
    raw = os.environ.get("EARSHOT_CORS_ORIGINS")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return ["http://localhost:5173", "http://127.0.0.1:5173"]


def create_app() -> FastAPI:
    """Create FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Earshot API",
        description="Blind listening test for audio codecs",
        version="0.1.0",
    )

    # Survey UI runs on a separate dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from earshot.api.routes import answers, rounds, settings, stats

    app.include_router(rounds.router, prefix="/api")
    app.include_router(answers.router, prefix="/api")
    app.include_router(stats.router, prefix="/api")
    app.include_router(settings.router, prefix="/api")

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


# Default app instance
app = create_app()
