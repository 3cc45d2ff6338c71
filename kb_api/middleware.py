"""
Middleware configuration for the FastAPI app.
"""

from __future__ import annotations

from fastapi.middleware.cors import CORSMiddleware

import kb.config as config


def _allowed_origins() -> list[str]:
    return [origin.strip() for origin in config.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()] or ["*"]


def configure_middleware(app) -> None:
    """Configure CORS for the FastAPI app."""
    allow_origins = _allowed_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        # Browsers reject credentialed requests against a wildcard origin.
        allow_credentials="*" not in allow_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
