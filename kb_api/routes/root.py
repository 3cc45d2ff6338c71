"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import kb
import kb.config as config


router = APIRouter()


@router.get("/")
def root():
    """Root endpoint with service info."""
    return {
        "service": "kb",
        "version": kb.__version__,
        "description": "Personal knowledge base with automatic tagging",
        "classifier_model": config.CLASSIFIER_MODEL,
        "embedding_model": config.EMBEDDING_MODEL,
        "endpoints": {
            "health": "/health",
            "entries": "/entries",
            "tags": "/tags",
            "search": "/search?q=",
            "suggestions": "/suggestions",
        },
    }
