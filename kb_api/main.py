"""
FastAPI app wiring for the knowledge base.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import kb
import kb.config as config
from kb.db import DB, Store, init_db
from kb.errors import ConflictRetryable, InvalidInput, NotFound, StorageUnavailable
from kb.providers.classifier import close_classifier
from kb.providers.embedder import close_embedder
from kb_api.middleware import configure_middleware
from kb_api.routes.entries import router as entries_router
from kb_api.routes.health import router as health_router
from kb_api.routes.root import router as root_router
from kb_api.routes.search import router as search_router
from kb_api.routes.tags import router as tags_router


def _invalid_input(request: Request, exc: InvalidInput) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_input", "detail": str(exc), "field": exc.field, "error_type": exc.error_type},
    )


def _not_found(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error": "not_found", "detail": str(exc), "kind": exc.kind},
    )


def _conflict(request: Request, exc: ConflictRetryable) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": "conflict", "detail": str(exc)})


def _storage_unavailable(request: Request, exc: StorageUnavailable) -> JSONResponse:
    config.logger.error(f"Storage unavailable on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"error": "storage_unavailable", "detail": str(exc)})


def create_app(database_url: Optional[str] = None, store: Optional[Store] = None) -> FastAPI:
    """
    Build the API app.

    With `store` the app serves that store and leaves it open on shutdown;
    otherwise it opens one from `database_url` (or the environment) at
    startup and disposes of it afterwards.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup, cleanup on shutdown."""
        if store is not None:
            DB.store = store
        else:
            init_db(database_url)
        try:
            yield
        finally:
            close_classifier()
            close_embedder()
            if store is None and DB.store is not None:
                DB.store.dispose()
            DB.store = None

    app = FastAPI(title="kb", version=kb.__version__, redirect_slashes=False, lifespan=lifespan)
    configure_middleware(app)

    app.add_exception_handler(InvalidInput, _invalid_input)
    app.add_exception_handler(NotFound, _not_found)
    app.add_exception_handler(ConflictRetryable, _conflict)
    app.add_exception_handler(StorageUnavailable, _storage_unavailable)

    app.include_router(health_router)
    app.include_router(root_router)
    app.include_router(entries_router)
    app.include_router(tags_router)
    app.include_router(search_router)
    return app


# Module-level app for `uvicorn kb_api.main:app`
app = create_app()
