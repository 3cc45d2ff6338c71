"""
Health endpoint: database reachability, schema revision and provider status.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

import kb
import kb.config as config
from kb.db import get_schema_revisions
from kb.errors import StorageUnavailable
from kb_api.deps import get_classifier_dep, get_embedder_dep, get_store


router = APIRouter()


def _check_db_health(store) -> dict:
    try:
        store.ping()
    except StorageUnavailable as exc:
        return {"ok": False, "error": str(exc)}

    current_rev, head_rev = get_schema_revisions(store)
    schema_ok = head_rev is None or current_rev == head_rev
    return {
        "ok": schema_ok,
        "backend": store.dialect_name,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": schema_ok,
    }


def _check_provider_health(provider, model: str) -> dict:
    if provider is None:
        return {"status": "disabled"}
    status = {
        "status": "ready" if getattr(provider, "available", True) else "unconfigured",
        "model": getattr(provider, "model", model),
    }
    breaker = getattr(provider, "breaker", None)
    if breaker is not None:
        status["circuit_breaker"] = breaker.status()
        if status["circuit_breaker"].get("open"):
            status["status"] = "cooldown"
    return status


@router.get("/health")
def health(
    store=Depends(get_store),
    classifier=Depends(get_classifier_dep),
    embedder=Depends(get_embedder_dep),
):
    """Health check endpoint."""
    db_health = _check_db_health(store)
    body = {
        "status": "healthy" if db_health["ok"] else "unhealthy",
        "service": "kb",
        "version": kb.__version__,
        "database": db_health,
        "classifier": _check_provider_health(classifier, config.CLASSIFIER_MODEL),
        "embedder": _check_provider_health(embedder, config.EMBEDDING_MODEL),
    }
    if not db_health["ok"]:
        return JSONResponse(status_code=503, content=body)
    return body
