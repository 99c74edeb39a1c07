"""
errexplain/routers/api.py — HTTP surface
Endpoints: /api/analyze-error, /api/validate-error, /api/analyze-status,
           /api/user-history (GET, DELETE), /api/share-error,
           /api/shared-error, /api/health
Every handler keys on ClientIdentity; there is no authentication.
Domain errors propagate to the exception handlers registered in main.py.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from errexplain.config import get_settings
from errexplain.core.errors import InputRejectedError, StoreError
from errexplain.core.identity import get_client_id
from errexplain.core.quota import QuotaTracker
from errexplain.core.rate_limiter import limiter, RATE_LIMITS
from errexplain.core.store import DocumentStore
from errexplain.models import (
    AnalyzeRequest,
    AnalyzeResponse,
    ClassificationResult,
    HistoryResponse,
    QuotaStatus,
    ShareRequest,
    ShareResponse,
    SharedErrorResponse,
    ValidateRequest,
)
from errexplain.services import explain, submissions
from errexplain.services.classifier import RULESET_VERSION, classify

settings = get_settings()

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# Dependencies — collaborators are built once in the lifespan
# ──────────────────────────────────────────────────────────────────────────────

def get_quota_tracker(request: Request) -> QuotaTracker:
    return request.app.state.quota_tracker


def get_store(request: Request) -> Optional[DocumentStore]:
    return getattr(request.app.state, "document_store", None)


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/analyze-error
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/analyze-error", response_model=AnalyzeResponse)
@limiter.limit(RATE_LIMITS["analyze"])
async def analyze_error(
    request: Request,
    body: AnalyzeRequest,
    client_id: str = Depends(get_client_id),
    tracker: QuotaTracker = Depends(get_quota_tracker),
    store: Optional[DocumentStore] = Depends(get_store),
) -> AnalyzeResponse:
    """
    Classify, reserve quota, analyze, persist.
    400 on rejected input (with suggestion), 429 when the daily quota is
    spent, 503 when the AI collaborator fails.
    """
    return await run_in_threadpool(
        explain.explain_error,
        client_id,
        body.error_message,
        body.language,
        tracker,
        store,
        body.is_private,
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/validate-error — pre-submission hint, same rules as the gate
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/validate-error", response_model=ClassificationResult)
@limiter.limit(RATE_LIMITS["validate"])
async def validate_error(request: Request, body: ValidateRequest) -> ClassificationResult:
    """Never consumes quota and never calls the AI."""
    try:
        explain.check_fields(body.error_message, body.language or "unspecified")
    except InputRejectedError as exc:
        return ClassificationResult(
            valid=False,
            reason=exc.reason,
            suggestion=exc.suggestion,
            ruleset_version=RULESET_VERSION,
        )
    return classify(body.error_message, body.language)


# ──────────────────────────────────────────────────────────────────────────────
# GET /api/analyze-status — quota peek
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/analyze-status", response_model=QuotaStatus)
@limiter.limit(RATE_LIMITS["status"])
async def analyze_status(
    request: Request,
    client_id: str = Depends(get_client_id),
    tracker: QuotaTracker = Depends(get_quota_tracker),
) -> QuotaStatus:
    return await run_in_threadpool(tracker.peek, client_id)


# ──────────────────────────────────────────────────────────────────────────────
# /api/user-history
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/user-history", response_model=HistoryResponse)
@limiter.limit(RATE_LIMITS["history"])
async def user_history(
    request: Request,
    client_id: str = Depends(get_client_id),
    store: Optional[DocumentStore] = Depends(get_store),
) -> HistoryResponse:
    """Caller's last analyses, newest first, plus aggregate stats."""
    return await run_in_threadpool(submissions.get_history, store, client_id)


@router.delete("/user-history")
@limiter.limit(RATE_LIMITS["history"])
async def delete_history_item(
    request: Request,
    submission_id: Optional[str] = Query(default=None, alias="id"),
    client_id: str = Depends(get_client_id),
    store: Optional[DocumentStore] = Depends(get_store),
) -> dict[str, Any]:
    if not submission_id:
        raise InputRejectedError("Error ID is required")
    await run_in_threadpool(submissions.delete_submission, store, client_id, submission_id)
    return {"success": True}


# ──────────────────────────────────────────────────────────────────────────────
# Sharing
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/share-error", response_model=ShareResponse)
@limiter.limit(RATE_LIMITS["share"])
async def share_error(
    request: Request,
    body: ShareRequest,
    client_id: str = Depends(get_client_id),
    store: Optional[DocumentStore] = Depends(get_store),
) -> ShareResponse:
    """Owner-only; returns the existing link when already shared."""
    if not body.error_id:
        raise InputRejectedError("Error ID is required")
    return await run_in_threadpool(
        submissions.share_submission, store, client_id, body.error_id,
    )


@router.get("/shared-error", response_model=SharedErrorResponse)
@limiter.limit(RATE_LIMITS["share"])
async def shared_error(
    request: Request,
    share_id: Optional[str] = Query(default=None, alias="shareId"),
    store: Optional[DocumentStore] = Depends(get_store),
) -> SharedErrorResponse:
    """Public read; no ClientIdentity check."""
    if not share_id:
        raise InputRejectedError("Share ID is required")
    return await run_in_threadpool(submissions.get_shared, store, share_id)


# ──────────────────────────────────────────────────────────────────────────────
# GET /api/health
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/health")
@limiter.limit(RATE_LIMITS["health"])
async def health_check(
    request: Request,
    tracker: QuotaTracker = Depends(get_quota_tracker),
    store: Optional[DocumentStore] = Depends(get_store),
) -> dict[str, Any]:
    """Reports collaborator configuration; probes the store when present."""
    store_status = "not_configured"
    if store is not None:
        try:
            await run_in_threadpool(store.check_connection)
            store_status = "ok"
        except StoreError as exc:
            logger.warning(f"Health check: document store unreachable: {exc}")
            store_status = "unreachable"

    return {
        "status": "ok" if store_status != "unreachable" else "degraded",
        "ai": "configured" if settings.ai_configured else "not_configured",
        "store": store_status,
        "quota_backend": tracker.backend,
        "ruleset_version": RULESET_VERSION,
    }
