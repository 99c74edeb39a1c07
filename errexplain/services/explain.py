"""
errexplain/services/explain.py — Analyze-error request pipeline
field checks → classifier → quota reserve → AI → persist → response

Both gates run before the AI call: a classifier rejection consumes no
quota, and a quota denial never reaches Gemini. Persistence happens after
the answer exists and cannot fail the request.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger

from errexplain.config import get_settings
from errexplain.core.errors import InputRejectedError, QuotaExceededError
from errexplain.core.quota import QuotaTracker
from errexplain.core.store import DocumentStore
from errexplain.models import AnalysisPayload, AnalyzeResponse, RateLimitInfo
from errexplain.services import analyzer, submissions
from errexplain.services.classifier import classify

settings = get_settings()

REASON_MISSING_FIELDS = "Error message and language are required"


def reason_too_long() -> str:
    return f"Error message too long. Maximum {settings.max_error_length} characters allowed."


def check_fields(error_message: Optional[str], language: Optional[str]) -> tuple[str, str]:
    """Presence and length. Returns the (message, language) pair to use."""
    if not error_message or not error_message.strip() or not language or not language.strip():
        raise InputRejectedError(REASON_MISSING_FIELDS)
    if len(error_message) > settings.max_error_length:
        raise InputRejectedError(reason_too_long())
    return error_message, language.strip()


def explain_error(
    client_id: str,
    error_message: Optional[str],
    language: Optional[str],
    tracker: QuotaTracker,
    store: Optional[DocumentStore] = None,
    is_private: bool = False,
) -> AnalyzeResponse:
    """
    Run one analysis for one client.
    Raises InputRejectedError, QuotaExceededError or AIServiceError.
    """
    error_message, language = check_fields(error_message, language)

    verdict = classify(error_message, language)
    if not verdict.valid:
        logger.info(
            f"Rejected input from {client_id}: score={verdict.score} "
            f"matched={verdict.matched} diluted={verdict.diluted}"
        )
        raise InputRejectedError(verdict.reason, verdict.suggestion)

    decision = tracker.check_and_reserve(client_id)
    if not decision.allowed:
        raise QuotaExceededError(client_id, tracker.max_requests, decision.reset_time)

    analysis = analyzer.analyze_error(error_message, language)

    submission_id = submissions.save_submission(
        store, client_id, error_message, language, analysis, is_private=is_private,
    )

    return AnalyzeResponse(
        analysis=AnalysisPayload(
            **analysis.model_dump(),
            original_error=error_message,
            language=language,
            id=submission_id,
        ),
        rate_limit=RateLimitInfo(
            remaining=decision.remaining,
            reset_time=decision.reset_time,
        ),
    )
