"""
errexplain/services/submissions.py — Stored analyses: history, sharing, delete
Thin layer over the document store. Ownership is the ClientIdentity
fingerprint stamped on the document at write time.

Persistence of a fresh analysis is best-effort: the caller already has
its answer, so a failed write is logged and swallowed.
"""
from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime
from typing import Optional

from loguru import logger

from errexplain.config import get_settings
from errexplain.core import logging as app_logging
from errexplain.core.errors import (
    DocumentNotFoundError,
    NotOwnerError,
    PrivateSubmissionError,
    ServiceNotConfiguredError,
    StoreError,
    SubmissionNotFoundError,
)
from errexplain.core.store import DocumentStore, StoredDocument
from errexplain.models import (
    ErrorAnalysis,
    HistoryItem,
    HistoryResponse,
    HistoryStats,
    Severity,
    ShareResponse,
    SharedErrorData,
    SharedErrorResponse,
    StoredAnalysis,
    SubmissionRecord,
    TimelinePoint,
)
from errexplain.utils.timezone import day_label, ensure_utc, last_n_days, utc_now
from errexplain.utils.validators import parse_model_safe, truncate

settings = get_settings()

TIMELINE_DAYS = 7


def _collection() -> str:
    return settings.submissions_collection


def _to_record(doc: StoredDocument) -> Optional[SubmissionRecord]:
    data = {"createdAt": doc.created_at, **doc.data, "id": doc.key}
    return parse_model_safe(SubmissionRecord, data, context=f"submission {doc.key}")


def _load_owned(store: DocumentStore, client_id: str, submission_id: str) -> tuple[StoredDocument, SubmissionRecord]:
    try:
        doc = store.get(_collection(), submission_id)
    except DocumentNotFoundError as exc:
        raise SubmissionNotFoundError(f"Submission {submission_id!r} not found") from exc
    record = _to_record(doc)
    if record is None:
        raise SubmissionNotFoundError(f"Submission {submission_id!r} is unreadable")
    if record.client_id != client_id:
        raise NotOwnerError(f"Client {client_id!r} does not own {submission_id!r}")
    return doc, record


# ──────────────────────────────────────────────────────────────────────────────
# Save
# ──────────────────────────────────────────────────────────────────────────────

def save_submission(
    store: Optional[DocumentStore],
    client_id: str,
    error_message: str,
    language: str,
    analysis: ErrorAnalysis,
    is_private: bool = False,
) -> Optional[str]:
    """Persist an analysis. Returns its id, or None when not persisted."""
    if store is None:
        logger.debug("Document store not configured; analysis not persisted.")
        return None

    record = SubmissionRecord(
        client_id=client_id,
        error_message=truncate(error_message, settings.stored_error_length),
        language=truncate(language, settings.stored_language_length),
        explanation=analysis.explanation,
        causes=analysis.causes,
        solutions=analysis.solutions,
        severity=analysis.severity,
        category=analysis.category,
        example_code=analysis.example_code,
        is_private=is_private,
        created_at=utc_now(),
    )
    submission_id = uuid.uuid4().hex
    try:
        store.create(
            _collection(),
            submission_id,
            record.model_dump(mode="json", by_alias=True, exclude={"id"}),
            indexed={"clientId": client_id},
        )
    except StoreError as exc:
        app_logging.log_error("submissions", "save", exc, {"client_id": client_id})
        return None

    logger.info(f"Saved submission {submission_id} for {client_id}.")
    return submission_id


# ──────────────────────────────────────────────────────────────────────────────
# History + stats
# ──────────────────────────────────────────────────────────────────────────────

def to_history_item(record: SubmissionRecord) -> HistoryItem:
    return HistoryItem(
        id=record.id,
        error_message=record.error_message,
        language=record.language,
        category=record.category,
        severity=record.severity,
        timestamp=record.created_at,
        is_shared=record.is_shared,
        share_id=record.share_id,
        is_private=record.is_private,
        analysis=StoredAnalysis(
            explanation=record.explanation,
            causes=record.causes,
            solutions=record.solutions,
            severity=record.severity,
            category=record.category,
            example_code=record.example_code,
        ),
    )


def build_stats(history: list[HistoryItem], now: datetime) -> HistoryStats:
    """Language / severity / category counts plus a 7-day UTC timeline."""
    today = ensure_utc(now).date()
    per_day = Counter(ensure_utc(item.timestamp).date() for item in history)

    severity = {s.value: 0 for s in Severity}
    for item in history:
        severity[item.severity.value] += 1

    return HistoryStats(
        total=len(history),
        languages=dict(Counter(item.language for item in history)),
        severity=severity,
        categories=dict(Counter(item.category for item in history)),
        timeline=[
            TimelinePoint(
                date=day.isoformat(),
                count=per_day.get(day, 0),
                label=day_label(day, today),
            )
            for day in last_n_days(TIMELINE_DAYS, today)
        ],
    )


def get_history(
    store: Optional[DocumentStore],
    client_id: str,
    now: Optional[datetime] = None,
) -> HistoryResponse:
    """Newest first, bounded page. Store trouble yields an empty history."""
    now = now or utc_now()
    if store is None:
        return HistoryResponse(history=[], stats=build_stats([], now))

    try:
        docs = store.list(
            _collection(),
            filters={"clientId": client_id},
            limit=settings.history_page_size,
        )
    except StoreError as exc:
        app_logging.log_error("submissions", "history", exc, {"client_id": client_id})
        return HistoryResponse(history=[], stats=build_stats([], now))

    history = []
    for doc in docs:
        record = _to_record(doc)
        if record is not None and record.created_at is not None:
            history.append(to_history_item(record))
    history.sort(key=lambda item: item.timestamp, reverse=True)
    return HistoryResponse(history=history, stats=build_stats(history, now))


def delete_submission(
    store: Optional[DocumentStore],
    client_id: str,
    submission_id: str,
) -> None:
    if store is None:
        raise ServiceNotConfiguredError("History service not configured")
    _load_owned(store, client_id, submission_id)
    try:
        store.delete(_collection(), submission_id)
    except DocumentNotFoundError as exc:
        raise SubmissionNotFoundError(f"Submission {submission_id!r} not found") from exc
    logger.info(f"Deleted submission {submission_id} for {client_id}.")


# ──────────────────────────────────────────────────────────────────────────────
# Sharing
# ──────────────────────────────────────────────────────────────────────────────

def share_url_for(share_id: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/shared/{share_id}"


def share_submission(
    store: Optional[DocumentStore],
    client_id: str,
    submission_id: str,
) -> ShareResponse:
    """Owner-only. Idempotent: an already-shared entry returns its link."""
    if store is None:
        raise ServiceNotConfiguredError("Sharing service not configured")

    doc, record = _load_owned(store, client_id, submission_id)
    if record.is_private:
        raise PrivateSubmissionError(f"Submission {submission_id!r} is private")

    if record.is_shared and record.share_id:
        return ShareResponse(share_id=record.share_id, share_url=share_url_for(record.share_id))

    share_id = uuid.uuid4().hex
    updated = record.model_copy(update={
        "is_shared": True,
        "share_id": share_id,
        "shared_at": utc_now(),
    })
    store.update(
        _collection(),
        submission_id,
        updated.model_dump(mode="json", by_alias=True, exclude={"id"}),
        expected_version=doc.version,
        indexed={"clientId": client_id, "shareId": share_id},
    )
    logger.info(f"Shared submission {submission_id} as {share_id}.")
    return ShareResponse(share_id=share_id, share_url=share_url_for(share_id))


def get_shared(store: Optional[DocumentStore], share_id: str) -> SharedErrorResponse:
    """Public read by share id. Private or unshared entries are invisible."""
    if store is None:
        raise ServiceNotConfiguredError("Sharing service not configured")

    docs = store.list(_collection(), filters={"shareId": share_id}, limit=1)
    record = _to_record(docs[0]) if docs else None
    if record is None or not record.is_shared or record.is_private:
        raise SubmissionNotFoundError(f"No shared analysis for {share_id!r}")

    return SharedErrorResponse(data=SharedErrorData(
        error_message=record.error_message,
        language=record.language,
        explanation=record.explanation,
        causes=record.causes,
        solutions=record.solutions,
        severity=record.severity,
        category=record.category,
        example_code=record.example_code,
        shared_at=record.shared_at,
    ))
