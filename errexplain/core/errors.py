"""
errexplain/core/errors.py — Exception taxonomy
Each class maps to one HTTP outcome in main.py's exception handlers.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional


class ErrExplainError(Exception):
    """Base class for all application errors."""

    status_code: int = 500
    public_message: str = "Something went wrong. Please try again."


# ──────────────────────────────────────────────────────────────────────────────
# Input rejection — user error, never retried
# ──────────────────────────────────────────────────────────────────────────────

class InputRejectedError(ErrExplainError):
    """Missing fields, oversized text, or text the classifier turned down."""

    status_code = 400

    def __init__(self, reason: str, suggestion: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.suggestion = suggestion


class QuotaExceededError(ErrExplainError):
    """Daily analysis quota used up. Carries the countdown data."""

    status_code = 429

    def __init__(self, client_id: str, limit: int, reset_time: datetime):
        self.client_id = client_id
        self.limit = limit
        self.remaining = 0
        self.reset_time = reset_time
        super().__init__(
            f"Daily limit reached ({limit} errors/day) for client '{client_id}'. "
            f"Resets at {reset_time.isoformat()}."
        )


class NotOwnerError(ErrExplainError):
    """The caller's fingerprint does not own the submission."""

    status_code = 403
    public_message = "Unauthorized"


class PrivateSubmissionError(ErrExplainError):
    status_code = 403
    public_message = "Cannot share private error analysis"


class SubmissionNotFoundError(ErrExplainError):
    status_code = 404
    public_message = "Error analysis not found"


# ──────────────────────────────────────────────────────────────────────────────
# Collaborator failures
# ──────────────────────────────────────────────────────────────────────────────

class AIServiceError(ErrExplainError):
    """AI collaborator misconfigured, unreachable, timed out, or returned junk."""

    status_code = 503
    public_message = "AI service temporarily unavailable. Please try again in a moment."


class ServiceNotConfiguredError(ErrExplainError):
    """A store-backed feature was called while the store is switched off."""

    status_code = 503

    def __init__(self, public_message: str):
        super().__init__(public_message)
        self.public_message = public_message


class StoreError(ErrExplainError):
    """Durable store failure (connectivity, timeout, API error)."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class DocumentNotFoundError(StoreError):
    """Not an outage: the document simply does not exist."""


class ConflictError(StoreError):
    """Optimistic concurrency check failed: another writer got there first."""
