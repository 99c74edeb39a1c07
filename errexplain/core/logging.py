"""
errexplain/core/logging.py — loguru structured JSON logging setup
One JSON record per AI call, store operation, quota decision and error.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    The hosting platform captures stdout; no file sinks.
    """
    # Remove default loguru handler
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,
        backtrace=True,
        diagnose=False,  # never dump locals (may hold user error text)
        colorize=False,
    )


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


# ──────────────────────────────────────────────────────────────────────────────
# Event helpers
# ──────────────────────────────────────────────────────────────────────────────

def log_ai_call(
    model: str,
    operation: str,
    input_tokens: int,
    output_tokens: int,
    latency_ms: float,
    success: bool,
    error: Optional[str] = None,
) -> None:
    """Every Gemini call is logged, successful or not."""
    record = _build_log_record("gemini_client", operation, {
        "model": model,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "latency_ms": round(latency_ms, 2),
        "success": success,
        "error": error,
    })
    if success:
        logger.info(json.dumps(record))
    else:
        logger.warning(json.dumps(record))


def log_store_operation(
    collection: str,
    operation: str,  # get | create | update | list | delete
    success: bool,
    latency_ms: float,
    key: Optional[str] = None,
    version: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Every Drive document read/write is logged."""
    record = _build_log_record("drive_client", operation, {
        "collection": collection,
        "key": key,
        "success": success,
        "latency_ms": round(latency_ms, 2),
        "version": version,
        "error": error,
    })
    logger.info(json.dumps(record))


def log_quota_decision(
    client_id: str,
    backend: str,
    allowed: bool,
    remaining: int,
    reset_time: datetime,
) -> None:
    record = _build_log_record("quota", "check_and_reserve", {
        "client_id": client_id,
        "backend": backend,
        "allowed": allowed,
        "remaining": remaining,
        "reset_time": reset_time.isoformat(),
    })
    logger.info(json.dumps(record))


def log_quota_degraded(client_id: str, operation: str, error: Exception) -> None:
    """Durable store unreachable; answering from the local tracker."""
    record = _build_log_record("quota", operation, {
        "client_id": client_id,
        "degraded_to": "local",
        "error_type": type(error).__name__,
        "error_message": str(error),
    })
    logger.warning(json.dumps(record))


def log_classification(
    valid: bool,
    score: float,
    matched: list[str],
    diluted: bool,
    text_length: int,
) -> None:
    # Text itself is never logged, only its shape
    record = _build_log_record("classifier", "classify", {
        "valid": valid,
        "score": score,
        "matched": matched,
        "diluted": diluted,
        "text_length": text_length,
    })
    logger.debug(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every error is logged with full context."""
    tb = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
