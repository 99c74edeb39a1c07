"""
errexplain/models.py — All Pydantic data schemas
Wire format is camelCase (errorMessage, resetTime, ...); Python side is
snake_case via alias_generator.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


DEFAULT_CATEGORY = "Runtime Error"


# ──────────────────────────────────────────────────────────────────────────────
# AI output
# ──────────────────────────────────────────────────────────────────────────────

class ErrorAnalysis(CamelModel):
    explanation: str = Field(min_length=1)
    causes: list[str] = Field(min_length=1)
    solutions: list[str] = Field(min_length=1)
    severity: Severity
    category: str = DEFAULT_CATEGORY
    example_code: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def normalise_severity(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> Any:
        # Models often send null or "" when unsure of the category
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CATEGORY
        return v.strip() if isinstance(v, str) else v

    @field_validator("causes", "solutions")
    @classmethod
    def drop_blank_items(cls, v: list[str]) -> list[str]:
        cleaned = [item.strip() for item in v if item and item.strip()]
        if not cleaned:
            raise ValueError("must contain at least one non-empty item")
        return cleaned


# ──────────────────────────────────────────────────────────────────────────────
# Classifier
# ──────────────────────────────────────────────────────────────────────────────

class ClassificationResult(CamelModel):
    valid: bool
    score: float = 0.0
    matched: list[str] = []
    diluted: bool = False
    reason: Optional[str] = None
    suggestion: Optional[str] = None
    ruleset_version: str


# ──────────────────────────────────────────────────────────────────────────────
# Quota
# ──────────────────────────────────────────────────────────────────────────────

class QuotaRecord(BaseModel):
    """Stored per ClientIdentity. Timestamps ascending, UTC."""
    client_id: str
    requests: list[datetime] = []
    last_reset: Optional[datetime] = None


class QuotaDecision(CamelModel):
    allowed: bool
    remaining: int
    reset_time: datetime


class QuotaStatus(CamelModel):
    remaining: int
    max_requests: int
    reset_time: datetime
    can_analyze: bool


# ──────────────────────────────────────────────────────────────────────────────
# Submissions
# ──────────────────────────────────────────────────────────────────────────────

class SubmissionRecord(CamelModel):
    id: Optional[str] = None
    client_id: str
    error_message: str
    language: str
    explanation: str
    causes: list[str] = []
    solutions: list[str] = []
    severity: Severity = Severity.MEDIUM
    category: str = DEFAULT_CATEGORY
    example_code: Optional[str] = None
    is_private: bool = False
    is_shared: bool = False
    share_id: Optional[str] = None
    shared_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


# ──────────────────────────────────────────────────────────────────────────────
# HTTP requests
# ──────────────────────────────────────────────────────────────────────────────

class AnalyzeRequest(CamelModel):
    # Presence/length are validated by the pipeline so the envelope stays uniform
    error_message: Optional[str] = None
    language: Optional[str] = None
    is_private: bool = False


class ValidateRequest(CamelModel):
    error_message: Optional[str] = None
    language: Optional[str] = None


class ShareRequest(CamelModel):
    error_id: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# HTTP responses
# ──────────────────────────────────────────────────────────────────────────────

class AnalysisPayload(ErrorAnalysis):
    original_error: str
    language: str
    id: Optional[str] = None


class RateLimitInfo(CamelModel):
    remaining: int
    reset_time: datetime


class AnalyzeResponse(CamelModel):
    success: bool = True
    analysis: AnalysisPayload
    rate_limit: RateLimitInfo


class StoredAnalysis(CamelModel):
    """Analysis as read back from the store; tolerant of older documents."""
    explanation: str = ""
    causes: list[str] = []
    solutions: list[str] = []
    severity: Severity = Severity.MEDIUM
    category: str = DEFAULT_CATEGORY
    example_code: Optional[str] = None


class HistoryItem(CamelModel):
    id: str
    error_message: str
    language: str
    category: str
    severity: Severity
    timestamp: datetime
    is_shared: bool = False
    share_id: Optional[str] = None
    is_private: bool = False
    analysis: StoredAnalysis


class TimelinePoint(CamelModel):
    date: str
    count: int
    label: str


class HistoryStats(CamelModel):
    total: int = 0
    languages: dict[str, int] = {}
    severity: dict[str, int] = Field(
        default_factory=lambda: {s.value: 0 for s in Severity}
    )
    categories: dict[str, int] = {}
    timeline: list[TimelinePoint] = []


class HistoryResponse(CamelModel):
    success: bool = True
    history: list[HistoryItem] = []
    stats: HistoryStats = Field(default_factory=HistoryStats)


class ShareResponse(CamelModel):
    success: bool = True
    share_id: str
    share_url: str


class SharedErrorData(CamelModel):
    error_message: str
    language: str
    explanation: str
    causes: list[str]
    solutions: list[str]
    severity: Severity
    category: str
    example_code: Optional[str] = None
    shared_at: Optional[datetime] = None


class SharedErrorResponse(CamelModel):
    success: bool = True
    data: SharedErrorData
