"""
errexplain/services/classifier.py — Heuristic error-message classifier
Decides whether pasted text plausibly is a programming error before a paid
AI call is spent on it. The same RULES back both the pre-submission hint
endpoint and the authoritative gate in the analyze pipeline.

Scoring: each rule that matches adds its weight once. Long prose with a thin
error vocabulary has its score halved. Valid when score >= min_score.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from errexplain.config import get_settings
from errexplain.core import logging as app_logging
from errexplain.models import ClassificationResult

settings = get_settings()

RULESET_VERSION = "3"

STRONG = 2.0
WEAK = 1.0

# ── Dilution penalty ─────────────────────────────────────────────────────────
DILUTION_MIN_WORDS = 20
DILUTION_MIN_RATIO = 0.10
DILUTION_FACTOR = 0.5

ERROR_VOCABULARY = frozenset({
    "error", "exception", "failed", "failure", "undefined", "null",
    "cannot", "unexpected", "syntax", "type", "reference",
})

_FLAGS = re.IGNORECASE | re.MULTILINE


@dataclass(frozen=True)
class Rule:
    name: str
    weight: float
    pattern: re.Pattern


# ──────────────────────────────────────────────────────────────────────────────
# Rule set — order is reporting order only; every rule is tested
# ──────────────────────────────────────────────────────────────────────────────

RULES: tuple[Rule, ...] = (
    Rule("error_token", STRONG, re.compile(
        r"\b(error|exception|failed|failure)\s*:", _FLAGS)),

    # Any capitalised, optionally dotted class name ending in Error/Exception
    # before a colon. Case-sensitive so prose like "an error: x" stays out.
    Rule("exception_class", STRONG, re.compile(
        r"\b(?:[\w$]+\.)*[A-Z]\w*(?:Error|Exception)\s*:", re.MULTILINE)),

    Rule("named_exception", STRONG, re.compile(
        r"\b("
        # JavaScript / TypeScript
        r"TypeError|ReferenceError|SyntaxError|RangeError|EvalError|URIError|AggregateError"
        r"|Uncaught\s+\(in\s+promise\)|UnhandledPromiseRejection\w*"
        # Python
        r"|NameError|ValueError|KeyError|IndexError|AttributeError|ImportError"
        r"|ModuleNotFoundError|IndentationError|TabError|ZeroDivisionError"
        r"|FileNotFoundError|PermissionError|RecursionError|UnicodeDecodeError"
        r"|UnicodeEncodeError|AssertionError|NotImplementedError|Traceback\s+\(most\s+recent\s+call\s+last\)"
        # Java / Kotlin
        r"|NullPointerException|ClassNotFoundException|ArrayIndexOutOfBoundsException"
        r"|IllegalArgumentException|IllegalStateException|NumberFormatException"
        r"|ClassCastException|ConcurrentModificationException|NoSuchMethodError"
        r"|NoClassDefFoundError|OutOfMemoryError|StackOverflowError|Exception\s+in\s+thread"
        # C#
        r"|NullReferenceException|InvalidOperationException|ArgumentNullException"
        r"|ArgumentOutOfRangeException|IndexOutOfRangeException|InvalidCastException"
        r"|KeyNotFoundException|FormatException|DbUpdateException"
        # Go
        r"|panic:|goroutine\s+\d+\s+\[running\]|nil\s+pointer\s+dereference"
        # Ruby
        r"|NoMethodError|ArgumentError|LoadError|ActiveRecord::\w+"
        # PHP
        r"|(?:Fatal|Parse)\s+error:|PDOException|DivisionByZeroError|Uncaught\s+Error"
        # Swift
        r"|Fatal\s+error:\s+Unexpectedly\s+found\s+nil|DecodingError"
        r")", _FLAGS)),

    Rule("stack_trace", STRONG, re.compile(
        r"\bat\s+[\w.$<>]+\s*\([^)]*:\d+(?::\d+)?\)"
        r"|\bline\s+\d+"
        r"|:\d+:\d+", _FLAGS)),

    Rule("error_phrase", STRONG, re.compile(
        r"\bcannot\s+(read|access|find|resolve|load)\b"
        r"|\bis\s+not\s+(defined|a\s+function|found)\b"
        r"|\bunexpected\s+(token|end|character|eof)\b"
        r"|\bmodule\s+not\s+found\b"
        r"|\bno\s+module\s+named\b"
        r"|\bundefined\s+method\b.*\bfor\b"
        r"|\bpermission\s+denied\b"
        r"|\bcommand\s+not\s+found\b"
        r"|\bsegmentation\s+fault\b"
        r"|\baccess\s+violation\b"
        r"|\bundefined\s+reference\s+to\b", _FLAGS)),

    Rule("http_status", STRONG, re.compile(
        r"\b(404|500|502|503)\b.{0,40}\b(error|not\s+found|server\s+error|bad\s+gateway|service\s+unavailable)\b"
        r"|\b(status|code|error)\b\s*:?\s*(404|500|502|503)\b", _FLAGS)),

    Rule("network_error", STRONG, re.compile(
        r"\bcors\s+(error|policy)\b|\bblocked\s+by\s+cors\b"
        r"|\bnet::ERR_[A-Z_]+\b"
        r"|\bnetwork\s+(error|timeout|request\s+failed)\b"
        r"|\bconnection\s+(refused|reset|failed|timed\s+out|timeout)\b"
        r"|\b(request|socket|read|connect)\s+timed\s+out\b", _FLAGS)),

    Rule("cors_header", STRONG, re.compile(
        r"\bAccess-Control-Allow-(Origin|Headers|Methods|Credentials)\b", _FLAGS)),

    Rule("file_reference", WEAK, re.compile(
        r"\.(js|mjs|cjs|ts|jsx|tsx|py|java|kt|cs|cpp|cc|php|rb|go|rs|swift|css|html)"
        r"(?=[\s:\"',)]|$)", _FLAGS)),

    # ── Ecosystem / platform fragments ───────────────────────────────────────
    Rule("container_build", STRONG, re.compile(
        r"\bfailed\s+to\s+(solve|build)\b"
        r"|\bexecutor\s+failed\s+running\b"
        r"|\berror\s+response\s+from\s+daemon\b"
        r"|\breturned\s+a\s+non-zero\s+code\b", _FLAGS)),

    Rule("vcs_fatal", STRONG, re.compile(
        r"^\s*fatal:"
        r"|\bnot\s+a\s+git\s+repository\b"
        r"|\bfailed\s+to\s+push\s+some\s+refs\b"
        r"|\bCONFLICT\s+\((content|modify/delete)\)", _FLAGS)),

    Rule("sql_error", STRONG, re.compile(
        r"\bSQLSTATE\b"
        r"|\bERROR\s+\d{4}\s+\(\w{5}\)"
        r"|\bORA-\d{5}\b"
        r"|\bPG::\w+"
        r"|\bsyntax\s+error\s+at\s+or\s+near\b"
        r"|\b(relation|table|column)\s+\S+\s+(does\s+not|doesn't)\s+exist\b"
        r"|\bduplicate\s+key\s+value\b"
        r"|\bdeadlock\s+detected\b", _FLAGS)),

    Rule("mobile_crash", STRONG, re.compile(
        r"\bFATAL\s+EXCEPTION\b"
        r"|\bTerminating\s+app\s+due\s+to\s+uncaught\s+exception\b"
        r"|\bEXC_BAD_(ACCESS|INSTRUCTION)\b"
        r"|\bANR\s+in\b"
        r"|\bunrecognized\s+selector\s+sent\s+to\s+instance\b"
        r"|\bInvariant\s+Violation\b", _FLAGS)),

    Rule("backend_exception", STRONG, re.compile(
        r"\b(AppwriteException|FirebaseError|MongoServerError|MongoNetworkError"
        r"|PrismaClient\w*Error|Sequelize\w*Error|PostgrestError|AuthApiError"
        r"|ECONNREFUSED|ETIMEDOUT|ENOTFOUND|EADDRINUSE|ENOENT|EACCES)\b", _FLAGS)),
)


# ──────────────────────────────────────────────────────────────────────────────
# Rejection copy
# ──────────────────────────────────────────────────────────────────────────────

REASON_EMPTY = "Error message is required."
REASON_TOO_SHORT = "Error message is too short to analyze."
REASON_NOT_ERROR = (
    "This doesn't appear to be an error message. Please paste an actual "
    "error or exception from your code/console."
)
SUGGESTION_DEFAULT = (
    "Error messages usually contain keywords like 'Error:', 'Exception:', "
    "'TypeError:', stack traces, or line numbers."
)

_EXAMPLES = {
    "javascript": "TypeError: Cannot read properties of undefined (reading 'map')",
    "typescript": "TS2339: Property 'foo' does not exist on type 'Bar'.",
    "python": "NameError: name 'df' is not defined",
    "java": "Exception in thread \"main\" java.lang.NullPointerException",
    "c#": "System.NullReferenceException: Object reference not set to an instance of an object.",
    "go": "panic: runtime error: index out of range [3] with length 3",
    "ruby": "NoMethodError: undefined method `each' for nil:NilClass",
    "php": "PHP Fatal error: Uncaught Error: Call to undefined function foo()",
    "swift": "Fatal error: Unexpectedly found nil while unwrapping an Optional value",
}


def suggestion_for(language: Optional[str]) -> str:
    example = _EXAMPLES.get((language or "").strip().lower())
    if example is None:
        return SUGGESTION_DEFAULT
    return f"{SUGGESTION_DEFAULT} For example: {example}"


# ──────────────────────────────────────────────────────────────────────────────
# Scoring
# ──────────────────────────────────────────────────────────────────────────────

def _words(text: str) -> list[str]:
    return text.lower().split()


def error_vocabulary_ratio(words: list[str]) -> float:
    if not words:
        return 0.0
    hits = sum(1 for w in words if re.sub(r"[^\w]", "", w) in ERROR_VOCABULARY)
    return hits / len(words)


def is_diluted(text: str) -> bool:
    """Long prose that merely mentions an error word once or twice."""
    words = _words(text)
    return (
        len(words) > DILUTION_MIN_WORDS
        and error_vocabulary_ratio(words) < DILUTION_MIN_RATIO
    )


def classify(
    text: Optional[str],
    language: Optional[str] = None,
    min_length: Optional[int] = None,
    min_score: Optional[float] = None,
) -> ClassificationResult:
    """
    Score text against RULES and decide validity.
    The language hint only shapes the suggestion copy; scoring is
    language-agnostic so the hint and the gate can never disagree.
    """
    min_length = settings.classifier_min_length if min_length is None else min_length
    min_score = settings.classifier_min_score if min_score is None else min_score

    if not text or not text.strip():
        return ClassificationResult(
            valid=False,
            reason=REASON_EMPTY,
            suggestion=suggestion_for(language),
            ruleset_version=RULESET_VERSION,
        )

    stripped = text.strip()
    if len(stripped) < min_length:
        return ClassificationResult(
            valid=False,
            reason=REASON_TOO_SHORT,
            suggestion=suggestion_for(language),
            ruleset_version=RULESET_VERSION,
        )

    matched = [rule.name for rule in RULES if rule.pattern.search(stripped)]
    score = sum(rule.weight for rule in RULES if rule.name in matched)

    diluted = is_diluted(stripped)
    if diluted:
        score *= DILUTION_FACTOR

    valid = score >= min_score
    app_logging.log_classification(valid, score, matched, diluted, len(stripped))

    return ClassificationResult(
        valid=valid,
        score=score,
        matched=matched,
        diluted=diluted,
        reason=None if valid else REASON_NOT_ERROR,
        suggestion=None if valid else suggestion_for(language),
        ruleset_version=RULESET_VERSION,
    )


def is_valid_error(text: Optional[str], language: Optional[str] = None) -> bool:
    return classify(text, language).valid
