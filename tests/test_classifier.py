"""
tests/test_classifier.py — Unit tests for the error-message classifier
"""
from __future__ import annotations

import pytest

from errexplain.services.classifier import (
    REASON_EMPTY,
    REASON_NOT_ERROR,
    REASON_TOO_SHORT,
    RULESET_VERSION,
    SUGGESTION_DEFAULT,
    classify,
    is_diluted,
    is_valid_error,
    suggestion_for,
)

PROSE_WORDS = (
    "the quick brown fox jumps over a lazy dog while morning light spreads "
    "across quiet fields and the farmer walks slowly toward his old barn "
    "thinking about seasons harvests weather markets neighbours and family "
).split()


def _prose(word_count: int, inject: str) -> str:
    words = [PROSE_WORDS[i % len(PROSE_WORDS)] for i in range(word_count - len(inject.split()))]
    middle = len(words) // 2
    return " ".join(words[:middle] + inject.split() + words[middle:])


@pytest.mark.parametrize("text", ["", "   ", "Err:", "x=1/0"])
def test_short_or_empty_text_is_rejected(text):
    result = classify(text)
    assert result.valid is False
    assert result.reason in (REASON_EMPTY, REASON_TOO_SHORT)


def test_too_short_reason_is_reported():
    assert classify("Err: x").reason == REASON_TOO_SHORT


def test_named_exception_with_colon_is_admitted():
    result = classify("TypeError: x")
    assert result.valid is True
    assert "named_exception" in result.matched
    assert result.reason is None
    assert result.suggestion is None


def test_javascript_undefined_property_is_admitted():
    result = classify("TypeError: Cannot read properties of undefined (reading 'foo')", "JavaScript")
    assert result.valid
    assert {"named_exception", "error_phrase"} <= set(result.matched)


def test_plain_greeting_is_rejected_with_suggestion():
    result = classify("hello how are you today")
    assert result.valid is False
    assert result.score == 0
    assert result.reason == REASON_NOT_ERROR
    assert result.suggestion.startswith(SUGGESTION_DEFAULT)


def test_long_prose_mentioning_error_once_is_diluted_and_rejected():
    text = _prose(500, "I saw an error: nothing")
    assert len(text.split()) == 500
    result = classify(text)
    assert result.diluted is True
    assert result.matched == ["error_token"]
    assert result.valid is False


def test_named_exception_inside_short_prose_still_admitted():
    text = "After deploying I got TypeError: foo is not a function in the console"
    result = classify(text)
    assert result.diluted is False
    assert result.valid


def test_file_reference_alone_is_not_enough():
    result = classify("please look at main.py tomorrow")
    assert result.matched == ["file_reference"]
    assert result.valid is False


def test_stack_frame_is_admitted():
    assert classify("    at render (src/App.jsx:42:17)").valid


@pytest.mark.parametrize("text", [
    'Traceback (most recent call last):\n  File "app.py", line 3, in <module>\nKeyError: \'id\'',
    'Exception in thread "main" java.lang.NullPointerException',
    "System.NullReferenceException: Object reference not set to an instance of an object.",
    "panic: runtime error: index out of range [3] with length 3",
    "NoMethodError: undefined method `each' for nil:NilClass",
    "PHP Fatal error:  Uncaught Error: Call to undefined function foo()",
    "ERROR: failed to solve: process \"/bin/sh -c npm ci\" did not complete successfully",
    "fatal: not a git repository (or any of the parent directories): .git",
    "ERROR:  relation \"users\" does not exist",
    "FATAL EXCEPTION: main Process: com.example.app, PID: 4242",
    "Error: connect ECONNREFUSED 127.0.0.1:5432",
])
def test_platform_errors_are_admitted(text):
    result = classify(text)
    assert result.valid, result.matched


@pytest.mark.parametrize("text", [
    "RuntimeError: maximum recursion depth exceeded while calling a Python object",
    "OSError: [Errno 98] Address already in use",
    "TimeoutError: timed out",
    "java.io.IOException: Stream closed",
    "java.sql.SQLException: No suitable driver found for jdbc:mysql://localhost:3306/shop",
    "System.IO.IOException: The process cannot access the file 'log.txt' because it is being used by another process.",
    "AxiosError: Network Error",
    "requests.exceptions.ConnectionError: HTTPSConnectionPool(host='api.example.com', port=443): "
    "Max retries exceeded with url: /v1/items (Caused by NewConnectionError('<urllib3.connection."
    "HTTPSConnection object at 0x7f>: Failed to establish a new connection: [Errno 111] Connection refused'))",
])
def test_unlisted_exception_classes_are_admitted(text):
    result = classify(text)
    assert "exception_class" in result.matched
    assert result.valid, result.matched


def test_browser_cors_error_is_admitted():
    text = (
        "Access to fetch at 'https://api.example.com/users' from origin 'http://localhost:3000' "
        "has been blocked by CORS policy: Response to preflight request doesn't pass access "
        "control check: No 'Access-Control-Allow-Origin' header is present on the requested "
        "resource. If an opaque response serves your needs, set the request's mode to 'no-cors' "
        "to fetch the resource with CORS disabled."
    )
    result = classify(text)
    assert {"network_error", "cors_header"} <= set(result.matched)
    assert result.valid, result.matched


@pytest.mark.parametrize("text", [
    "GET https://api.example.com/users net::ERR_CONNECTION_REFUSED",
    "upstream connect: connection refused",
    "socket timed out after 30000ms",
])
def test_network_failures_are_admitted(text):
    result = classify(text)
    assert "network_error" in result.matched
    assert result.valid, result.matched


def test_lowercase_error_in_prose_is_not_an_exception_class():
    result = classify("Yesterday I noticed an error: the page looked odd")
    assert "exception_class" not in result.matched


def test_classification_is_deterministic_and_versioned():
    text = "ReferenceError: window is not defined"
    first, second = classify(text), classify(text)
    assert first == second
    assert first.ruleset_version == RULESET_VERSION


def test_language_hint_only_changes_suggestion():
    text = "hello how are you today friend"
    plain, python = classify(text), classify(text, "Python")
    assert plain.score == python.score
    assert plain.valid == python.valid
    assert "NameError" in python.suggestion
    assert "For example" not in plain.suggestion


def test_suggestion_for_unknown_language_is_default():
    assert suggestion_for("COBOL") == SUGGESTION_DEFAULT
    assert suggestion_for(None) == SUGGESTION_DEFAULT


def test_is_diluted_ignores_short_text():
    assert is_diluted("some words without any vocabulary at all") is False


def test_thresholds_can_be_overridden():
    assert classify("main.py tomorrow please", min_score=1.0).valid
    assert classify("TypeError: x", min_length=50).reason == REASON_TOO_SHORT


def test_is_valid_error_matches_classify():
    assert is_valid_error("SyntaxError: Unexpected token '<'") is True
    assert is_valid_error("just some text here") is False
