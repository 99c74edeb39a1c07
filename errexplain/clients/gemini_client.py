"""
errexplain/clients/gemini_client.py — Google Gemini API client
One best-effort attempt per analysis, bounded by ai_timeout_seconds.
Any failure (missing key, timeout, quota, transport, empty output)
surfaces as AIServiceError so the request fails cleanly.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Optional

import google.generativeai as genai
from loguru import logger

from errexplain.config import get_settings
from errexplain.core import logging as app_logging
from errexplain.core.errors import AIServiceError
from errexplain.utils.validators import safe_parse_json

settings = get_settings()

_configure_lock = threading.Lock()
_configured_key: Optional[str] = None


def _configure_genai() -> None:
    """Configure the Gemini SDK once per API key."""
    global _configured_key
    if not settings.gemini_api_key:
        raise AIServiceError("GEMINI_API_KEY is not configured")
    with _configure_lock:
        if _configured_key != settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)
            _configured_key = settings.gemini_api_key


def call_gemini(
    prompt: str,
    model: Optional[str] = None,
    max_output_tokens: Optional[int] = None,
    temperature: float = 0.2,
    operation: str = "analyze_error",
) -> dict[str, Any]:
    """
    Single Gemini call requesting a JSON body.
    Returns dict with 'text', 'input_tokens', 'output_tokens'.
    """
    _configure_genai()
    model = model or settings.gemini_model
    max_output_tokens = max_output_tokens or settings.ai_max_output_tokens
    start_time = time.monotonic()

    try:
        gen_model = genai.GenerativeModel(
            model,
            generation_config=genai.types.GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_output_tokens,
                response_mime_type="application/json",
            ),
        )
        response = gen_model.generate_content(
            prompt,
            request_options={"timeout": settings.ai_timeout_seconds},
        )
        text = response.text.strip() if response.text else ""
    except Exception as exc:
        # DeadlineExceeded, ResourceExhausted, transport errors, blocked candidates
        latency_ms = (time.monotonic() - start_time) * 1000
        app_logging.log_ai_call(model, operation, 0, 0, latency_ms, False, str(exc))
        raise AIServiceError(f"Gemini call failed for model '{model}': {exc}") from exc

    latency_ms = (time.monotonic() - start_time) * 1000
    usage = getattr(response, "usage_metadata", None)
    input_tokens = usage.prompt_token_count if usage else 0
    output_tokens = usage.candidates_token_count if usage else 0
    app_logging.log_ai_call(model, operation, input_tokens, output_tokens, latency_ms, True)

    if not text:
        raise AIServiceError(f"Gemini returned an empty response for model '{model}'")

    return {"text": text, "input_tokens": input_tokens, "output_tokens": output_tokens}


# ──────────────────────────────────────────────────────────────────────────────
# JSON extraction helper
# ──────────────────────────────────────────────────────────────────────────────

def extract_json_from_response(text: str) -> dict[str, Any]:
    """
    Safely extract JSON from a Gemini response text.
    Handles markdown code fences (```json ... ```) or raw JSON.
    Returns empty dict on parse failure.
    """
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])

    parsed = safe_parse_json(text)
    if parsed is None:
        # Try the outermost {...} span
        start = text.find("{")
        end = text.rfind("}")
        if start != -1 and end > start:
            parsed = safe_parse_json(text[start:end + 1])
    if parsed is None:
        logger.debug(f"Could not extract JSON from Gemini response: {text[:200]!r}")
        return {}
    return parsed
