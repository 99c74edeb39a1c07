"""
errexplain/core/identity.py — ClientIdentity derivation
No authentication: the quota/history key is network origin + a short
user-agent fingerprint. Trivially spoofable and shared behind NAT/proxies.
"""
from __future__ import annotations

import base64
import re
from typing import Optional

from fastapi import Request

UNKNOWN_ORIGIN = "unknown"
MAX_CLIENT_ID_LENGTH = 36
FINGERPRINT_LENGTH = 8

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def build_client_id(
    forwarded_for: Optional[str],
    real_ip: Optional[str],
    user_agent: Optional[str],
) -> str:
    """Combine origin hint and UA fingerprint into a store-safe key."""
    base_id = forwarded_for or real_ip or UNKNOWN_ORIGIN
    fingerprint = base64.b64encode((user_agent or "").encode("utf-8")).decode(
        "ascii"
    )[:FINGERPRINT_LENGTH]

    raw_id = f"{base_id}_{fingerprint}"
    clean_id = _UNSAFE_CHARS.sub("_", raw_id)[:MAX_CLIENT_ID_LENGTH]

    # Store keys may not start with an underscore
    if clean_id.startswith("_"):
        return f"u{clean_id[1:]}"
    return clean_id


def get_client_id(request: Request) -> str:
    """FastAPI dependency + slowapi key function."""
    return build_client_id(
        request.headers.get("x-forwarded-for"),
        request.headers.get("x-real-ip"),
        request.headers.get("user-agent"),
    )
