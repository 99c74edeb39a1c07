"""
errexplain/core/rate_limiter.py — slowapi burst limiting
Per-minute protection on top of the daily quota. Keyed by the same
ClientIdentity the quota uses so both limits agree on who a caller is.
"""
from __future__ import annotations

from slowapi import Limiter

from errexplain.config import get_settings
from errexplain.core.identity import get_client_id

settings = get_settings()

# Single shared limiter instance — imported by main.py and routers
limiter = Limiter(key_func=get_client_id)

# String values used as decorators on individual route handlers
RATE_LIMITS = settings.rate_limits
