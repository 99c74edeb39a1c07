"""
errexplain/core/quota.py — Per-client daily analysis quota
Rolling window: a request is admitted while fewer than `max_requests`
timestamps fall inside the trailing window. Reset time is the oldest
retained timestamp + window. Reserve and peek share the same arithmetic.

Two variants behind one interface:
- LocalQuotaTracker: process-local, per-key locks. Degraded mode only.
- DurableQuotaTracker: document store, optimistic read-modify-write.
FallbackQuotaTracker pairs them; build_quota_tracker picks from config.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError

from errexplain.config import Settings
from errexplain.core import logging as app_logging
from errexplain.core.errors import ConflictError, DocumentNotFoundError, StoreError
from errexplain.core.store import DocumentStore, StoredDocument
from errexplain.models import QuotaDecision, QuotaRecord, QuotaStatus
from errexplain.utils.timezone import ensure_utc, utc_now

Clock = Callable[[], datetime]


# ──────────────────────────────────────────────────────────────────────────────
# Window arithmetic
# ──────────────────────────────────────────────────────────────────────────────

def prune(timestamps: list[datetime], now: datetime, window: timedelta) -> list[datetime]:
    """Drop entries that have aged out of the window. Result is ascending."""
    return sorted(t for t in (ensure_utc(ts) for ts in timestamps) if now - t < window)


def reset_time_for(recent: list[datetime], now: datetime, window: timedelta) -> datetime:
    return (recent[0] if recent else now) + window


class _KeyedLocks:
    """One lock per client id; the registry lock only guards lock creation."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def for_key(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


# ──────────────────────────────────────────────────────────────────────────────
# Interface
# ──────────────────────────────────────────────────────────────────────────────

class QuotaTracker(ABC):
    backend: str = "abstract"

    def __init__(
        self,
        max_requests: int = 5,
        window: timedelta = timedelta(hours=24),
        clock: Clock = utc_now,
    ) -> None:
        self.max_requests = max_requests
        self.window = window
        self.clock = clock
        self._locks = _KeyedLocks()

    @abstractmethod
    def check_and_reserve(self, client_id: str) -> QuotaDecision:
        """Atomically admit-and-record, or deny without recording."""

    @abstractmethod
    def peek(self, client_id: str) -> QuotaStatus:
        """Read-only status. Never consumes quota."""

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    def _decide(
        self, recent: list[datetime], now: datetime
    ) -> tuple[QuotaDecision, list[datetime]]:
        if len(recent) >= self.max_requests:
            decision = QuotaDecision(
                allowed=False,
                remaining=0,
                reset_time=reset_time_for(recent, now, self.window),
            )
            return decision, recent

        updated = recent + [now]
        decision = QuotaDecision(
            allowed=True,
            remaining=self.max_requests - len(updated),
            reset_time=reset_time_for(updated, now, self.window),
        )
        return decision, updated

    def _status(self, recent: list[datetime], now: datetime) -> QuotaStatus:
        remaining = max(0, self.max_requests - len(recent))
        return QuotaStatus(
            remaining=remaining,
            max_requests=self.max_requests,
            reset_time=reset_time_for(recent, now, self.window),
            can_analyze=remaining > 0,
        )

    def _log(self, client_id: str, decision: QuotaDecision) -> None:
        app_logging.log_quota_decision(
            client_id, self.backend, decision.allowed,
            decision.remaining, decision.reset_time,
        )


# ──────────────────────────────────────────────────────────────────────────────
# Local (in-memory) variant
# ──────────────────────────────────────────────────────────────────────────────

class LocalQuotaTracker(QuotaTracker):
    """
    Process-local timestamps. Not durable and not shared between workers;
    records are never evicted (soft limit, reset on restart).
    """

    backend = "local"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._requests: dict[str, list[datetime]] = {}

    def check_and_reserve(self, client_id: str) -> QuotaDecision:
        with self._locks.for_key(client_id):
            now = self._now()
            recent = prune(self._requests.get(client_id, []), now, self.window)
            decision, updated = self._decide(recent, now)
            self._requests[client_id] = updated
        self._log(client_id, decision)
        return decision

    def peek(self, client_id: str) -> QuotaStatus:
        with self._locks.for_key(client_id):
            now = self._now()
            recent = prune(self._requests.get(client_id, []), now, self.window)
        return self._status(recent, now)


# ──────────────────────────────────────────────────────────────────────────────
# Durable variant
# ──────────────────────────────────────────────────────────────────────────────

class DurableQuotaTracker(QuotaTracker):
    """
    One quota document per client id. Reservation is a version-checked
    write; a ConflictError means another worker committed first, so the
    document is re-read and the decision recomputed.
    """

    backend = "durable"

    def __init__(
        self,
        store: DocumentStore,
        collection: str = "rate_limits",
        max_retries: int = 5,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.store = store
        self.collection = collection
        self.max_retries = max_retries

    def _load(self, client_id: str) -> tuple[Optional[StoredDocument], QuotaRecord]:
        try:
            doc = self.store.get(self.collection, client_id)
        except DocumentNotFoundError:
            # First request from this client: full quota
            return None, QuotaRecord(client_id=client_id)
        try:
            return doc, QuotaRecord(**doc.data)
        except ValidationError as exc:
            raise StoreError(f"Corrupt quota document for {client_id!r}", exc) from exc

    def check_and_reserve(self, client_id: str) -> QuotaDecision:
        # Same-process contenders queue here; cross-process ones hit ConflictError
        with self._locks.for_key(client_id):
            for attempt in range(self.max_retries):
                doc, record = self._load(client_id)
                now = self._now()
                recent = prune(record.requests, now, self.window)
                decision, updated = self._decide(recent, now)

                if not decision.allowed:
                    self._log(client_id, decision)
                    return decision

                new_record = QuotaRecord(
                    client_id=client_id,
                    requests=updated,
                    last_reset=updated[0],
                )
                payload = new_record.model_dump(mode="json")
                try:
                    if doc is None:
                        self.store.create(
                            self.collection, client_id, payload,
                            indexed={"clientId": client_id},
                        )
                    else:
                        self.store.update(
                            self.collection, client_id, payload,
                            expected_version=doc.version,
                        )
                except ConflictError:
                    logger.warning(
                        f"Quota write conflict for {client_id}, "
                        f"retry {attempt + 1}/{self.max_retries}"
                    )
                    continue

                self._log(client_id, decision)
                return decision

        raise ConflictError(
            f"Quota reservation for {client_id!r} lost {self.max_retries} write races"
        )

    def peek(self, client_id: str) -> QuotaStatus:
        _, record = self._load(client_id)
        now = self._now()
        return self._status(prune(record.requests, now, self.window), now)


# ──────────────────────────────────────────────────────────────────────────────
# Durable with local fallback
# ──────────────────────────────────────────────────────────────────────────────

class FallbackQuotaTracker(QuotaTracker):
    """
    Delegates to the durable tracker; on any StoreError answers from the
    local tracker instead. Availability over strictness: a store outage
    never denies service, it only weakens enforcement to per-process.
    """

    backend = "durable+local"

    def __init__(self, primary: QuotaTracker, fallback: LocalQuotaTracker) -> None:
        # No locks of its own: both delegates serialise per key
        self.max_requests = primary.max_requests
        self.window = primary.window
        self.clock = primary.clock
        self.primary = primary
        self.fallback = fallback

    def check_and_reserve(self, client_id: str) -> QuotaDecision:
        try:
            return self.primary.check_and_reserve(client_id)
        except StoreError as exc:
            app_logging.log_quota_degraded(client_id, "check_and_reserve", exc)
            return self.fallback.check_and_reserve(client_id)

    def peek(self, client_id: str) -> QuotaStatus:
        try:
            return self.primary.peek(client_id)
        except StoreError as exc:
            app_logging.log_quota_degraded(client_id, "peek", exc)
            return self.fallback.peek(client_id)


def build_quota_tracker(
    settings: Settings,
    store: Optional[DocumentStore] = None,
    clock: Clock = utc_now,
) -> QuotaTracker:
    """
    Explicit backend selection. `auto` means durable iff the store
    credentials are configured. A durable tracker always carries a local
    fallback for outages.
    """
    window = timedelta(hours=settings.quota_window_hours)
    local = LocalQuotaTracker(
        max_requests=settings.quota_max_requests, window=window, clock=clock,
    )

    backend = settings.quota_backend
    if backend == "auto":
        backend = "durable" if settings.store_configured else "local"

    if backend == "local":
        logger.info("Quota tracking: local (in-memory, per-process).")
        return local

    if store is None:
        raise ValueError("Durable quota backend requires a document store.")

    durable = DurableQuotaTracker(
        store,
        collection=settings.quota_collection,
        max_retries=settings.quota_cas_retries,
        max_requests=settings.quota_max_requests,
        window=window,
        clock=clock,
    )
    logger.info(f"Quota tracking: durable ({settings.quota_collection}) with local fallback.")
    return FallbackQuotaTracker(durable, local)
