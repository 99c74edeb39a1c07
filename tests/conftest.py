"""
tests/conftest.py — Shared pytest fixtures
"""
from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")

import copy
import threading
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest

from errexplain.core.errors import ConflictError, DocumentNotFoundError, StoreError
from errexplain.core.store import StoredDocument
from errexplain.models import ErrorAnalysis, Severity
from errexplain.utils.timezone import UTC


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeDocumentStore:
    """
    In-memory DocumentStore. Versions are integers rendered as strings.
    `unreachable` makes every call raise StoreError; `inject_conflicts`
    makes the next N updates fail as if another writer got there first.
    """

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self._lock = threading.Lock()
        self._docs: dict[tuple[str, str], StoredDocument] = {}
        self.clock = clock or (lambda: datetime.now(UTC))
        self.unreachable = False
        self.inject_conflicts = 0
        self.calls: list[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.unreachable:
            raise StoreError(f"store unreachable during {operation}")

    def check_connection(self) -> bool:
        self._check("ping")
        return True

    def get(self, collection: str, key: str) -> StoredDocument:
        with self._lock:
            self._check("get")
            doc = self._docs.get((collection, key))
            if doc is None:
                raise DocumentNotFoundError(f"{collection}/{key} not found")
            return copy.deepcopy(doc)

    def create(self, collection, key, data, indexed=None) -> StoredDocument:
        with self._lock:
            self._check("create")
            if (collection, key) in self._docs:
                raise ConflictError(f"{collection}/{key} already exists")
            now = self.clock()
            doc = StoredDocument(
                key=key, data=copy.deepcopy(data), version="1",
                created_at=now, updated_at=now, indexed=dict(indexed or {}),
            )
            self._docs[(collection, key)] = doc
            return copy.deepcopy(doc)

    def update(self, collection, key, data, expected_version=None, indexed=None) -> StoredDocument:
        with self._lock:
            self._check("update")
            doc = self._docs.get((collection, key))
            if doc is None:
                raise DocumentNotFoundError(f"{collection}/{key} not found")
            if self.inject_conflicts > 0:
                self.inject_conflicts -= 1
                doc.version = str(int(doc.version) + 1)
                raise ConflictError(f"{collection}/{key} changed concurrently")
            if expected_version is not None and expected_version != doc.version:
                raise ConflictError(f"{collection}/{key} version {doc.version} != {expected_version}")
            doc.data = copy.deepcopy(data)
            doc.version = str(int(doc.version) + 1)
            doc.updated_at = self.clock()
            if indexed is not None:
                doc.indexed = dict(indexed)
            return copy.deepcopy(doc)

    def list(self, collection, filters=None, created_after=None, created_before=None, limit=50):
        with self._lock:
            self._check("list")
            docs = [
                doc for (coll, _), doc in self._docs.items()
                if coll == collection
                and all(doc.indexed.get(k) == v for k, v in (filters or {}).items())
                and (created_after is None or doc.created_at > created_after)
                and (created_before is None or doc.created_at < created_before)
            ]
            docs.sort(key=lambda d: d.created_at, reverse=True)
            return [copy.deepcopy(d) for d in docs[:limit]]

    def delete(self, collection: str, key: str) -> None:
        with self._lock:
            self._check("delete")
            if self._docs.pop((collection, key), None) is None:
                raise DocumentNotFoundError(f"{collection}/{key} not found")

    # ── test helpers ──────────────────────────────────────────────────────────
    def raw(self, collection: str, key: str) -> dict[str, Any]:
        return self._docs[(collection, key)].data


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def fake_store(clock) -> FakeDocumentStore:
    return FakeDocumentStore(clock)


@pytest.fixture
def sample_analysis() -> ErrorAnalysis:
    return ErrorAnalysis(
        explanation="You tried to read a property of a value that is undefined.",
        causes=[
            "The variable was never assigned.",
            "An async value was used before it resolved.",
        ],
        solutions=[
            "Check the value with optional chaining: obj?.foo",
            "Initialise the variable before use.",
        ],
        severity=Severity.MEDIUM,
        category="Runtime Error",
        example_code="const obj = undefined;\nobj.foo;",
    )
