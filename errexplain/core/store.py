"""
errexplain/core/store.py — Document store port
Minimal contract the quota tracker and submission service need from the
durable store. drive_client.DriveDocumentStore is the production adapter.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol


@dataclass
class StoredDocument:
    """A document plus the store metadata the core relies on."""

    key: str
    data: dict[str, Any]
    version: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    indexed: dict[str, str] = field(default_factory=dict)


class DocumentStore(Protocol):
    """
    Key-value document store.
    get/update/delete raise DocumentNotFoundError for missing keys,
    update raises ConflictError when expected_version is stale, and every
    other failure surfaces as StoreError.
    """

    def check_connection(self) -> bool:
        ...

    def get(self, collection: str, key: str) -> StoredDocument:
        ...

    def create(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        indexed: Optional[dict[str, str]] = None,
    ) -> StoredDocument:
        ...

    def update(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        expected_version: Optional[str] = None,
        indexed: Optional[dict[str, str]] = None,
    ) -> StoredDocument:
        ...

    def list(
        self,
        collection: str,
        filters: Optional[dict[str, str]] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[StoredDocument]:
        """Filter on indexed fields, newest first, at most `limit` documents."""
        ...

    def delete(self, collection: str, key: str) -> None:
        ...
