"""
errexplain/clients/drive_client.py — Google Drive document store
Layout: {drive_folder_name}/{collection}/{key}.json
Indexed fields (clientId, shareId) live in Drive appProperties so history
and share lookups are server-side queries, not full scans.

Write safety: update() compares the file's `version` with the version the
caller read and raises ConflictError on mismatch. The compare and the write
are two calls, so cross-process atomicity is best-effort; callers also
serialise per key in-process.
"""
from __future__ import annotations

import json
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaInMemoryUpload

from errexplain.config import Settings
from errexplain.core import logging as app_logging
from errexplain.core.errors import ConflictError, DocumentNotFoundError, StoreError
from errexplain.core.store import StoredDocument
from errexplain.utils.timezone import ensure_utc

SCOPES = ["https://www.googleapis.com/auth/drive.file"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
FOLDER_MIME = "application/vnd.google-apps.folder"
FILE_FIELDS = "id, name, version, createdTime, modifiedTime, appProperties"


def _q(value: str) -> str:
    """Escape a value for a Drive query string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _rfc3339(dt: datetime) -> str:
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%S")


class DriveDocumentStore:
    """DocumentStore adapter over Drive v3."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.timeout = settings.store_timeout_seconds
        self._local = threading.local()  # httplib2.Http is not thread-safe
        self._folder_lock = threading.Lock()
        self._folder_ids: dict[str, str] = {}

    # ──────────────────────────────────────────────────────────────────────────
    # Service + folder plumbing
    # ──────────────────────────────────────────────────────────────────────────

    def _build_credentials(self) -> Credentials:
        return Credentials(
            token=None,
            refresh_token=self.settings.google_refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret,
            scopes=SCOPES,
        )

    def _service(self):
        service = getattr(self._local, "service", None)
        if service is None:
            http = AuthorizedHttp(
                self._build_credentials(),
                http=httplib2.Http(timeout=self.timeout),
            )
            service = build("drive", "v3", http=http, cache_discovery=False)
            self._local.service = service
        return service

    def _find_folder(self, name: str, parent_id: Optional[str]) -> str:
        service = self._service()
        query = f"name='{_q(name)}' and mimeType='{FOLDER_MIME}' and trashed=false"
        if parent_id:
            query += f" and '{parent_id}' in parents"
        files = service.files().list(q=query, fields="files(id)").execute().get("files", [])
        if files:
            return files[0]["id"]

        metadata: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME}
        if parent_id:
            metadata["parents"] = [parent_id]
        return service.files().create(body=metadata, fields="id").execute()["id"]

    def _folder_id(self, collection: str) -> str:
        with self._folder_lock:
            root_id = self._folder_ids.get("")
            if root_id is None:
                root_id = self._folder_ids[""] = self._find_folder(
                    self.settings.drive_folder_name, None
                )
            folder_id = self._folder_ids.get(collection)
            if folder_id is None:
                folder_id = self._folder_ids[collection] = self._find_folder(
                    collection, root_id
                )
            return folder_id

    def _find_file(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        query = (
            f"name='{_q(key)}.json' and "
            f"'{self._folder_id(collection)}' in parents and "
            f"trashed=false"
        )
        files = self._service().files().list(
            q=query, fields=f"files({FILE_FIELDS})", pageSize=1,
        ).execute().get("files", [])
        return files[0] if files else None

    def _require_file(self, collection: str, key: str) -> dict[str, Any]:
        meta = self._find_file(collection, key)
        if meta is None:
            raise DocumentNotFoundError(f"{collection}/{key} not found")
        return meta

    def _download(self, file_id: str) -> dict[str, Any]:
        content = self._service().files().get_media(fileId=file_id).execute()
        if isinstance(content, bytes):
            content = content.decode("utf-8")
        return json.loads(content)

    @staticmethod
    def _to_document(meta: dict[str, Any], data: dict[str, Any]) -> StoredDocument:
        props = dict(meta.get("appProperties") or {})
        key = props.pop("docKey", meta["name"].removesuffix(".json"))
        return StoredDocument(
            key=key,
            data=data,
            version=str(meta.get("version", "")),
            created_at=_parse_rfc3339(meta.get("createdTime")),
            updated_at=_parse_rfc3339(meta.get("modifiedTime")),
            indexed=props,
        )

    @staticmethod
    def _media(data: dict[str, Any]) -> MediaInMemoryUpload:
        body = json.dumps(data, default=str).encode("utf-8")
        return MediaInMemoryUpload(body, mimetype="application/json", resumable=False)

    @contextmanager
    def _operation(
        self, collection: str, operation: str, key: Optional[str] = None
    ) -> Iterator[dict[str, Any]]:
        """Time + log the call; translate transport/API errors into StoreError."""
        start = time.monotonic()
        outcome: dict[str, Any] = {"version": None}
        try:
            yield outcome
        except (DocumentNotFoundError, ConflictError) as exc:
            latency_ms = (time.monotonic() - start) * 1000
            app_logging.log_store_operation(
                collection, operation, False, latency_ms, key, error=type(exc).__name__,
            )
            raise
        except HttpError as exc:
            latency_ms = (time.monotonic() - start) * 1000
            app_logging.log_store_operation(
                collection, operation, False, latency_ms, key, error=str(exc),
            )
            if exc.resp.status == 404:
                raise DocumentNotFoundError(f"{collection}/{key} not found", exc) from exc
            raise StoreError(f"Drive {operation} failed for {collection}/{key}", exc) from exc
        except Exception as exc:
            latency_ms = (time.monotonic() - start) * 1000
            app_logging.log_store_operation(
                collection, operation, False, latency_ms, key, error=str(exc),
            )
            raise StoreError(f"Drive {operation} failed for {collection}/{key}: {exc}", exc) from exc
        else:
            latency_ms = (time.monotonic() - start) * 1000
            app_logging.log_store_operation(
                collection, operation, True, latency_ms, key, outcome["version"],
            )

    # ──────────────────────────────────────────────────────────────────────────
    # DocumentStore API
    # ──────────────────────────────────────────────────────────────────────────

    def check_connection(self) -> bool:
        """Used by /api/health. Resolves (or creates) the root folder."""
        with self._operation("", "ping"):
            self._folder_id("_health")
        return True

    def get(self, collection: str, key: str) -> StoredDocument:
        with self._operation(collection, "get", key) as outcome:
            meta = self._require_file(collection, key)
            doc = self._to_document(meta, self._download(meta["id"]))
            outcome["version"] = doc.version
        return doc

    def create(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        indexed: Optional[dict[str, str]] = None,
    ) -> StoredDocument:
        with self._operation(collection, "create", key) as outcome:
            if self._find_file(collection, key) is not None:
                raise ConflictError(f"{collection}/{key} already exists")
            body = {
                "name": f"{key}.json",
                "parents": [self._folder_id(collection)],
                "appProperties": {"docKey": key, **(indexed or {})},
            }
            meta = self._service().files().create(
                body=body, media_body=self._media(data), fields=FILE_FIELDS,
            ).execute()
            doc = self._to_document(meta, data)
            outcome["version"] = doc.version
        return doc

    def update(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        expected_version: Optional[str] = None,
        indexed: Optional[dict[str, str]] = None,
    ) -> StoredDocument:
        with self._operation(collection, "update", key) as outcome:
            meta = self._require_file(collection, key)
            if expected_version is not None and str(meta.get("version")) != expected_version:
                raise ConflictError(
                    f"{collection}/{key} moved from version {expected_version} "
                    f"to {meta.get('version')}"
                )
            body: dict[str, Any] = {}
            if indexed:
                body["appProperties"] = indexed
            meta = self._service().files().update(
                fileId=meta["id"], body=body,
                media_body=self._media(data), fields=FILE_FIELDS,
            ).execute()
            doc = self._to_document(meta, data)
            outcome["version"] = doc.version
        return doc

    def list(
        self,
        collection: str,
        filters: Optional[dict[str, str]] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[StoredDocument]:
        with self._operation(collection, "list"):
            clauses = [f"'{self._folder_id(collection)}' in parents", "trashed=false"]
            for field, value in (filters or {}).items():
                clauses.append(
                    f"appProperties has {{ key='{_q(field)}' and value='{_q(value)}' }}"
                )
            if created_after is not None:
                clauses.append(f"createdTime >= '{_rfc3339(created_after)}'")
            if created_before is not None:
                clauses.append(f"createdTime < '{_rfc3339(created_before)}'")

            files = self._service().files().list(
                q=" and ".join(clauses),
                orderBy="createdTime desc",
                pageSize=limit,
                fields=f"files({FILE_FIELDS})",
            ).execute().get("files", [])
            docs = [self._to_document(meta, self._download(meta["id"])) for meta in files]
        return docs

    def delete(self, collection: str, key: str) -> None:
        with self._operation(collection, "delete", key):
            meta = self._require_file(collection, key)
            self._service().files().delete(fileId=meta["id"]).execute()


def get_document_store(settings: Settings) -> Optional[DriveDocumentStore]:
    """None when Drive credentials are absent: history/share disabled, quota local."""
    if not settings.store_configured:
        return None
    return DriveDocumentStore(settings)
