"""
tests/test_drive_store.py — Drive document store error mapping (no network)
"""
from __future__ import annotations

from unittest.mock import patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from errexplain.clients.drive_client import DriveDocumentStore, get_document_store
from errexplain.config import Settings
from errexplain.core.errors import ConflictError, DocumentNotFoundError, StoreError


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"{}")


@pytest.fixture
def drive() -> DriveDocumentStore:
    return DriveDocumentStore(Settings(
        google_client_id="id", google_client_secret="secret", google_refresh_token="token",
    ))


def test_no_credentials_means_no_store():
    assert get_document_store(Settings(google_client_id=None)) is None


def test_missing_file_is_document_not_found(drive):
    with patch.object(DriveDocumentStore, "_find_file", return_value=None):
        with pytest.raises(DocumentNotFoundError):
            drive.get("rate_limits", "abc")


def test_http_404_is_document_not_found(drive):
    with patch.object(DriveDocumentStore, "_find_file", side_effect=_http_error(404)):
        with pytest.raises(DocumentNotFoundError):
            drive.get("rate_limits", "abc")


def test_other_http_errors_are_store_errors(drive):
    with patch.object(DriveDocumentStore, "_find_file", side_effect=_http_error(500)):
        with pytest.raises(StoreError) as exc_info:
            drive.get("rate_limits", "abc")
    assert not isinstance(exc_info.value, DocumentNotFoundError)


def test_transport_failure_is_store_error(drive):
    with patch.object(DriveDocumentStore, "_find_file", side_effect=TimeoutError("timed out")):
        with pytest.raises(StoreError):
            drive.get("rate_limits", "abc")


def test_stale_version_is_conflict(drive):
    meta = {"id": "file-1", "name": "abc.json", "version": "7"}
    with patch.object(DriveDocumentStore, "_find_file", return_value=meta):
        with pytest.raises(ConflictError):
            drive.update("rate_limits", "abc", {"requests": []}, expected_version="6")


def test_create_refuses_existing_key(drive):
    meta = {"id": "file-1", "name": "abc.json", "version": "1"}
    with patch.object(DriveDocumentStore, "_find_file", return_value=meta):
        with pytest.raises(ConflictError):
            drive.create("rate_limits", "abc", {"requests": []})


def test_document_metadata_mapping():
    meta = {
        "id": "file-1",
        "name": "k1.json",
        "version": 12,
        "createdTime": "2026-03-10T12:00:00.000Z",
        "modifiedTime": "2026-03-10T13:00:00.000Z",
        "appProperties": {"docKey": "k1", "clientId": "c1"},
    }
    doc = DriveDocumentStore._to_document(meta, {"a": 1})
    assert doc.key == "k1"
    assert doc.version == "12"
    assert doc.indexed == {"clientId": "c1"}
    assert doc.created_at.hour == 12
