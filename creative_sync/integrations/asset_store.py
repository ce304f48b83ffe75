"""
Creative asset stores
Folder-tree file stores the sync pipeline reads package creatives from
"""

from __future__ import annotations

import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from supabase import create_client

from ..infrastructure.error_handling import NotFoundError, TransportError

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_FOLDER_MIME = "application/vnd.google-apps.folder"
STORAGE_FOLDER_MIME = "inode/directory"
STORAGE_PAGE_SIZE = 100


@dataclass(frozen=True)
class StoreEntry:
    id: str
    name: str
    mime_type: str = ""
    is_folder: bool = False


class AssetStore(ABC):
    """Minimal read interface over a folder tree."""

    @abstractmethod
    def list_children(
        self,
        parent_id: str,
        name: Optional[str] = None,
        folders_only: bool = False,
    ) -> List[StoreEntry]:
        """Immediate children of ``parent_id``, optionally filtered by exact name."""

    @abstractmethod
    def download(self, file_id: str) -> bytes:
        """Full content of one file."""


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveAssetStore(AssetStore):
    """Google Drive v3 over plain REST with a bearer token."""

    def __init__(
        self,
        access_token: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
    ) -> None:
        if not access_token:
            raise ValueError("GOOGLE_DRIVE_ACCESS_TOKEN is required")
        self.access_token = access_token
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def _get(self, url: str, params: Dict[str, Any]) -> requests.Response:
        try:
            r = self.session.get(url, params=params, headers=self._headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Drive request failed: {e}") from e
        if r.status_code == 404:
            raise NotFoundError(f"Drive object not found: {url}")
        if r.status_code >= 400:
            logger.error(f"[DRIVE] {r.status_code} from {url}: {r.text[:500]}")
            raise TransportError(f"Drive API error {r.status_code}: {r.text[:200]}")
        return r

    def list_children(
        self,
        parent_id: str,
        name: Optional[str] = None,
        folders_only: bool = False,
    ) -> List[StoreEntry]:
        clauses = [f"'{_quote(parent_id)}' in parents", "trashed=false"]
        if name is not None:
            clauses.insert(0, f"name='{_quote(name)}'")
        if folders_only:
            clauses.append(f"mimeType='{DRIVE_FOLDER_MIME}'")

        params: Dict[str, Any] = {
            "q": " and ".join(clauses),
            "fields": "nextPageToken, files(id, name, mimeType)",
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
            "pageSize": 1000,
        }
        entries: List[StoreEntry] = []
        while True:
            payload = self._get(DRIVE_API_URL, params).json()
            for f in payload.get("files") or []:
                mime = f.get("mimeType") or ""
                entries.append(StoreEntry(id=f["id"], name=f.get("name", ""), mime_type=mime, is_folder=mime == DRIVE_FOLDER_MIME))
            token = payload.get("nextPageToken")
            if not token:
                break
            params = {**params, "pageToken": token}

        logger.debug(f"[DRIVE] {len(entries)} children under {parent_id} (name={name!r})")
        return entries

    def download(self, file_id: str) -> bytes:
        r = self._get(f"{DRIVE_API_URL}/{file_id}", {"alt": "media", "supportsAllDrives": "true"})
        logger.debug(f"[DRIVE] Downloaded {file_id} ({len(r.content)} bytes)")
        return r.content


class SupabaseAssetStore(AssetStore):
    """
    Same tree over a Supabase Storage bucket.

    Folders are path prefixes and a file id is its object path, so
    ``download(entry.id)`` works on anything ``list_children`` returned.
    """

    def __init__(self, supabase_client, bucket_name: str = "creatives") -> None:
        self.client = supabase_client
        self.bucket_name = bucket_name

    @classmethod
    def from_credentials(cls, url: str, key: str, bucket_name: str = "creatives") -> "SupabaseAssetStore":
        if not (url and key):
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
        return cls(create_client(url, key), bucket_name)

    @property
    def _bucket(self):
        return self.client.storage.from_(self.bucket_name)

    def list_children(
        self,
        parent_id: str,
        name: Optional[str] = None,
        folders_only: bool = False,
    ) -> List[StoreEntry]:
        prefix = (parent_id or "").strip("/")
        objects: List[Dict[str, Any]] = []
        offset = 0
        try:
            while True:
                page = self._bucket.list(
                    prefix,
                    {"limit": STORAGE_PAGE_SIZE, "offset": offset, "sortBy": {"column": "name", "order": "asc"}},
                ) or []
                objects.extend(page)
                if len(page) < STORAGE_PAGE_SIZE:
                    break
                offset += len(page)
        except Exception as e:
            logger.error(f"[STORAGE] Failed to list {self.bucket_name}/{prefix}: {e}")
            raise TransportError(f"Storage listing failed for {prefix!r}: {e}") from e

        entries: List[StoreEntry] = []
        for obj in objects:
            obj_name = obj.get("name") or ""
            if not obj_name or obj_name.startswith("."):
                continue
            if name is not None and obj_name != name:
                continue
            # storage returns folders as placeholder rows with no id and no metadata
            is_folder = obj.get("id") is None
            if folders_only and not is_folder:
                continue
            metadata = obj.get("metadata") or {}
            mime = STORAGE_FOLDER_MIME if is_folder else (
                metadata.get("mimetype") or mimetypes.guess_type(obj_name)[0] or ""
            )
            path = f"{prefix}/{obj_name}" if prefix else obj_name
            entries.append(StoreEntry(id=path, name=obj_name, mime_type=mime, is_folder=is_folder))

        logger.debug(f"[STORAGE] {len(entries)} children under {self.bucket_name}/{prefix}")
        return entries

    def download(self, file_id: str) -> bytes:
        try:
            data = self._bucket.download(file_id)
        except Exception as e:
            logger.error(f"[STORAGE] Failed to download {self.bucket_name}/{file_id}: {e}")
            raise TransportError(f"Storage download failed for {file_id!r}: {e}") from e
        logger.debug(f"[STORAGE] Downloaded {file_id} ({len(data)} bytes)")
        return data


__all__ = [
    "StoreEntry",
    "AssetStore",
    "DriveAssetStore",
    "SupabaseAssetStore",
]
