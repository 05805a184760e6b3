# tailorbook/services/storage.py
from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import requests
from flask import current_app, has_request_context, request, url_for
from werkzeug.utils import safe_join


# Buckets used by the app. Paths inside a bucket are "/"-separated keys.
INVOICES_BUCKET = "invoices"
DESIGNS_BUCKET = "designs"
LOGOS_BUCKET = "logos"
BUCKETS = {INVOICES_BUCKET, DESIGNS_BUCKET, LOGOS_BUCKET}


class StorageError(Exception):
    """Upload / lookup / delete failed at the storage provider."""


# =========================================================
# Types
# =========================================================
@dataclass(frozen=True)
class StoredFile:
    path: str
    sha256: str


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _clean_key(path: str) -> str:
    key = (path or "").strip().lstrip("/")
    if not key:
        raise StorageError("Empty storage path.")
    return key


# =========================================================
# Local filesystem backend
# =========================================================
class LocalFileStore:
    """
    Files under <base_dir>/<bucket>/<path>, served by the public.stored_file route.
    Default backend; SupabaseFileStore has the same methods.
    """

    def __init__(self, bucket: str, base_dir: str, public_base_url: str | None = None):
        self.bucket = bucket
        self.root = os.path.join(base_dir, bucket)
        self.public_base_url = (public_base_url or "").rstrip("/") or None
        os.makedirs(self.root, exist_ok=True)

    def _abs(self, path: str) -> str:
        abs_path = safe_join(self.root, _clean_key(path))
        if abs_path is None:
            raise StorageError(f"Unsafe storage path: {path!r}")
        return abs_path

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = True,
    ) -> StoredFile:
        abs_path = self._abs(path)
        if not upsert and os.path.exists(abs_path):
            raise StorageError(f"{self.bucket}/{path} already exists.")

        try:
            os.makedirs(os.path.dirname(abs_path), exist_ok=True)
            with open(abs_path, "wb") as f:
                f.write(data)
        except OSError as exc:
            raise StorageError(f"Could not write {self.bucket}/{path}") from exc

        return StoredFile(path=_clean_key(path), sha256=sha256_hex(data))

    def find(self, prefix: str, filename: str) -> Optional[str]:
        key = f"{prefix.strip('/')}/{filename}" if prefix.strip("/") else filename
        if os.path.isfile(self._abs(key)):
            return key
        return None

    def public_url(self, path: str) -> str:
        key = _clean_key(path)
        if self.public_base_url:
            return f"{self.public_base_url}/files/{self.bucket}/{quote(key)}"
        return url_for("public.stored_file", bucket=self.bucket, path=key, _external=True)

    def delete(self, path: str) -> None:
        abs_path = self._abs(path)
        try:
            if os.path.exists(abs_path):
                os.remove(abs_path)
        except OSError as exc:
            raise StorageError(f"Could not delete {self.bucket}/{path}") from exc


# =========================================================
# Supabase Storage backend (REST)
# =========================================================
class SupabaseFileStore:
    """
    Supabase Storage over its REST API.
    Public URLs assume the bucket is marked public in the Supabase dashboard.
    """

    def __init__(self, bucket: str, base_url: str, service_key: str, timeout: int = 10):
        if not base_url or not service_key:
            raise StorageError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required.")
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout

    def _headers(self, **extra) -> dict:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        headers.update(extra)
        return headers

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(_clean_key(path))}"

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = True,
    ) -> StoredFile:
        try:
            r = requests.post(
                self._object_url(path),
                data=data,
                headers=self._headers(**{
                    "Content-Type": content_type,
                    "x-upsert": "true" if upsert else "false",
                }),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise StorageError(f"Upload of {self.bucket}/{path} failed") from exc

        if r.status_code >= 400:
            raise StorageError(f"Upload of {self.bucket}/{path} rejected ({r.status_code}): {r.text[:200]}")

        return StoredFile(path=_clean_key(path), sha256=sha256_hex(data))

    def find(self, prefix: str, filename: str) -> Optional[str]:
        prefix = prefix.strip("/")
        try:
            r = requests.post(
                f"{self.base_url}/storage/v1/object/list/{self.bucket}",
                json={"prefix": prefix, "search": filename, "limit": 100, "offset": 0},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise StorageError(f"Listing {self.bucket}/{prefix} failed") from exc

        if r.status_code >= 400:
            raise StorageError(f"Listing {self.bucket}/{prefix} rejected ({r.status_code})")

        try:
            names = {(obj or {}).get("name") for obj in (r.json() or [])}
        except (ValueError, AttributeError, TypeError) as exc:
            raise StorageError(f"Listing {self.bucket}/{prefix} returned an unreadable body") from exc

        if filename in names:
            return f"{prefix}/{filename}" if prefix else filename
        return None

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(_clean_key(path))}"

    def delete(self, path: str) -> None:
        try:
            r = requests.delete(
                f"{self.base_url}/storage/v1/object/{self.bucket}",
                json={"prefixes": [_clean_key(path)]},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise StorageError(f"Delete of {self.bucket}/{path} failed") from exc

        if r.status_code >= 400:
            raise StorageError(f"Delete of {self.bucket}/{path} rejected ({r.status_code})")


# =========================================================
# Factory
# =========================================================
def storage_base_dir() -> str:
    """
    Priority:
      1) Flask config / env: STORAGE_DIR
      2) instance_path/storage
    """
    base = current_app.config.get("STORAGE_DIR") or os.getenv("STORAGE_DIR")
    if not base:
        base = os.path.join(current_app.instance_path, "storage")
    os.makedirs(base, exist_ok=True)
    return base


def public_base_url() -> str | None:
    """
    Base URL for links that leave the app (WhatsApp messages).
    Priority:
      1) PUBLIC_BASE_URL config/env (recommended in production)
      2) request.url_root in runtime (good locally)
    """
    cfg = (current_app.config.get("PUBLIC_BASE_URL") or os.getenv("PUBLIC_BASE_URL") or "").strip()
    if cfg:
        return cfg.rstrip("/")
    if has_request_context() and request.url_root:
        return request.url_root.rstrip("/")
    return None


def get_file_store(bucket: str):
    if bucket not in BUCKETS:
        raise StorageError(f"Unknown bucket: {bucket}")

    backend = (current_app.config.get("STORAGE_BACKEND") or "local").lower()
    if backend == "supabase":
        return SupabaseFileStore(
            bucket,
            current_app.config.get("SUPABASE_URL") or "",
            current_app.config.get("SUPABASE_SERVICE_KEY") or "",
            timeout=current_app.config.get("STORAGE_TIMEOUT_SECONDS", 10),
        )
    return LocalFileStore(bucket, storage_base_dir(), public_base_url())
