# linkedbud/services/storage.py
import logging
import re
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from linkedbud.config import settings
from linkedbud.errors import ConfigurationError

logger = logging.getLogger(__name__)

KIND_FOLDERS = {"image": "images", "document": "docs", "video": "videos"}


class StorageError(Exception):
    pass


def sanitize_filename(filename: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", filename)


def generate_storage_path(user_id: str, post_id: int | str, kind: str, filename: str) -> str:
    return f"posts/{user_id}/{post_id}/{KIND_FOLDERS[kind]}/{sanitize_filename(filename)}"


def generate_feedback_screenshot_path(user_id: str, feedback_id: str, timestamp: int, extension: str) -> str:
    ext = re.sub(r"[^A-Za-z0-9]", "", extension) or "png"
    return f"feedback/{user_id}/{feedback_id}/screenshot_{timestamp}.{ext}"


def extract_file_path_from_url(url: str, bucket: Optional[str] = None) -> Optional[str]:
    """Turn a public/signed object URL back into a bucket path. Plain paths pass through."""
    if not url:
        return None
    if not url.startswith(("http://", "https://")):
        return url
    bucket = bucket or settings.storage_bucket
    path = urlparse(url).path
    m = re.search(rf"/storage/v1/object/(?:public/|sign/|authenticated/)?{re.escape(bucket)}/(.+)$", path)
    if not m:
        return None
    return unquote(m.group(1))


def filename_from_path(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


class StorageClient:
    def __init__(self, bucket: Optional[str] = None, timeout: float = 60.0):
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise ConfigurationError("Supabase storage is not configured")
        self.base = f"{settings.supabase_url}/storage/v1"
        self.bucket = bucket or settings.storage_bucket
        key = settings.supabase_service_role_key
        self.headers = {"Authorization": f"Bearer {key}", "apikey": key}
        self.timeout = httpx.Timeout(timeout, connect=5)

    def _object_url(self, path: str) -> str:
        return f"{self.base}/object/{self.bucket}/{path}"

    def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        headers = {**self.headers, "Content-Type": content_type, "x-upsert": "true"}
        try:
            with httpx.Client(timeout=self.timeout) as c:
                r = c.post(self._object_url(path), headers=headers, content=data)
        except httpx.HTTPError as e:
            logger.error("Storage upload error for %s: %s", path, e)
            raise StorageError(f"Upload failed: {e}") from e
        if r.status_code not in (200, 201):
            logger.error("Storage upload failed for %s: %s %s", path, r.status_code, r.text[:300])
            raise StorageError(f"Upload failed with status {r.status_code}")
        return path

    def download(self, path: str) -> Optional[bytes]:
        try:
            with httpx.Client(timeout=self.timeout) as c:
                r = c.get(self._object_url(path), headers=self.headers)
        except httpx.HTTPError as e:
            logger.warning("Storage download error for %s: %s", path, e)
            return None
        if r.status_code != 200:
            logger.warning("Storage download failed for %s: %s", path, r.status_code)
            return None
        return r.content

    def signed_url(self, path: str, expires_in: int = 3600) -> Optional[str]:
        try:
            with httpx.Client(timeout=self.timeout) as c:
                r = c.post(f"{self.base}/object/sign/{self.bucket}/{path}", headers=self.headers, json={"expiresIn": expires_in})
        except httpx.HTTPError as e:
            logger.warning("Storage sign error for %s: %s", path, e)
            return None
        if r.status_code != 200:
            logger.warning("Storage sign failed for %s: %s", path, r.status_code)
            return None
        signed = r.json().get("signedURL") or r.json().get("signedUrl")
        if not signed:
            return None
        return signed if signed.startswith("http") else f"{self.base}{signed}"

    def delete(self, path: str) -> bool:
        with httpx.Client(timeout=self.timeout) as c:
            r = c.request("DELETE", f"{self.base}/object/{self.bucket}", headers=self.headers, json={"prefixes": [path]})
        if r.status_code != 200:
            logger.warning("Storage delete failed for %s: %s", path, r.status_code)
            return False
        return True
