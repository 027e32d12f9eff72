"""Storage backends that receive finished slides.

The batch pipeline only depends on the ``Uploader`` protocol. Two backends
are provided:

* ``DriveUploader`` posts each PNG to the Google Drive v3 multipart upload
  endpoint with a caller-supplied OAuth access token. Obtaining or refreshing
  the token is the caller's business.
* ``LocalUploader`` writes files under a configurable base directory and
  returns relative URLs rooted at ``/image_library/``, which ``main`` serves
  as static files. Handy for development.

Environment variables:
    STORAGE_BACKEND: 'drive' (default) or 'local'.
    IMAGE_LIBRARY_DIR: Base directory for local storage (default
        './image_library').
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import uuid
from typing import Optional, Protocol

import httpx

from .errors import UploadError
from .models import UploadResult

STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "drive").lower()
IMAGE_LIBRARY_DIR: str = os.getenv("IMAGE_LIBRARY_DIR", "./image_library")

DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_FIELDS = "id,webViewLink,webContentLink"
UPLOAD_TIMEOUT = 30.0

DEFAULT_LOCAL_FOLDER = "carousel"
_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9._-]+$")


class Uploader(Protocol):
    async def upload(
        self,
        image: bytes,
        filename: str,
        credential: Optional[str],
        folder_id: Optional[str],
    ) -> UploadResult:
        """Store ``image`` and describe where it went. Raises ``UploadError``."""
        ...


def _png_name(filename: str) -> str:
    return filename if filename.lower().endswith(".png") else f"{filename}.png"


class DriveUploader:
    """Upload slides to Google Drive with a bearer token."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        endpoint: str = DRIVE_UPLOAD_URL,
    ) -> None:
        self._client = client
        self._endpoint = endpoint

    @staticmethod
    def _multipart_body(image: bytes, name: str, folder_id: Optional[str]) -> tuple[bytes, str]:
        boundary = uuid.uuid4().hex
        metadata = {"name": name, "parents": [folder_id] if folder_id else []}
        head = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}\r\n"
            f"--{boundary}\r\n"
            "Content-Type: image/png\r\n\r\n"
        ).encode("utf-8")
        tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
        return head + image + tail, f"multipart/related; boundary={boundary}"

    async def _post(self, client: httpx.AsyncClient, body: bytes, content_type: str, token: str) -> httpx.Response:
        return await client.post(
            self._endpoint,
            params={"uploadType": "multipart", "fields": DRIVE_FIELDS},
            content=body,
            headers={"Authorization": f"Bearer {token}", "Content-Type": content_type},
            timeout=UPLOAD_TIMEOUT,
        )

    async def upload(
        self,
        image: bytes,
        filename: str,
        credential: Optional[str],
        folder_id: Optional[str],
    ) -> UploadResult:
        if not credential:
            raise UploadError("Upload credential is required for Google Drive")
        body, content_type = self._multipart_body(image, _png_name(filename), folder_id)
        try:
            if self._client is not None:
                response = await self._post(self._client, body, content_type, credential)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, body, content_type, credential)
        except httpx.HTTPError as exc:
            raise UploadError(f"Drive upload failed: {exc}") from exc

        if response.status_code >= 400:
            raise UploadError(f"Drive upload failed: HTTP {response.status_code} {response.text[:200]}")
        try:
            data = response.json()
        except ValueError as exc:
            raise UploadError("Drive upload returned invalid JSON") from exc
        return UploadResult(
            success=True,
            filename=filename,
            remote_id=data.get("id"),
            view_link=data.get("webViewLink"),
            download_link=data.get("webContentLink"),
        )


def _ensure_dir(path: str) -> None:
    """Create parent directories for the given path if they do not exist."""
    os.makedirs(path, exist_ok=True)


def save_bytes(path: str, data: bytes, base_dir: Optional[str] = None) -> str:
    """Write ``data`` under the image library and return its public URL.

    Args:
        path: Relative path within the image library, e.g. 'carousel/slide-1.png'.
        data: Raw byte content to write.
        base_dir: Library root; defaults to ``IMAGE_LIBRARY_DIR``.

    Returns:
        A URL string rooted at ``/image_library/``.
    """
    dest_path = os.path.join(base_dir or IMAGE_LIBRARY_DIR, path)
    _ensure_dir(os.path.dirname(dest_path))
    with open(dest_path, "wb") as f:
        f.write(data)
    return f"/image_library/{path}".replace("\\", "/")


class LocalUploader:
    """Write slides to the local image library."""

    def __init__(self, base_dir: Optional[str] = None) -> None:
        self.base_dir = base_dir or IMAGE_LIBRARY_DIR

    async def upload(
        self,
        image: bytes,
        filename: str,
        credential: Optional[str],
        folder_id: Optional[str],
    ) -> UploadResult:
        folder = folder_id or DEFAULT_LOCAL_FOLDER
        name = _png_name(filename)
        for segment in (folder, name):
            if not _SAFE_SEGMENT.match(segment) or segment in (".", ".."):
                raise UploadError(f"Unsafe path segment: {segment!r}")
        path = f"{folder}/{name}"
        try:
            url = await asyncio.to_thread(save_bytes, path, image, self.base_dir)
        except OSError as exc:
            raise UploadError(f"Could not write {path}: {exc}") from exc
        return UploadResult(
            success=True,
            filename=filename,
            remote_id=path,
            view_link=url,
            download_link=url,
        )


def get_uploader(backend: Optional[str] = None) -> Uploader:
    """Return the uploader for ``backend`` (defaults to ``STORAGE_BACKEND``)."""
    name = (backend or STORAGE_BACKEND).lower()
    if name == "drive":
        return DriveUploader()
    if name == "local":
        return LocalUploader()
    raise ValueError(f"Unknown storage backend {name!r}; expected 'drive' or 'local'")
