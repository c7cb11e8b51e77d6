"""
Google Drive v3 client: the four calls the editor needs.

Every failure (network error, non-2xx answer, missing token) surfaces as a
TransportError; nothing here retries.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional, Union

import requests

from .errors import TransportError
from .model import RemoteFile

log = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://www.googleapis.com/drive/v3"
DEFAULT_UPLOAD_BASE = "https://www.googleapis.com/upload/drive/v3"
DOWNLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB chunks
METADATA_FIELDS = "id,name,size,mimeType,videoMediaMetadata(durationMillis)"


class DriveClient:
    def __init__(
        self,
        access_token: Optional[str],
        api_base: str = DEFAULT_API_BASE,
        upload_base: str = DEFAULT_UPLOAD_BASE,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.access_token = str(access_token or "").strip()
        self.api_base = api_base.rstrip("/")
        self.upload_base = upload_base.rstrip("/")
        self.timeout = float(timeout)
        self.http = session or requests.Session()

    @property
    def is_authorized(self) -> bool:
        return bool(self.access_token)

    def _headers(self) -> dict:
        if not self.is_authorized:
            raise TransportError("Not authenticated", status_code=401)
        return {"Authorization": f"Bearer {self.access_token}"}

    def _request(
        self, method: str, url: str, what: str, extra_headers: Optional[dict] = None, **kwargs
    ) -> requests.Response:
        headers = {**self._headers(), **(extra_headers or {})}
        try:
            resp = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            log.warning("%s failed: %s", what, e)
            raise TransportError(f"{what} failed: {e}") from e
        if not resp.ok:
            status = resp.status_code
            if status == 404:
                msg = f"{what} failed: file not found"
            else:
                msg = f"{what} failed: HTTP {status} {resp.text[:200]}".rstrip()
            resp.close()
            raise TransportError(msg, status_code=status)
        return resp

    def get_metadata(self, file_id: str) -> RemoteFile:
        resp = self._request(
            "GET",
            f"{self.api_base}/files/{file_id}",
            "Fetch metadata",
            params={"fields": METADATA_FIELDS},
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(f"Fetch metadata failed: bad JSON ({e})") from e
        return RemoteFile.from_api(data if isinstance(data, dict) else {})

    def download(self, file_id: str) -> Iterator[bytes]:
        """Stream the file content in chunks."""
        resp = self._request(
            "GET",
            f"{self.api_base}/files/{file_id}",
            "Download",
            params={"alt": "media"},
            stream=True,
        )

        def _chunks() -> Iterator[bytes]:
            try:
                for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        yield chunk
            except requests.exceptions.RequestException as e:
                raise TransportError(f"Download failed: {e}") from e
            finally:
                resp.close()

        return _chunks()

    def download_to(self, file_id: str, dest_path: Union[str, Path]) -> int:
        """Download into `dest_path`; returns the byte count. Partial files are removed."""
        dest = Path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        try:
            with open(dest, "wb") as f:
                for chunk in self.download(file_id):
                    f.write(chunk)
                    size += len(chunk)
        except (TransportError, OSError) as e:
            dest.unlink(missing_ok=True)
            if isinstance(e, TransportError):
                raise
            raise TransportError(f"Download failed: {e}") from e
        return size

    def upload(
        self,
        content: Union[bytes, str, Path],
        name: str,
        folder_id: Optional[str] = None,
        mime_type: str = "video/mp4",
    ) -> str:
        """
        Resumable upload in two requests: open a session, then PUT the body.

        A path is streamed from an open file handle, never read into memory.
        Returns the new file id.
        """
        metadata: dict = {"name": name, "mimeType": mime_type}
        if folder_id:
            metadata["parents"] = [folder_id]

        if isinstance(content, (str, Path)):
            path = Path(content)
            try:
                size = path.stat().st_size
            except OSError as e:
                raise TransportError(f"Upload failed: {e}") from e
        else:
            path = None
            content = bytes(content)
            size = len(content)

        start = self._request(
            "POST",
            f"{self.upload_base}/files",
            "Upload",
            params={"uploadType": "resumable", "fields": "id"},
            json=metadata,
            extra_headers={"X-Upload-Content-Type": mime_type, "X-Upload-Content-Length": str(size)},
        )
        session_url = start.headers.get("Location") or ""
        start.close()
        if not session_url:
            raise TransportError("Upload failed: no upload session URL in response")

        body_headers = {"Content-Type": mime_type, "Content-Length": str(size)}
        if path is not None:
            try:
                with open(path, "rb") as f:
                    resp = self._request("PUT", session_url, "Upload", data=f, extra_headers=body_headers)
            except OSError as e:
                raise TransportError(f"Upload failed: {e}") from e
        else:
            resp = self._request("PUT", session_url, "Upload", data=content, extra_headers=body_headers)

        try:
            file_id = str((resp.json() or {}).get("id") or "")
        except ValueError as e:
            raise TransportError(f"Upload failed: bad JSON ({e})") from e
        if not file_id:
            raise TransportError("Upload failed: no file id in response")
        log.info("uploaded %s (%d bytes) as %s", name, size, file_id)
        return file_id

    def delete(self, file_id: str) -> None:
        resp = self._request("DELETE", f"{self.api_base}/files/{file_id}", "Delete")
        resp.close()
