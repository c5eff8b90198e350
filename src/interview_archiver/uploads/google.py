"""Shared plumbing for Google API uploads (Drive, YouTube).

Both services accept the same resumable-upload protocol:

1. POST metadata to the upload endpoint with ``uploadType=resumable``;
   the session URL comes back in the ``Location`` header.
2. PUT the file bytes to the session URL; the response body is the resource.

Access tokens are supplied ready-made (inline or from a JSON token file);
obtaining and refreshing them is handled outside this package.
"""

import asyncio
import json
import logging
import os
from abc import abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..errors import ConfigurationError, ErrorKind, UploadError, kind_for_status
from ..queue.backends import Uploader

logger = logging.getLogger(__name__)

GOOGLE_API = "https://www.googleapis.com"
CHUNK_SIZE = 8 * 1024 * 1024


def load_access_token(access_token: Optional[str] = None, token_file: Optional[str] = None) -> str:
    """Return an OAuth access token from config or a token JSON file.

    The token file may be a stored OAuth response (``access_token``) or an
    authorized-user file (``token``).
    """
    if access_token:
        return access_token
    if token_file:
        try:
            with open(token_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read Google token file {token_file}: {e}")
        token = data.get("access_token") or data.get("token")
        if token:
            return token
        raise ConfigurationError(f"No access token in {token_file}")
    raise ConfigurationError("Google access token not configured")


async def file_chunks(path: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    with open(path, "rb") as f:
        while True:
            chunk = await asyncio.to_thread(f.read, chunk_size)
            if not chunk:
                break
            yield chunk


class GoogleApiUploader(Uploader):
    """Base class: authenticated client + resumable upload."""

    error_prefix = "Upload failed"

    def __init__(
        self,
        access_token: Optional[str] = None,
        token_file: Optional[str] = None,
        timeout_s: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.token_file = token_file
        self.timeout_s = timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        token = load_access_token(self.access_token, self.token_file)
        return httpx.AsyncClient(
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.timeout_s,
            transport=self._transport,
        )

    async def upload(self, path: str, filename: str, organization: str,
                     folder_id: Optional[str] = None) -> str:
        try:
            async with self._client() as client:
                return await self._upload(client, path, filename, organization, folder_id)
        except UploadError as e:
            raise UploadError(f"{self.error_prefix}: {e}", e.kind)
        except httpx.TransportError as e:
            raise UploadError(f"{self.error_prefix}: {e}", ErrorKind.TRANSIENT)
        except ConfigurationError as e:
            raise UploadError(f"{self.error_prefix}: {e}", ErrorKind.FATAL)
        except OSError as e:
            raise UploadError(f"{self.error_prefix}: {e}", ErrorKind.FATAL)

    @abstractmethod
    async def _upload(self, client: httpx.AsyncClient, path: str, filename: str,
                      organization: str, folder_id: Optional[str]) -> str:
        """Upload and return the link."""

    async def resumable_upload(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Dict[str, str],
        metadata: Dict[str, Any],
        path: str,
        mime_type: str,
    ) -> Dict[str, Any]:
        """Run the two-step resumable upload and return the created resource."""
        size = os.path.getsize(path)
        response = await client.post(
            url,
            params={**params, "uploadType": "resumable"},
            json=metadata,
            headers={
                "X-Upload-Content-Type": mime_type,
                "X-Upload-Content-Length": str(size),
            },
        )
        check_response(response)
        session_url = response.headers.get("Location")
        if not session_url:
            raise UploadError("No upload session URL returned", ErrorKind.TRANSIENT)

        logger.info("Uploading %s (%.2f MB)", os.path.basename(path), size / 1024 / 1024)
        response = await client.put(
            session_url,
            content=file_chunks(path),
            headers={"Content-Type": mime_type, "Content-Length": str(size)},
        )
        check_response(response)
        return response.json()


def check_response(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        body = response.json()
        error = body.get("error") if isinstance(body, dict) else None
        message = error.get("message") if isinstance(error, dict) else error
    except ValueError:
        message = None
    raise UploadError(
        message or f"HTTP {response.status_code}",
        kind_for_status(response.status_code),
    )
