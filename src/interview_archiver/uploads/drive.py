"""Google Drive uploads (compressed recordings and transcripts)."""

import logging
import mimetypes
from typing import Optional

import httpx

from .google import GOOGLE_API, GoogleApiUploader, check_response

logger = logging.getLogger(__name__)

FOLDER_MIME = "application/vnd.google-apps.folder"
BASE_FOLDER_NAME = "Interview_Recordings"

FILES_URL = f"{GOOGLE_API}/drive/v3/files"
UPLOAD_URL = f"{GOOGLE_API}/upload/drive/v3/files"


def drive_link(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


def guess_mime_type(filename: str) -> str:
    if filename.lower().endswith(".txt"):
        return "text/plain"
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "video/mp4"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveUploader(GoogleApiUploader):
    """Uploads into a fixed folder, or ``Interview_Recordings/<company>``.

    Uploaded recordings stay private to the owning account.
    """

    error_prefix = "Upload failed"

    async def find_or_create_folder(self, client: httpx.AsyncClient, name: str,
                                    parent_id: str = "root") -> str:
        query = (
            f"name='{_quote(name)}' and '{parent_id}' in parents "
            f"and mimeType='{FOLDER_MIME}' and trashed=false"
        )
        response = await client.get(FILES_URL, params={"q": query, "fields": "files(id, name)"})
        check_response(response)
        files = response.json().get("files", [])
        if files:
            return files[0]["id"]

        response = await client.post(
            FILES_URL,
            params={"fields": "id"},
            json={"name": name, "mimeType": FOLDER_MIME, "parents": [parent_id]},
        )
        check_response(response)
        folder_id = response.json()["id"]
        logger.info("Created Drive folder %s (%s)", name, folder_id)
        return folder_id

    async def upload_file(self, client: httpx.AsyncClient, path: str, filename: str,
                          folder_id: str) -> str:
        resource = await self.resumable_upload(
            client,
            UPLOAD_URL,
            {"fields": "id"},
            {"name": filename, "parents": [folder_id]},
            path,
            guess_mime_type(filename),
        )
        return resource["id"]

    async def _upload(self, client: httpx.AsyncClient, path: str, filename: str,
                      organization: str, folder_id: Optional[str]) -> str:
        if not folder_id:
            base_id = await self.find_or_create_folder(client, BASE_FOLDER_NAME)
            folder_id = await self.find_or_create_folder(client, organization or "Unknown", base_id)
        file_id = await self.upload_file(client, path, filename, folder_id)
        link = drive_link(file_id)
        logger.info("Drive upload complete: %s", link)
        return link


class GoogleDriveTranscriptUploader(GoogleDriveUploader):
    """Uploads transcripts to the given folder (or My Drive root), readable by anyone with the link."""

    error_prefix = "Transcript upload failed"

    async def make_public(self, client: httpx.AsyncClient, file_id: str) -> None:
        response = await client.post(
            f"{FILES_URL}/{file_id}/permissions",
            json={"role": "reader", "type": "anyone"},
        )
        check_response(response)

    async def _upload(self, client: httpx.AsyncClient, path: str, filename: str,
                      organization: str, folder_id: Optional[str]) -> str:
        file_id = await self.upload_file(client, path, filename, folder_id or "root")
        await self.make_public(client, file_id)
        link = drive_link(file_id)
        logger.info("Transcript upload complete: %s", link)
        return link
