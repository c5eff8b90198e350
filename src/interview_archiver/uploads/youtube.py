"""Private YouTube uploads of original recordings."""

import logging
import mimetypes
import re
from typing import Optional

import httpx

from .google import GOOGLE_API, GoogleApiUploader

logger = logging.getLogger(__name__)

UPLOAD_URL = f"{GOOGLE_API}/upload/youtube/v3/videos"
MAX_TITLE_LENGTH = 100
CATEGORY_PEOPLE_AND_BLOGS = "22"

_VIDEO_EXT = re.compile(r"\.(mp4|mov|mkv|avi)$", re.IGNORECASE)


def video_title(filename: str) -> str:
    return _VIDEO_EXT.sub("", filename)[:MAX_TITLE_LENGTH]


def video_metadata(filename: str, organization: str) -> dict:
    return {
        "snippet": {
            "title": video_title(filename),
            "description": f"Interview Recording - {organization}",
            "tags": ["interview", organization],
            "categoryId": CATEGORY_PEOPLE_AND_BLOGS,
        },
        "status": {"privacyStatus": "private"},
    }


def watch_link(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class YouTubeUploader(GoogleApiUploader):
    error_prefix = "YouTube upload failed"

    async def _upload(self, client: httpx.AsyncClient, path: str, filename: str,
                      organization: str, folder_id: Optional[str]) -> str:
        mime_type = mimetypes.guess_type(path)[0] or "video/*"
        resource = await self.resumable_upload(
            client,
            UPLOAD_URL,
            {"part": "snippet,status"},
            video_metadata(filename, organization),
            path,
            mime_type,
        )
        link = watch_link(resource["id"])
        logger.info("YouTube upload complete: %s", link)
        return link
