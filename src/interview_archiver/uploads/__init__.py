"""Upload adapters for cloud storage, backup hosting and transcripts."""

from .drive import GoogleDriveTranscriptUploader, GoogleDriveUploader
from .google import load_access_token
from .youtube import YouTubeUploader

__all__ = [
    "GoogleDriveTranscriptUploader",
    "GoogleDriveUploader",
    "YouTubeUploader",
    "load_access_token",
]
