"""ffprobe-based media inspection."""

import asyncio
import json
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import imageio_ffmpeg

from .errors import MediaProbeError
from .queue.backends import MediaInspector

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0


@dataclass
class MediaInfo:
    """Stream metadata used by the compression policy.

    Audio-only inputs have ``codec=None`` and zero dimensions.
    """

    width: int = 0
    height: int = 0
    fps: float = DEFAULT_FPS
    codec: Optional[str] = None
    bitrate: int = 0                      # container bitrate, bits/s
    video_bitrate: Optional[int] = None   # bits/s
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[int] = None   # bits/s
    audio_channels: Optional[int] = None
    duration: float = 0.0                 # seconds
    size: int = 0                         # bytes

    @property
    def has_video(self) -> bool:
        return self.codec is not None


def get_ffmpeg_cmd() -> str:
    return imageio_ffmpeg.get_ffmpeg_exe()


def get_ffprobe_cmd() -> str:
    """Locate ffprobe: PATH first, then next to the bundled ffmpeg."""
    found = shutil.which("ffprobe")
    if found:
        return found
    return get_ffmpeg_cmd().replace("ffmpeg", "ffprobe")


def check_ffmpeg() -> bool:
    """Verify ffmpeg is installed."""
    try:
        subprocess.run(
            [get_ffmpeg_cmd(), "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
        return True
    except (FileNotFoundError, subprocess.CalledProcessError, OSError, RuntimeError):
        return False


def fraction_to_float(rate_str: Optional[str]) -> float:
    """Convert '60/1' or '30000/1001' to float (0.0 when unparseable)."""
    if not rate_str:
        return 0.0
    try:
        if "/" not in rate_str:
            return float(rate_str)
        num, denom = rate_str.split("/")
        return float(num) / float(denom) if float(denom) != 0 else 0.0
    except ValueError:
        return 0.0


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "", "N/A") else None
    except (TypeError, ValueError):
        return None


def parse_probe_output(data: dict) -> MediaInfo:
    """Build MediaInfo from ffprobe ``-show_format -show_streams`` JSON."""
    video_stream = None
    audio_stream = None
    for stream in data.get("streams", []):
        if stream.get("codec_type") == "video" and video_stream is None:
            video_stream = stream
        elif stream.get("codec_type") == "audio" and audio_stream is None:
            audio_stream = stream

    format_info = data.get("format", {})
    info = MediaInfo(
        duration=float(format_info.get("duration") or 0.0),
        bitrate=_int_or_none(format_info.get("bit_rate")) or 0,
        size=_int_or_none(format_info.get("size")) or 0,
    )

    if video_stream:
        info.codec = video_stream.get("codec_name")
        info.width = int(video_stream.get("width") or 0)
        info.height = int(video_stream.get("height") or 0)
        info.fps = fraction_to_float(video_stream.get("r_frame_rate")) or DEFAULT_FPS
        info.video_bitrate = _int_or_none(video_stream.get("bit_rate"))

    if audio_stream:
        info.audio_codec = audio_stream.get("codec_name")
        info.audio_bitrate = _int_or_none(audio_stream.get("bit_rate"))
        info.audio_channels = _int_or_none(audio_stream.get("channels"))

    return info


def probe_media(path: str, timeout_s: int = 30) -> MediaInfo:
    """Run ffprobe on ``path``.

    Raises:
        MediaProbeError: If ffprobe fails, times out or emits invalid JSON.
    """
    cmd = [
        get_ffprobe_cmd(),
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, check=True, text=True, timeout=timeout_s)
        data = json.loads(result.stdout)
    except subprocess.CalledProcessError as e:
        raise MediaProbeError(f"Failed to analyze video: {e.stderr or e}")
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to analyze video: invalid ffprobe output ({e})")
    except subprocess.TimeoutExpired:
        raise MediaProbeError(f"Failed to analyze video: ffprobe timed out after {timeout_s}s")
    except OSError as e:
        raise MediaProbeError(f"Failed to analyze video: {e}")

    info = parse_probe_output(data)
    if not info.size:
        info.size = Path(path).stat().st_size
    return info


class FfprobeInspector(MediaInspector):
    """MediaInspector backed by ffprobe, run off the event loop."""

    def __init__(self, timeout_s: int = 30):
        self.timeout_s = timeout_s

    async def analyze(self, path: str) -> MediaInfo:
        info = await asyncio.to_thread(probe_media, path, self.timeout_s)
        logger.debug(
            "Probed %s: %sx%s@%.2f codec=%s size=%d",
            path, info.width, info.height, info.fps, info.codec, info.size,
        )
        return info
