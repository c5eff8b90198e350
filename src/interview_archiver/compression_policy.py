"""Compression policy: decide whether and how to re-encode a recording.

The decision is a pure lookup over file size and stream metadata. Size tiers
(in MB, 1 MB = 1024 * 1024 bytes):

    < 100            never compress
    100 - 400        compress only when the video bitrate is well above optimal
    400 - 800        balanced (medium preset)
    800 - 1500       quality-focused (slow preset, rate capped for HD/4K)
    1500 - 2500      aggressive (two-pass)
    >= 2500          maximum (two-pass)

Two overrides apply after the tier lookup: low-bitrate audio is stream-copied,
and modern codecs (h264, hevc) already near the optimal bitrate are left alone.
"""

from typing import TYPE_CHECKING, Literal, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .media import MediaInfo

PIXELS_4K = 3840 * 2160
PIXELS_1080P = 1920 * 1080
PIXELS_720P = 1280 * 720

MODERN_CODECS = ("h264", "hevc")
LOW_AUDIO_BITRATE = 96000

Preset = Literal[
    "ultrafast", "superfast", "veryfast", "faster", "fast", "medium", "slow", "slower", "veryslow"
]


class CompressionStrategy(BaseModel):
    """Encoder settings chosen for one file."""

    should_compress: bool = Field(default=True, description="False means copy bytes verbatim")
    crf: int = Field(default=23, ge=0, le=51, description="libx264 Constant Rate Factor")
    preset: Preset = Field(default="medium", description="libx264 speed preset")
    audio_bitrate: str = Field(default="128k", description="AAC bitrate, or 'copy'")
    target_reduction: int = Field(default=30, ge=0, le=100, description="Expected size reduction (%)")
    two_pass: bool = Field(default=False, description="Tier recommends two-pass encoding")
    maxrate: Optional[str] = Field(default=None, description="Peak video bitrate cap")
    bufsize: Optional[str] = Field(default=None, description="Rate-control buffer size")
    reason: str = Field(default="", description="Human-readable rationale")


def calculate_optimal_bitrate(width: int, height: int, fps: float) -> float:
    """Target video bitrate (bits/s) for a resolution, scaled up for >30fps."""
    pixels = (width or 0) * (height or 0)
    if pixels >= PIXELS_4K:
        bitrate = 20_000_000.0
    elif pixels >= PIXELS_1080P:
        bitrate = 8_000_000.0
    elif pixels >= PIXELS_720P:
        bitrate = 5_000_000.0
    else:
        bitrate = 2_500_000.0

    if fps and fps > 30:
        bitrate *= fps / 30
    return bitrate


def encoding_efficiency(info: "MediaInfo") -> float:
    """Ratio of the current video bitrate to the optimal one (1.0 if unknown)."""
    if not info.video_bitrate:
        return 1.0
    return info.video_bitrate / calculate_optimal_bitrate(info.width, info.height, info.fps)


def decide(size_mb: float, info: "MediaInfo") -> CompressionStrategy:
    """Pick a compression strategy for a file of ``size_mb`` megabytes."""
    if info.codec is None:
        return CompressionStrategy(should_compress=False, reason="No video stream")

    pixels = (info.width or 0) * (info.height or 0)
    is_high_res = pixels >= PIXELS_1080P
    is_4k = pixels >= PIXELS_4K
    efficiency = encoding_efficiency(info)

    s = CompressionStrategy()

    if size_mb < 100:
        s.should_compress = False
        s.reason = "File too small, compression not beneficial"
    elif size_mb < 400:
        if efficiency > 1.5:
            s.crf = 21
            s.preset = "slow"
            s.target_reduction = 25
            s.reason = "Small file with optimization potential"
        else:
            s.should_compress = False
            s.reason = "Small file already efficiently encoded"
    elif size_mb < 800:
        s.crf = 22 if is_high_res else 23
        s.preset = "medium"
        s.target_reduction = 20
        s.audio_bitrate = "192k"
        s.reason = "Medium file - balanced compression"
    elif size_mb < 1500:
        s.crf = 21 if is_4k else 22
        s.preset = "slow"
        s.target_reduction = 25
        s.audio_bitrate = "192k"
        s.two_pass = is_4k
        s.reason = "Large file - quality-focused compression"
        _cap_rate(s, is_4k, is_high_res, ("20M", "40M"), ("8M", "16M"))
    elif size_mb < 2500:
        s.crf = 22 if is_4k else 23
        s.preset = "slow"
        s.target_reduction = 30
        s.audio_bitrate = "192k"
        s.two_pass = True
        s.reason = "Very large file - aggressive but quality-preserving compression"
        _cap_rate(s, is_4k, is_high_res, ("18M", "36M"), ("6M", "12M"))
    else:
        s.crf = 23 if is_4k else 24
        s.preset = "slow"
        s.target_reduction = 35
        s.audio_bitrate = "192k"
        s.two_pass = True
        s.reason = "Extremely large file - maximum compression with quality preservation"
        _cap_rate(s, is_4k, is_high_res, ("16M", "32M"), ("5M", "10M"))

    if info.audio_bitrate and info.audio_bitrate < LOW_AUDIO_BITRATE:
        s.audio_bitrate = "copy"

    if info.codec in MODERN_CODECS and efficiency < 1.2:
        s.should_compress = False
        s.reason = "Already efficiently encoded with modern codec"

    return s


def _cap_rate(s: CompressionStrategy, is_4k: bool, is_high_res: bool, caps_4k, caps_hd) -> None:
    if is_4k:
        s.maxrate, s.bufsize = caps_4k
    elif is_high_res:
        s.maxrate, s.bufsize = caps_hd


def decide_for_file(size_bytes: int, info: "MediaInfo") -> CompressionStrategy:
    return decide(size_bytes / 1024 / 1024, info)
