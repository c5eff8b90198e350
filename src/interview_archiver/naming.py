"""Output file naming for archived recordings."""

import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Union

MAX_COMPONENT_LENGTH = 200

AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".m4a", ".aac", ".flac", ".ogg"})

_FORBIDDEN = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")
_UNDERSCORES = re.compile(r"_+")

DateLike = Union[str, date, datetime]


def sanitize_filename(value: str) -> str:
    """Make a single name component safe for every target filesystem.

    Order matters: forbidden characters go first so that e.g. ``a / b``
    collapses to ``a_b`` rather than ``a__b``.
    """
    value = _FORBIDDEN.sub("", value)
    value = _WHITESPACE.sub("_", value)
    value = value.replace("'", "")
    value = value.replace("&", "and")
    value = _UNDERSCORES.sub("_", value)
    return value[:MAX_COMPONENT_LENGTH]


def format_interview_date(value: DateLike) -> str:
    """Render a date as ``YYYY-MM-DD``.

    Strings are cut at the time separator and otherwise passed through.
    Aware datetimes are converted to UTC before the date is taken.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text.split("T")[0].split(" ")[0]


def _stem(candidate_name: str, company: str, interview_type: str, interview_date: DateLike) -> str:
    parts = [
        sanitize_filename(candidate_name),
        sanitize_filename(company),
        sanitize_filename(interview_type),
        format_interview_date(interview_date),
    ]
    return "_".join(parts)


def generate_file_name(
    candidate_name: str,
    company: str,
    interview_type: str,
    interview_date: DateLike,
    extension: str = ".mp4",
) -> str:
    """Build ``{name}_{company}_{type}_{date}{ext}``. Pure and deterministic."""
    return f"{_stem(candidate_name, company, interview_type, interview_date)}{extension}"


def generate_transcript_file_name(
    candidate_name: str,
    company: str,
    interview_type: str,
    interview_date: DateLike,
) -> str:
    return generate_file_name(candidate_name, company, interview_type, interview_date, ".txt")


def is_audio_only(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in AUDIO_EXTENSIONS
