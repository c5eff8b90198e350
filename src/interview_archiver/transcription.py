"""Speech-to-text via whisper.cpp.

Flow: ffmpeg extracts speech-filtered 16 kHz mono WAV next to the target
transcript, whisper.cpp writes ``<base>.txt``, the WAV is removed.
"""

import asyncio
import logging
import os
import re
import shutil
import subprocess
import threading
from collections import deque
from typing import Callable, List, Optional

from .errors import TranscriptionError
from .ffmpeg_runner import FfmpegRunner, kill_process_tree
from .queue.backends import ProgressCallback, Transcriber, TranscriptResult

logger = logging.getLogger(__name__)

TEMP_WAV_NAME = "temp_audio.wav"
MIN_WAV_BYTES = 1000

_PROGRESS_PATTERNS = [
    re.compile(r"\[(\d+)%\]"),
    re.compile(r"progress\s*=\s*(\d+)%"),
]


def parse_whisper_progress(line: str) -> Optional[int]:
    """Extract a percentage from a whisper.cpp stderr line."""
    for pattern in _PROGRESS_PATTERNS:
        match = pattern.search(line)
        if match:
            return int(match.group(1))
    return None


def transcript_base(out_path: str) -> str:
    """whisper.cpp appends ``.txt`` itself, so ``-of`` takes the bare base."""
    return out_path[:-4] if out_path.endswith(".txt") else out_path


class WhisperTranscriber(Transcriber):
    def __init__(
        self,
        whisper_path: Optional[str],
        model_path: Optional[str],
        language: str = "en",
        threads: int = 4,
        runner_factory: Callable[..., FfmpegRunner] = FfmpegRunner,
        timeout_s: int = 4 * 60 * 60,
    ):
        self.whisper_path = whisper_path
        self.model_path = model_path
        self.language = language
        self.threads = threads
        self.runner_factory = runner_factory
        self.timeout_s = timeout_s

    def is_configured(self) -> bool:
        return bool(
            self.whisper_path
            and self.model_path
            and os.path.exists(self.whisper_path)
            and os.path.exists(self.model_path)
        )

    def build_command(self, wav_path: str, out_base: str) -> List[str]:
        return [
            self.whisper_path,
            "-m", self.model_path,
            "-f", wav_path,
            "-of", out_base,
            "-l", self.language,
            "--output-txt",
            "-t", str(self.threads),
            "--no-timestamps",
        ]

    async def transcribe(
        self,
        video_path: str,
        out_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscriptResult:
        if not self.is_configured():
            raise TranscriptionError("Whisper not configured")

        output_dir = os.path.dirname(os.path.abspath(out_path))
        os.makedirs(output_dir, exist_ok=True)
        wav_path = os.path.join(output_dir, TEMP_WAV_NAME)
        loop = asyncio.get_running_loop()

        def forward(percent: int) -> None:
            if on_progress is not None:
                loop.call_soon_threadsafe(on_progress, percent)

        try:
            await asyncio.to_thread(self._extract_audio, video_path, wav_path)
            out_base = transcript_base(out_path)
            await asyncio.to_thread(self._run_whisper, wav_path, out_base, output_dir, forward)
            return await asyncio.to_thread(self._collect_transcript, out_base + ".txt", output_dir)
        finally:
            if os.path.exists(wav_path):
                os.unlink(wav_path)

    def _extract_audio(self, video_path: str, wav_path: str) -> None:
        result = self.runner_factory().extract_audio(video_path, wav_path)
        if not result.success:
            raise TranscriptionError(f"FFmpeg conversion failed with code {result.returncode}")
        size = os.path.getsize(wav_path) if os.path.exists(wav_path) else 0
        if size < MIN_WAV_BYTES:
            raise TranscriptionError("WAV file too small - audio extraction may have failed")
        logger.info("Audio extracted for transcription (%.2f MB)", size / 1024 / 1024)

    def _run_whisper(self, wav_path: str, out_base: str, cwd: str,
                     on_progress: Callable[[int], None]) -> None:
        cmd = self.build_command(wav_path, out_base)
        logger.info("Running whisper: %s", " ".join(cmd))
        tail: deque = deque(maxlen=50)
        try:
            process = subprocess.Popen(
                cmd,
                cwd=cwd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise TranscriptionError(f"Failed to start Whisper: {e}")

        # stderr is drained on its own thread so the wait below can time out
        reader = threading.Thread(
            target=self._read_stderr, args=(process.stderr, tail, on_progress), daemon=True
        )
        reader.start()
        try:
            returncode = process.wait(timeout=self.timeout_s)
        except subprocess.TimeoutExpired:
            logger.error("Whisper timed out after %ss, killing process tree", self.timeout_s)
            kill_process_tree(process.pid)
            raise TranscriptionError(f"Whisper timed out after {self.timeout_s}s")
        finally:
            reader.join(timeout=2)

        if returncode != 0:
            stderr = "".join(tail)
            raise TranscriptionError(f"Whisper exited with code {returncode}\n{stderr[-500:]}")

    @staticmethod
    def _read_stderr(stream, tail: deque, on_progress: Callable[[int], None]) -> None:
        try:
            for line in stream:
                tail.append(line)
                percent = parse_whisper_progress(line)
                if percent is not None:
                    on_progress(percent)
        except Exception as e:
            logger.error("Whisper output monitoring error: %s", e)

    def _collect_transcript(self, expected_path: str, output_dir: str) -> TranscriptResult:
        name = os.path.basename(expected_path)
        candidates = [
            expected_path,
            os.path.join(output_dir, name),
            os.path.join(os.getcwd(), name),
        ]
        found = next((p for p in candidates if os.path.exists(p)), None)
        if found is None:
            raise TranscriptionError(f"Transcript file not created at: {expected_path}")

        if os.path.abspath(found) != os.path.abspath(expected_path):
            shutil.move(found, expected_path)
            logger.info("Moved transcript to %s", expected_path)

        with open(expected_path, "r", encoding="utf-8") as f:
            text = f.read()
        logger.info("Transcript ready: %s (%d chars)", expected_path, len(text))
        return TranscriptResult(transcript_path=expected_path, text=text)
