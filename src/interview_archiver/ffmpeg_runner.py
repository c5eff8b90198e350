"""FFmpeg runner with process isolation, timeout enforcement, and progress monitoring.

Runs the two ffmpeg jobs the archiver needs: re-encoding a recording according
to a compression strategy, and extracting speech-optimised mono WAV audio for
transcription.

Key Features:
- Process isolation with subprocess.Popen
- Global timeout + stall (no-progress) timeout
- Real-time progress parsing from ``-progress`` output on stderr
- Process tree cleanup via psutil
- Error classification (permanent vs transient)
- Artifact preservation on failure
"""

import logging
import os
import re
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

import imageio_ffmpeg
import psutil

from .compression_policy import CompressionStrategy

logger = logging.getLogger(__name__)

# Speech clean-up: normalise loudness, cut rumble and hiss, light denoise.
SPEECH_AUDIO_FILTERS = ",".join([
    "loudnorm=I=-16:TP=-1.5:LRA=11",
    "highpass=f=80",
    "lowpass=f=8000",
    "afftdn=nf=-25",
])
VIDEO_FILTERS = "hqdn3d=1.5:1.5:6:6,unsharp=3:3:0.5:3:3:0.0"
ENCODE_AUDIO_BITRATE = "192k"
ENCODE_SAMPLE_RATE = "44100"

STDERR_TAIL_LINES = 200


class FfmpegErrorType(Enum):
    """FFmpeg error classification for retry logic."""
    PERMANENT = "permanent"     # File not found, invalid format, codec error
    TRANSIENT = "transient"     # I/O stall, resource exhaustion
    TIMEOUT = "timeout"         # Global or no-progress timeout
    PROCESS_KILLED = "killed"   # Terminated from outside


@dataclass
class FfmpegProgress:
    """Real-time FFmpeg progress metrics."""
    current_time_s: float = 0.0      # Current output position in seconds
    total_duration_s: float = 0.0    # Input duration (if known)
    fps: float = 0.0
    bitrate_kbps: float = 0.0
    speed: float = 0.0               # Processing speed multiplier (e.g., 2.5x)
    frame: int = 0
    last_update: float = 0.0         # time.time() of last parsed update

    @property
    def percent(self) -> float:
        if self.total_duration_s <= 0:
            return 0.0
        return min(100.0, self.current_time_s / self.total_duration_s * 100)


@dataclass
class FfmpegResult:
    """Result of FFmpeg execution."""
    success: bool
    returncode: int
    stderr: str
    duration_s: float
    error_type: Optional[FfmpegErrorType] = None
    final_progress: Optional[FfmpegProgress] = None
    artifacts_saved: List[Path] = field(default_factory=list)


def build_compress_command(
    ffmpeg_exe: str,
    source_path: str,
    output_path: str,
    strategy: CompressionStrategy,
    audio_channels: Optional[int] = None,
) -> List[str]:
    """Build the libx264 re-encode command for ``strategy``."""
    cmd = [
        ffmpeg_exe,
        "-i", source_path,
        "-c:v", "libx264",
        "-preset", strategy.preset,
        "-crf", str(strategy.crf),
    ]
    if strategy.maxrate:
        cmd.extend(["-maxrate", strategy.maxrate, "-bufsize", strategy.bufsize])
    cmd.extend(["-pix_fmt", "yuv420p"])

    if strategy.audio_bitrate == "copy":
        cmd.extend(["-c:a", "copy"])
    else:
        # Speech clarity matters more than the tier's nominal audio bitrate
        cmd.extend(["-c:a", "aac", "-b:a", ENCODE_AUDIO_BITRATE, "-af", SPEECH_AUDIO_FILTERS])
        if audio_channels and audio_channels > 2:
            cmd.extend(["-ac", "2"])
        cmd.extend(["-ar", ENCODE_SAMPLE_RATE])

    cmd.extend([
        "-vf", VIDEO_FILTERS,
        "-movflags", "+faststart",
        "-threads", "0",
    ])
    return cmd


def build_extract_audio_command(ffmpeg_exe: str, video_path: str, wav_path: str) -> List[str]:
    """Build the 16 kHz mono PCM extraction command used before transcription."""
    return [
        ffmpeg_exe,
        "-i", video_path,
        "-vn",
        "-af", SPEECH_AUDIO_FILTERS,
        "-acodec", "pcm_s16le",
        "-ar", "16000",
        "-ac", "1",
    ]


def kill_process_tree(pid: int, grace_period_s: float = 5) -> None:
    """Terminate ``pid`` and its children; SIGKILL survivors after the grace period."""
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
        for child in children:
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                pass
        parent.terminate()

        _, alive = psutil.wait_procs([parent] + children, timeout=grace_period_s)
        for p in alive:
            try:
                p.kill()
            except psutil.NoSuchProcess:
                pass
    except psutil.NoSuchProcess:
        pass
    except psutil.Error as e:
        logger.error("Error during process cleanup: %s", e)


class FfmpegRunner:
    """FFmpeg orchestration with timeout and zombie prevention.

    Example:
        >>> runner = FfmpegRunner(global_timeout_s=7200)
        >>> result = runner.compress_video("in.mp4", "out.mp4", strategy, duration_s=600)
        >>> if not result.success:
        ...     print(result.error_type, result.artifacts_saved)
    """

    def __init__(
        self,
        global_timeout_s: int = 7200,
        no_progress_timeout_s: int = 300,
        kill_grace_period_s: int = 5,
        save_artifacts_on_failure: bool = True,
        ffmpeg_loglevel: str = "info",
        temp_dir: Optional[str] = None,
        progress_callback: Optional[Callable[[FfmpegProgress], None]] = None,
        progress_interval_s: float = 2.0,
        ffmpeg_exe: Optional[str] = None,
    ):
        """Initialize FFmpeg runner.

        Args:
            global_timeout_s: Maximum duration for any FFmpeg operation
            no_progress_timeout_s: Kill if no progress update in N seconds
            kill_grace_period_s: Grace period between SIGTERM and SIGKILL
            save_artifacts_on_failure: Save logs and commands on failure
            ffmpeg_loglevel: FFmpeg log level (error, warning, info, verbose)
            temp_dir: Directory for failure artifacts (None = $TMPDIR or /tmp)
            progress_callback: Optional callback for progress updates
            progress_interval_s: Minimum seconds between progress callbacks
            ffmpeg_exe: Explicit ffmpeg binary (None = imageio-ffmpeg's)
        """
        self.global_timeout_s = global_timeout_s
        self.no_progress_timeout_s = no_progress_timeout_s
        self.kill_grace_period_s = kill_grace_period_s
        self.save_artifacts_on_failure = save_artifacts_on_failure
        self.ffmpeg_loglevel = ffmpeg_loglevel
        self.temp_dir = temp_dir
        self.progress_callback = progress_callback
        self.progress_interval_s = progress_interval_s
        self.ffmpeg_exe = ffmpeg_exe

        self._process: Optional[subprocess.Popen] = None
        self._progress = FfmpegProgress()
        self._stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        self._stop_monitoring = threading.Event()
        self._monitor_thread: Optional[threading.Thread] = None

    def compress_video(
        self,
        source_path: str,
        output_path: str,
        strategy: CompressionStrategy,
        duration_s: float = 0.0,
        audio_channels: Optional[int] = None,
    ) -> FfmpegResult:
        """Re-encode ``source_path`` to ``output_path`` with ``strategy``."""
        cmd = build_compress_command(
            self._get_ffmpeg_exe(), source_path, output_path, strategy, audio_channels
        )
        cmd.extend(self._progress_args())
        cmd.extend(["-y", output_path])
        return self._run_ffmpeg(cmd, expected_duration=duration_s)

    def extract_audio(self, video_path: str, wav_path: str) -> FfmpegResult:
        """Extract speech-filtered 16 kHz mono WAV from ``video_path``."""
        cmd = build_extract_audio_command(self._get_ffmpeg_exe(), video_path, wav_path)
        cmd.extend(self._progress_args())
        cmd.extend(["-y", wav_path])
        return self._run_ffmpeg(cmd)

    def _progress_args(self) -> List[str]:
        return ["-progress", "pipe:2", "-loglevel", self.ffmpeg_loglevel]

    def _run_ffmpeg(
        self,
        cmd: List[str],
        expected_duration: Optional[float] = None,
    ) -> FfmpegResult:
        """Execute FFmpeg with timeout enforcement and progress monitoring.

        Args:
            cmd: FFmpeg command as list
            expected_duration: Input duration used for percent calculation

        Returns:
            FfmpegResult with execution details
        """
        start_time = time.time()
        self._progress = FfmpegProgress(total_duration_s=expected_duration or 0.0)
        self._stderr_tail = deque(maxlen=STDERR_TAIL_LINES)
        logger.debug("Running: %s", " ".join(cmd))

        try:
            self._process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                bufsize=1,  # Line buffered for real-time progress
            )

            self._stop_monitoring.clear()
            self._monitor_thread = threading.Thread(
                target=self._monitor_progress,
                args=(self._process.stderr,),
                daemon=True,
            )
            self._monitor_thread.start()

            timeout_type = self._wait_with_timeouts(start_time)
            if timeout_type:
                logger.error("ffmpeg %s timeout, killing process tree", timeout_type)
                self._kill_process_tree()
                returncode = -1
            else:
                returncode = self._process.returncode

            self._stop_monitoring.set()
            if self._monitor_thread:
                self._monitor_thread.join(timeout=2)

            stderr = "".join(self._stderr_tail)
            duration = time.time() - start_time

            error_type = None
            if timeout_type:
                error_type = FfmpegErrorType.TIMEOUT
            elif returncode != 0:
                error_type = self._classify_error(stderr)

            artifacts = []
            if returncode != 0 and self.save_artifacts_on_failure:
                artifacts = self._save_failure_artifacts(cmd, stderr)

            return FfmpegResult(
                success=(returncode == 0),
                returncode=returncode,
                stderr=stderr,
                duration_s=duration,
                error_type=error_type,
                final_progress=self._progress,
                artifacts_saved=artifacts,
            )

        except Exception:
            self._kill_process_tree()
            raise

        finally:
            self._process = None
            self._stop_monitoring.set()

    def _wait_with_timeouts(self, start_time: float) -> Optional[str]:
        """Block until the process exits; return the timeout kind if one fired."""
        while True:
            try:
                self._process.wait(timeout=1.0)
                return None
            except subprocess.TimeoutExpired:
                pass
            now = time.time()
            if now - start_time > self.global_timeout_s:
                return "global"
            last = self._progress.last_update or start_time
            if now - last > self.no_progress_timeout_s:
                return "no_progress"

    def _monitor_progress(self, stderr_stream) -> None:
        """Parse FFmpeg progress lines and invoke the callback.

        FFmpeg ``-progress`` format (one key per line):
            frame=123
            fps=25.00
            bitrate=1234.5kbits/s
            out_time=00:00:05.123456
            speed=2.5x
            progress=continue
        """
        last_callback = 0.0

        try:
            for line in stderr_stream:
                self._stderr_tail.append(line)

                if "out_time=" in line:
                    match = re.search(r"out_time=(\d+):(\d+):(\d+)\.(\d+)", line)
                    if match:
                        h, m, s, frac = match.groups()
                        current_time = int(h) * 3600 + int(m) * 60 + int(s) + float(f"0.{frac}")
                        self._progress.current_time_s = current_time
                        self._progress.last_update = time.time()

                if "frame=" in line:
                    match = re.search(r"frame=\s*(\d+)", line)
                    if match:
                        self._progress.frame = int(match.group(1))

                if "fps=" in line:
                    match = re.search(r"fps=\s*([\d.]+)", line)
                    if match:
                        self._progress.fps = float(match.group(1))

                if "bitrate=" in line:
                    match = re.search(r"bitrate=\s*([\d.]+)kbits/s", line)
                    if match:
                        self._progress.bitrate_kbps = float(match.group(1))

                if "speed=" in line:
                    match = re.search(r"speed=\s*([\d.]+)x", line)
                    if match:
                        self._progress.speed = float(match.group(1))

                now = time.time()
                # Drain remaining output after exit without reporting it
                if self._stop_monitoring.is_set():
                    continue
                if self.progress_callback and now - last_callback >= self.progress_interval_s:
                    try:
                        self.progress_callback(self._progress)
                        last_callback = now
                    except Exception as e:
                        logger.error("Progress callback error: %s", e)
        except Exception as e:
            logger.error("Progress monitoring error: %s", e)

    def _kill_process_tree(self) -> None:
        """Terminate FFmpeg and its children; SIGKILL survivors after the grace period."""
        if not self._process:
            return
        kill_process_tree(self._process.pid, self.kill_grace_period_s)

    def _classify_error(self, stderr: str) -> FfmpegErrorType:
        """Classify FFmpeg error output."""
        stderr_lower = stderr.lower()

        permanent_patterns = [
            "no such file or directory",
            "invalid data found",
            "invalid argument",
            "permission denied",
            "unsupported codec",
            "invalid codec",
            "moov atom not found",
            "does not contain any stream",
            "output file #0 does not contain any stream",
            "corrupt",
        ]
        for pattern in permanent_patterns:
            if pattern in stderr_lower:
                return FfmpegErrorType.PERMANENT

        transient_patterns = [
            "i/o error",
            "resource temporarily unavailable",
            "no space left on device",
            "disk full",
            "cannot allocate memory",
        ]
        for pattern in transient_patterns:
            if pattern in stderr_lower:
                return FfmpegErrorType.TRANSIENT

        return FfmpegErrorType.TRANSIENT

    def _save_failure_artifacts(self, cmd: List[str], stderr: str) -> List[Path]:
        """Save ``ffmpeg_error_{ts}.log`` and a reproducible ``ffmpeg_cmd_{ts}.sh``."""
        artifacts = []
        temp_dir = self._get_temp_dir()
        timestamp = int(time.time())

        log_path = temp_dir / f"ffmpeg_error_{timestamp}.log"
        try:
            with open(log_path, "w") as f:
                f.write("=" * 80 + "\n")
                f.write("FFmpeg Error Log\n")
                f.write(f"Timestamp: {time.ctime()}\n")
                f.write(f"PID: {os.getpid()}\n")
                f.write("=" * 80 + "\n\n")
                f.write("COMMAND:\n")
                f.write(" ".join(cmd) + "\n\n")
                f.write("STDERR (tail):\n")
                f.write(stderr or "(empty)\n")
            artifacts.append(log_path)
        except OSError as e:
            logger.error("Failed to save error log: %s", e)

        script_path = temp_dir / f"ffmpeg_cmd_{timestamp}.sh"
        try:
            with open(script_path, "w") as f:
                f.write("#!/bin/bash\n")
                f.write("# Reproducible FFmpeg command\n")
                f.write("# Generated: " + time.ctime() + "\n\n")
                escaped_cmd = []
                for arg in cmd:
                    if " " in arg or any(c in arg for c in ["$", "`", '"', "\\"]):
                        escaped_cmd.append(f"'{arg}'")
                    else:
                        escaped_cmd.append(arg)
                f.write(" \\\n  ".join(escaped_cmd) + "\n")
            script_path.chmod(0o755)
            artifacts.append(script_path)
        except OSError as e:
            logger.error("Failed to save command script: %s", e)

        if artifacts:
            logger.info("FFmpeg failure artifacts saved: %s", ", ".join(str(a) for a in artifacts))
        return artifacts

    def _get_temp_dir(self) -> Path:
        if self.temp_dir:
            temp_dir = Path(self.temp_dir)
        elif "TMPDIR" in os.environ:
            temp_dir = Path(os.environ["TMPDIR"])
        else:
            temp_dir = Path("/tmp")
        temp_dir.mkdir(parents=True, exist_ok=True)
        return temp_dir

    def _get_ffmpeg_exe(self) -> str:
        if self.ffmpeg_exe:
            return self.ffmpeg_exe
        return imageio_ffmpeg.get_ffmpeg_exe()
