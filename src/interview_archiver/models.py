"""Pydantic models for configuration."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .queue.models import PipelineConfig


class StorageConfig(BaseModel):
    """Local storage locations."""

    compressed_storage: Optional[str] = Field(
        default=None, description="Directory receiving compressed copies and transcripts"
    )
    state_dir: str = Field(
        default=".interview_archiver", description="Directory for the deletion schedule database"
    )


class RecordStoreConfig(BaseModel):
    """Interview record store API."""

    base_url: Optional[str] = Field(default=None, description="API base URL")
    token: Optional[str] = Field(default=None, description="Bearer token for the API")
    employee_id: Optional[int] = Field(default=None, description="Employee credited in activity logs")
    timeout_s: float = Field(default=30.0, gt=0.0, description="HTTP timeout in seconds")


class GoogleConfig(BaseModel):
    """Google Drive / YouTube upload settings."""

    drive_folder_id: Optional[str] = Field(
        default=None, description="Drive folder for uploads (None = Interview_Recordings/<company>)"
    )
    access_token: Optional[str] = Field(default=None, description="OAuth access token")
    token_file: Optional[str] = Field(default=None, description="JSON file holding an access token")
    youtube_enabled: bool = Field(default=True, description="Back up originals to YouTube")
    timeout_s: float = Field(default=300.0, gt=0.0, description="Upload timeout in seconds")


class TranscriptionConfig(BaseModel):
    """whisper.cpp transcription settings."""

    enabled: bool = Field(default=True, description="Transcribe when whisper.cpp is configured")
    whisper_path: Optional[str] = Field(default=None, description="whisper.cpp executable")
    model_path: Optional[str] = Field(default=None, description="ggml model file")
    language: str = Field(default="en", description="Spoken language code")
    threads: int = Field(default=4, ge=1, description="whisper.cpp thread count")


class RetryConfig(BaseModel):
    """Retry policy for uploads."""

    max_attempts: int = Field(default=3, ge=1, description="Attempts per upload")
    delay_s: float = Field(default=10.0, ge=0.0, description="Fixed delay between attempts")
    transient_only: bool = Field(
        default=False, description="Only retry failures classified as transient"
    )


class DeletionConfig(BaseModel):
    """Deferred deletion of archived originals."""

    retention_days: float = Field(default=50, gt=0, description="Days to keep originals")
    sweep_interval_h: float = Field(default=24.0, gt=0.0, description="Hours between sweeps")


class CompressionConfig(BaseModel):
    force: bool = Field(default=False, description="Re-encode even when the policy says skip")


class FfmpegConfig(BaseModel):
    """FFmpeg runner settings."""

    global_timeout_s: int = Field(
        default=7200, gt=0, description="Maximum duration for any FFmpeg operation in seconds"
    )
    no_progress_timeout_s: int = Field(
        default=300, gt=0, description="Kill FFmpeg if no progress update in N seconds"
    )
    kill_grace_period_s: int = Field(
        default=5, gt=0, description="Grace period between SIGTERM and SIGKILL"
    )
    save_artifacts_on_failure: bool = Field(
        default=True, description="Save FFmpeg logs and commands on failure for debugging"
    )
    ffmpeg_loglevel: str = Field(
        default="info", description="FFmpeg log level: error, warning, info, verbose"
    )
    temp_dir: Optional[str] = Field(
        default=None, description="Directory for failure artifacts (None = $TMPDIR or /tmp)"
    )


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    file: Optional[str] = Field(default=None, description="Also log to this file")


class ApiConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, gt=0, lt=65536)


class ArchiverConfig(BaseModel):
    """Complete application configuration with validation."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    record_store: RecordStoreConfig = Field(default_factory=RecordStoreConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    deletion: DeletionConfig = Field(default_factory=DeletionConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    ffmpeg: FfmpegConfig = Field(default_factory=FfmpegConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "ArchiverConfig":
        """Create config from nested dict (YAML)."""
        return cls(**data)

    def merge_cli_overrides(self, cli_args: dict) -> "ArchiverConfig":
        """Apply CLI overrides and return new config instance."""
        config_dict = self.model_dump()

        if cli_args.get("compressed_storage") is not None:
            config_dict["storage"]["compressed_storage"] = cli_args["compressed_storage"]
        if cli_args.get("drive_folder_id") is not None:
            config_dict["google"]["drive_folder_id"] = cli_args["drive_folder_id"]
        if cli_args.get("force_compress"):
            config_dict["compression"]["force"] = True
        if cli_args.get("no_youtube"):
            config_dict["google"]["youtube_enabled"] = False
        if cli_args.get("no_transcribe"):
            config_dict["transcription"]["enabled"] = False
        if cli_args.get("retry_delay") is not None:
            config_dict["retry"]["delay_s"] = cli_args["retry_delay"]
        if cli_args.get("log_level") is not None:
            config_dict["logging"]["level"] = cli_args["log_level"]
        if cli_args.get("host") is not None:
            config_dict["api"]["host"] = cli_args["host"]
        if cli_args.get("port") is not None:
            config_dict["api"]["port"] = cli_args["port"]

        return ArchiverConfig.from_dict(config_dict)

    def pipeline_config(self) -> PipelineConfig:
        """Per-job settings handed to the queue manager."""
        return PipelineConfig(
            compressed_storage=self.storage.compressed_storage,
            drive_folder_id=self.google.drive_folder_id,
            force_compress=self.compression.force,
        )
