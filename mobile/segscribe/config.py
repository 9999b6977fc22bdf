"""Pipeline settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

SEGMENT_DURATIONS = (15, 30, 60, 120)
AUDIO_QUALITIES = ("low", "medium", "high")


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class PipelineSettings(BaseModel):
    data_dir: str = Field(default=os.getenv("SEGSCRIBE_DATA_DIR", "data"))
    segment_seconds: int = Field(default=int(os.getenv("SEGSCRIBE_SEGMENT_SECONDS", "30")))
    audio_quality: str = Field(default=os.getenv("SEGSCRIBE_AUDIO_QUALITY", "medium"))
    channels: int = Field(default=int(os.getenv("SEGSCRIBE_CHANNELS", "1")), ge=1, le=2)

    transcription_url: str = Field(
        default=os.getenv(
            "SEGSCRIBE_TRANSCRIPTION_URL", "https://api.openai.com/v1/audio/transcriptions"
        )
    )
    transcription_model: str = Field(default=os.getenv("SEGSCRIBE_TRANSCRIPTION_MODEL", "whisper-1"))
    language: Optional[str] = Field(default=os.getenv("SEGSCRIBE_LANGUAGE"))
    api_key: Optional[str] = Field(default=os.getenv("OPENAI_API_KEY"))
    request_timeout: float = Field(default=float(os.getenv("SEGSCRIBE_REQUEST_TIMEOUT", "30")), gt=0)
    max_upload_bytes: int = Field(default=25 * 1024 * 1024, gt=0)

    max_attempts: int = Field(default=int(os.getenv("SEGSCRIBE_MAX_ATTEMPTS", "5")), ge=1)
    inter_job_delay: float = Field(default=float(os.getenv("SEGSCRIBE_INTER_JOB_DELAY", "0.5")), ge=0)
    reconnect_debounce: float = Field(
        default=float(os.getenv("SEGSCRIBE_RECONNECT_DEBOUNCE", "2.0")), ge=0
    )
    probe_interval: float = Field(default=float(os.getenv("SEGSCRIBE_PROBE_INTERVAL", "5.0")), gt=0)
    probe_url: Optional[str] = Field(default=os.getenv("SEGSCRIBE_PROBE_URL"))

    local_recognition_enabled: bool = Field(default=_flag("SEGSCRIBE_LOCAL_RECOGNITION", "true"))
    local_model: str = Field(default=os.getenv("SEGSCRIBE_LOCAL_MODEL", "base"))
    local_device: str = Field(default=os.getenv("SEGSCRIBE_LOCAL_DEVICE", "cpu"))
    local_compute_type: str = Field(default=os.getenv("SEGSCRIBE_LOCAL_COMPUTE_TYPE", "int8"))
    local_language: Optional[str] = Field(default=os.getenv("SEGSCRIBE_LOCAL_LANGUAGE", "en"))

    min_free_bytes: int = Field(default=100 * 1024 * 1024, ge=0)

    @field_validator("segment_seconds")
    @classmethod
    def validate_segment_seconds(cls, v: int) -> int:
        if v not in SEGMENT_DURATIONS:
            raise ValueError(f"segment_seconds must be one of: {SEGMENT_DURATIONS}")
        return v

    @field_validator("audio_quality")
    @classmethod
    def validate_audio_quality(cls, v: str) -> str:
        if v not in AUDIO_QUALITIES:
            raise ValueError(f"audio_quality must be one of: {AUDIO_QUALITIES}")
        return v

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def segments_dir(self) -> Path:
        return self.data_path / "segments"

    @property
    def offline_queue_path(self) -> Path:
        return self.data_path / "offline_queue.json"

    @property
    def record_store_path(self) -> Path:
        return self.data_path / "records.json"

    @property
    def settings_path(self) -> Path:
        return self.data_path / "settings.json"


@lru_cache()
def get_settings() -> PipelineSettings:
    return PipelineSettings()


CONFIG = get_settings()
