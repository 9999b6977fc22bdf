"""Persistent user settings: endpoint, credential and capture preferences."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path

from ..config import AUDIO_QUALITIES, SEGMENT_DURATIONS

LOGGER = logging.getLogger("segscribe.settings")


@dataclass(slots=True)
class AppSettings:
    server_url: str = ""
    api_key: str = ""
    language: str = ""
    segment_seconds: int = 30
    audio_quality: str = "medium"


class SettingsStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._settings = self._load()

    def _load(self) -> AppSettings:
        if not self.path.exists():
            return AppSettings()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Settings file %s unreadable, using defaults: %s", self.path, exc)
            raw = {}
        if not isinstance(raw, dict):
            raw = {}
        settings = AppSettings()
        settings.server_url = str(raw.get("server_url", ""))
        settings.api_key = str(raw.get("api_key", ""))
        settings.language = str(raw.get("language", ""))
        try:
            seconds = int(raw.get("segment_seconds", settings.segment_seconds))
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring invalid stored segment_seconds: %r", raw.get("segment_seconds"))
            seconds = settings.segment_seconds
        if seconds in SEGMENT_DURATIONS:
            settings.segment_seconds = seconds
        quality = str(raw.get("audio_quality", settings.audio_quality))
        if quality in AUDIO_QUALITIES:
            settings.audio_quality = quality
        return settings

    def get(self) -> AppSettings:
        return self._settings

    def update(self, **kwargs) -> AppSettings:
        with self._lock:
            for key, value in kwargs.items():
                if not hasattr(self._settings, key):
                    continue
                current = getattr(self._settings, key)
                if isinstance(current, int):
                    value = int(value)
                else:
                    value = value or ""
                if key == "segment_seconds" and value not in SEGMENT_DURATIONS:
                    raise ValueError(f"segment_seconds must be one of: {SEGMENT_DURATIONS}")
                if key == "audio_quality" and value not in AUDIO_QUALITIES:
                    raise ValueError(f"audio_quality must be one of: {AUDIO_QUALITIES}")
                setattr(self._settings, key, value)
            self._persist()
        return self._settings

    def _persist(self) -> None:
        self.path.write_text(json.dumps(asdict(self._settings)), encoding="utf-8")
