"""Lazy on-device Whisper (faster-whisper) recognizer."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable

try:  # pragma: no cover - optional heavy dependency
    from faster_whisper import WhisperModel  # type: ignore
except Exception:  # pragma: no cover
    WhisperModel = None  # type: ignore

from ..config import PipelineSettings
from ..errors import ErrorKind, LocalTranscriptionError

LOGGER = logging.getLogger("segscribe.local")


class WhisperRecognizer:
    """Loads the model on first use; final results only, no interim hypotheses."""

    def __init__(self, settings: PipelineSettings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._model = None

    def authorize(self) -> bool:
        if not self.settings.local_recognition_enabled:
            return False
        if WhisperModel is None:
            LOGGER.warning("faster-whisper is not installed; local recognition unavailable")
            return False
        return True

    def _load_model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        self._model = WhisperModel(
                            self.settings.local_model,
                            device=self.settings.local_device,
                            compute_type=self.settings.local_compute_type,
                        )
                    except Exception as exc:  # pragma: no cover - hardware/env dep
                        LOGGER.error("Failed to load Whisper model '%s': %s", self.settings.local_model, exc)
                        raise LocalTranscriptionError(
                            f"Speech recognizer unavailable: {exc}", kind=ErrorKind.RECOGNIZER_UNAVAILABLE
                        ) from exc
        return self._model

    def transcribe_path(self, path: Path) -> str:
        model = self._load_model()
        try:
            segments, _info = model.transcribe(
                str(path), language=self.settings.local_language, beam_size=5
            )
            return _join_segments(segments)
        except LocalTranscriptionError:
            raise
        except Exception as exc:
            raise LocalTranscriptionError(f"Transcription failed: {exc}") from exc


def _join_segments(segments: Iterable) -> str:
    pieces = [segment.text.strip() for segment in segments]
    return " ".join(piece for piece in pieces if piece).strip()


__all__ = ["WhisperRecognizer"]
