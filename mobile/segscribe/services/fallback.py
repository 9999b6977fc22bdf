"""On-device transcription cascade used once the remote path is exhausted."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..audio.converter import AudioConverter
from ..errors import AuthorizationDeniedError, LocalTranscriptionError

LOGGER = logging.getLogger("segscribe.fallback")

DIRECT_CONFIDENCE = 0.9
CONVERTED_CONFIDENCE = 0.8


@dataclass(slots=True)
class LocalResult:
    text: str
    confidence: float
    strategy: str


class LocalFallbackEngine:
    """Tries the native artifact first, then a re-encoded temporary copy."""

    def __init__(self, recognizer, converter: AudioConverter, *, temp_dir: Path) -> None:
        self.recognizer = recognizer
        self.converter = converter
        self.temp_dir = Path(temp_dir)

    def transcribe(self, path: Path) -> LocalResult:
        path = Path(path)
        if not self.recognizer.authorize():
            raise AuthorizationDeniedError()

        errors: List[str] = []
        try:
            text = self.recognizer.transcribe_path(path)
            LOGGER.info("Direct local transcription succeeded for %s", path.name)
            return LocalResult(text=text, confidence=DIRECT_CONFIDENCE, strategy="direct")
        except (LocalTranscriptionError, OSError) as exc:
            LOGGER.warning("Direct local transcription failed for %s: %s", path.name, exc)
            errors.append(f"direct: {exc}")

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        converted = self.temp_dir / f"{path.stem}_{uuid.uuid4().hex[:8]}.wav"
        try:
            self.converter.to_recognizer_format(path, converted)
            text = self.recognizer.transcribe_path(converted)
            LOGGER.info("Re-encoded local transcription succeeded for %s", path.name)
            return LocalResult(text=text, confidence=CONVERTED_CONFIDENCE, strategy="converted")
        except (LocalTranscriptionError, OSError) as exc:
            LOGGER.warning("Re-encoded local transcription failed for %s: %s", path.name, exc)
            errors.append(f"converted: {exc}")
        finally:
            converted.unlink(missing_ok=True)

        raise LocalTranscriptionError("; ".join(errors))


__all__ = ["CONVERTED_CONFIDENCE", "DIRECT_CONFIDENCE", "LocalFallbackEngine", "LocalResult"]
