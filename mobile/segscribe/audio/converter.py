"""Re-encode segment artifacts into the local recognizer's preferred format."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import soundfile as sf

from ..errors import ConversionError

LOGGER = logging.getLogger("segscribe.converter")

TARGET_SAMPLE_RATE = 16000


class AudioConverter:
    """Mono 16 kHz 16-bit PCM WAV, which Whisper-family engines read natively."""

    def __init__(self, sample_rate: int = TARGET_SAMPLE_RATE) -> None:
        self.sample_rate = sample_rate

    def to_recognizer_format(self, src: Path, dst: Path) -> Path:
        src, dst = Path(src), Path(dst)
        try:
            audio, source_rate = sf.read(str(src), dtype="float32", always_2d=True)
        except (RuntimeError, OSError) as exc:
            raise ConversionError(f"Could not decode {src.name}: {exc}") from exc
        if audio.shape[0] == 0:
            raise ConversionError(f"{src.name} contains no audio frames")
        mono = audio.mean(axis=1)
        resampled = _resample(mono, source_rate, self.sample_rate)
        try:
            sf.write(str(dst), resampled, self.sample_rate, format="WAV", subtype="PCM_16")
        except (RuntimeError, OSError) as exc:
            raise ConversionError(f"Could not write {dst.name}: {exc}") from exc
        LOGGER.debug(
            "Converted %s (%d Hz, %d frames) -> %s (%d Hz)",
            src.name,
            source_rate,
            audio.shape[0],
            dst.name,
            self.sample_rate,
        )
        return dst


def _resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    if source_rate == target_rate or samples.size == 0:
        return samples.astype(np.float32, copy=False)
    duration = samples.size / float(source_rate)
    target_len = max(1, int(round(duration * target_rate)))
    source_times = np.arange(samples.size) / float(source_rate)
    target_times = np.arange(target_len) / float(target_rate)
    return np.interp(target_times, source_times, samples).astype(np.float32)


__all__ = ["AudioConverter", "TARGET_SAMPLE_RATE"]
