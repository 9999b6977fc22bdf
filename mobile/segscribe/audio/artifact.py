"""Disk-backed WAV artifacts that hold one segment each."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf

from ..errors import CaptureError
from .types import AudioQuality

LOGGER = logging.getLogger("segscribe.artifact")


class SoundFileArtifact:
    """A WAV file opened for appending PCM buffers."""

    def __init__(self, path: Path, sample_rate: int, channels: int = 1, subtype: str = "PCM_16") -> None:
        self.path = Path(path)
        self.sample_rate = sample_rate
        self.channels = channels
        self.subtype = subtype
        self._file: Optional[sf.SoundFile] = None
        self._frames = 0

    def open(self) -> "SoundFileArtifact":
        try:
            self._file = sf.SoundFile(
                str(self.path),
                mode="w",
                samplerate=self.sample_rate,
                channels=self.channels,
                format="WAV",
                subtype=self.subtype,
            )
        except (RuntimeError, OSError) as exc:
            raise CaptureError(f"Could not open audio file {self.path.name}: {exc}") from exc
        return self

    @property
    def frames(self) -> int:
        return self._frames

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def write(self, pcm: np.ndarray) -> None:
        if self._file is None:
            return
        data = np.asarray(pcm)
        if data.size == 0:
            return
        if data.ndim == 2 and self.channels == 1:
            data = data[:, 0]
        self._file.write(data)
        self._frames += len(data)

    def close(self) -> int:
        if self._file is not None:
            self._file.close()
            self._file = None
        return self._frames

    def size_bytes(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError:
            return 0

    def discard(self) -> None:
        self.close()
        self.path.unlink(missing_ok=True)


class ArtifactFactory:
    def __init__(self, output_dir: Path, quality: AudioQuality = AudioQuality.MEDIUM, channels: int = 1) -> None:
        self.output_dir = Path(output_dir)
        self.quality = quality
        self.channels = channels

    @property
    def sample_rate(self) -> int:
        return self.quality.sample_rate

    def create(self) -> SoundFileArtifact:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"segment_{uuid.uuid4().hex}.wav"
        artifact = SoundFileArtifact(path, self.quality.sample_rate, self.channels, self.quality.subtype)
        LOGGER.debug("Opening segment artifact %s", path.name)
        return artifact.open()


__all__ = ["ArtifactFactory", "SoundFileArtifact"]
