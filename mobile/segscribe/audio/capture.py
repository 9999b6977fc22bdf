"""Microphone capture tap backed by sounddevice."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from ..errors import CaptureError

LOGGER = logging.getLogger("segscribe.capture")

BufferCallback = Callable[[np.ndarray], None]


class SoundDeviceCapture:
    """Delivers float32 input buffers to a callback on the audio thread."""

    def __init__(
        self,
        sample_rate: int,
        channels: int = 1,
        *,
        blocksize: int = 1024,
        device: Optional[int | str] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.blocksize = blocksize
        self.device = device
        self._stream = None

    def _import_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore
        except (ImportError, OSError) as exc:
            raise CaptureError(f"sounddevice unavailable: {exc}") from exc
        return sd

    @property
    def active(self) -> bool:
        return self._stream is not None

    def start(self, on_buffer: BufferCallback) -> None:
        if self._stream is not None:
            return
        sd = self._import_sounddevice()

        def _callback(indata, frames, time_info, status):  # noqa: ARG001
            if status:
                LOGGER.debug("Input stream status: %s", status)
            on_buffer(np.array(indata, dtype=np.float32, copy=True))

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                blocksize=self.blocksize,
                dtype="float32",
                device=self.device,
                callback=_callback,
            )
            stream.start()
        except Exception as exc:
            raise CaptureError(f"Could not start audio capture: {exc}") from exc
        self._stream = stream

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as exc:  # pragma: no cover - device teardown
            LOGGER.warning("Error while closing input stream: %s", exc)


__all__ = ["SoundDeviceCapture"]
