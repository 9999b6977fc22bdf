"""Live input level metering."""

from __future__ import annotations

import math

import numpy as np


def compute_rms(pcm: np.ndarray) -> float:
    """Root-mean-square level of a buffer, normalized to 0.0-1.0.

    Integer PCM is scaled by its dtype range. Empty buffers and non-finite
    results report 0.0.
    """
    data = np.asarray(pcm)
    if data.size == 0:
        return 0.0
    scale = 1.0
    if np.issubdtype(data.dtype, np.integer):
        scale = float(np.iinfo(data.dtype).max) + 1.0
    with np.errstate(all="ignore"):
        samples = data.astype(np.float64, copy=False) / scale
        level = float(np.sqrt(np.mean(np.square(samples))))
    if not math.isfinite(level):
        return 0.0
    return max(0.0, min(1.0, level))


__all__ = ["compute_rms"]
