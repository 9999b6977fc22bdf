import numpy as np
import pytest
import soundfile as sf

from mobile.segscribe.audio.converter import AudioConverter
from mobile.segscribe.errors import ConversionError


def test_converts_stereo_44k_to_mono_16k(tmp_path):
    src = tmp_path / "segment.wav"
    dst = tmp_path / "converted.wav"
    tone = 0.25 * np.sin(np.linspace(0, 440 * 2 * np.pi, 44100, dtype=np.float32))
    sf.write(str(src), np.stack([tone, tone], axis=1), 44100, subtype="PCM_16")

    AudioConverter().to_recognizer_format(src, dst)

    info = sf.info(str(dst))
    assert info.samplerate == 16000
    assert info.channels == 1
    assert info.subtype == "PCM_16"
    assert abs(info.frames - 16000) <= 1


def test_unreadable_source_raises(tmp_path):
    src = tmp_path / "broken.wav"
    src.write_bytes(b"not audio")
    with pytest.raises(ConversionError):
        AudioConverter().to_recognizer_format(src, tmp_path / "out.wav")
