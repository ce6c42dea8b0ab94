import numpy as np
import pytest
import soundfile as sf

from autopause.audio.capture import MicrophoneCapture, iter_wav_blocks
from autopause.errors import ConfigurationError


def test_iter_wav_blocks_reads_first_channel(tmp_path, tone):
    path = tmp_path / "clip.wav"
    mono = tone(250)
    sf.write(str(path), np.stack([mono, np.zeros_like(mono)], axis=1), 16_000, subtype="PCM_16")

    blocks = list(iter_wav_blocks(path, block_ms=100))

    assert [block.size for block in blocks] == [1600, 1600, 800]
    np.testing.assert_array_equal(np.concatenate(blocks), mono)


def test_iter_wav_blocks_rejects_other_rates(tmp_path):
    path = tmp_path / "clip.wav"
    sf.write(str(path), np.zeros(800, dtype=np.int16), 8_000, subtype="PCM_16")
    with pytest.raises(ConfigurationError):
        list(iter_wav_blocks(path))


class FakeStream:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


class FakeBackend:
    def __init__(self):
        self.streams = []

    def InputStream(self, **kwargs):  # noqa: N802
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        return stream


def test_microphone_capture_forwards_first_channel():
    received = []
    backend = FakeBackend()
    capture = MicrophoneCapture(received.append, backend=backend, block_ms=20)
    capture.start()
    capture.start()

    stream = backend.streams[0]
    assert len(backend.streams) == 1
    assert stream.kwargs["blocksize"] == 320
    assert stream.kwargs["dtype"] == "int16"

    stream.kwargs["callback"](np.array([[5], [6]], dtype=np.int16), 2, None, None)
    stream.kwargs["callback"](np.array([[7]], dtype=np.int16), 1, None, "input overflow")
    capture.stop()

    assert [block.tolist() for block in received] == [[5, 6], [7]]
    assert capture.overflows == 1
    assert stream.closed and not capture.running
