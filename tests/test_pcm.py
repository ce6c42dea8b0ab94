import numpy as np

from autopause.audio.pcm import PcmDecoder, as_int16, ms_to_samples, samples_to_ms


def test_decoder_carries_odd_byte():
    decoder = PcmDecoder()
    payload = np.array([1, -2, 300], dtype="<i2").tobytes()
    first = decoder.decode(payload[:3])
    second = decoder.decode(payload[3:])
    assert first.tolist() == [1]
    assert second.tolist() == [-2, 300]


def test_as_int16_handles_float_and_stereo():
    stereo = np.array([[1.6, 9.0], [-40000.0, 0.0]])
    assert as_int16(stereo).tolist() == [2, -32768]


def test_duration_conversions():
    assert ms_to_samples(10, 16_000) == 160
    assert samples_to_ms(16_000, 16_000) == 1000
