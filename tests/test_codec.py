import numpy as np
import pytest

from voice_agent.audio.codec import (
    decode_audio_frame,
    decode_binary,
    decode_pcm_chunk,
    encode_binary,
    encode_pcm_block,
    float_to_pcm16,
    pcm16_to_float,
)
from voice_agent.errors import FormatError


@pytest.mark.parametrize("data", [b"", b"\x00", b"\x00\xff\x10", bytes(range(256))])
def test_binary_round_trip(data):
    assert decode_binary(encode_binary(data)) == data


@pytest.mark.parametrize("text", ["not base64!", "AAA", 42])
def test_decode_binary_rejects_invalid_text(text):
    with pytest.raises(FormatError):
        decode_binary(text)


@pytest.mark.parametrize("sample", [-32768, -12345, -1, 0, 1, 12345, 32767])
def test_pcm16_float_round_trip(sample):
    assert abs(float_to_pcm16(pcm16_to_float(sample)) - sample) <= 1


def test_pcm16_to_float_scale():
    assert pcm16_to_float(-32768) == -1.0
    assert pcm16_to_float(16384) == 0.5


def test_float_to_pcm16_truncates_toward_zero():
    assert float_to_pcm16(0.99999) == 32767
    assert float_to_pcm16(-0.00002) == 0
    assert float_to_pcm16(-0.5) == -16384


def test_float_to_pcm16_wraps_at_full_scale():
    assert float_to_pcm16(1.0) == -32768


def test_float_to_pcm16_array():
    pcm = float_to_pcm16(np.array([0.0, 0.5, -0.5], dtype=np.float32))
    assert pcm.dtype == np.int16
    assert pcm.tolist() == [0, 16384, -16384]


def test_decode_audio_frame_deinterleaves_channels():
    data = np.array([100, -100, 200, -200], dtype="<i2").tobytes()

    decoded = decode_audio_frame(data, 24000, 2)

    assert decoded.channel_count == 2
    assert decoded.frame_count == 2
    np.testing.assert_allclose(decoded.channels[0] * 32768, [100, 200])
    np.testing.assert_allclose(decoded.channels[1] * 32768, [-100, -200])


def test_decode_audio_frame_drops_partial_frames():
    data = np.array([1, 2, 3], dtype="<i2").tobytes() + b"\x01"

    decoded = decode_audio_frame(data, 24000, 2)

    assert decoded.frame_count == 1


def test_decode_audio_frame_rejects_zero_channels():
    with pytest.raises(ValueError):
        decode_audio_frame(b"\x00\x00", 24000, 0)


def test_duration():
    decoded = decode_audio_frame(b"\x00\x00" * 2400, 24000, 1)
    assert decoded.duration == pytest.approx(0.1)


def test_pcm_block_round_trip():
    samples = np.array([0.0, 0.25, -0.25, 0.5], dtype=np.float32)

    decoded = decode_pcm_chunk(encode_pcm_block(samples), 16000)

    np.testing.assert_allclose(decoded.mono(), samples, atol=1 / 32768)
