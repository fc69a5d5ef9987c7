"""
Audio codec utilities for the voice agent wire protocol.

Audio travels between client and relay as base64 text wrapping little-endian
16-bit signed PCM. These helpers convert between raw bytes and that text form,
and between PCM16 integers and floating-point samples in [-1.0, 1.0).
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Union

import numpy as np

from voice_agent.errors import FormatError

PCM16_SCALE = 32768.0
PCM16_DTYPE = np.dtype("<i2")

Sample = Union[int, float, np.ndarray]


def encode_binary(data: bytes) -> str:
    """Encode raw bytes as standard base64 text."""
    return base64.b64encode(bytes(data)).decode("ascii")


def decode_binary(text: str) -> bytes:
    """
    Decode base64 text produced by encode_binary.

    Raises:
        FormatError: If the text is not valid base64
    """
    if not isinstance(text, (str, bytes)):
        raise FormatError(f"Expected base64 text, got {type(text).__name__}")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid base64 audio payload: {e}") from e


def pcm16_to_float(sample: Sample) -> Sample:
    """Map signed 16-bit PCM to floating point by dividing by 32768."""
    if isinstance(sample, np.ndarray):
        return sample.astype(np.float32) / np.float32(PCM16_SCALE)
    return sample / PCM16_SCALE


def float_to_pcm16(sample: Sample) -> Sample:
    """
    Map floating point samples to signed 16-bit PCM.

    The value is multiplied by 32768, truncated toward zero and wrapped into the
    int16 range. Callers must clip input to [-1, 1] themselves or accept
    wraparound (1.0 maps to -32768).
    """
    scaled = np.trunc(np.nan_to_num(np.asarray(sample, dtype=np.float64)) * PCM16_SCALE)
    wrapped = scaled.astype(np.int64).astype(np.int16)
    if isinstance(sample, np.ndarray):
        return wrapped
    return int(wrapped)


@dataclass
class DecodedAudio:
    """PCM16 audio de-interleaved into per-channel float arrays."""

    channels: np.ndarray  # shape (channel_count, frame_count), float32
    sample_rate: int

    @property
    def channel_count(self) -> int:
        return self.channels.shape[0]

    @property
    def frame_count(self) -> int:
        return self.channels.shape[1]

    @property
    def duration(self) -> float:
        return self.frame_count / float(self.sample_rate)

    def mono(self) -> np.ndarray:
        """Return the first channel, which is the whole signal for mono audio."""
        return self.channels[0]


def decode_audio_frame(data: bytes, sample_rate: int, channel_count: int) -> DecodedAudio:
    """
    De-interleave 16-bit PCM bytes into per-channel float arrays.

    Trailing bytes that do not make up a complete frame are dropped.

    Args:
        data: Interleaved little-endian PCM16 bytes
        sample_rate: Sample rate of the audio in Hz
        channel_count: Number of interleaved channels

    Returns:
        DecodedAudio with one float32 row per channel
    """
    if channel_count < 1:
        raise ValueError("channel_count must be at least 1")
    sample_count = len(data) // PCM16_DTYPE.itemsize
    frame_count = sample_count // channel_count
    usable = frame_count * channel_count * PCM16_DTYPE.itemsize
    samples = np.frombuffer(bytes(data[:usable]), dtype=PCM16_DTYPE)
    channels = pcm16_to_float(samples.reshape(frame_count, channel_count).T.copy())
    return DecodedAudio(channels=channels, sample_rate=sample_rate)


def encode_pcm_block(samples: np.ndarray) -> str:
    """Quantize a block of float samples to PCM16 and encode it for the wire."""
    pcm = float_to_pcm16(np.asarray(samples, dtype=np.float32)).astype(PCM16_DTYPE)
    return encode_binary(pcm.tobytes())


def decode_pcm_chunk(text: str, sample_rate: int, channel_count: int = 1) -> DecodedAudio:
    """Decode a base64 PCM16 chunk received from the wire."""
    return decode_audio_frame(decode_binary(text), sample_rate, channel_count)
