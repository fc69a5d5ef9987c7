"""
PyAudio backends for the voice client's microphone and speaker.

Both devices run PortAudio callback streams on PyAudio's own thread. The microphone
hands each captured float32 block to a callback; the speaker mixes scheduled buffers
against a sample clock and reports buffers that finished playing. Neither touches
the asyncio loop directly, callers do the thread hop.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict

import numpy as np

from voice_agent.config.constants import (
    AUDIO_CHANNELS,
    CAPTURE_BLOCK_SIZE,
    INPUT_SAMPLE_RATE,
    LOGGER_NAME,
    OUTPUT_BLOCK_SIZE,
    OUTPUT_SAMPLE_RATE,
)
from voice_agent.errors import (
    DeviceBusyError,
    DeviceError,
    DeviceNotFoundError,
    MicrophonePermissionError,
)

logger = logging.getLogger(LOGGER_NAME)

# PortAudio error codes
PA_INVALID_DEVICE = -9996
PA_DEVICE_UNAVAILABLE = -9985
PA_UNANTICIPATED_HOST_ERROR = -9999


def _load_pyaudio():
    try:
        import pyaudio
    except ImportError as e:
        raise DeviceError("PyAudio is not installed. Install the 'audio' extra to use a microphone.") from e
    return pyaudio


def _device_error(error: Exception) -> DeviceError:
    """Map a PortAudio failure onto the device error taxonomy."""
    text = str(error).lower()
    code = getattr(error, "errno", None)
    if "permission" in text or "denied" in text:
        return MicrophonePermissionError()
    if code == PA_INVALID_DEVICE or "no default" in text:
        return DeviceNotFoundError()
    if code in (PA_DEVICE_UNAVAILABLE, PA_UNANTICIPATED_HOST_ERROR) or "unavailable" in text:
        return DeviceBusyError()
    return DeviceError()


class PyAudioMicrophone:
    """
    Exclusive handle on the default input device.

    Delivers mono float32 blocks of CAPTURE_BLOCK_SIZE samples at 16 kHz to
    on_block from the PortAudio thread.
    """

    def __init__(
        self,
        on_block: Callable[[np.ndarray], None],
        sample_rate: int = INPUT_SAMPLE_RATE,
        block_size: int = CAPTURE_BLOCK_SIZE,
    ):
        self.on_block = on_block
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.p = None
        self.stream = None
        self._continue = None

    def open(self) -> None:
        """
        Acquire the microphone and start streaming.

        Raises:
            DeviceError: A subclass describing why the microphone is unavailable
        """
        pyaudio = _load_pyaudio()
        self.p = pyaudio.PyAudio()
        self._continue = pyaudio.paContinue
        try:
            self.p.get_default_input_device_info()
            self.stream = self.p.open(
                format=pyaudio.paFloat32,
                channels=AUDIO_CHANNELS,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.block_size,
                stream_callback=self._callback,
            )
            self.stream.start_stream()
        except (OSError, IOError) as e:
            logger.error(f"Could not open microphone: {e}")
            self.close()
            raise _device_error(e) from e
        logger.info("Microphone opened")

    def _callback(self, in_data, frame_count, time_info, status):
        samples = np.frombuffer(in_data, dtype=np.float32).copy()
        try:
            self.on_block(samples)
        except Exception as e:
            logger.error(f"Audio input callback error: {e}")
        return (None, self._continue)

    def close(self) -> None:
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except OSError as e:
                logger.warning(f"Error closing microphone stream: {e}")
            self.stream = None
        if self.p is not None:
            self.p.terminate()
            self.p = None


@dataclass(eq=False)
class ScheduledBuffer:
    """One buffer queued on the output timeline."""

    id: int
    samples: np.ndarray
    start_frame: int

    @property
    def end_frame(self) -> int:
        return self.start_frame + len(self.samples)


class OutputTimeline(ABC):
    """A playback device that schedules buffers against its own clock."""

    @property
    @abstractmethod
    def current_time(self) -> float:
        """Seconds elapsed on the output clock."""

    @abstractmethod
    def schedule(self, samples: np.ndarray, start_at: float) -> Any:
        """Queue mono float samples at start_at and return a handle for them."""

    @abstractmethod
    def stop(self, handle: Any) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class PyAudioSpeaker(OutputTimeline):
    """
    Output timeline backed by a PyAudio callback stream.

    Scheduled buffers are mixed into each output block according to their start
    frame on a sample clock that advances with every block played. A buffer that
    plays to its end is reported to on_finished from the PortAudio thread; a
    stopped buffer is not.
    """

    def __init__(
        self,
        on_finished: Callable[[ScheduledBuffer], None],
        sample_rate: int = OUTPUT_SAMPLE_RATE,
        block_size: int = OUTPUT_BLOCK_SIZE,
    ):
        self.on_finished = on_finished
        self.sample_rate = sample_rate
        self.block_size = block_size
        self._frames_played = 0
        self._buffers: Dict[int, ScheduledBuffer] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.p = None
        self.stream = None
        self._continue = None

    def open(self) -> None:
        pyaudio = _load_pyaudio()
        self.p = pyaudio.PyAudio()
        self._continue = pyaudio.paContinue
        try:
            self.stream = self.p.open(
                format=pyaudio.paFloat32,
                channels=AUDIO_CHANNELS,
                rate=self.sample_rate,
                output=True,
                frames_per_buffer=self.block_size,
                stream_callback=self._callback,
            )
            self.stream.start_stream()
        except (OSError, IOError) as e:
            logger.error(f"Could not open speaker: {e}")
            self.close()
            raise DeviceError("Could not open the audio output device.") from e
        logger.info("Speaker opened")

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_played / float(self.sample_rate)

    def schedule(self, samples: np.ndarray, start_at: float) -> ScheduledBuffer:
        """Queue samples to start playing at start_at seconds on the output clock."""
        with self._lock:
            start_frame = max(int(round(start_at * self.sample_rate)), self._frames_played)
            handle = ScheduledBuffer(next(self._ids), np.asarray(samples, dtype=np.float32), start_frame)
            self._buffers[handle.id] = handle
        return handle

    def stop(self, handle: ScheduledBuffer) -> None:
        with self._lock:
            self._buffers.pop(handle.id, None)

    def _mix(self, frame_count: int):
        block = np.zeros(frame_count, dtype=np.float32)
        finished = []
        with self._lock:
            block_start = self._frames_played
            block_end = block_start + frame_count
            for handle in list(self._buffers.values()):
                lo = max(handle.start_frame, block_start)
                hi = min(handle.end_frame, block_end)
                if lo < hi:
                    block[lo - block_start:hi - block_start] += handle.samples[lo - handle.start_frame:hi - handle.start_frame]
                if handle.end_frame <= block_end:
                    del self._buffers[handle.id]
                    finished.append(handle)
            self._frames_played = block_end
        return np.clip(block, -1.0, 1.0), finished

    def _callback(self, in_data, frame_count, time_info, status):
        block, finished = self._mix(frame_count)
        for handle in finished:
            try:
                self.on_finished(handle)
            except Exception as e:
                logger.error(f"Audio output callback error: {e}")
        return (block.tobytes(), self._continue)

    def close(self) -> None:
        with self._lock:
            self._buffers.clear()
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except OSError as e:
                logger.warning(f"Error closing speaker stream: {e}")
            self.stream = None
        if self.p is not None:
            self.p.terminate()
            self.p = None


def open_microphone(on_block: Callable[[np.ndarray], None]) -> PyAudioMicrophone:
    """Open the default microphone; raises a DeviceError subclass on failure."""
    microphone = PyAudioMicrophone(on_block)
    microphone.open()
    return microphone


def open_speaker(on_finished: Callable[[ScheduledBuffer], None]) -> PyAudioSpeaker:
    """Open the default output device as a playback timeline."""
    speaker = PyAudioSpeaker(on_finished)
    speaker.open()
    return speaker
