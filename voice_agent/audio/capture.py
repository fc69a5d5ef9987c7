"""
Microphone capture for the voice client.

Blocks arrive on the audio device's thread. MicrophoneCapture moves each one onto
the asyncio loop that started it, and drops blocks once capture has been stopped.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import numpy as np

from voice_agent.audio.devices import open_microphone
from voice_agent.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

DeviceFactory = Callable[[Callable[[np.ndarray], None]], Any]


class MicrophoneCapture:
    """
    Exclusive microphone capture delivering float32 blocks to the event loop.

    Args:
        on_block: Called on the event loop with each captured block
        device_factory: Opens the device given a thread-side block callback and
            returns an object with close(); raises DeviceError on failure
    """

    def __init__(
        self,
        on_block: Callable[[np.ndarray], None],
        device_factory: DeviceFactory = open_microphone,
    ):
        self.on_block = on_block
        self.device_factory = device_factory
        self.device = None
        self.active = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def start(self) -> None:
        """
        Acquire the microphone; must be called from the event loop thread.

        Raises:
            DeviceError: If the microphone cannot be acquired
        """
        if self.active:
            return
        self._loop = asyncio.get_running_loop()
        self.device = self.device_factory(self._from_device)
        self.active = True
        logger.info("Microphone capture started")

    def _from_device(self, samples: np.ndarray) -> None:
        loop = self._loop
        if not self.active or loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._deliver, samples)

    def _deliver(self, samples: np.ndarray) -> None:
        if self.active:
            self.on_block(samples)

    def stop(self) -> None:
        """Release the microphone; safe to call more than once."""
        if not self.active and self.device is None:
            return
        self.active = False
        device, self.device = self.device, None
        if device is not None:
            device.close()
        logger.info("Microphone capture stopped")
