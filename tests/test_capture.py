import asyncio
import threading
import numpy as np
import pytest
from unittest.mock import MagicMock

from voice_agent.audio.capture import MicrophoneCapture
from voice_agent.errors import DeviceBusyError


class FakeMicrophone:
    def __init__(self, on_block):
        self.on_block = on_block
        self.close = MagicMock()


@pytest.mark.asyncio
async def test_blocks_hop_onto_the_event_loop():
    received = []
    devices = []

    def factory(on_block):
        devices.append(FakeMicrophone(on_block))
        return devices[-1]

    capture = MicrophoneCapture(received.append, factory)
    capture.start()
    block = np.zeros(4096, dtype=np.float32)

    thread = threading.Thread(target=devices[0].on_block, args=(block,))
    thread.start()
    thread.join()
    await asyncio.sleep(0)

    assert len(received) == 1
    assert received[0] is block


@pytest.mark.asyncio
async def test_blocks_after_stop_are_dropped():
    received = []
    devices = []
    capture = MicrophoneCapture(received.append, lambda on_block: devices.append(FakeMicrophone(on_block)) or devices[-1])
    capture.start()

    capture.stop()
    devices[0].on_block(np.zeros(4, dtype=np.float32))
    await asyncio.sleep(0)

    assert received == []


@pytest.mark.asyncio
async def test_stop_is_idempotent():
    devices = []
    capture = MicrophoneCapture(lambda samples: None, lambda on_block: devices.append(FakeMicrophone(on_block)) or devices[-1])
    capture.start()

    capture.stop()
    capture.stop()

    devices[0].close.assert_called_once()
    assert not capture.active


@pytest.mark.asyncio
async def test_device_failure_propagates():
    def factory(on_block):
        raise DeviceBusyError()

    capture = MicrophoneCapture(lambda samples: None, factory)

    with pytest.raises(DeviceBusyError):
        capture.start()
    assert not capture.active
