"""
Handles client audio streamed through the relay.

Each audio message carries one base64 PCM16 mono 16 kHz frame captured by the client.
Frames are forwarded to the upstream session as realtime input as soon as they arrive;
frames that arrive before the upstream session exists are dropped.
"""

import logging
import time
from typing import TYPE_CHECKING, Any, Dict

from voice_agent.config.constants import INPUT_AUDIO_MIME_TYPE, LOGGER_NAME
from voice_agent.models.conversation import RelayConnection

if TYPE_CHECKING:
    from voice_agent.websocket_manager import RelaySessionManager

logger = logging.getLogger(LOGGER_NAME)


async def handle_audio(
    message: Dict[str, Any],
    connection: RelayConnection,
    relay: "RelaySessionManager",
) -> None:
    """
    Forward one audio frame to the connection's upstream session.

    Args:
        message: The audio envelope; its payload is the base64 frame
        connection: The connection the frame arrived on
        relay: The relay owning the connection
    """
    session = connection.upstream_session
    if session is None:
        return

    payload = message.get("payload")
    if not isinstance(payload, str) or not payload:
        logger.warning("Missing audio payload in audio message")
        return

    start_time = time.perf_counter()
    await session.send_realtime_input(payload, INPUT_AUDIO_MIME_TYPE)

    processing_time = (time.perf_counter() - start_time) * 1000
    if processing_time > 10:  # Only log if forwarding took more than 10ms
        logger.debug(f"Audio forwarding took {processing_time:.2f}ms for connection: {connection.connection_id}")
