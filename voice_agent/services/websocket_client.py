"""
WebSocket client for connecting to the voice agent relay.

This module provides the client side of the relay protocol. It handles message
formatting, validation and connection management, using the Pydantic message models
for type safety. One RelayClient carries exactly one conversation.
"""

import logging
from typing import AsyncIterator

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException
from websockets.protocol import State

from voice_agent.config.constants import DEFAULT_VOICE, LOGGER_NAME
from voice_agent.errors import FormatError, TransportError
from voice_agent.models.message_schemas import (
    AudioMessage,
    InitMessage,
    InitPayload,
    OutgoingMessage,
    UserInfo,
    parse_message,
)

logger = logging.getLogger(LOGGER_NAME)


class RelayClient:
    """
    Client for one conversation with the relay over WebSocket.

    This class provides methods to connect to the relay, send the init handshake and
    audio frames, and iterate over the relay's messages.
    """

    def __init__(self, url: str):
        """
        Initialize the relay WebSocket client.

        Args:
            url: The WebSocket URL of the relay, e.g. ws://localhost:3001/ws
        """
        self.url = url
        self.websocket = None

    @property
    def is_open(self) -> bool:
        return self.websocket is not None and self.websocket.state is State.OPEN

    async def connect(self) -> None:
        """
        Establish a connection to the relay.

        Raises:
            TransportError: If the connection cannot be established
        """
        try:
            self.websocket = await websockets.connect(self.url)
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect to relay: {e}")
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e
        logger.info(f"Connected to relay WebSocket at {self.url}")

    async def _send(self, message) -> None:
        if not self.websocket:
            raise TransportError("Not connected")
        try:
            await self.websocket.send(message.to_json())
        except ConnectionClosedOK:
            logger.debug(f"Dropping {message.type} message, relay closed the connection")
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed while sending {message.type}: {e}") from e

    async def send_init(
        self,
        system_instruction: str,
        full_name: str,
        phone_number: str,
        voice: str = DEFAULT_VOICE,
    ) -> None:
        """Send the init handshake that opens the conversation."""
        message = InitMessage(
            type="init",
            payload=InitPayload(
                system_instruction=system_instruction,
                voice=voice,
                user=UserInfo(full_name=full_name, phone_number=phone_number),
            ),
        )
        await self._send(message)
        logger.info(f"Sent init for {full_name} with voice {voice}")

    async def send_audio(self, payload: str) -> None:
        """Send one base64 PCM16 frame."""
        await self._send(AudioMessage(type="audio", payload=payload))

    async def messages(self) -> AsyncIterator[OutgoingMessage]:
        """
        Yield the relay's messages until the connection closes.

        Malformed messages are logged and skipped. A normal close ends the
        iteration; an abnormal one raises TransportError.
        """
        if not self.websocket:
            raise TransportError("Not connected")
        try:
            async for raw in self.websocket:
                try:
                    yield parse_message(raw)
                except FormatError as e:
                    logger.warning(f"Dropping malformed relay message: {e}")
        except ConnectionClosedOK:
            return
        except ConnectionClosed as e:
            raise TransportError(f"Connection to relay lost: {e}") from e

    async def close(self) -> None:
        """Close the connection; safe to call more than once."""
        if self.websocket:
            try:
                await self.websocket.close()
            except Exception as e:
                logger.debug(f"Error closing relay connection: {e}")
            self.websocket = None
            logger.info("Relay connection closed")
