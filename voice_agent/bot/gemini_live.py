"""
Upstream AI streaming session backed by the Gemini Live API.

The google-genai SDK exposes a Live session as an async context manager with a
pull-style receive iterator. The relay instead consumes an upstream session through
four callbacks (open, message, error, close), so this module runs the receive loop
on its own task and turns what it sees into callback invocations.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from google import genai
from google.genai import types
from websockets.exceptions import ConnectionClosedOK

from voice_agent.audio.codec import decode_binary
from voice_agent.bot.events import map_server_message
from voice_agent.config.constants import DEFAULT_LIVE_MODEL, DEFAULT_VOICE, LOGGER_NAME
from voice_agent.errors import UpstreamError
from voice_agent.models.message_schemas import AgentEvent

logger = logging.getLogger(LOGGER_NAME)


@dataclass
class UpstreamConfig:
    """Per-session settings supplied by the client's init message."""

    system_instruction: str
    voice: str = DEFAULT_VOICE
    response_modality: str = "AUDIO"
    input_transcription: bool = True
    output_transcription: bool = True


@dataclass
class UpstreamCallbacks:
    """Async callbacks through which an upstream session reports its lifecycle."""

    on_open: Callable[[], Awaitable[None]]
    on_message: Callable[[AgentEvent], Awaitable[None]]
    on_error: Callable[[Exception], Awaitable[None]]
    on_close: Callable[[], Awaitable[None]]


def build_live_config(config: UpstreamConfig) -> types.LiveConnectConfig:
    """Translate an UpstreamConfig into the SDK's LiveConnectConfig."""
    return types.LiveConnectConfig(
        response_modalities=[config.response_modality],
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=config.voice)
            )
        ),
        system_instruction=types.Content(parts=[types.Part(text=config.system_instruction)]),
        input_audio_transcription=types.AudioTranscriptionConfig() if config.input_transcription else None,
        output_audio_transcription=types.AudioTranscriptionConfig() if config.output_transcription else None,
    )


class GeminiLiveSession:
    """
    One open Gemini Live session.

    The receive loop forwards every mapped message to on_message. When the upstream
    stream ends on its own, on_close is invoked; when it fails, on_error is invoked
    first. Neither fires after close() has been called.
    """

    def __init__(self, client: genai.Client, model: str, config: UpstreamConfig, callbacks: UpstreamCallbacks):
        self.client = client
        self.model = model
        self.config = config
        self.callbacks = callbacks
        self._context = None
        self._session = None
        self._recv_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._closed

    async def start(self) -> None:
        logger.info(f"Connecting to Gemini Live API with model: {self.model}")
        context = self.client.aio.live.connect(model=self.model, config=build_live_config(self.config))
        self._session = await context.__aenter__()
        self._context = context
        logger.info("Gemini session opened")
        await self.callbacks.on_open()
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def _recv_loop(self) -> None:
        try:
            while not self._closed:
                received = 0
                # receive() ends after each completed turn; an empty pass means the stream is gone
                async for message in self._session.receive():
                    received += 1
                    event = map_server_message(message)
                    if event is not None:
                        await self.callbacks.on_message(event)
                if received == 0:
                    break
        except asyncio.CancelledError:
            raise
        except ConnectionClosedOK:
            logger.info("Gemini connection closed normally")
        except Exception as e:
            if self._closed:
                return
            logger.error(f"Gemini session error: {e}", exc_info=True)
            await self.callbacks.on_error(UpstreamError(str(e)))
        if not self._closed:
            logger.info("Gemini session closed by upstream")
            await self.callbacks.on_close()

    async def send_realtime_input(self, data: Union[str, bytes], mime_type: str) -> None:
        """Forward one audio chunk (raw bytes or base64 text) to the session."""
        if not self.is_open:
            return
        if isinstance(data, str):
            data = decode_binary(data)
        try:
            await self._session.send_realtime_input(audio=types.Blob(data=data, mime_type=mime_type))
        except Exception as e:
            raise UpstreamError(f"Failed to send audio to Gemini: {e}") from e

    async def close(self) -> None:
        """Close the session; safe to call more than once and from inside a callback."""
        if self._closed:
            return
        self._closed = True
        task = self._recv_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._context is not None:
            try:
                await self._context.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing Gemini session: {e}")
        self._session = None
        self._context = None
        logger.info("Gemini session closed")


class GeminiLiveConnector:
    """Factory for Gemini Live sessions sharing one SDK client."""

    def __init__(self, api_key: Optional[str], model: str = DEFAULT_LIVE_MODEL):
        self.api_key = api_key
        self.model = model
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if not self.api_key:
            raise UpstreamError("GEMINI_API_KEY environment variable not set")
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def connect(self, config: UpstreamConfig, callbacks: UpstreamCallbacks) -> GeminiLiveSession:
        """
        Open a session and start relaying its events through the callbacks.

        Raises:
            UpstreamError: If the credential is missing or the session cannot be opened
        """
        session = GeminiLiveSession(self._get_client(), self.model, config, callbacks)
        try:
            await session.start()
        except UpstreamError:
            raise
        except Exception as e:
            await session.close()
            raise UpstreamError(f"Failed to open Gemini session: {e}") from e
        return session