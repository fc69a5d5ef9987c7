"""
Client-side conversation controller.

VoiceAgentController owns one conversation at a time: the microphone, the output
timeline, the relay connection, the status machine, the transcript and the playback
queue. Device threads and the transport reader never touch that state directly;
they post typed events onto a queue and a single consumer task applies them in
order, so nothing here needs a lock.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import numpy as np

from voice_agent.audio.capture import MicrophoneCapture
from voice_agent.audio.codec import encode_pcm_block
from voice_agent.audio.devices import open_microphone, open_speaker
from voice_agent.audio.playback import PlaybackScheduler
from voice_agent.config.constants import (
    DEFAULT_VOICE,
    ERROR_CONNECTION_FAILED,
    ERROR_CONNECTION_LOST,
    LOGGER_NAME,
)
from voice_agent.errors import DeviceError, FormatError, TransportError
from voice_agent.models.message_schemas import (
    AgentEvent,
    AgentResponseMessage,
    ErrorMessage,
    StatusMessage,
)
from voice_agent.models.status import ConversationStateMachine, ConversationStatus
from voice_agent.models.transcript import TranscriptAccumulator, TranscriptMessage
from voice_agent.services.websocket_client import RelayClient

logger = logging.getLogger(LOGGER_NAME)


@dataclass
class DeviceBlock:
    samples: np.ndarray


@dataclass
class WireMessage:
    message: Any


@dataclass
class PlaybackDone:
    handle: Any


@dataclass
class TransportClosed:
    pass


@dataclass
class TransportFailed:
    error: Exception


class VoiceAgentController:
    """
    Runs one voice conversation against the relay.

    Args:
        url: Relay WebSocket URL
        full_name: Caller's full name sent in the init handshake
        phone_number: Caller's phone number sent in the init handshake
        system_instruction: Prompt for the agent
        voice: Prebuilt voice name
        transport_factory: Builds the relay client for a URL
        microphone_factory: Opens the microphone given a block callback
        speaker_factory: Opens the output timeline given a finished-buffer callback
        on_transcript: Called with the entries finalized at each turn completion
    """

    def __init__(
        self,
        url: str,
        full_name: str,
        phone_number: str,
        system_instruction: str,
        voice: str = DEFAULT_VOICE,
        transport_factory: Callable[[str], Any] = RelayClient,
        microphone_factory: Callable = open_microphone,
        speaker_factory: Callable = open_speaker,
        on_transcript: Optional[Callable[[List[TranscriptMessage]], None]] = None,
    ):
        self.url = url
        self.full_name = full_name
        self.phone_number = phone_number
        self.system_instruction = system_instruction
        self.voice = voice
        self.transport_factory = transport_factory
        self.microphone_factory = microphone_factory
        self.speaker_factory = speaker_factory
        self.on_transcript = on_transcript

        self.state_machine = ConversationStateMachine()
        self.transcript = TranscriptAccumulator()
        self.capture: Optional[MicrophoneCapture] = None
        self.output = None
        self.playback: Optional[PlaybackScheduler] = None
        self.transport = None

        self.events: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._reader: Optional[asyncio.Task] = None
        self.active = False

    @property
    def status(self) -> ConversationStatus:
        return self.state_machine.status

    @property
    def error_message(self) -> Optional[str]:
        return self.state_machine.error_message

    async def start_conversation(self) -> None:
        """
        Acquire the devices, connect to the relay and send init.

        Does nothing unless the conversation is IDLE or ERROR. Device and connection
        failures leave the conversation in ERROR with a user-facing message.
        """
        if not self.state_machine.can_start:
            logger.warning(f"Cannot start a conversation while {self.status.value}")
            return
        self.state_machine.start()
        self.transcript = TranscriptAccumulator()

        loop = asyncio.get_running_loop()
        events: asyncio.Queue = asyncio.Queue()
        self.events = events
        self.active = True

        try:
            self.output = self.speaker_factory(
                lambda handle: loop.call_soon_threadsafe(events.put_nowait, PlaybackDone(handle))
            )
            self.playback = PlaybackScheduler(self.output, self.state_machine)
            self.capture = MicrophoneCapture(
                lambda samples: events.put_nowait(DeviceBlock(samples)),
                self.microphone_factory,
            )
            self.capture.start()
        except DeviceError as e:
            logger.error(f"Audio device error: {e}")
            await self.fail(str(e))
            return

        self.transport = self.transport_factory(self.url)
        try:
            await self.transport.connect()
            await self.transport.send_init(
                self.system_instruction, self.full_name, self.phone_number, voice=self.voice
            )
        except TransportError as e:
            logger.error(f"Could not start conversation: {e}")
            await self.fail(ERROR_CONNECTION_FAILED)
            return

        self._reader = asyncio.create_task(self._read_transport(self.transport, events))
        self._consumer = asyncio.create_task(self._run(events))
        logger.info("Conversation started")

    async def _read_transport(self, transport, events: asyncio.Queue) -> None:
        try:
            async for message in transport.messages():
                events.put_nowait(WireMessage(message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            events.put_nowait(TransportFailed(e))
            return
        events.put_nowait(TransportClosed())

    async def _run(self, events: asyncio.Queue) -> None:
        while True:
            event = await events.get()
            if event is None:
                break
            try:
                await self.handle_event(event)
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)

    async def handle_event(self, event) -> None:
        """Apply one event to the conversation state."""
        if not self.active:
            return
        if isinstance(event, DeviceBlock):
            await self._send_block(event.samples)
        elif isinstance(event, WireMessage):
            await self.handle_message(event.message)
        elif isinstance(event, PlaybackDone):
            self.playback.on_playback_done(event.handle)
        elif isinstance(event, TransportClosed):
            logger.info("Relay closed the connection")
            await self.teardown()
            self.state_machine.hangup()
        elif isinstance(event, TransportFailed):
            logger.error(f"Transport failure: {event.error}")
            await self.fail(ERROR_CONNECTION_LOST)

    async def _send_block(self, samples: np.ndarray) -> None:
        if self.transport is None or not self.transport.is_open:
            return
        try:
            await self.transport.send_audio(encode_pcm_block(samples))
        except TransportError as e:
            logger.error(f"Failed to send audio: {e}")
            await self.fail(ERROR_CONNECTION_LOST)

    async def handle_message(self, message) -> None:
        if isinstance(message, StatusMessage):
            if message.payload == ConversationStatus.LISTENING and self.status == ConversationStatus.CONNECTING:
                self.state_machine.session_opened()
            else:
                self.state_machine.apply_server_status(message.payload)
        elif isinstance(message, ErrorMessage):
            logger.error(f"Relay reported an error: {message.payload}")
            await self.fail(message.payload)
        elif isinstance(message, AgentResponseMessage):
            self.handle_agent_event(message.payload)
        else:
            logger.warning(f"Ignoring unexpected {message.type} message from relay")

    def handle_agent_event(self, event: AgentEvent) -> None:
        if event.user_text:
            self.transcript.add_user_text(event.user_text)
        if event.agent_text:
            self.transcript.add_agent_text(event.agent_text)
        if event.audio:
            try:
                self.playback.schedule(event.audio)
            except FormatError as e:
                logger.warning(f"Dropping undecodable agent audio: {e}")
        if event.interrupted:
            self.playback.stop_all()
            self.state_machine.speaking_finished()
        if event.turn_complete:
            entries = self.transcript.complete_turn()
            if entries and self.on_transcript:
                self.on_transcript(entries)

    async def fail(self, message: str) -> None:
        """Move to ERROR with a message and release everything."""
        self.state_machine.fail(message)
        await self.teardown()

    async def end_conversation(self) -> None:
        """User hangup: release everything and return to IDLE."""
        await self.teardown()
        self.state_machine.hangup()
        logger.info("Conversation ended by user")

    async def teardown(self) -> None:
        """Release the microphone, speaker and transport; safe to call more than once."""
        if not self.active:
            return
        self.active = False

        if self.capture is not None:
            self.capture.stop()
            self.capture = None
        if self.playback is not None:
            self.playback.stop_all()
            self.playback = None
        if self.output is not None:
            self.output.close()
            self.output = None
        self.transcript.clear_live()

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
        if self.transport is not None:
            await self.transport.close()
            self.transport = None
        if self.events is not None:
            self.events.put_nowait(None)

    async def wait_closed(self) -> None:
        """Wait until the current conversation's event consumer has stopped."""
        if self._consumer is not None:
            await self._consumer
