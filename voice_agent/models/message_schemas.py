"""
Pydantic models for the client/relay WebSocket message schemas.

This module defines structured data models for every envelope exchanged over the
transport channel, providing type validation and documentation. Every message is a
self-contained JSON object with a "type" tag and a "payload".
"""

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from voice_agent.config.constants import DEFAULT_VOICE, VOICES
from voice_agent.errors import FormatError
from voice_agent.models.status import ConversationStatus


# Base Models
class BaseMessage(BaseModel):
    """Base model for all WebSocket messages."""

    type: str = Field(..., description="Message type identifier")

    def to_json(self) -> str:
        """Serialize the envelope using wire (camelCase) field names."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class CamelModel(BaseModel):
    """Payload model that accepts and emits the camelCase names of the wire format."""

    model_config = ConfigDict(populate_by_name=True)


# Client -> relay
class UserInfo(CamelModel):
    """Identity supplied by the client in the init handshake."""

    full_name: str = Field("", alias="fullName", description="User's full name")
    phone_number: str = Field("", alias="phoneNumber", description="Raw phone number")


class InitPayload(CamelModel):
    """Payload of the init message."""

    system_instruction: str = Field("", alias="systemInstruction")
    voice: str = Field(DEFAULT_VOICE, description="Prebuilt voice name")
    user: UserInfo = Field(default_factory=UserInfo)

    @field_validator("voice")
    def validate_voice(cls, v):
        """Fall back to the default voice when an unknown one is requested."""
        if v not in VOICES:
            import logging

            from voice_agent.config.constants import LOGGER_NAME

            logger = logging.getLogger(LOGGER_NAME)
            logger.warning(f"Unknown voice requested: {v}, using {DEFAULT_VOICE}")
            return DEFAULT_VOICE
        return v


class InitMessage(BaseMessage):
    """Model for the init message opening a conversation."""

    type: Literal["init"]
    payload: InitPayload


class AudioMessage(BaseMessage):
    """Model for an audio frame from the client."""

    type: Literal["audio"]
    payload: str = Field(..., description="Base64-encoded PCM16 mono 16 kHz frame")


# Relay -> client
class StatusMessage(BaseMessage):
    """Model for a conversation status update."""

    type: Literal["status"]
    payload: ConversationStatus


class ErrorMessage(BaseMessage):
    """Model for a terminal error notification."""

    type: Literal["error"]
    payload: str = Field(..., description="Human-readable error message")


class AgentEvent(CamelModel):
    """
    Minimal tagged view of one upstream event.

    The relay maps each vendor message onto this shape so that clients never
    depend on the upstream schema.
    """

    user_text: Optional[str] = Field(None, alias="userText")
    agent_text: Optional[str] = Field(None, alias="agentText")
    audio: Optional[str] = Field(None, description="Base64 PCM16 mono 24 kHz chunk")
    turn_complete: bool = Field(False, alias="turnComplete")
    interrupted: bool = False

    def is_empty(self) -> bool:
        return not (
            self.user_text or self.agent_text or self.audio
            or self.turn_complete or self.interrupted
        )


class AgentResponseMessage(BaseMessage):
    """Model for an upstream event relayed to the client."""

    type: Literal["agent_response"]
    payload: AgentEvent


# Union type for all possible incoming messages
IncomingMessage = Union[InitMessage, AudioMessage]

# Union type for all possible outgoing messages
OutgoingMessage = Union[StatusMessage, ErrorMessage, AgentResponseMessage]

TransportMessage = Annotated[
    Union[InitMessage, AudioMessage, StatusMessage, ErrorMessage, AgentResponseMessage],
    Field(discriminator="type"),
]

_transport_adapter = TypeAdapter(TransportMessage)


def parse_envelope(data: str) -> Dict[str, Any]:
    """
    Parse a raw text frame into an envelope dictionary.

    Raises:
        FormatError: If the frame is not a JSON object with a string "type"
    """
    try:
        message = json.loads(data)
    except (TypeError, ValueError) as e:
        raise FormatError(f"Malformed JSON envelope: {e}") from e
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise FormatError("Envelope must be an object with a string 'type'")
    return message


def parse_message(data: str) -> TransportMessage:
    """
    Parse and validate a raw text frame into a typed transport message.

    Raises:
        FormatError: If the frame is malformed or does not match any message type
    """
    message = parse_envelope(data)
    try:
        return _transport_adapter.validate_python(message)
    except PydanticValidationError as e:
        raise FormatError(f"Invalid {message['type']} message: {e}") from e
