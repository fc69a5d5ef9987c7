"""
Mapping of upstream Live API messages onto AgentEvent.

This is the only place that knows the vendor message shape. Everything downstream
of the relay (the wire protocol and the client) sees AgentEvent.
"""

from typing import Any, Optional

from voice_agent.audio.codec import encode_binary
from voice_agent.models.message_schemas import AgentEvent


def _text(transcription: Any) -> Optional[str]:
    if transcription is None:
        return None
    return getattr(transcription, "text", None) or None


def _audio(model_turn: Any) -> Optional[str]:
    if model_turn is None:
        return None
    chunks = []
    for part in getattr(model_turn, "parts", None) or []:
        inline_data = getattr(part, "inline_data", None)
        if inline_data is not None and inline_data.data:
            chunks.append(inline_data.data)
    if not chunks:
        return None
    return encode_binary(b"".join(chunks))


def map_server_message(message: Any) -> Optional[AgentEvent]:
    """
    Map one LiveServerMessage onto an AgentEvent.

    Args:
        message: A google.genai LiveServerMessage (or an object of the same shape)

    Returns:
        The mapped event, or None when the message carries nothing the client uses
        (setup acknowledgements, usage metadata and the like)
    """
    content = getattr(message, "server_content", None)
    if content is None:
        return None
    event = AgentEvent(
        user_text=_text(getattr(content, "input_transcription", None)),
        agent_text=_text(getattr(content, "output_transcription", None)),
        audio=_audio(getattr(content, "model_turn", None)),
        turn_complete=bool(getattr(content, "turn_complete", False)),
        interrupted=bool(getattr(content, "interrupted", False)),
    )
    if event.is_empty():
        return None
    return event
