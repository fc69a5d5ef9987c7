"""
Models module for data structures and state management in the voice agent.

Key components:
- message_schemas: Pydantic models for the envelopes exchanged between client and relay.
- status: The six-state conversation status machine.
- transcript: Per-turn accumulation of user and agent transcription.
- records: UserRecord and SessionRecord stored by the user store.
- conversation: Per-connection relay state and the registry of live connections.
"""

from voice_agent.models.conversation import ConversationManager, RelayConnection
from voice_agent.models.message_schemas import (
    AgentEvent,
    AgentResponseMessage,
    AudioMessage,
    BaseMessage,
    ErrorMessage,
    IncomingMessage,
    InitMessage,
    OutgoingMessage,
    StatusMessage,
    parse_message,
)
from voice_agent.models.records import SessionRecord, UserRecord
from voice_agent.models.status import ConversationStateMachine, ConversationStatus
