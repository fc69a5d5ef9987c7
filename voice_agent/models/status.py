"""
Conversation status state machine.

The status is the single value the client UI reads to decide what the user may do.
Transitions are explicit; once the relay has reported that the upstream session is
open the relay is authoritative and any status it declares is accepted.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from voice_agent.config.constants import LOGGER_NAME
from voice_agent.errors import InvalidTransitionError

logger = logging.getLogger(LOGGER_NAME)


class ConversationStatus(str, Enum):
    """Conversational state of one client connection."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    LISTENING = "LISTENING"
    THINKING = "THINKING"
    SPEAKING = "SPEAKING"
    ERROR = "ERROR"


STATUS_LABELS = {
    ConversationStatus.IDLE: "Press Enter to start the conversation",
    ConversationStatus.CONNECTING: "Connecting to agent...",
    ConversationStatus.LISTENING: "Listening...",
    ConversationStatus.THINKING: "Thinking...",
    ConversationStatus.SPEAKING: "Agent is speaking...",
    ConversationStatus.ERROR: "An error occurred. Please restart.",
}

StatusListener = Callable[[ConversationStatus, ConversationStatus], None]


class ConversationStateMachine:
    """
    Six-state conversation status machine.

    Only IDLE and ERROR allow a new conversation to start. ERROR is absorbing for
    everything except an explicit restart or hangup.
    """

    STARTABLE = (ConversationStatus.IDLE, ConversationStatus.ERROR)

    def __init__(self):
        self.status = ConversationStatus.IDLE
        self.error_message: Optional[str] = None
        self._listeners: List[StatusListener] = []

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked with (previous, current) on every change."""
        self._listeners.append(listener)

    @property
    def can_start(self) -> bool:
        return self.status in self.STARTABLE

    def _set(self, status: ConversationStatus) -> None:
        previous = self.status
        if previous == status:
            return
        self.status = status
        logger.debug(f"Conversation status: {previous.value} -> {status.value}")
        for listener in self._listeners:
            listener(previous, status)

    def start(self) -> None:
        """IDLE/ERROR -> CONNECTING."""
        if not self.can_start:
            raise InvalidTransitionError(f"Cannot start a conversation while {self.status.value}")
        self.error_message = None
        self._set(ConversationStatus.CONNECTING)

    def session_opened(self) -> None:
        """CONNECTING -> LISTENING once the upstream session is open."""
        if self.status == ConversationStatus.CONNECTING:
            self._set(ConversationStatus.LISTENING)

    def apply_server_status(self, status: ConversationStatus) -> None:
        """Accept the status declared by the relay, which is authoritative once connected."""
        if self.status == ConversationStatus.ERROR:
            logger.debug(f"Ignoring server status {status.value} while in ERROR")
            return
        self._set(ConversationStatus(status))

    def speaking(self) -> None:
        if self.status != ConversationStatus.ERROR:
            self._set(ConversationStatus.SPEAKING)

    def speaking_finished(self) -> None:
        if self.status == ConversationStatus.SPEAKING:
            self._set(ConversationStatus.LISTENING)

    def fail(self, message: str) -> None:
        """Any state -> ERROR with an explanatory message."""
        self.error_message = message
        self._set(ConversationStatus.ERROR)

    def hangup(self) -> None:
        """Return to IDLE after a user hangup."""
        self.error_message = None
        self._set(ConversationStatus.IDLE)
