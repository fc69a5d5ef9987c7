"""
Exception taxonomy shared by the relay server and the voice client.

Validation and device errors carry a user-facing message and are recovered
locally. Upstream and transport errors are fatal to a single connection.
Format errors only ever drop the offending message.
"""

from typing import Optional


class VoiceAgentError(Exception):
    """Base class for all voice agent errors."""


class ValidationError(VoiceAgentError):
    """Missing or invalid fields in an init message."""

    def __init__(self, message: str, close_reason: str = "Invalid user information"):
        super().__init__(message)
        self.close_reason = close_reason


class FormatError(VoiceAgentError):
    """Malformed wire message or undecodable audio payload."""


class TransportError(VoiceAgentError):
    """Socket-level failure of the client/relay transport."""


class UpstreamError(VoiceAgentError):
    """Failure of the upstream AI streaming session."""


class InvalidTransitionError(VoiceAgentError):
    """A conversation status transition that the state machine does not allow."""


class DeviceError(VoiceAgentError):
    """Microphone or speaker could not be acquired."""

    user_message = "Could not access microphone. An unknown error occurred."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)


class MicrophonePermissionError(DeviceError, PermissionError):
    user_message = "Microphone access was denied. Please allow it in your system settings."


class DeviceNotFoundError(DeviceError):
    user_message = "No microphone found. Please connect a microphone and try again."


class DeviceBusyError(DeviceError):
    user_message = "Microphone is already in use or a hardware error occurred."


class UserStoreError(VoiceAgentError):
    """Base class for user store failures."""


class UserExistsError(UserStoreError):
    pass


class UserNotFoundError(UserStoreError):
    pass
