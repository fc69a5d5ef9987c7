"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol values and making it easier to
maintain consistent naming throughout the codebase.

The audio constants are part of the wire protocol between the voice client and the
relay. Changing any of them is a compatibility-breaking change.
"""

# Logger name used throughout the application
LOGGER_NAME = "voice_agent"

# Default Gemini model for the Live API
DEFAULT_LIVE_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"

# Audio format constants
INPUT_SAMPLE_RATE = 16000
OUTPUT_SAMPLE_RATE = 24000
CAPTURE_BLOCK_SIZE = 4096
AUDIO_CHANNELS = 1
INPUT_AUDIO_MIME_TYPE = f"audio/pcm;rate={INPUT_SAMPLE_RATE}"

# Message type constants
MESSAGE_TYPE_INIT = "init"
MESSAGE_TYPE_AUDIO = "audio"
MESSAGE_TYPE_STATUS = "status"
MESSAGE_TYPE_ERROR = "error"
MESSAGE_TYPE_AGENT_RESPONSE = "agent_response"

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008

# User-facing error messages sent over the transport
ERROR_MISSING_USER_INFO = "Full name and phone number are required."
ERROR_INVALID_PHONE = "Invalid phone number format."
ERROR_UPSTREAM_SESSION = "Upstream session error."

# Prebuilt voices offered by the upstream model
VOICES = ("Zephyr", "Puck", "Charon", "Kore", "Fenrir")
DEFAULT_VOICE = "Zephyr"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful and friendly customer support agent. "
    "Address the user by their name."
)

# Client playback
OUTPUT_BLOCK_SIZE = 1024

# User-facing client errors
ERROR_CONNECTION_FAILED = "Could not connect to the server."
ERROR_CONNECTION_LOST = "Connection to the server was lost."
