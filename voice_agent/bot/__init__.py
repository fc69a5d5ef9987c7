"""
Bot module for integrating the Gemini Live API with the relay.

This module provides the upstream side of real-time speech-to-speech conversations.

Key components:
- gemini_live: GeminiLiveConnector opens one Gemini Live session per relay connection
  and drives its receive loop, reporting open, message, error and close through
  UpstreamCallbacks.
- events: Maps each vendor server message onto the AgentEvent relayed to clients, so
  that clients never depend on the upstream schema.

Usage examples:
```python
from voice_agent.bot.gemini_live import GeminiLiveConnector, UpstreamCallbacks, UpstreamConfig

connector = GeminiLiveConnector(api_key, model)
session = await connector.connect(
    UpstreamConfig(system_instruction="Be brief.", voice="Puck"),
    UpstreamCallbacks(on_open=on_open, on_message=on_message, on_error=on_error, on_close=on_close),
)
await session.send_realtime_input(base64_frame, "audio/pcm;rate=16000")
await session.close()
```
"""
