"""
Real-Time Voice Agent - voice client and Gemini Live relay

This package provides a real-time, speech-to-speech voice agent. A client captures
microphone audio and streams it over a WebSocket to a relay server, which forwards it
to the Gemini Live API and streams the agent's audio and transcription back. The relay
also keeps a per-user log of conversation sessions keyed by phone number.

Architecture Overview:
- FastAPI server exposing the relay WebSocket endpoint
- Gemini Live API integration for AI model inference
- Bidirectional audio streaming with PCM16 base64 framing
- Per-user session records in a pluggable user store

Key Components:
- audio: PCM16 codec, microphone capture and gapless playback scheduling
- bot: Upstream Gemini Live session and vendor event mapping
- client: Conversation controller driving one voice conversation
- config: Application-wide configuration, constants, and logging setup
- handlers: Message handlers for the relay WebSocket protocol
- models: Message schemas, status machine, transcript and user records
- services: Phone validation, user store backends and the relay client
- websocket_manager: Central handler for relay connections and message routing

Getting Started:
1. Set up environment variables:
   - GEMINI_API_KEY: Your Gemini API key
   - PORT: Port to run the server on (default 3001)
   - FRONTEND_URL: Origin allowed to open the relay WebSocket
   - USER_STORE_BACKEND: memory (default) or redis
   - LOG_LEVEL: Logging level (default INFO)

2. Start the server:
   ```bash
   python run.py
   ```

3. Talk to the agent:
   ```bash
   python -m voice_agent.cli --name "Jane Doe" --phone "555 123 4567"
   ```
"""
