"""
Audio module for the voice agent.

Key components:
- codec: Base64 framing and PCM16/float conversion shared by client and relay.
- devices: PyAudio microphone and speaker backends.
- capture: MicrophoneCapture, moving captured blocks onto the event loop.
- playback: PlaybackScheduler, gapless scheduling of agent audio.
"""
