"""
Handlers module for the relay WebSocket protocol.

Key components:
- session_handlers: Handles the init handshake (user validation, session record,
  upstream session) and marks the session ended on teardown.
- stream_handlers: Forwards client audio frames to the upstream session.

Handlers share the signature (message, connection, relay) and are routed by the
RelaySessionManager according to the message's "type" field.
"""
