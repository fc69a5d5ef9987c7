"""
Services module for the voice agent.

Key components:
- phone_validator: Normalization and E.164-style validation of phone numbers.
- user_store: UserStore interface with in-memory and Redis backends, plus the
  keyed lock serializing updates to one user.
- websocket_client: RelayClient, the client side of the relay protocol.
"""
