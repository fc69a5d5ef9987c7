"""
Connection state management for the relay.

This module provides the RelayConnection class holding the per-connection state of
one client transport, and the ConversationManager registry of live connections. A
connection's upstream session, session id and owner phone number stay None until
its init handshake succeeds.
"""

import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket


class RelayConnection:
    """
    State of one client WebSocket and its upstream AI session.

    Attributes:
        connection_id: Local identifier used in logs and in the registry
        websocket: The client transport
        upstream_session: The live upstream session, if init succeeded
        session_id: Id of the SessionRecord created by init
        owner_phone_number: Normalized phone number of the user who sent init
        closed: Set once teardown has run
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None):
        self.connection_id = connection_id or str(uuid.uuid4())
        self.websocket = websocket
        self.upstream_session: Optional[Any] = None
        self.session_id: Optional[str] = None
        self.owner_phone_number: Optional[str] = None
        self.closed = False
        self.transport_closed = False

    @property
    def initialized(self) -> bool:
        return self.session_id is not None


class ConversationManager:
    """
    Registry of live relay connections.

    Connections are added when accepted and removed by teardown; the registry is
    what the health endpoint reports as active connections.
    """

    def __init__(self):
        """Initialize an empty dictionary of active connections."""
        self.active_conversations: Dict[str, RelayConnection] = {}

    def add_conversation(self, connection: RelayConnection) -> None:
        self.active_conversations[connection.connection_id] = connection

    def get_conversation(self, connection_id: str) -> Optional[RelayConnection]:
        return self.active_conversations.get(connection_id)

    def remove_conversation(self, connection_id: str) -> None:
        """Remove a connection from the registry; unknown ids are ignored."""
        self.active_conversations.pop(connection_id, None)

    def get_all_conversations(self) -> Dict[str, RelayConnection]:
        return self.active_conversations
