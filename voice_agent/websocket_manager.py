"""
WebSocket relay manager between browser/CLI clients and the upstream AI service.

This module implements the server side of the voice relay protocol, providing the
infrastructure to:
- Check the Origin of new connections and accept them
- Route incoming messages to the appropriate handler functions
- Bridge each connection to exactly one upstream AI session
- Tear everything down exactly once when either side goes away

The RelaySessionManager is the central component that owns the configuration, the
user store, the upstream connector and the registry of live connections.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket

from voice_agent.bot.gemini_live import UpstreamCallbacks
from voice_agent.config.constants import (
    CLOSE_NORMAL,
    CLOSE_POLICY_VIOLATION,
    ERROR_UPSTREAM_SESSION,
    LOGGER_NAME,
    MESSAGE_TYPE_AUDIO,
    MESSAGE_TYPE_INIT,
)
from voice_agent.config.settings import RelayConfig
from voice_agent.errors import FormatError, UpstreamError, ValidationError
from voice_agent.handlers.session_handlers import handle_init, handle_session_end
from voice_agent.handlers.stream_handlers import handle_audio
from voice_agent.models.conversation import ConversationManager, RelayConnection
from voice_agent.models.message_schemas import (
    AgentEvent,
    AgentResponseMessage,
    ErrorMessage,
    OutgoingMessage,
    StatusMessage,
    parse_envelope,
)
from voice_agent.models.status import ConversationStatus
from voice_agent.services.user_store import KeyedLock, UserStore

logger = logging.getLogger(LOGGER_NAME)

# Type hint for handler functions
HandlerFunc = Callable[
    [Dict[str, Any], RelayConnection, "RelaySessionManager"],
    Awaitable[None],
]


class RelaySessionManager:
    """Manages relay connections and routes their messages to handlers.

    Each accepted WebSocket gets a RelayConnection. The init message opens one
    upstream session for it; audio messages are forwarded to that session; upstream
    events flow back as status, agent_response and error messages.

    Each message type is routed to a specific handler function based on the message's "type" field.
    """

    def __init__(
        self,
        config: RelayConfig,
        user_store: UserStore,
        connector: Any,
        conversation_manager: Optional[ConversationManager] = None,
    ):
        self.config = config
        self.user_store = user_store
        self.connector = connector
        self.conversation_manager = conversation_manager or ConversationManager()
        self.user_locks = KeyedLock()

        # Define handlers dictionary
        self.handlers: Dict[str, HandlerFunc] = {
            MESSAGE_TYPE_INIT: handle_init,
            MESSAGE_TYPE_AUDIO: handle_audio,
        }

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Handle a WebSocket connection throughout its lifecycle.

        Args:
            websocket: The FastAPI WebSocket connection object

        This method:
        1. Accepts the connection and closes it with 1008 if its Origin is not allowed
        2. Registers the connection
        3. Processes incoming text frames in a loop, routing each by type
        4. Tears the connection down when either side closes
        """
        origin = websocket.headers.get("origin")
        if not self.config.is_origin_allowed(origin):
            logger.warning(f"Rejected WebSocket connection from disallowed origin: {origin}")
            # close codes are only delivered on an accepted socket
            await websocket.accept()
            await websocket.close(code=CLOSE_POLICY_VIOLATION, reason="Origin not allowed")
            return

        await websocket.accept()
        connection = RelayConnection(websocket)
        self.conversation_manager.add_conversation(connection)
        logger.info(f"WebSocket connection established: {connection.connection_id}")

        try:
            while not connection.transport_closed:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    connection.transport_closed = True
                    logger.info(f"Client disconnected: {connection.connection_id} (code {frame.get('code')})")
                    break
                data = frame.get("text")
                if data is None:
                    logger.warning(f"Dropping non-text frame on connection: {connection.connection_id}")
                    continue
                await self.dispatch(data, connection)
        except Exception as e:
            logger.error(f"Error in WebSocket connection: {e}", exc_info=True)
        finally:
            await self.teardown(connection)

    async def dispatch(self, data: str, connection: RelayConnection) -> None:
        """Parse one text frame and route it to its handler."""
        try:
            message = parse_envelope(data)
        except FormatError as e:
            logger.warning(f"Dropping malformed message: {e}")
            return

        message_type = message["type"]
        if message_type != MESSAGE_TYPE_AUDIO:
            logger.info(f"Received message type: {message_type} on connection: {connection.connection_id}")

        handler = self.handlers.get(message_type)
        if handler is None:
            logger.warning(f"Unhandled message type received: {message_type}")
            return

        try:
            await handler(message, connection, self)
        except ValidationError as e:
            logger.warning(f"Rejecting connection {connection.connection_id}: {e}")
            await self.reject(connection, str(e), e.close_reason)
        except UpstreamError as e:
            logger.error(f"Upstream failure on connection {connection.connection_id}: {e}")
            await self.fail_connection(connection, ERROR_UPSTREAM_SESSION)
        except FormatError as e:
            logger.warning(f"Dropping undecodable {message_type} message: {e}")
        except Exception as e:
            logger.error(f"Error handling {message_type} message: {e}", exc_info=True)

    async def send_message(self, connection: RelayConnection, message: OutgoingMessage) -> None:
        """Send a message to the client unless its transport is already closed."""
        if connection.transport_closed:
            return
        try:
            await connection.websocket.send_text(message.to_json())
        except Exception as e:
            logger.warning(f"Failed to send {message.type} message: {e}")

    async def send_status(self, connection: RelayConnection, status: ConversationStatus) -> None:
        await self.send_message(connection, StatusMessage(type="status", payload=status))

    async def send_error(self, connection: RelayConnection, error: str) -> None:
        await self.send_message(connection, ErrorMessage(type="error", payload=error))

    async def close_transport(self, connection: RelayConnection, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if connection.transport_closed:
            return
        connection.transport_closed = True
        try:
            await connection.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"WebSocket already closed: {e}")

    async def reject(self, connection: RelayConnection, error: str, reason: str) -> None:
        """Send a validation error and close the transport with a policy violation."""
        await self.send_error(connection, error)
        await self.close_transport(connection, CLOSE_POLICY_VIOLATION, reason)

    async def fail_connection(self, connection: RelayConnection, error: str) -> None:
        """Report a fatal error to the client and tear its connection down."""
        await self.send_error(connection, error)
        await self.close_transport(connection)
        await self.teardown(connection)

    def upstream_callbacks(self, connection: RelayConnection) -> UpstreamCallbacks:
        """Build the callbacks through which an upstream session talks to this connection."""

        async def on_open() -> None:
            await self.send_status(connection, ConversationStatus.LISTENING)

        async def on_message(event: AgentEvent) -> None:
            await self.send_message(connection, AgentResponseMessage(type="agent_response", payload=event))

        async def on_error(error: Exception) -> None:
            logger.error(f"Upstream session error on connection {connection.connection_id}: {error}")
            await self.fail_connection(connection, ERROR_UPSTREAM_SESSION)

        async def on_close() -> None:
            await self.close_transport(connection)

        return UpstreamCallbacks(on_open=on_open, on_message=on_message, on_error=on_error, on_close=on_close)

    async def teardown(self, connection: RelayConnection) -> None:
        """
        Release everything held by a connection.

        Closes the upstream session, marks the connection's SessionRecord ended and
        removes the connection from the registry. Runs at most once per connection.
        """
        if connection.closed:
            return
        connection.closed = True

        session = connection.upstream_session
        connection.upstream_session = None
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.warning(f"Error closing upstream session: {e}")

        try:
            await handle_session_end(connection, self)
        except Exception as e:
            logger.error(f"Failed to end session {connection.session_id}: {e}", exc_info=True)

        self.conversation_manager.remove_conversation(connection.connection_id)
        logger.info(f"Connection removed during cleanup: {connection.connection_id}")
