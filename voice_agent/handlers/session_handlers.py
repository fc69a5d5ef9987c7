"""
Manages the relay session lifecycle for one client connection.

This module handles the init handshake that opens a conversation and the session
bookkeeping performed when the connection ends. On init the caller is validated and
registered in the user store, and exactly one upstream AI session is opened for the
connection. On teardown the SessionRecord created by init is marked ended.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict

from pydantic import ValidationError as PydanticValidationError

from voice_agent.bot.gemini_live import UpstreamConfig
from voice_agent.config.constants import (
    ERROR_INVALID_PHONE,
    ERROR_MISSING_USER_INFO,
    ERROR_UPSTREAM_SESSION,
    LOGGER_NAME,
)
from voice_agent.errors import UpstreamError, ValidationError
from voice_agent.models.conversation import RelayConnection
from voice_agent.models.message_schemas import InitMessage
from voice_agent.models.records import SessionRecord, end_session
from voice_agent.services.phone_validator import (
    is_phone_number_format_valid,
    normalize_phone_number,
)

if TYPE_CHECKING:
    from voice_agent.websocket_manager import RelaySessionManager

logger = logging.getLogger(LOGGER_NAME)


async def register_session(
    relay: "RelaySessionManager", phone_number: str, full_name: str
) -> SessionRecord:
    """
    Look up or create the user and append a new active SessionRecord.

    The whole read-modify-write runs under the per-phone lock so that two
    connections from the same number cannot interleave their updates.
    """
    store = relay.user_store
    async with relay.user_locks.hold(phone_number):
        user = await store.get_user_by_phone(phone_number)
        if user is None:
            user = await store.create_user(phone_number, full_name, [])
            logger.info(f"Created user record for {phone_number}")
        elif user.full_name != full_name:
            user = await store.update_user(phone_number, full_name=full_name)
            logger.info(f"Updated full name for {phone_number}")

        session_record = SessionRecord()
        await store.update_user(phone_number, sessions=[*user.sessions, session_record])
    return session_record


async def handle_init(
    message: Dict[str, Any],
    connection: RelayConnection,
    relay: "RelaySessionManager",
) -> None:
    """
    Handle the init message that opens a conversation.

    The init message carries the system instruction, the voice selection and the
    user's identity. The full name and phone number are validated, the user is
    registered, and one upstream session is opened with audio responses plus input
    and output transcription.

    Args:
        message: The init envelope
        connection: The connection the message arrived on
        relay: The relay owning the connection

    Raises:
        ValidationError: If the user information is missing or the phone number is invalid
    """
    if connection.initialized:
        logger.warning(f"Ignoring repeated init on connection {connection.connection_id}")
        return

    try:
        init = InitMessage(**message)
    except PydanticValidationError as e:
        logger.error(f"Invalid init message: {e}")
        raise ValidationError(ERROR_MISSING_USER_INFO) from e

    full_name = init.payload.user.full_name.strip()
    phone_number = normalize_phone_number(init.payload.user.phone_number)

    if not full_name or not phone_number:
        raise ValidationError(ERROR_MISSING_USER_INFO, close_reason="Invalid user information")
    if not is_phone_number_format_valid(phone_number):
        raise ValidationError(ERROR_INVALID_PHONE, close_reason="Invalid phone number")

    session_record = await register_session(relay, phone_number, full_name)
    connection.owner_phone_number = phone_number
    connection.session_id = session_record.id
    logger.info(f"Session {session_record.id} started for {phone_number} on connection {connection.connection_id}")

    config = UpstreamConfig(system_instruction=init.payload.system_instruction, voice=init.payload.voice)
    try:
        session = await relay.connector.connect(config, relay.upstream_callbacks(connection))
    except UpstreamError as e:
        logger.error(f"Could not open upstream session: {e}")
        await relay.fail_connection(connection, ERROR_UPSTREAM_SESSION)
        return

    if connection.closed:
        # The client went away while the upstream session was opening
        await session.close()
        return
    connection.upstream_session = session


async def handle_session_end(connection: RelayConnection, relay: "RelaySessionManager") -> None:
    """
    Mark the connection's SessionRecord as ended.

    Only the session created by this connection is touched; every other session
    in the user's list is left as it is.
    """
    if not connection.owner_phone_number or not connection.session_id:
        return
    phone_number = connection.owner_phone_number
    store = relay.user_store
    async with relay.user_locks.hold(phone_number):
        user = await store.get_user_by_phone(phone_number)
        if user is None:
            logger.warning(f"User {phone_number} vanished before session {connection.session_id} ended")
            return
        await store.update_user(phone_number, sessions=end_session(user.sessions, connection.session_id))
    logger.info(f"Session ended: {connection.session_id} for {phone_number}")
