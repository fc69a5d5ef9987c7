import json
import pytest
from unittest.mock import AsyncMock

from voice_agent.config.settings import RelayConfig
from voice_agent.errors import UpstreamError
from voice_agent.models.conversation import ConversationManager, RelayConnection
from voice_agent.models.message_schemas import AgentEvent
from voice_agent.websocket_manager import RelaySessionManager


def text_frame(data):
    return {"type": "websocket.receive", "text": data}


def disconnect_frame(code=1000):
    return {"type": "websocket.disconnect", "code": code}


def test_relay_manager_initialization(relay):
    """Test that RelaySessionManager initializes correctly"""
    assert isinstance(relay.conversation_manager, ConversationManager)
    assert set(relay.handlers) == {"init", "audio"}


@pytest.mark.asyncio
async def test_handle_websocket_full_flow(relay, websocket, connector, user_store, make_init):
    """Init, one audio frame, then client disconnect"""
    websocket.receive.side_effect = [
        text_frame(make_init()),
        text_frame(json.dumps({"type": "audio", "payload": "AAAA"})),
        disconnect_frame(),
    ]

    await relay.handle_websocket(websocket)

    websocket.accept.assert_awaited_once()
    session = connector.sessions[0]
    session.send_realtime_input.assert_awaited_once_with("AAAA", "audio/pcm;rate=16000")
    session.close.assert_awaited_once()

    user = await user_store.get_user_by_phone("5551234567")
    assert [s.status for s in user.sessions] == ["ended"]
    assert relay.conversation_manager.get_all_conversations() == {}


@pytest.mark.asyncio
async def test_disallowed_origin_is_closed_with_policy_violation(user_store, connector, make_websocket):
    config = RelayConfig(allowed_origins=("http://localhost:3000",))
    relay = RelaySessionManager(config, user_store, connector)
    websocket = make_websocket({"origin": "http://evil.example.com"})

    await relay.handle_websocket(websocket)

    websocket.accept.assert_awaited_once()
    websocket.close.assert_awaited_once_with(code=1008, reason="Origin not allowed")
    websocket.receive.assert_not_awaited()
    assert relay.conversation_manager.get_all_conversations() == {}


@pytest.mark.asyncio
async def test_allowed_origin_suffix_is_accepted(user_store, connector, make_websocket):
    config = RelayConfig(allowed_origin_suffixes=(".repl.co",))
    relay = RelaySessionManager(config, user_store, connector)
    websocket = make_websocket({"origin": "https://voice.repl.co"})
    websocket.receive.side_effect = [disconnect_frame(1001)]

    await relay.handle_websocket(websocket)

    websocket.accept.assert_awaited_once()


@pytest.mark.asyncio
async def test_malformed_json_is_dropped(relay, connection, websocket):
    await relay.dispatch("{not json", connection)
    await relay.dispatch(json.dumps(["init"]), connection)

    websocket.send_text.assert_not_awaited()
    websocket.close.assert_not_awaited()
    assert not connection.transport_closed


@pytest.mark.asyncio
async def test_unknown_message_type_is_dropped(relay, connection, websocket):
    await relay.dispatch(json.dumps({"type": "ping", "payload": None}), connection)

    websocket.send_text.assert_not_awaited()
    assert not connection.transport_closed


@pytest.mark.asyncio
async def test_malformed_message_keeps_connection_open(relay, websocket, connector, make_init):
    websocket.receive.side_effect = [
        text_frame("garbage"),
        text_frame(make_init()),
        disconnect_frame(),
    ]

    await relay.handle_websocket(websocket)

    assert len(connector.sessions) == 1


@pytest.mark.asyncio
async def test_upstream_message_is_relayed_as_agent_response(relay, connection, websocket, connector, make_init, sent):
    await relay.dispatch(make_init(), connection)

    await connector.callbacks[0].on_message(AgentEvent(agent_text="Hello", turn_complete=True))

    assert sent(websocket)[-1] == {
        "type": "agent_response",
        "payload": {"agentText": "Hello", "turnComplete": True, "interrupted": False},
    }


@pytest.mark.asyncio
async def test_upstream_error_is_fatal_to_the_connection(relay, connection, websocket, connector, user_store, make_init, sent):
    await relay.dispatch(make_init(), connection)

    await connector.callbacks[0].on_error(UpstreamError("boom"))

    assert sent(websocket)[-1] == {"type": "error", "payload": "Upstream session error."}
    websocket.close.assert_awaited_once()
    connector.sessions[0].close.assert_awaited_once()
    assert connection.closed
    user = await user_store.get_user_by_phone("5551234567")
    assert user.sessions[0].status == "ended"


@pytest.mark.asyncio
async def test_upstream_close_closes_the_transport(relay, connection, websocket, connector, make_init):
    await relay.dispatch(make_init(), connection)

    await connector.callbacks[0].on_close()

    websocket.close.assert_awaited_once_with(code=1000, reason="")
    assert connection.transport_closed


@pytest.mark.asyncio
async def test_upstream_send_failure_is_fatal(relay, connection, websocket, connector, make_init, sent):
    await relay.dispatch(make_init(), connection)
    connector.sessions[0].send_realtime_input.side_effect = UpstreamError("send failed")

    await relay.dispatch(json.dumps({"type": "audio", "payload": "AAAA"}), connection)

    assert sent(websocket)[-1] == {"type": "error", "payload": "Upstream session error."}
    assert connection.closed


@pytest.mark.asyncio
async def test_teardown_marks_only_this_connections_session_ended(relay, connector, user_store, make_init, make_websocket):
    first = RelayConnection(make_websocket())
    second = RelayConnection(make_websocket())
    await relay.dispatch(make_init(), first)
    await relay.dispatch(make_init(), second)

    await relay.teardown(second)

    user = await user_store.get_user_by_phone("5551234567")
    statuses = {s.id: s.status for s in user.sessions}
    assert statuses == {first.session_id: "active", second.session_id: "ended"}


@pytest.mark.asyncio
async def test_teardown_twice_does_not_raise(relay, connection, connector, make_init):
    await relay.dispatch(make_init(), connection)

    await relay.teardown(connection)
    await relay.teardown(connection)

    connector.sessions[0].close.assert_awaited_once()
    assert relay.conversation_manager.get_conversation(connection.connection_id) is None


@pytest.mark.asyncio
async def test_teardown_before_init(relay, connection, user_store):
    await relay.teardown(connection)

    assert connection.closed
    assert user_store.users == {}


@pytest.mark.asyncio
async def test_send_after_transport_closed_is_skipped(relay, connection, websocket):
    connection.transport_closed = True

    await relay.send_error(connection, "late")

    websocket.send_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_failure_is_logged_not_raised(relay, connection, websocket):
    websocket.send_text.side_effect = RuntimeError("socket gone")

    await relay.send_error(connection, "late")

    websocket.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_binary_frame_is_dropped_without_ending_the_session(relay, websocket, connector, user_store, make_init):
    statuses = []

    async def record_statuses(data, connection):
        await RelaySessionManager.dispatch(relay, data, connection)
        user = await user_store.get_user_by_phone("5551234567")
        statuses.append([s.status for s in user.sessions])

    websocket.receive.side_effect = [
        text_frame(make_init()),
        {"type": "websocket.receive", "bytes": b"\x00\x01"},
        text_frame(json.dumps({"type": "audio", "payload": "AAAA"})),
        disconnect_frame(),
    ]
    relay.dispatch = record_statuses

    await relay.handle_websocket(websocket)

    assert statuses == [["active"], ["active"]]
    connector.sessions[0].send_realtime_input.assert_awaited_once_with("AAAA", "audio/pcm;rate=16000")
    user = await user_store.get_user_by_phone("5551234567")
    assert [s.status for s in user.sessions] == ["ended"]
