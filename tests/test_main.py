import asyncio
import pytest
import uvicorn
import websockets
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
from unittest.mock import AsyncMock, MagicMock, patch
from websockets.exceptions import ConnectionClosed

from voice_agent.config.settings import RelayConfig
from voice_agent.main import app, create_app
from voice_agent.websocket_manager import RelaySessionManager


@pytest.fixture
def test_app(user_store, connector):
    return create_app(RelayConfig(api_key="test-key"), user_store, connector)


@pytest.fixture
def client(test_app):
    with TestClient(test_app) as client:
        yield client


def test_health_check(client):
    """Test the health check endpoint returns correct response"""
    response = client.get("/health")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "healthy"
    assert response_json["upstream_api_key_configured"] is True
    assert response_json["active_connections"] == 0


def test_health_check_without_api_key(user_store, connector):
    with TestClient(create_app(RelayConfig(), user_store, connector)) as client:
        assert client.get("/health").json()["upstream_api_key_configured"] is False


def test_root_endpoint(client):
    """Test the root endpoint returns the correct API information"""
    response = client.get("/")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["name"] == "Real-Time Voice Agent"
    assert "description" in response_json
    assert response_json["version"] == "1.0.0"
    assert "/ws" in response_json["endpoints"]
    assert "/health" in response_json["endpoints"]


def test_unknown_user_returns_404(client):
    response = client.get("/api/users/5550000000")
    assert response.status_code == 404


def test_websocket_conversation_records_session(client, make_init):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text(make_init())
        assert websocket.receive_json() == {"type": "status", "payload": "LISTENING"}

    response = client.get("/api/users/555-123-4567")
    assert response.status_code == 200
    user = response.json()
    assert user["phoneNumber"] == "5551234567"
    assert user["fullName"] == "Jane Doe"
    assert len(user["sessions"]) == 1
    assert "startedAt" in user["sessions"][0]


def test_websocket_invalid_phone_closes_with_policy_violation(client, make_init, user_store):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text(make_init(phone_number="abc"))
        assert websocket.receive_json() == {"type": "error", "payload": "Full name and phone number are required."}
        with pytest.raises(WebSocketDisconnect) as exc_info:
            websocket.receive_json()

    assert exc_info.value.code == 1008
    assert user_store.users == {}


def test_websocket_disallowed_origin_is_rejected(client):
    with client.websocket_connect("/ws", headers={"origin": "http://evil.example.com"}) as websocket:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            websocket.receive_text()

    assert exc_info.value.code == 1008
    assert exc_info.value.reason == "Origin not allowed"


@pytest.mark.asyncio
async def test_disallowed_origin_gets_policy_violation_close_from_uvicorn(user_store, connector):
    server = uvicorn.Server(uvicorn.Config(
        create_app(RelayConfig(), user_store, connector), host="127.0.0.1", port=0, log_level="warning", lifespan="off"
    ))
    serving = asyncio.create_task(server.serve())
    try:
        while not server.started:
            assert not serving.done()
            await asyncio.sleep(0.01)
        port = server.servers[0].sockets[0].getsockname()[1]

        async with websockets.connect(f"ws://127.0.0.1:{port}/ws", origin="http://evil.example") as websocket:
            with pytest.raises(ConnectionClosed) as exc_info:
                await asyncio.wait_for(websocket.recv(), timeout=5)
    finally:
        server.should_exit = True
        await serving

    assert exc_info.value.rcvd.code == 1008
    assert exc_info.value.rcvd.reason == "Origin not allowed"


def test_binary_frame_is_dropped_and_audio_still_flows(client, make_init, connector):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text(make_init())
        assert websocket.receive_json() == {"type": "status", "payload": "LISTENING"}
        websocket.send_bytes(b"\x00\x01")
        websocket.send_text('{"type": "audio", "payload": "AAAA"}')

    connector.sessions[0].send_realtime_input.assert_awaited_once_with("AAAA", "audio/pcm;rate=16000")


def test_user_store_closed_on_shutdown(connector):
    store = MagicMock()
    store.close = AsyncMock()

    with TestClient(create_app(RelayConfig(), store, connector)):
        pass

    store.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_websocket_endpoint_delegates_to_relay_manager():
    """Test that websocket endpoint calls the handle_websocket method"""
    with patch.object(RelaySessionManager, "handle_websocket", new_callable=AsyncMock) as mock_handle:
        mock_websocket = MagicMock()

        # Find the websocket endpoint by path
        websocket_route = next(route for route in app.routes if route.path == "/ws")
        await websocket_route.endpoint(mock_websocket)

        mock_handle.assert_awaited_once_with(mock_websocket)


def test_app_startup_configuration():
    """Test the app configuration on startup"""
    assert app.title == "Real-Time Voice Agent"
    assert "Gemini" in app.description
    assert app.version == "1.0.0"

    route_paths = [route.path for route in app.routes]
    assert "/ws" in route_paths
    assert "/health" in route_paths
    assert "/" in route_paths
    assert "/api/users/{phone}" in route_paths


def test_frontend_is_mounted_when_dist_dir_exists(tmp_path, user_store, connector):
    (tmp_path / "index.html").write_text("<html>voice agent</html>")
    config = RelayConfig(frontend_dist_dir=str(tmp_path))

    with TestClient(create_app(config, user_store, connector)) as client:
        response = client.get("/app/")

    assert response.status_code == 200
    assert "voice agent" in response.text
