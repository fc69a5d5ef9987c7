import json
import logging
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket

from voice_agent.config.settings import RelayConfig
from voice_agent.models.conversation import RelayConnection
from voice_agent.services.user_store import InMemoryUserStore
from voice_agent.websocket_manager import RelaySessionManager


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeUpstreamSession:
    def __init__(self):
        self.send_realtime_input = AsyncMock()
        self.close = AsyncMock()


class FakeConnector:
    """Upstream connector that opens fake sessions and records what it was given."""

    def __init__(self, error=None):
        self.error = error
        self.configs = []
        self.callbacks = []
        self.sessions = []

    async def connect(self, config, callbacks):
        if self.error is not None:
            raise self.error
        self.configs.append(config)
        self.callbacks.append(callbacks)
        session = FakeUpstreamSession()
        self.sessions.append(session)
        await callbacks.on_open()
        return session


@pytest.fixture
def make_init():
    def _make_init(full_name="Jane Doe", phone_number="555 123 4567", voice="Puck",
                   system_instruction="Be helpful. The user's name is Jane Doe."):
        return json.dumps({
            "type": "init",
            "payload": {
                "systemInstruction": system_instruction,
                "voice": voice,
                "user": {"fullName": full_name, "phoneNumber": phone_number},
            },
        })
    return _make_init


@pytest.fixture
def user_store():
    return InMemoryUserStore()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def relay(user_store, connector):
    return RelaySessionManager(RelayConfig(), user_store, connector)


@pytest.fixture
def make_websocket():
    def _make_websocket(headers=None):
        websocket = AsyncMock(spec=WebSocket)
        websocket.headers = headers or {}
        return websocket
    return _make_websocket


@pytest.fixture
def websocket(make_websocket):
    return make_websocket()


@pytest.fixture
def connection(websocket, relay):
    connection = RelayConnection(websocket)
    relay.conversation_manager.add_conversation(connection)
    return connection


def sent_messages(websocket):
    """Decode every text frame sent on a mocked WebSocket."""
    return [json.loads(call.args[0]) for call in websocket.send_text.call_args_list]


@pytest.fixture
def sent():
    return sent_messages


@pytest.fixture
def upstream_session():
    return FakeUpstreamSession()
