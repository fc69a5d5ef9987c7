import io
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from voice_agent.cli import build_system_instruction, parse_args, run
from voice_agent.config.constants import DEFAULT_VOICE
from voice_agent.models.status import ConversationStatus


def test_parse_args_defaults(monkeypatch):
    monkeypatch.delenv("RELAY_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    args = parse_args(["--name", "Jane Doe", "--phone", "555 123 4567"])

    assert args.url == "ws://localhost:3001/ws"
    assert args.voice == DEFAULT_VOICE
    assert args.log_level == "WARNING"


def test_parse_args_rejects_unknown_voice():
    with pytest.raises(SystemExit):
        parse_args(["--name", "Jane", "--phone", "5551234567", "--voice", "Nobody"])


def test_build_system_instruction():
    assert build_system_instruction("Be helpful.", "Jane Doe") == "Be helpful. The user's name is Jane Doe."


def make_controller(status):
    controller = MagicMock()
    controller.start_conversation = AsyncMock()
    controller.wait_closed = AsyncMock()
    controller.end_conversation = AsyncMock()
    controller.status = status
    controller.error_message = "No microphone found."
    controller.active = False
    return controller


@pytest.mark.asyncio
async def test_run_returns_error_when_start_fails(capsys):
    controller = make_controller(ConversationStatus.ERROR)
    args = parse_args(["--name", " Jane Doe ", "--phone", "5551234567"])

    with patch("voice_agent.cli.VoiceAgentController", return_value=controller) as controller_class:
        assert await run(args) == 1

    assert controller_class.call_args.kwargs["full_name"] == "Jane Doe"
    assert "No microphone found." in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_hangs_up_on_enter():
    controller = make_controller(ConversationStatus.LISTENING)
    controller.active = True

    async def end_conversation():
        controller.active = False
        controller.status = ConversationStatus.IDLE

    controller.end_conversation.side_effect = end_conversation
    args = parse_args(["--name", "Jane Doe", "--phone", "5551234567"])

    with patch("voice_agent.cli.VoiceAgentController", return_value=controller), \
            patch("voice_agent.cli.sys.stdin", io.StringIO("\n")):
        assert await run(args) == 0

    controller.wait_closed.assert_awaited()
