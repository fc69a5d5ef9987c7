"""
Command-line voice client for the relay.

Opens the microphone and speaker, connects to the relay and holds one conversation
until the user presses Enter or the relay ends it.

Usage:
    python -m voice_agent.cli --name "Jane Doe" --phone "555 123 4567" [--url URL] [--voice VOICE]
"""

import argparse
import asyncio
import logging
import os
import sys

from voice_agent.client.agent import VoiceAgentController
from voice_agent.config.constants import DEFAULT_SYSTEM_PROMPT, DEFAULT_VOICE, LOGGER_NAME, VOICES
from voice_agent.config.logging_config import configure_logging
from voice_agent.models.status import STATUS_LABELS, ConversationStatus

logger = logging.getLogger(LOGGER_NAME)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Talk to the voice agent through the relay")
    parser.add_argument(
        "--url",
        default=os.getenv("RELAY_URL", "ws://localhost:3001/ws"),
        help="Relay WebSocket URL (default: ws://localhost:3001/ws or RELAY_URL env var)",
    )
    parser.add_argument("--name", required=True, help="Your full name")
    parser.add_argument("--phone", required=True, help="Your phone number")
    parser.add_argument("--voice", default=DEFAULT_VOICE, choices=VOICES, help="Agent voice")
    parser.add_argument("--prompt", default=DEFAULT_SYSTEM_PROMPT, help="System prompt for the agent")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "WARNING"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: WARNING or LOG_LEVEL env var)",
    )
    return parser.parse_args(argv)


def build_system_instruction(prompt: str, full_name: str) -> str:
    return f"{prompt} The user's name is {full_name}."


def print_status(previous: ConversationStatus, current: ConversationStatus) -> None:
    print(f"[{current.value}] {STATUS_LABELS[current]}")


def print_transcript(entries) -> None:
    for entry in entries:
        speaker = "You" if entry.speaker == "user" else "Agent"
        print(f"{entry.timestamp:%H:%M:%S} {speaker}: {entry.text}")


async def run(args) -> int:
    controller = VoiceAgentController(
        url=args.url,
        full_name=args.name.strip(),
        phone_number=args.phone,
        system_instruction=build_system_instruction(args.prompt, args.name.strip()),
        voice=args.voice,
        on_transcript=print_transcript,
    )
    controller.state_machine.add_listener(print_status)

    await controller.start_conversation()
    if controller.status == ConversationStatus.ERROR:
        print(f"Error: {controller.error_message}")
        return 1

    print("Press Enter to hang up.")
    loop = asyncio.get_running_loop()
    hangup = loop.run_in_executor(None, sys.stdin.readline)
    closed = asyncio.ensure_future(controller.wait_closed())
    await asyncio.wait({hangup, closed}, return_when=asyncio.FIRST_COMPLETED)

    if controller.active:
        await controller.end_conversation()
    await closed
    if controller.status == ConversationStatus.ERROR:
        print(f"Error: {controller.error_message}")
        return 1
    return 0


def main(argv=None):
    """Main entry point for the command-line client."""
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
