"""
Per-turn transcription accumulation.

The upstream session streams transcription in small fragments for both the user's
speech and the agent's reply. Fragments are concatenated per speaker and turned into
one finalized transcript entry per speaker when the turn completes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Literal

Speaker = Literal["user", "agent"]


@dataclass
class TranscriptMessage:
    speaker: Speaker
    text: str
    timestamp: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TranscriptAccumulator:
    """Collects live fragments and finalized transcript entries for one conversation."""

    clock: Callable[[], datetime] = _utcnow
    live: Dict[str, str] = field(default_factory=lambda: {"user": "", "agent": ""})
    transcript: List[TranscriptMessage] = field(default_factory=list)

    def add_user_text(self, text: str) -> None:
        self.live["user"] += text

    def add_agent_text(self, text: str) -> None:
        self.live["agent"] += text

    def complete_turn(self) -> List[TranscriptMessage]:
        """
        Finalize the current turn.

        Each non-blank accumulator becomes one entry stamped with the completion
        time, user first. Both accumulators are reset.

        Returns:
            The entries added to the transcript for this turn
        """
        timestamp = self.clock()
        entries = [
            TranscriptMessage(speaker=speaker, text=self.live[speaker], timestamp=timestamp)
            for speaker in ("user", "agent")
            if self.live[speaker].strip()
        ]
        self.transcript.extend(entries)
        self.clear_live()
        return entries

    def clear_live(self) -> None:
        """Discard the in-progress fragments without finalizing them."""
        self.live = {"user": "", "agent": ""}
