"""
Gapless scheduling of agent audio on the client's output timeline.

Agent audio arrives as a stream of PCM16 24 kHz chunks, usually faster than it
plays. Each chunk is queued to start exactly when the previous one ends, or now if
the timeline has already caught up, so consecutive chunks play back to back.
"""

import logging
from typing import Any, List, Optional

from voice_agent.audio.codec import decode_pcm_chunk
from voice_agent.audio.devices import OutputTimeline
from voice_agent.config.constants import LOGGER_NAME, OUTPUT_SAMPLE_RATE
from voice_agent.models.status import ConversationStateMachine

logger = logging.getLogger(LOGGER_NAME)


class PlaybackScheduler:
    """
    FIFO of scheduled buffers plus the time the next chunk should start.

    Scheduling a chunk moves the conversation to SPEAKING; the last scheduled
    buffer finishing naturally moves it back to LISTENING.
    """

    def __init__(
        self,
        output: OutputTimeline,
        state_machine: ConversationStateMachine,
        sample_rate: int = OUTPUT_SAMPLE_RATE,
    ):
        self.output = output
        self.state_machine = state_machine
        self.sample_rate = sample_rate
        self.queue: List[Any] = []
        self.next_start_time = 0.0

    def schedule(self, chunk: str) -> Optional[Any]:
        """
        Decode one base64 chunk and queue it right after the previous one.

        Raises:
            FormatError: If the chunk is not valid base64
        """
        decoded = decode_pcm_chunk(chunk, self.sample_rate)
        if decoded.frame_count == 0:
            return None
        start_at = max(self.next_start_time, self.output.current_time)
        handle = self.output.schedule(decoded.mono(), start_at)
        self.next_start_time = start_at + decoded.duration
        self.queue.append(handle)
        self.state_machine.speaking()
        return handle

    def on_playback_done(self, handle: Any) -> None:
        """Forget a buffer that played to its end."""
        try:
            self.queue.remove(handle)
        except ValueError:
            return
        if not self.queue:
            self.state_machine.speaking_finished()

    def stop_all(self) -> None:
        """Stop every pending buffer and reset the timeline."""
        for handle in self.queue:
            self.output.stop(handle)
        if self.queue:
            logger.debug(f"Stopped {len(self.queue)} pending playback buffers")
        self.queue = []
        self.next_start_time = 0.0
