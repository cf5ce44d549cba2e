"""
Speaking indicator derived from control channel traffic.

Inbound traffic sets the indicator; output_audio_buffer.stopped or a
quiescence timer clears it.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from realtime_session.config.constants import LOGGER_NAME, SPEAKING_QUIESCENCE_SECONDS

logger = logging.getLogger(LOGGER_NAME)

SpeakingListener = Callable[[bool], None]


class SpeakingIndicator:
    """
    Best-effort "agent is speaking" flag.

    Any inbound control traffic marks the agent as speaking; an explicit stop
    notification or ``quiescence`` seconds without traffic clears it.
    Listeners are called only when the value changes.
    """

    def __init__(self, quiescence: float = SPEAKING_QUIESCENCE_SECONDS):
        self.quiescence = quiescence
        self._speaking = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._listeners: List[SpeakingListener] = []

    @property
    def speaking(self) -> bool:
        return self._speaking

    def subscribe(self, listener: SpeakingListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def mark_activity(self):
        """Set speaking and restart the quiescence timer."""
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.quiescence, self._on_quiescent)
        self._set(True)

    def mark_stopped(self):
        """Clear speaking immediately."""
        self._cancel_timer()
        self._set(False)

    def reset(self):
        """Cancel the pending timer and return to silent."""
        self.mark_stopped()

    def _on_quiescent(self):
        self._timer = None
        logger.debug(f"No control traffic for {self.quiescence}s, clearing speaking state")
        self._set(False)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set(self, speaking: bool):
        if speaking == self._speaking:
            return
        self._speaking = speaking
        for listener in list(self._listeners):
            try:
                listener(speaking)
            except Exception as e:
                logger.error(f"Error in speaking listener: {e}", exc_info=True)
