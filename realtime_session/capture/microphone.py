"""
Microphone input as an aiortc MediaStreamTrack.

Reads run on an executor thread. The stream is only closed while holding the
read lock, so stop() waits for an in-flight read (at most one buffer) instead
of closing the device underneath PortAudio.
"""

import asyncio
import logging
import threading
from typing import Optional

import numpy as np
import pyaudio
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from realtime_session.capture.pcm import pcm_to_frame
from realtime_session.config.constants import CHANNELS, FRAME_SAMPLES, LOGGER_NAME, SAMPLE_RATE
from realtime_session.engine.errors import MicrophoneUnavailable

logger = logging.getLogger(LOGGER_NAME)

FORMAT = pyaudio.paInt16


class MicrophoneStreamTrack(MediaStreamTrack):
    """MediaStreamTrack that captures audio from the default input device."""

    kind = "audio"

    def __init__(self, sample_rate: int = SAMPLE_RATE, frame_samples: int = FRAME_SAMPLES):
        super().__init__()
        self.sample_rate = sample_rate
        self.frame_samples = frame_samples
        self.timestamp = 0
        self._lock = threading.Lock()
        self.p = pyaudio.PyAudio()
        try:
            self.stream = self.p.open(
                format=FORMAT,
                channels=CHANNELS,
                rate=sample_rate,
                input=True,
                frames_per_buffer=frame_samples,
            )
        except (OSError, IOError) as e:
            self.p.terminate()
            raise MicrophoneUnavailable(f"Could not open microphone: {e}") from e
        logger.info(f"Microphone initialized: {sample_rate}Hz, {CHANNELS} channel(s)")

    def _read(self) -> Optional[bytes]:
        with self._lock:
            if self.stream is None:
                return None
            return self.stream.read(self.frame_samples, exception_on_overflow=False)

    async def recv(self):
        """Get the next frame from the microphone without blocking the loop."""
        if self.readyState != "live":
            raise MediaStreamError

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._read)
        except (OSError, IOError) as e:
            logger.error(f"Microphone read failed: {e}")
            self.stop()
            raise MediaStreamError from e

        if data is None:
            raise MediaStreamError

        frame = pcm_to_frame(np.frombuffer(data, np.int16), self.timestamp, self.sample_rate)
        self.timestamp += self.frame_samples
        return frame

    def stop(self):
        """Release the input device. Safe to call more than once."""
        if self.readyState == "live":
            super().stop()
        with self._lock:
            if self.stream is None:
                return
            try:
                self.stream.stop_stream()
                self.stream.close()
            except (OSError, IOError) as e:
                logger.warning(f"Error closing microphone stream: {e}")
            self.stream = None
            self.p.terminate()
        logger.info("Microphone stopped")
