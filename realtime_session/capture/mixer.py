"""
Mixing track that sums the microphone with every remote agent track.

The microphone is the clock: each recv() waits for the next microphone frame
and adds whatever remote audio has been buffered for the same number of
samples. Missing remote audio counts as silence, so with no remote source the
output equals the microphone stream.
"""

import asyncio
import logging
from typing import Dict

import numpy as np
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from realtime_session.capture.pcm import PcmConverter, pcm_to_frame
from realtime_session.config.constants import LOGGER_NAME, SAMPLE_RATE, SAMPLE_WIDTH

logger = logging.getLogger(LOGGER_NAME)

# Upper bound on buffered audio per remote source
MAX_BUFFERED_SECONDS = 1.0


class _RemoteSource:
    def __init__(self, track: MediaStreamTrack, sample_rate: int):
        self.track = track
        self.converter = PcmConverter(sample_rate)
        self.buffer = bytearray()
        self.max_bytes = int(MAX_BUFFERED_SECONDS * sample_rate) * SAMPLE_WIDTH
        self.task = None

    def take(self, size: int) -> np.ndarray:
        """Take ``size`` bytes from the buffer, padding with silence."""
        chunk = bytes(self.buffer[:size])
        del self.buffer[:size]
        if len(chunk) < size:
            chunk += b"\x00" * (size - len(chunk))
        return np.frombuffer(chunk, dtype=np.int16)


class MixedAudioTrack(MediaStreamTrack):
    """MediaStreamTrack producing the sum of the local and remote audio."""

    kind = "audio"

    def __init__(self, local: MediaStreamTrack, sample_rate: int = SAMPLE_RATE):
        super().__init__()
        self.local = local
        self.sample_rate = sample_rate
        self._local_converter = PcmConverter(sample_rate)
        self._sources: Dict[str, _RemoteSource] = {}
        self._timestamp = 0

    @property
    def remote_count(self) -> int:
        return len(self._sources)

    def add_source(self, track: MediaStreamTrack):
        """Start buffering a remote track into the mix."""
        if track.id in self._sources or self.readyState != "live":
            return
        source = _RemoteSource(track, self.sample_rate)
        source.task = asyncio.create_task(self._pump(source))
        self._sources[track.id] = source
        logger.info(f"Added remote track {track.id} to the mix")

    async def recv(self):
        if self.readyState != "live":
            raise MediaStreamError

        frame = await self.local.recv()
        local_pcm = self._local_converter.convert(frame)
        mixed = np.frombuffer(local_pcm, dtype=np.int16)

        if self._sources:
            total = mixed.astype(np.int32)
            for source in self._sources.values():
                total += source.take(len(local_pcm))
            mixed = np.clip(total, -32768, 32767).astype(np.int16)

        out = pcm_to_frame(mixed, self._timestamp, self.sample_rate)
        self._timestamp += len(mixed)
        return out

    def stop(self):
        for source in self._sources.values():
            if source.task is not None:
                source.task.cancel()
        self._sources.clear()
        super().stop()

    async def _pump(self, source: _RemoteSource):
        try:
            while self.readyState == "live":
                frame = await source.track.recv()
                source.buffer.extend(source.converter.convert(frame))
                overflow = len(source.buffer) - source.max_bytes
                if overflow > 0:
                    del source.buffer[:overflow]
        except MediaStreamError:
            logger.debug(f"Remote track {source.track.id} ended")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error buffering remote track {source.track.id}: {e}")
