"""
In-memory recorder for one logical audio stream.

A Recorder owns an append-only list of PCM chunks. Chunks arrive either from
attached tracks, whose frames are pumped by background tasks, or directly
through feed(). Stopping the recorder seals the chunks into a single
RecordingArtifact.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional

from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from realtime_session.capture.pcm import PcmConverter
from realtime_session.config.constants import LOGGER_NAME, PCM_MIME_TYPE, SAMPLE_RATE
from realtime_session.models.session import RecordingArtifact

logger = logging.getLogger(LOGGER_NAME)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


class Recorder:
    """Records audio chunks for one stream (user, assistant or mixed)."""

    def __init__(self, label: str, sample_rate: int = SAMPLE_RATE):
        self.label = label
        self.sample_rate = sample_rate
        self.state = RecorderState.IDLE
        self.artifact: Optional[RecordingArtifact] = None
        self._chunks: List[bytes] = []
        self._pumps: Dict[str, asyncio.Task] = {}
        self._pending_tracks: List[MediaStreamTrack] = []

    @property
    def bytes_recorded(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)

    @property
    def source_count(self) -> int:
        return len(self._pumps) + len(self._pending_tracks)

    def attach(self, track: MediaStreamTrack):
        """
        Add a source track. Frames are pumped while the recorder is recording;
        tracks attached before start() begin when it is called.
        """
        if self.state is RecorderState.STOPPED:
            logger.debug(f"Recorder '{self.label}' stopped, not attaching track {track.id}")
            return
        if self.state is RecorderState.IDLE:
            self._pending_tracks.append(track)
            return
        self._start_pump(track)

    def start(self):
        """Begin recording. Calling start() on a started recorder does nothing."""
        if self.state is not RecorderState.IDLE:
            return
        self.state = RecorderState.RECORDING
        pending, self._pending_tracks = self._pending_tracks, []
        for track in pending:
            self._start_pump(track)
        logger.info(f"Recorder '{self.label}' started with {len(pending)} source(s)")

    def feed(self, chunk: bytes):
        """Append one chunk. Ignored unless recording; empty chunks are discarded."""
        if self.state is not RecorderState.RECORDING or not chunk:
            return
        self._chunks.append(bytes(chunk))

    async def stop(self) -> Optional[RecordingArtifact]:
        """
        Stop recording and seal the artifact.

        Returns:
            The artifact, or None if the recorder was not recording
        """
        if self.state is not RecorderState.RECORDING:
            self._pending_tracks.clear()
            return None
        self.state = RecorderState.STOPPED

        pumps = list(self._pumps.values())
        self._pumps.clear()
        for task in pumps:
            task.cancel()
        if pumps:
            await asyncio.gather(*pumps, return_exceptions=True)

        self.artifact = RecordingArtifact(
            label=self.label,
            data=b"".join(self._chunks),
            mime_type=PCM_MIME_TYPE,
            sample_rate=self.sample_rate,
        )
        self._chunks.clear()
        logger.info(
            f"Recorder '{self.label}' stopped: {len(self.artifact)} bytes "
            f"({self.artifact.duration:.2f}s)"
        )
        return self.artifact

    def _start_pump(self, track: MediaStreamTrack):
        if track.id in self._pumps:
            return
        self._pumps[track.id] = asyncio.create_task(self._pump(track))

    async def _pump(self, track: MediaStreamTrack):
        converter = PcmConverter(self.sample_rate)
        try:
            while self.state is RecorderState.RECORDING:
                frame = await track.recv()
                self.feed(converter.convert(frame))
        except MediaStreamError:
            logger.debug(f"Track {track.id} ended for recorder '{self.label}'")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error recording track {track.id} for '{self.label}': {e}")
