"""
Audio capture pipeline.

Builds the recorders for the configured capture topology, feeds them from the
microphone and from every remote agent track as it arrives, and seals their
artifacts on stop. Source tracks are shared with the peer connection and the
speaker through a MediaRelay, so every consumer gets its own proxy.
"""

import logging
from typing import Callable, List, Optional

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaRelay

from realtime_session.capture.mixer import MixedAudioTrack
from realtime_session.capture.recorder import Recorder
from realtime_session.config.constants import (
    LOGGER_NAME,
    STREAM_ASSISTANT,
    STREAM_MIXED,
    STREAM_USER,
)
from realtime_session.engine.transport import TransportSession
from realtime_session.models.session import CaptureTopology, RecordingArtifact

logger = logging.getLogger(LOGGER_NAME)


class CapturePipeline:
    """Recorders for one session, arranged by capture topology."""

    def __init__(
        self,
        topology: CaptureTopology,
        microphone: MediaStreamTrack,
        relay: Optional[MediaRelay] = None,
    ):
        self.topology = CaptureTopology(topology)
        self.microphone = microphone
        self.relay = relay if relay is not None else MediaRelay()
        self.recorders: List[Recorder] = []
        self.mixer: Optional[MixedAudioTrack] = None
        self._proxies: List[MediaStreamTrack] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._assistant_tracks = 0
        self._started = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    def start(self, transport: TransportSession):
        """Create and start the recorders, then follow remote track arrivals."""
        if self._started:
            return
        self._started = True

        if self.topology is CaptureTopology.MIXED:
            self.mixer = MixedAudioTrack(self._subscribe(self.microphone))
            mixed = Recorder(STREAM_MIXED)
            mixed.attach(self.mixer)
            self.recorders.append(mixed)
        else:
            user = Recorder(STREAM_USER)
            user.attach(self._subscribe(self.microphone))
            self.recorders.append(user)
            if self.topology is CaptureTopology.DUAL:
                self.recorders.append(Recorder(STREAM_ASSISTANT))

        for recorder in self.recorders:
            recorder.start()

        if self.topology is not CaptureTopology.SINGLE:
            self._unsubscribe = transport.on_remote_track(self._handle_remote_track)
        logger.info(
            f"Capture pipeline started ({self.topology.value}, {len(self.recorders)} recorder(s))"
        )

    def _handle_remote_track(self, track: MediaStreamTrack):
        if not self.running:
            return
        if self.topology is CaptureTopology.MIXED:
            self.mixer.add_source(self._subscribe(track))
            return

        self._assistant_tracks += 1
        if self._assistant_tracks == 1:
            recorder = self.recorders[1]
        else:
            recorder = Recorder(f"{STREAM_ASSISTANT}-{self._assistant_tracks}")
            recorder.start()
            self.recorders.append(recorder)
        recorder.attach(self._subscribe(track))

    async def stop(self) -> List[RecordingArtifact]:
        """
        Seal every recorder and release the source proxies.

        Returns:
            One artifact per recorder that was recording, in creation order
        """
        if not self._started or self._stopped:
            return []
        self._stopped = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        artifacts = []
        for recorder in self.recorders:
            try:
                artifact = await recorder.stop()
            except Exception as e:
                logger.error(f"Error stopping recorder '{recorder.label}': {e}", exc_info=True)
                continue
            if artifact is not None:
                artifacts.append(artifact)

        if self.mixer is not None:
            self.mixer.stop()
        for proxy in self._proxies:
            proxy.stop()
        self._proxies.clear()
        logger.info(f"Capture pipeline stopped with {len(artifacts)} artifact(s)")
        return artifacts

    def _subscribe(self, track: MediaStreamTrack) -> MediaStreamTrack:
        proxy = self.relay.subscribe(track)
        self._proxies.append(proxy)
        return proxy
