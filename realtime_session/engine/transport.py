"""
WebRTC transport session wrapping an aiortc RTCPeerConnection.

The transport carries the outbound microphone track, the inbound agent
tracks and the control data channel. It exposes subscribe-style hooks for
remote track arrival instead of letting callers attach handlers to the peer
connection directly.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from aiortc import MediaStreamTrack, RTCPeerConnection, RTCSessionDescription

from realtime_session.config.constants import CONTROL_CHANNEL_LABEL, LOGGER_NAME
from realtime_session.engine.errors import TransportStateError

logger = logging.getLogger(LOGGER_NAME)

RemoteTrackListener = Callable[[MediaStreamTrack], None]


class TransportState(str, Enum):
    NEW = "new"
    HAS_LOCAL_TRACK = "has_local_track"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


class TransportSession:
    """
    One peer-to-peer connection to the remote agent.

    States move strictly forward: NEW -> HAS_LOCAL_TRACK -> NEGOTIATING ->
    CONNECTED -> CLOSED, and close() may be called from any state.
    """

    def __init__(self, peer_connection: Optional[RTCPeerConnection] = None):
        self.pc = peer_connection if peer_connection is not None else RTCPeerConnection()
        self.state = TransportState.NEW
        self.local_track: Optional[MediaStreamTrack] = None
        self.remote_tracks: List[MediaStreamTrack] = []
        self.data_channel = None
        self._track_listeners: List[RemoteTrackListener] = []

        self.pc.on("track", self._handle_track)
        self.pc.on("connectionstatechange", self._handle_connection_state)

    @property
    def closed(self) -> bool:
        return self.state is TransportState.CLOSED

    def add_local_track(self, track: MediaStreamTrack):
        """Attach the outbound audio track. Must be called before the offer."""
        self._require(TransportState.NEW)
        self.pc.addTrack(track)
        self.local_track = track
        self.state = TransportState.HAS_LOCAL_TRACK
        logger.debug("Local audio track added to peer connection")

    def create_control_channel(self, label: str = CONTROL_CHANNEL_LABEL):
        """Create the data channel; it must exist before the offer is created."""
        if self.state not in (TransportState.NEW, TransportState.HAS_LOCAL_TRACK):
            raise TransportStateError(
                f"Cannot create a data channel in state {self.state.value}"
            )
        if self.data_channel is None:
            self.data_channel = self.pc.createDataChannel(label)
            logger.debug(f"Created data channel '{label}'")
        return self.data_channel

    async def create_offer(self) -> str:
        """
        Create the local offer, apply it and return its SDP.

        aiortc gathers ICE candidates while applying the local description, so
        the returned SDP is complete.
        """
        self._require(TransportState.HAS_LOCAL_TRACK)
        self.state = TransportState.NEGOTIATING
        offer = await self.pc.createOffer()
        await self.pc.setLocalDescription(offer)
        return self.pc.localDescription.sdp

    async def apply_answer(self, sdp: str):
        """Apply the remote answer; the session is connected afterwards."""
        self._require(TransportState.NEGOTIATING)
        await self.pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type="answer"))
        self.state = TransportState.CONNECTED
        logger.info("Remote description applied, transport connected")

    def on_remote_track(self, listener: RemoteTrackListener) -> Callable[[], None]:
        """
        Subscribe to inbound audio tracks.

        Tracks that already arrived are replayed to the new listener
        immediately. Returns a function that unsubscribes the listener.
        """
        self._track_listeners.append(listener)
        for track in list(self.remote_tracks):
            self._notify(listener, track)

        def unsubscribe():
            if listener in self._track_listeners:
                self._track_listeners.remove(listener)

        return unsubscribe

    async def close(self):
        """Close the peer connection. Closing twice is a no-op."""
        if self.state is TransportState.CLOSED:
            return
        self.state = TransportState.CLOSED
        self._track_listeners.clear()
        try:
            await self.pc.close()
            logger.info("Peer connection closed")
        finally:
            self.remote_tracks.clear()

    def _handle_track(self, track: MediaStreamTrack):
        if self.state is TransportState.CLOSED:
            return
        if track.kind != "audio":
            logger.debug(f"Ignoring remote {track.kind} track")
            return
        logger.info(f"Received remote audio track {track.id}")
        self.remote_tracks.append(track)
        for listener in list(self._track_listeners):
            self._notify(listener, track)

    def _handle_connection_state(self):
        logger.info(f"Connection state changed to: {self.pc.connectionState}")

    def _notify(self, listener: RemoteTrackListener, track: MediaStreamTrack):
        try:
            listener(track)
        except Exception as e:
            logger.error(f"Error in remote track listener: {e}", exc_info=True)

    def _require(self, expected: TransportState):
        if self.state is not expected:
            raise TransportStateError(
                f"Expected transport state {expected.value}, got {self.state.value}"
            )
