"""
Session lifecycle controller for the realtime voice session engine.

The controller owns every resource of one session: the credential, the
microphone, the transport, the control channel and the capture pipeline. It
acquires them in that order in start() and releases them in the reverse order
in stop() or when any start-up stage fails.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from aiortc import MediaStreamTrack, RTCPeerConnection
from aiortc.contrib.media import MediaRelay

from realtime_session.capture.pipeline import CapturePipeline
from realtime_session.config.constants import LOGGER_NAME, SPEAKING_QUIESCENCE_SECONDS
from realtime_session.engine.control_channel import ControlChannel, build_priming_messages
from realtime_session.engine.errors import (
    AlreadyActive,
    CredentialUnavailable,
    MicrophoneUnavailable,
    SessionCancelled,
    SessionStartFailed,
    StartStage,
)
from realtime_session.engine.signaling import SignalingExchange
from realtime_session.engine.speaking import SpeakingIndicator
from realtime_session.engine.transport import TransportSession
from realtime_session.models.control_messages import ControlMessage
from realtime_session.models.conversation import ConversationLog
from realtime_session.models.session import RecordingArtifact, SessionConfig

logger = logging.getLogger(LOGGER_NAME)

EventListener = Callable[[ControlMessage], None]


class SessionState(str, Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    CLOSING = "closing"


def open_default_microphone() -> MediaStreamTrack:
    from realtime_session.capture.microphone import MicrophoneStreamTrack

    return MicrophoneStreamTrack()


def open_default_speaker():
    from realtime_session.capture.playback import SpeakerPlayback

    return SpeakerPlayback()


@dataclass
class _SessionResources:
    """Everything acquired by one start() attempt."""

    config: SessionConfig
    relay: MediaRelay = field(default_factory=MediaRelay)
    microphone: Optional[MediaStreamTrack] = None
    transport: Optional[TransportSession] = None
    control: Optional[ControlChannel] = None
    speaker: Any = None
    pipeline: Optional[CapturePipeline] = None
    cancelled: bool = False
    released: bool = False


class SessionController:
    """
    Coordinates one realtime voice session at a time.

    Args:
        credential_broker: Object with an async ``fetch()`` returning a
            SessionCredential
        signaling: Signaling exchange used for negotiation
        sink: Optional recording sink receiving every artifact on stop()
        microphone_factory: Callable returning the local audio track
        peer_connection_factory: Callable returning an RTCPeerConnection
        speaker_factory: Callable returning the playback for remote audio
        conversation_log: Optional log fed with inbound conversation events
        speaking_quiescence: Seconds before the speaking indicator clears
    """

    def __init__(
        self,
        credential_broker,
        signaling: Optional[SignalingExchange] = None,
        sink=None,
        microphone_factory: Callable[[], MediaStreamTrack] = open_default_microphone,
        peer_connection_factory: Callable[[], RTCPeerConnection] = RTCPeerConnection,
        speaker_factory: Callable[[], Any] = open_default_speaker,
        conversation_log: Optional[ConversationLog] = None,
        speaking_quiescence: float = SPEAKING_QUIESCENCE_SECONDS,
    ):
        self.credential_broker = credential_broker
        self.signaling = signaling if signaling is not None else SignalingExchange()
        self.sink = sink
        self.microphone_factory = microphone_factory
        self.peer_connection_factory = peer_connection_factory
        self.speaker_factory = speaker_factory
        self.conversation_log = conversation_log
        self.speaking_indicator = SpeakingIndicator(speaking_quiescence)
        # Sink submissions of the most recent session
        self.submissions: List[Any] = []

        self._state = SessionState.IDLE
        self._current: Optional[_SessionResources] = None
        self._listeners: List[EventListener] = []
        self._closing: Optional[asyncio.Future] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def transport(self) -> Optional[TransportSession]:
        return self._current.transport if self._current else None

    @property
    def pipeline(self) -> Optional[CapturePipeline]:
        return self._current.pipeline if self._current else None

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """Subscribe to decoded inbound control messages of every session."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self, config: SessionConfig):
        """
        Start a session.

        Raises:
            AlreadyActive: If a session is negotiating, active or closing
            SessionStartFailed: If any stage fails; every resource acquired
                so far has been released and the controller is idle
        """
        if self._state is not SessionState.IDLE:
            raise AlreadyActive(f"Cannot start a session while {self._state.value}")

        resources = _SessionResources(config=config)
        self._current = resources
        self._state = SessionState.NEGOTIATING
        self.submissions = []
        if self.conversation_log is not None:
            self.conversation_log.clear()
        logger.info(f"Starting session (model={config.model}, topology={config.capture_topology.value})")

        stage = StartStage.CREDENTIAL
        try:
            credential = await self.credential_broker.fetch()
            self._check_current(resources)
            if credential.expired:
                raise CredentialUnavailable("Credential expired before negotiation")

            stage = StartStage.MICROPHONE
            resources.microphone = self._open_microphone()

            stage = StartStage.NEGOTIATION
            resources.transport = TransportSession(self.peer_connection_factory())
            resources.transport.add_local_track(resources.relay.subscribe(resources.microphone))
            resources.control = ControlChannel(
                resources.transport.create_control_channel(), self.speaking_indicator
            )
            resources.control.on_message(self._dispatch_event)
            await self.signaling.negotiate(credential, resources.transport, config.model)
            self._check_current(resources)

            stage = StartStage.CONTROL_CHANNEL
            resources.control.prime(build_priming_messages(config))
            await resources.control.wait_open()
            self._check_current(resources)

            stage = StartStage.CAPTURE
            if config.playback:
                resources.speaker = self.speaker_factory()
                resources.transport.on_remote_track(
                    lambda track: resources.speaker.play(resources.relay.subscribe(track))
                )
            resources.pipeline = CapturePipeline(
                config.capture_topology, resources.microphone, resources.relay
            )
            resources.pipeline.start(resources.transport)
        except asyncio.CancelledError:
            await self._abandon(resources)
            raise
        except Exception as e:
            if resources.cancelled and not isinstance(e, SessionCancelled):
                e = SessionCancelled(f"Session was stopped during start-up ({e})")
            logger.error(f"Session start failed at stage '{stage.value}': {e}")
            await self._abandon(resources)
            raise SessionStartFailed(stage, e) from e

        self._state = SessionState.ACTIVE
        logger.info("Session active")

    async def stop(self) -> List[RecordingArtifact]:
        """
        Stop the session and release every resource. Never raises.

        Returns:
            The sealed recording artifacts (empty if nothing was recording)
        """
        if self._state is SessionState.IDLE:
            return []
        if self._state is SessionState.CLOSING:
            await asyncio.shield(self._closing)
            return []

        resources = self._current
        self._current = None
        self._state = SessionState.CLOSING
        self._closing = asyncio.get_running_loop().create_future()
        artifacts: List[RecordingArtifact] = []
        try:
            if resources is not None:
                resources.cancelled = True
                artifacts = await self._release(resources)
                self._submit(artifacts)
        except Exception as e:
            logger.error(f"Unexpected error while stopping session: {e}", exc_info=True)
        finally:
            self._state = SessionState.IDLE
            self._closing.set_result(None)
        logger.info(f"Session stopped with {len(artifacts)} recording(s)")
        return artifacts

    def _open_microphone(self) -> MediaStreamTrack:
        try:
            return self.microphone_factory()
        except MicrophoneUnavailable:
            raise
        except Exception as e:
            raise MicrophoneUnavailable(f"Could not open microphone: {e}") from e

    def _check_current(self, resources: _SessionResources):
        if resources.cancelled or self._current is not resources:
            raise SessionCancelled("Session was stopped during start-up")

    async def _abandon(self, resources: _SessionResources):
        await self._release(resources)
        if self._current is resources:
            self._current = None
            self._state = SessionState.IDLE

    async def _release(self, resources: _SessionResources) -> List[RecordingArtifact]:
        """Release in reverse acquisition order; each step is isolated."""
        if resources.released:
            return []
        resources.released = True
        artifacts: List[RecordingArtifact] = []

        if resources.pipeline is not None:
            try:
                artifacts = await resources.pipeline.stop()
            except Exception as e:
                logger.error(f"Error stopping capture pipeline: {e}", exc_info=True)
        if resources.control is not None:
            try:
                resources.control.close()
            except Exception as e:
                logger.error(f"Error closing control channel: {e}", exc_info=True)
        if resources.speaker is not None:
            try:
                await resources.speaker.stop()
            except Exception as e:
                logger.error(f"Error stopping playback: {e}", exc_info=True)
        if resources.transport is not None:
            try:
                await resources.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport: {e}", exc_info=True)
        if resources.microphone is not None:
            try:
                resources.microphone.stop()
            except Exception as e:
                logger.error(f"Error releasing microphone: {e}", exc_info=True)
        return artifacts

    def _submit(self, artifacts: List[RecordingArtifact]):
        if self.sink is None:
            return
        for artifact in artifacts:
            try:
                self.submissions.append(self.sink.submit(artifact))
            except Exception as e:
                logger.error(f"Recording sink rejected '{artifact.label}': {e}", exc_info=True)

    def _dispatch_event(self, message: ControlMessage):
        if self.conversation_log is not None:
            self.conversation_log.record(message)
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception as e:
                logger.error(f"Error in session event listener: {e}", exc_info=True)
