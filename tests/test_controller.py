import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from fakes import (
    ANSWER_SDP,
    FakeAudioTrack,
    FakeBroker,
    FakePeerConnection,
    FakeSignaling,
    FakeSpeaker,
    make_credential,
    wait_for,
)
from realtime_session.engine.controller import SessionController, SessionState
from realtime_session.engine.errors import (
    AlreadyActive,
    CredentialUnavailable,
    MicrophoneUnavailable,
    NegotiationFailed,
    SessionCancelled,
    SessionStartFailed,
    StartStage,
)
from realtime_session.engine.signaling import SignalingExchange
from realtime_session.models.control_messages import ResponseDone
from realtime_session.models.conversation import ConversationLog
from realtime_session.models.session import (
    CaptureTopology,
    SessionConfig,
    SessionCredential,
)
from realtime_session.services.recording_sink import RecordingSink

CONFIG = SessionConfig(instructions="Be brief.", playback=False)


class MemorySink(RecordingSink):
    def __init__(self):
        super().__init__()
        self.uploaded = []

    async def upload(self, artifact, report):
        self.uploaded.append(artifact)
        return f"memory://{artifact.label}"


class Harness:
    """Builds a controller wired to fakes and keeps handles on them."""

    def __init__(
        self, broker=None, signaling=None, microphone_error=None, sink=None, quiescence=10, **kwargs
    ):
        self.microphones = []
        self.peer_connections = []
        self.speakers = []
        self.microphone_error = microphone_error
        self.broker = broker or FakeBroker()
        self.signaling = signaling or FakeSignaling()
        self.sink = sink
        self.controller = SessionController(
            self.broker,
            signaling=self.signaling,
            sink=sink,
            microphone_factory=self._microphone,
            peer_connection_factory=self._peer_connection,
            speaker_factory=self._speaker,
            speaking_quiescence=quiescence,
            **kwargs,
        )

    def _microphone(self):
        if self.microphone_error is not None:
            raise self.microphone_error
        track = FakeAudioTrack(endless=True)
        self.microphones.append(track)
        return track

    def _peer_connection(self):
        pc = FakePeerConnection()
        self.peer_connections.append(pc)
        return pc

    def _speaker(self):
        speaker = FakeSpeaker()
        self.speakers.append(speaker)
        return speaker

    @property
    def data_channel(self):
        return self.peer_connections[-1].data_channels[0]


@pytest.mark.asyncio
async def test_start_primes_and_activates():
    harness = Harness()
    controller = harness.controller
    config = SessionConfig(instructions="Be brief.", greeting_prompt="Hello", playback=False)

    await controller.start(config)

    assert controller.state is SessionState.ACTIVE
    assert [json.loads(m)["type"] for m in harness.data_channel.sent] == [
        "session.update",
        "conversation.item.create",
        "response.create",
    ]
    assert harness.data_channel.label == "oai-events"
    assert len(harness.peer_connections[0].tracks) == 1
    await controller.stop()


@pytest.mark.asyncio
async def test_credential_failure_reports_stage_and_stays_idle():
    harness = Harness(broker=FakeBroker(error=CredentialUnavailable("broker down")))

    with pytest.raises(SessionStartFailed) as excinfo:
        await harness.controller.start(CONFIG)

    assert excinfo.value.stage is StartStage.CREDENTIAL
    assert isinstance(excinfo.value.cause, CredentialUnavailable)
    assert harness.controller.state is SessionState.IDLE
    assert harness.microphones == []
    assert harness.peer_connections == []


@pytest.mark.asyncio
async def test_expired_credential_is_not_used():
    expired = SessionCredential("ek_old", datetime.now(timezone.utc) - timedelta(seconds=1))
    harness = Harness(broker=FakeBroker(credential=expired))

    with pytest.raises(SessionStartFailed) as excinfo:
        await harness.controller.start(CONFIG)

    assert excinfo.value.stage is StartStage.CREDENTIAL
    assert harness.signaling.calls == 0


@pytest.mark.asyncio
async def test_microphone_failure():
    harness = Harness(microphone_error=OSError("permission denied"))

    with pytest.raises(SessionStartFailed) as excinfo:
        await harness.controller.start(CONFIG)

    assert excinfo.value.stage is StartStage.MICROPHONE
    assert isinstance(excinfo.value.cause, MicrophoneUnavailable)
    assert harness.controller.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_negotiation_failure_releases_microphone_and_transport():
    harness = Harness(signaling=FakeSignaling(error=NegotiationFailed("401", status_code=401)))

    with pytest.raises(SessionStartFailed) as excinfo:
        await harness.controller.start(CONFIG)

    assert excinfo.value.stage is StartStage.NEGOTIATION
    assert harness.microphones[0].readyState == "ended"
    assert harness.peer_connections[0].closed
    assert harness.controller.state is SessionState.IDLE
    assert harness.controller.transport is None


@pytest.mark.asyncio
async def test_restart_after_failure():
    harness = Harness(signaling=FakeSignaling(error=NegotiationFailed("boom")))
    with pytest.raises(SessionStartFailed):
        await harness.controller.start(CONFIG)

    harness.signaling.error = None
    await harness.controller.start(CONFIG)

    assert harness.controller.state is SessionState.ACTIVE
    assert harness.broker.calls == 2
    await harness.controller.stop()


@pytest.mark.asyncio
async def test_second_start_raises_already_active():
    harness = Harness()
    await harness.controller.start(CONFIG)

    with pytest.raises(AlreadyActive):
        await harness.controller.start(CONFIG)

    assert harness.broker.calls == 1
    await harness.controller.stop()


@pytest.mark.asyncio
async def test_start_while_negotiating_raises_already_active():
    harness = Harness(signaling=FakeSignaling(delay=0.05))
    first = asyncio.ensure_future(harness.controller.start(CONFIG))
    await wait_for(lambda: harness.controller.state is SessionState.NEGOTIATING)

    with pytest.raises(AlreadyActive):
        await harness.controller.start(CONFIG)

    await first
    await harness.controller.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent():
    harness = Harness()
    assert await harness.controller.stop() == []

    await harness.controller.start(CONFIG)
    first = await harness.controller.stop()
    second = await harness.controller.stop()

    assert len(first) == 1
    assert second == []
    assert harness.controller.state is SessionState.IDLE
    assert harness.microphones[0].readyState == "ended"
    assert harness.peer_connections[0].closed


@pytest.mark.asyncio
async def test_concurrent_stops_release_once():
    harness = Harness()
    await harness.controller.start(CONFIG)

    results = await asyncio.gather(harness.controller.stop(), harness.controller.stop())

    assert sorted(len(r) for r in results) == [0, 1]
    assert harness.controller.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_dual_stop_submits_two_artifacts():
    sink = MemorySink()
    harness = Harness(sink=sink)
    config = SessionConfig(
        instructions="Be brief.", capture_topology=CaptureTopology.DUAL, playback=False
    )
    await harness.controller.start(config)

    artifacts = await harness.controller.stop()
    await sink.wait_closed()

    assert [a.label for a in artifacts] == ["user", "assistant"]
    assert len(harness.controller.submissions) == 2
    assert [s.durable_reference.result() for s in harness.controller.submissions] == [
        "memory://user",
        "memory://assistant",
    ]


@pytest.mark.asyncio
async def test_submissions_cover_latest_session_only():
    sink = MemorySink()
    harness = Harness(sink=sink)
    dual = SessionConfig(
        instructions="Be brief.", capture_topology=CaptureTopology.DUAL, playback=False
    )
    await harness.controller.start(dual)
    await harness.controller.stop()
    first = harness.controller.submissions

    await harness.controller.start(CONFIG)
    assert harness.controller.submissions == []
    await harness.controller.stop()
    await sink.wait_closed()

    assert len(first) == 2
    assert len(harness.controller.submissions) == 1
    assert harness.controller.submissions[0].durable_reference.result() == "memory://user"


@pytest.mark.asyncio
async def test_failing_sink_does_not_affect_stop():
    sink = MagicMock()
    sink.submit.side_effect = RuntimeError("sink exploded")
    harness = Harness(sink=sink)
    await harness.controller.start(CONFIG)

    artifacts = await harness.controller.stop()

    assert len(artifacts) == 1
    assert harness.controller.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_stop_during_negotiation_cancels_start():
    harness = Harness(signaling=FakeSignaling(delay=0.05))
    start = asyncio.ensure_future(harness.controller.start(CONFIG))
    await wait_for(lambda: harness.controller.state is SessionState.NEGOTIATING)
    await wait_for(lambda: bool(harness.microphones))

    artifacts = await harness.controller.stop()

    with pytest.raises(SessionStartFailed) as excinfo:
        await start
    assert isinstance(excinfo.value.cause, SessionCancelled)
    assert artifacts == []
    assert harness.controller.state is SessionState.IDLE
    assert harness.microphones[0].readyState == "ended"
    assert harness.peer_connections[0].closed


@pytest.mark.asyncio
async def test_playback_plays_remote_tracks():
    harness = Harness()
    await harness.controller.start(SessionConfig(instructions="Be brief."))
    remote = FakeAudioTrack(endless=True)

    harness.peer_connections[0].emit("track", remote)

    assert len(harness.speakers[0].played) == 1
    await harness.controller.stop()
    assert harness.speakers[0].stopped
    remote.stop()


@pytest.mark.asyncio
async def test_events_reach_listeners_and_conversation_log():
    log = ConversationLog()
    harness = Harness(conversation_log=log)
    received = []
    harness.controller.on_event(received.append)
    await harness.controller.start(CONFIG)

    harness.data_channel.emit("message", '{"type": "output_audio_buffer.started"}')
    harness.data_channel.emit(
        "message",
        '{"type": "response.done", "response": {"id": "r1", "output": [{"text": "Hi!"}]}}',
    )

    assert harness.controller.speaking_indicator.speaking is True
    assert isinstance(received[-1], ResponseDone)
    assert log.transcript() == ["assistant: Hi!"]

    await harness.controller.stop()
    assert harness.controller.speaking_indicator.speaking is False


@pytest.mark.asyncio
async def test_speaking_clears_after_quiet_period():
    harness = Harness(quiescence=0.05)
    changes = []
    harness.controller.speaking_indicator.subscribe(changes.append)
    await harness.controller.start(CONFIG)

    done = '{"type": "response.done", "response": {"output": [{"text": "hi"}]}}'
    harness.data_channel.emit("message", done)
    harness.data_channel.emit("message", done)
    await asyncio.sleep(0.15)

    assert changes == [True, False]
    await harness.controller.stop()
    assert changes == [True, False]


@pytest.mark.asyncio
async def test_start_with_http_signaling():
    """Full negotiation through SignalingExchange with the HTTP call mocked"""
    response = MagicMock()
    response.status_code = 201
    response.text = ANSWER_SDP
    credential = make_credential("ek_live")
    harness = Harness(
        broker=FakeBroker(credential=credential),
        signaling=SignalingExchange(base_url="https://example.test/v1/realtime"),
    )

    with patch("realtime_session.engine.signaling.requests.post", return_value=response) as post:
        await harness.controller.start(CONFIG)

    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer ek_live"
    assert credential.consumed
    assert harness.controller.state is SessionState.ACTIVE
    await harness.controller.stop()
