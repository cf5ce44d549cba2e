import io
import wave
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from realtime_session.config.constants import DEFAULT_REALTIME_MODEL, DEFAULT_VOICE, SAMPLE_RATE
from realtime_session.models.openai_schemas import RealtimeSessionResponse
from realtime_session.models.session import (
    CaptureTopology,
    RecordingArtifact,
    SessionConfig,
    SessionCredential,
)


class TestSessionConfig:
    def test_defaults(self):
        config = SessionConfig(instructions="Be helpful.")
        assert config.voice == DEFAULT_VOICE
        assert config.model == DEFAULT_REALTIME_MODEL
        assert config.capture_topology is CaptureTopology.SINGLE
        assert config.playback is True
        assert not config.has_greeting

    def test_empty_instructions_rejected(self):
        with pytest.raises(ValidationError):
            SessionConfig(instructions="   ")

    def test_unknown_modality_rejected(self):
        with pytest.raises(ValidationError):
            SessionConfig(instructions="x", response_modalities=["video"])

    def test_topology_from_string(self):
        assert SessionConfig(instructions="x", capture_topology="dual").capture_topology is CaptureTopology.DUAL

    def test_frozen(self):
        config = SessionConfig(instructions="x")
        with pytest.raises(ValidationError):
            config.voice = "alloy"


class TestSessionCredential:
    def test_consume_once(self):
        credential = SessionCredential("ek_1", datetime.now(timezone.utc) + timedelta(minutes=1))
        assert credential.consume() == "ek_1"
        with pytest.raises(ValueError):
            credential.consume()

    def test_expired(self):
        credential = SessionCredential("ek_1", datetime.now(timezone.utc) - timedelta(seconds=1))
        assert credential.expired

    def test_repr_hides_token(self):
        credential = SessionCredential("ek_secret", datetime.now(timezone.utc))
        assert "ek_secret" not in repr(credential)

    def test_from_sessions_response(self):
        response = RealtimeSessionResponse.model_validate({
            "id": "sess_1",
            "object": "realtime.session",
            "client_secret": {"value": "ek_abc", "expires_at": 1893456000},
        })
        credential = response.to_credential()
        assert credential.token == "ek_abc"
        assert credential.expires_at == datetime.fromtimestamp(1893456000, tz=timezone.utc)


class TestRecordingArtifact:
    def test_duration(self):
        artifact = RecordingArtifact(label="user", data=b"\x00\x00" * SAMPLE_RATE)
        assert len(artifact) == 2 * SAMPLE_RATE
        assert artifact.duration == pytest.approx(1.0)

    def test_to_wav(self):
        data = b"\x01\x00\x02\x00"
        artifact = RecordingArtifact(label="user", data=data)
        with wave.open(io.BytesIO(artifact.to_wav()), "rb") as wf:
            assert wf.getnchannels() == 1
            assert wf.getsampwidth() == 2
            assert wf.getframerate() == SAMPLE_RATE
            assert wf.readframes(wf.getnframes()) == data
