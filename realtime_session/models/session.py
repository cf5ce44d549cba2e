"""
Session-level data structures: caller configuration, the short-lived
credential and the sealed recording artifacts.
"""

import io
import wave
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from realtime_session.config.constants import (
    CHANNELS,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_VOICE,
    PCM_MIME_TYPE,
    SAMPLE_RATE,
    SAMPLE_WIDTH,
)
from realtime_session.models.control_messages import TurnDetection


class CaptureTopology(str, Enum):
    """Which streams are recorded, and whether they are mixed."""

    SINGLE = "single"
    DUAL = "dual"
    MIXED = "mixed"


class SessionConfig(BaseModel):
    """Static configuration for one session. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    instructions: str = Field(..., description="Instructions given to the agent")
    voice: str = Field(DEFAULT_VOICE, description="Voice identifier for agent audio")
    model: str = Field(DEFAULT_REALTIME_MODEL, description="Realtime model identifier")
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    capture_topology: CaptureTopology = CaptureTopology.SINGLE
    greeting_prompt: Optional[str] = Field(
        None, description="User message sent after the session update"
    )
    greeting_instructions: Optional[str] = Field(
        None, description="Instructions for the first primed response"
    )
    response_modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    playback: bool = Field(True, description="Play the agent's audio on the speaker")

    @field_validator("instructions")
    def validate_instructions(cls, v):
        """Validate that instructions are not empty."""
        if not v.strip():
            raise ValueError("Instructions cannot be empty")
        return v

    @field_validator("response_modalities")
    def validate_modalities(cls, v):
        unknown = set(v) - {"text", "audio"}
        if not v or unknown:
            raise ValueError(f"Unsupported response modalities: {sorted(unknown) or v}")
        return v

    @property
    def has_greeting(self) -> bool:
        return bool(self.greeting_prompt or self.greeting_instructions)


@dataclass
class SessionCredential:
    """Short-lived credential for exactly one negotiation."""

    token: str
    expires_at: datetime
    consumed: bool = field(default=False, compare=False)

    def __repr__(self):
        return f"SessionCredential(token='***', expires_at={self.expires_at.isoformat()})"

    @property
    def expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at

    def consume(self) -> str:
        """
        Mark the credential as used and return its token.

        Raises:
            ValueError: If the credential was already used
        """
        if self.consumed:
            raise ValueError("Session credential has already been used")
        self.consumed = True
        return self.token


@dataclass(frozen=True)
class RecordingArtifact:
    """Sealed audio buffer for one recorded stream."""

    label: str
    data: bytes
    mime_type: str = PCM_MIME_TYPE
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS

    def __len__(self):
        return len(self.data)

    @property
    def duration(self) -> float:
        """Duration of the recording in seconds."""
        frame_size = SAMPLE_WIDTH * self.channels
        return len(self.data) / frame_size / self.sample_rate

    def to_wav(self) -> bytes:
        """Wrap the PCM data in a WAV container."""
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(SAMPLE_WIDTH)
            wf.setframerate(self.sample_rate)
            wf.writeframes(self.data)
        return buffer.getvalue()
