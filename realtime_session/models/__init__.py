"""
Models module for data structures used by the realtime voice session engine.

Key components:
- control_messages: Pydantic models for the JSON messages exchanged with the
  OpenAI Realtime API over the WebRTC data channel, and the inbound decoder.
- openai_schemas: Models for the ephemeral session (credential) endpoint.
- session: Session configuration, the short-lived credential and the sealed
  recording artifacts.
- conversation: In-memory log of the conversation items of one session.

Usage examples:
```python
from realtime_session.models import CaptureTopology, SessionConfig

config = SessionConfig(
    instructions="You are an interviewer collecting workplace stories.",
    voice="verse",
    capture_topology=CaptureTopology.MIXED,
    greeting_instructions="Greet the user and start the interview.",
)

from realtime_session.models import decode_inbound

message = decode_inbound('{"type": "response.done", "response": {"output": []}}')
```
"""

from realtime_session.models.control_messages import (
    ContentPart,
    ControlMessage,
    ConversationItem,
    ConversationItemCreate,
    ConversationItemCreated,
    ResponseCreate,
    ResponseDone,
    ResponseParameters,
    ServerError,
    SessionParameters,
    SessionUpdate,
    SpeakingStarted,
    SpeakingStopped,
    TurnDetection,
    decode_inbound,
)
from realtime_session.models.conversation import ConversationEntry, ConversationLog
from realtime_session.models.openai_schemas import (
    ClientSecret,
    RealtimeSessionRequest,
    RealtimeSessionResponse,
)
from realtime_session.models.session import (
    CaptureTopology,
    RecordingArtifact,
    SessionConfig,
    SessionCredential,
)
