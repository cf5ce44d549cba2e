"""
Pydantic models for the control channel protocol.

This module defines the JSON messages exchanged with the OpenAI Realtime API
over the WebRTC data channel, together with the decoder used for inbound
traffic. Outbound messages configure and prime the session; inbound messages
report speaking state, conversation items and completed responses.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from realtime_session.config.constants import (
    MESSAGE_TYPE_CONVERSATION_ITEM_CREATE,
    MESSAGE_TYPE_CONVERSATION_ITEM_CREATED,
    MESSAGE_TYPE_ERROR,
    MESSAGE_TYPE_RESPONSE_CREATE,
    MESSAGE_TYPE_RESPONSE_DONE,
    MESSAGE_TYPE_SESSION_UPDATE,
    MESSAGE_TYPE_SPEAKING_STARTED,
    MESSAGE_TYPE_SPEAKING_STOPPED,
)
from realtime_session.engine.errors import ChannelDecodeError


class ControlMessage(BaseModel):
    """Base model for all control channel messages."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Message type identifier")

    def to_wire(self) -> str:
        """Serialize the message as the JSON text sent over the data channel."""
        return self.model_dump_json(exclude_none=True)


# Outbound messages
class TurnDetection(BaseModel):
    """Server-side voice activity detection parameters."""

    model_config = ConfigDict(frozen=True)

    type: str = "server_vad"
    threshold: float = Field(0.5, ge=0.0, le=1.0)
    prefix_padding_ms: int = Field(300, ge=0)
    silence_duration_ms: int = Field(500, ge=0)


class SessionParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    instructions: str
    voice: str
    turn_detection: TurnDetection


class SessionUpdate(ControlMessage):
    """Model for session.update, always the first primed message."""

    type: Literal["session.update"] = MESSAGE_TYPE_SESSION_UPDATE
    session: SessionParameters


class ContentPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "input_text"
    text: Optional[str] = None
    transcript: Optional[str] = None


class ConversationItem(BaseModel):
    """A message item in the conversation."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    type: str = "message"
    role: Optional[str] = None
    content: List[ContentPart] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """Concatenated text (or audio transcript) of every content part."""
        parts = [part.text or part.transcript or "" for part in self.content]
        return "".join(parts)


class ConversationItemCreate(ControlMessage):
    """Model for conversation.item.create, used for the greeting prompt."""

    type: Literal["conversation.item.create"] = MESSAGE_TYPE_CONVERSATION_ITEM_CREATE
    item: ConversationItem

    @classmethod
    def user_text(cls, text: str) -> "ConversationItemCreate":
        return cls(
            item=ConversationItem(
                role="user", content=[ContentPart(type="input_text", text=text)]
            )
        )


class ResponseParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    instructions: Optional[str] = None


class ResponseCreate(ControlMessage):
    """Model for response.create, asks the agent to produce a response."""

    type: Literal["response.create"] = MESSAGE_TYPE_RESPONSE_CREATE
    response: ResponseParameters = Field(default_factory=ResponseParameters)


# Inbound messages
class SpeakingStarted(ControlMessage):
    """The agent started playing audio on the remote track."""

    type: Literal["output_audio_buffer.started"]


class SpeakingStopped(ControlMessage):
    """The agent finished playing audio on the remote track."""

    type: Literal["output_audio_buffer.stopped"]


class ResponseBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    status: Optional[str] = None
    output: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """Text of the response, taken from output items or their content parts."""
        texts = []
        for item in self.output:
            if item.get("text"):
                texts.append(item["text"])
            for part in item.get("content") or []:
                value = part.get("text") or part.get("transcript")
                if value:
                    texts.append(value)
        return "".join(texts)


class ResponseDone(ControlMessage):
    """Model for response.done, marks the end of an agent turn."""

    type: Literal["response.done"]
    response: ResponseBody = Field(default_factory=ResponseBody)


class ConversationItemCreated(ControlMessage):
    """Model for conversation.item.created."""

    type: Literal["conversation.item.created"]
    item: ConversationItem


class ServerError(ControlMessage):
    """Model for error events reported by the Realtime API."""

    type: Literal["error"]
    error: Dict[str, Any] = Field(default_factory=dict)


InboundMessage = Annotated[
    Union[
        SpeakingStarted,
        SpeakingStopped,
        ResponseDone,
        ConversationItemCreated,
        ServerError,
    ],
    Field(discriminator="type"),
]

OutboundMessage = Union[SessionUpdate, ConversationItemCreate, ResponseCreate]

INBOUND_TYPES = frozenset(
    {
        MESSAGE_TYPE_SPEAKING_STARTED,
        MESSAGE_TYPE_SPEAKING_STOPPED,
        MESSAGE_TYPE_RESPONSE_DONE,
        MESSAGE_TYPE_CONVERSATION_ITEM_CREATED,
        MESSAGE_TYPE_ERROR,
    }
)

_inbound_adapter = TypeAdapter(InboundMessage)


def decode_inbound(payload: Union[str, bytes]) -> Optional[ControlMessage]:
    """
    Decode one inbound data channel payload.

    Args:
        payload: The raw text (or UTF-8 bytes) received on the data channel

    Returns:
        The decoded message, or None when the message type is not one this
        engine understands

    Raises:
        ChannelDecodeError: If the payload is not a JSON object with a string
            ``type`` or does not match the schema of its type
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ChannelDecodeError(f"Invalid JSON payload: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ChannelDecodeError("Control message must be an object with a string type")

    if data["type"] not in INBOUND_TYPES:
        return None

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise ChannelDecodeError(f"Invalid {data['type']} message: {e}") from e
