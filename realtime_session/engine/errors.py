"""
Exception hierarchy for the realtime voice session engine.

Fatal start-up failures (credential, microphone, negotiation) are raised by
the stage that failed and reported to the caller wrapped in
SessionStartFailed, which names the stage. ChannelDecodeError and
SinkUploadFailed are recovered where they occur and only ever logged.
"""

from enum import Enum
from typing import Optional


class StartStage(str, Enum):
    """Stages of session start-up, in acquisition order."""

    CREDENTIAL = "credential"
    MICROPHONE = "microphone"
    NEGOTIATION = "negotiation"
    CONTROL_CHANNEL = "control_channel"
    CAPTURE = "capture"


class SessionError(Exception):
    """Base class for every error raised by the engine."""


class CredentialUnavailable(SessionError):
    """The credential broker could not issue a usable credential."""


class NegotiationFailed(SessionError):
    """The offer/answer exchange with the remote endpoint failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MicrophoneUnavailable(SessionError):
    """The microphone could not be opened (no device or permission denied)."""


class AlreadyActive(SessionError):
    """start() was called while a session is negotiating, active or closing."""


class SessionCancelled(SessionError):
    """stop() was called while start() was still in progress."""


class TransportStateError(SessionError):
    """A transport operation was attempted in the wrong connection state."""


class ChannelDecodeError(SessionError):
    """An inbound control message could not be decoded."""


class SinkUploadFailed(SessionError):
    """A recording sink failed to store an artifact durably."""


class SessionStartFailed(SessionError):
    """start() failed; every resource acquired so far has been released."""

    def __init__(self, stage: StartStage, cause: BaseException):
        super().__init__(f"Session start failed at stage '{stage.value}': {cause}")
        self.stage = stage
        self.cause = cause
