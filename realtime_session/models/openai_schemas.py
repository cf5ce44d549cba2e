"""
Pydantic models for the OpenAI Realtime sessions endpoint.

The broker server relays the upstream response as-is; the broker clients
parse it into a SessionCredential.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict

from realtime_session.models.session import SessionCredential


class ClientSecret(BaseModel):
    """Ephemeral key issued for one Realtime session."""
    value: str
    expires_at: int


class RealtimeSessionRequest(BaseModel):
    """Body sent to the sessions endpoint."""
    model: str
    voice: str


class RealtimeSessionResponse(BaseModel):
    """Response from session creation endpoint."""
    model_config = ConfigDict(extra="allow")

    client_secret: ClientSecret
    id: Optional[str] = None
    model: Optional[str] = None
    voice: Optional[str] = None

    def to_credential(self) -> SessionCredential:
        expires_at = datetime.fromtimestamp(self.client_secret.expires_at, tz=timezone.utc)
        return SessionCredential(token=self.client_secret.value, expires_at=expires_at)
