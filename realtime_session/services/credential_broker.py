"""
Credential brokers issuing short-lived Realtime session credentials.

OpenAICredentialBroker holds the standard API key and creates the ephemeral
session itself; it backs the broker server. HttpCredentialBroker is what a
client without the key uses: it asks the broker server for a credential.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from realtime_session.config.constants import (
    DEFAULT_REALTIME_MODEL,
    DEFAULT_VOICE,
    LOGGER_NAME,
    REALTIME_SESSIONS_URL,
)
from realtime_session.engine.errors import CredentialUnavailable
from realtime_session.models.openai_schemas import (
    RealtimeSessionRequest,
    RealtimeSessionResponse,
)
from realtime_session.models.session import SessionCredential

logger = logging.getLogger(LOGGER_NAME)

REQUEST_TIMEOUT = 15  # seconds


def _parse_credential(data: Any) -> SessionCredential:
    try:
        return RealtimeSessionResponse.model_validate(data).to_credential()
    except ValidationError as e:
        raise CredentialUnavailable(f"Malformed session response: {e}") from e


class OpenAICredentialBroker:
    """Creates ephemeral Realtime sessions with a server-held API key."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        voice: Optional[str] = None,
        sessions_url: str = REALTIME_SESSIONS_URL,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL)
        self.voice = voice or os.getenv("OPENAI_REALTIME_VOICE", DEFAULT_VOICE)
        self.sessions_url = sessions_url

    def create_session(self) -> Dict[str, Any]:
        """
        Create an ephemeral session and return the upstream JSON unchanged.

        Raises:
            CredentialUnavailable: If the key is missing or the request fails
        """
        if not self.api_key:
            logger.error("OPENAI_API_KEY environment variable not set")
            raise CredentialUnavailable("OPENAI_API_KEY environment variable not set")

        body = RealtimeSessionRequest(model=self.model, voice=self.voice)
        try:
            response = requests.post(
                self.sessions_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=body.model_dump(),
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error creating ephemeral token: {e}")
            raise CredentialUnavailable(f"Failed to create ephemeral token: {e}") from e

        logger.info(f"Created ephemeral Realtime session {data.get('id', '')}")
        return data

    async def fetch(self) -> SessionCredential:
        data = await asyncio.to_thread(self.create_session)
        return _parse_credential(data)


class HttpCredentialBroker:
    """Fetches credentials from the broker server's /session endpoint."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or os.getenv("CREDENTIAL_BROKER_URL", "http://localhost:8000/session")

    def _get(self) -> Any:
        try:
            response = requests.get(self.url, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Credential broker request failed: {e}")
            raise CredentialUnavailable(f"Credential broker request failed: {e}") from e

    async def fetch(self) -> SessionCredential:
        logger.debug(f"Requesting session credential from {self.url}")
        data = await asyncio.to_thread(self._get)
        return _parse_credential(data)
