"""
Offer/answer negotiation with the OpenAI Realtime WebRTC endpoint.

The local offer is POSTed as ``application/sdp`` with the ephemeral key as a
bearer token; the response body is the remote answer. Negotiation is tried
exactly once per call.
"""

import asyncio
import logging
import os
from typing import Optional

import requests

from realtime_session.config.constants import (
    DEFAULT_REALTIME_MODEL,
    LOGGER_NAME,
    REALTIME_BASE_URL,
)
from realtime_session.engine.errors import NegotiationFailed
from realtime_session.engine.transport import TransportSession
from realtime_session.models.session import SessionCredential

logger = logging.getLogger(LOGGER_NAME)

BASE_URL = os.getenv("OPENAI_REALTIME_URL", REALTIME_BASE_URL)


class SignalingExchange:
    """Negotiates one TransportSession against the Realtime endpoint."""

    def __init__(self, base_url: str = BASE_URL, model: str = DEFAULT_REALTIME_MODEL):
        self.base_url = base_url
        self.model = model

    async def negotiate(
        self,
        credential: SessionCredential,
        transport: TransportSession,
        model: Optional[str] = None,
    ) -> TransportSession:
        """
        Run the offer/answer exchange.

        Args:
            credential: Single-use credential authorizing the exchange
            transport: Transport holding the local track and data channel
            model: Model identifier for the query string (defaults to self.model)

        Returns:
            TransportSession: The same transport, now connected

        Raises:
            NegotiationFailed: On a reused credential, an HTTP failure or a
                missing or unusable answer
        """
        try:
            token = credential.consume()
        except ValueError as e:
            raise NegotiationFailed(str(e)) from e

        offer_sdp = await transport.create_offer()
        answer_sdp = await self._exchange(token, offer_sdp, model or self.model)

        try:
            await transport.apply_answer(answer_sdp)
        except Exception as e:
            raise NegotiationFailed(f"Remote description rejected: {e}") from e
        return transport

    async def _exchange(self, token: str, offer_sdp: str, model: str) -> str:
        url = f"{self.base_url}?model={model}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/sdp",
        }
        logger.info(f"Sending offer to {url}")
        logger.debug(f"Offer SDP: {offer_sdp}")

        try:
            response = await asyncio.to_thread(
                requests.post, url, data=offer_sdp, headers=headers
            )
        except requests.RequestException as e:
            raise NegotiationFailed(f"Signaling request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.error(f"Signaling endpoint returned error: {response.status_code}")
            raise NegotiationFailed(
                f"Signaling endpoint returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        answer_sdp = response.text or ""
        if not answer_sdp.lstrip().startswith("v="):
            raise NegotiationFailed("Signaling endpoint returned an unparsable answer")
        logger.debug(f"Answer SDP: {answer_sdp}")
        return answer_sdp
