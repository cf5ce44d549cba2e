"""
Control channel protocol over the WebRTC data channel.

The data channel silently drops anything sent before it is open, so the
priming messages (session update, then the optional greeting) are held back
and flushed synchronously from the "open" event in their fixed order. Every
other send made before the channel is open is dropped and reported.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from realtime_session.config.constants import LOGGER_NAME
from realtime_session.engine.errors import ChannelDecodeError, TransportStateError
from realtime_session.engine.speaking import SpeakingIndicator
from realtime_session.models.control_messages import (
    ControlMessage,
    ConversationItemCreate,
    OutboundMessage,
    ResponseCreate,
    ResponseParameters,
    ServerError,
    SessionParameters,
    SessionUpdate,
    SpeakingStopped,
    decode_inbound,
)
from realtime_session.models.session import SessionConfig

logger = logging.getLogger(LOGGER_NAME)

MessageListener = Callable[[ControlMessage], None]


def build_priming_messages(config: SessionConfig) -> List[OutboundMessage]:
    """
    Build the messages sent as soon as the channel opens.

    The session update always comes first; the greeting item and the
    response request follow only when the configuration asks for a greeting.
    """
    messages: List[OutboundMessage] = [
        SessionUpdate(
            session=SessionParameters(
                instructions=config.instructions,
                voice=config.voice,
                turn_detection=config.turn_detection,
            )
        )
    ]
    if config.greeting_prompt:
        messages.append(ConversationItemCreate.user_text(config.greeting_prompt))
    if config.has_greeting:
        messages.append(
            ResponseCreate(
                response=ResponseParameters(
                    modalities=config.response_modalities,
                    instructions=config.greeting_instructions,
                )
            )
        )
    return messages


class ControlChannel:
    """Typed message exchange over one RTCDataChannel."""

    def __init__(self, data_channel, indicator: Optional[SpeakingIndicator] = None):
        self._channel = data_channel
        self.indicator = indicator if indicator is not None else SpeakingIndicator()
        self._opened = asyncio.Event()
        self._closed = False
        self._channel_closed = False
        self._pending: List[OutboundMessage] = []
        self._listeners: List[MessageListener] = []
        self.decode_errors = 0

        data_channel.on("open", self._handle_open)
        data_channel.on("message", self._handle_message)
        data_channel.on("close", self._handle_close)

        if getattr(data_channel, "readyState", None) == "open":
            self._opened.set()

    @property
    def is_open(self) -> bool:
        return self._opened.is_set() and not (self._closed or self._channel_closed)

    def on_message(self, listener: MessageListener) -> Callable[[], None]:
        """Subscribe to decoded inbound messages."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def prime(self, messages: Sequence[OutboundMessage]):
        """Send ``messages`` in order once the channel is open."""
        self._pending.extend(messages)
        if self.is_open:
            self._flush_pending()

    async def wait_open(self):
        """
        Wait for the channel's open signal.

        Raises:
            TransportStateError: If the channel was closed before it opened
        """
        await self._opened.wait()
        if self._closed or self._channel_closed:
            raise TransportStateError("Control channel closed before it opened")

    def send(self, message: OutboundMessage) -> bool:
        """
        Send one message now.

        Returns:
            bool: False if the channel is not open and the message was dropped
        """
        if not self.is_open:
            logger.warning(f"Control channel not open, dropping {message.type}")
            return False
        try:
            self._channel.send(message.to_wire())
        except Exception as e:
            logger.error(f"Error sending {message.type}: {e}")
            return False
        logger.debug(f"Sent control message: {message.type}")
        return True

    def close(self):
        """Stop handling events and close the underlying channel."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self._listeners.clear()
        self._opened.set()
        self.indicator.reset()
        try:
            self._channel.close()
        except Exception as e:
            logger.warning(f"Error closing data channel: {e}")

    def _handle_open(self):
        if self._closed:
            return
        logger.info("Control channel open")
        self._opened.set()
        self._flush_pending()

    def _flush_pending(self):
        pending, self._pending = self._pending, []
        for message in pending:
            self.send(message)

    def _handle_close(self):
        logger.info("Control channel closed by the transport")
        self._channel_closed = True
        self._opened.set()

    def _handle_message(self, payload):
        if self._closed:
            return
        try:
            message = decode_inbound(payload)
        except ChannelDecodeError as e:
            self.decode_errors += 1
            logger.warning(f"Dropping malformed control message: {e}")
            self.indicator.mark_activity()
            return

        if isinstance(message, SpeakingStopped):
            self.indicator.mark_stopped()
        else:
            self.indicator.mark_activity()

        if message is None:
            logger.debug(f"Ignoring control message of unknown type: {str(payload)[:100]}")
            return
        if isinstance(message, ServerError):
            logger.error(f"Received error from the agent: {message.error}")

        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception as e:
                logger.error(f"Error in control message listener: {e}", exc_info=True)
