"""
Conversation log for a realtime voice session.

This module provides the ConversationLog class, which records the
conversation items and completed responses reported by the agent over the
control channel. The log lives in memory for the duration of one session;
callers that want to keep it must copy the entries before the next start().
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from realtime_session.models.control_messages import (
    ControlMessage,
    ConversationItemCreated,
    ResponseDone,
)


@dataclass(frozen=True)
class ConversationEntry:
    """One line of the conversation."""

    kind: str
    role: Optional[str]
    text: str
    item_id: Optional[str] = None
    received_at: Optional[datetime] = None


class ConversationLog:
    """
    Records conversation events in arrival order.

    Register ``log.record`` with ``SessionController.on_event`` to feed it.
    Messages that carry no conversation content are ignored.
    """

    def __init__(self):
        """Initialize an empty log."""
        self.entries: List[ConversationEntry] = []

    def record(self, message: ControlMessage) -> Optional[ConversationEntry]:
        """
        Add an entry for a conversation item or a completed response.

        Args:
            message: A decoded inbound control message

        Returns:
            The new entry, or None if the message was not recorded
        """
        now = datetime.now(timezone.utc)
        if isinstance(message, ConversationItemCreated):
            entry = ConversationEntry(
                kind=message.type,
                role=message.item.role,
                text=message.item.text,
                item_id=message.item.id,
                received_at=now,
            )
        elif isinstance(message, ResponseDone):
            entry = ConversationEntry(
                kind=message.type,
                role="assistant",
                text=message.response.text,
                item_id=message.response.id,
                received_at=now,
            )
        else:
            return None
        self.entries.append(entry)
        return entry

    def transcript(self) -> List[str]:
        """Return ``role: text`` lines for entries that carry text."""
        return [f"{e.role or 'unknown'}: {e.text}" for e in self.entries if e.text]

    def clear(self):
        """Remove every entry."""
        self.entries.clear()

    def __len__(self):
        return len(self.entries)
