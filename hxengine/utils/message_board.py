"""
Message board for the hxengine demo server

Holds the messages posted on the demo message page and the unread counter
that the page updates out of band.
"""
from __future__ import annotations
import uuid
import time
from typing import Optional, List
from dataclasses import dataclass
from threading import Lock


@dataclass
class Message:
    """A posted message."""
    message_id: str
    text: str
    created_at: float


class MessageBoard:
    """
    In-memory message list, newest first.
    For production, this should be replaced with a real store.
    """

    def __init__(self, max_messages: int = 100):
        self._messages: List[Message] = []
        self._unread = 0
        self._lock = Lock()
        self._max_messages = max_messages

    def post(self, text: str) -> Optional[Message]:
        """Add a message at the top; blank text is ignored."""
        text = (text or "").strip()
        if not text:
            return None

        message = Message(message_id=str(uuid.uuid4()), text=text, created_at=time.time())
        with self._lock:
            self._messages.insert(0, message)
            del self._messages[self._max_messages:]
            self._unread += 1
        return message

    def messages(self) -> List[Message]:
        with self._lock:
            return list(self._messages)

    @property
    def unread_count(self) -> int:
        return self._unread

    def mark_read(self):
        with self._lock:
            self._unread = 0

    def clear(self):
        with self._lock:
            self._messages.clear()
            self._unread = 0


# Global message board instance
_message_board: Optional[MessageBoard] = None


def get_message_board() -> MessageBoard:
    """Get the global message board instance."""
    global _message_board
    if _message_board is None:
        _message_board = MessageBoard()
    return _message_board
