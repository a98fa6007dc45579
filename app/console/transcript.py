"""
TRANSCRIPT MODULE
=================

The console's view of the conversation: an ordered list of ChatMessage objects.
Order is significant; it is both what the user sees and what gets sent to the relay.

INVARIANT:
  Exactly one system message, always first. It is never part of the relay payload.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional
from uuid import uuid4
import time

from app.models import ChatRole, PayloadMessage
from config import CONSOLE_SYSTEM_PROMPT, INITIAL_ASSISTANT_GREETING


@dataclass
class ChatMessage:
    """
    One transcript entry. `content` is replaced in place while a reply streams in;
    `pending` stays True until the reply is finished, failed or aborted.
    """
    role: ChatRole
    content: str
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: float = field(default_factory=time.time)
    pending: bool = False
    muted: bool = False

    @classmethod
    def create(cls, role: ChatRole, content: str, pending: bool = False, muted: bool = False) -> "ChatMessage":
        return cls(role=role, content=content, pending=pending, muted=muted)

    def to_payload(self) -> PayloadMessage:
        return PayloadMessage(role=self.role, content=self.content)


class Conversation:
    """Ordered transcript for one console session. Messages are appended, never removed."""

    def __init__(self, system_prompt: str = CONSOLE_SYSTEM_PROMPT,
                 greeting: Optional[str] = INITIAL_ASSISTANT_GREETING):
        self.messages: List[ChatMessage] = [ChatMessage.create("system", system_prompt)]
        if greeting:
            self.messages.append(ChatMessage.create("assistant", greeting))

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.messages)

    @property
    def system_message(self) -> ChatMessage:
        return self.messages[0]

    def append(self, message: ChatMessage) -> ChatMessage:
        if message.role == "system":
            raise ValueError("A conversation holds exactly one system message.")
        self.messages.append(message)
        return message

    def operational(self) -> List[ChatMessage]:
        """Everything the user sees: the transcript without the system message."""
        return [m for m in self.messages if m.role != "system"]

    def payload(self) -> List[PayloadMessage]:
        """History to send to the relay (no system message, no local-only fields)."""
        return [m.to_payload() for m in self.operational()]

    def last_assistant(self) -> Optional[ChatMessage]:
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message
        return None
