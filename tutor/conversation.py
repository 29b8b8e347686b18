"""
In-memory conversations.

Each conversation has an opaque id, starts with the tutor's greeting, and keeps
its messages in order. Nothing is persisted.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .instructions import HISTORY_WINDOW, get_greeting
from .models import TutorReply


class Role(str, Enum):
    USER = "user"
    TUTOR = "tutor"


@dataclass
class ChatMessage:
    """One message; tutor messages also carry the extracted reply."""

    message_id: str
    role: Role
    content: str
    timestamp: datetime
    reply: Optional[TutorReply] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.message_id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.reply is not None:
            extras = self.reply.to_payload()
            extras.pop("reply", None)
            data.update(extras)
        return data


@dataclass
class Conversation:
    conversation_id: str
    name: str
    created_at: datetime
    messages: List[ChatMessage] = field(default_factory=list)

    def add_message(self, role: Role, content: str, reply: Optional[TutorReply] = None) -> ChatMessage:
        message = ChatMessage(
            message_id=uuid.uuid4().hex,
            role=role,
            content=content,
            timestamp=datetime.now(timezone.utc),
            reply=reply,
        )
        self.messages.append(message)
        return message

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        for message in self.messages:
            if message.message_id == message_id:
                return message
        return None

    def history_lines(self, limit: int = HISTORY_WINDOW) -> List[str]:
        """The last `limit` messages as "role: content" lines."""
        if limit <= 0:
            return []
        return [f"{m.role.value}: {m.content}" for m in self.messages[-limit:]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.conversation_id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "messages": [m.to_dict() for m in self.messages],
        }


class ConversationManager:
    """Owns all live conversations."""

    def __init__(self, scenario: Optional[Dict[str, Any]] = None):
        self._conversations: Dict[str, Conversation] = {}
        self._scenario = scenario

    def create(self, name: str = "New Chat") -> Conversation:
        """Create a conversation seeded with the tutor greeting."""
        conversation = Conversation(
            conversation_id=f"chat-{uuid.uuid4().hex[:12]}",
            name=name,
            created_at=datetime.now(timezone.utc),
        )
        greeting, follow_up = get_greeting(self._scenario)
        conversation.add_message(
            Role.TUTOR,
            greeting,
            reply=TutorReply(reply=greeting, follow_up=follow_up or greeting),
        )
        self._conversations[conversation.conversation_id] = conversation
        return conversation

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def list(self) -> List[Conversation]:
        return sorted(self._conversations.values(), key=lambda c: c.created_at)

    def delete(self, conversation_id: str) -> bool:
        return self._conversations.pop(conversation_id, None) is not None
