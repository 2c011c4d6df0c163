"""Transports and the message stream consumer."""

from desmond.channels.base import (
    TEXT_CONTENT_TYPE,
    Conversation,
    ConversationKind,
    InboundEvent,
    Member,
    Transport,
)
from desmond.channels.consumer import MessageStreamConsumer
from desmond.channels.memory import InMemoryConversation, InMemoryTransport

__all__ = [
    "TEXT_CONTENT_TYPE",
    "Conversation",
    "ConversationKind",
    "InMemoryConversation",
    "InMemoryTransport",
    "InboundEvent",
    "Member",
    "MessageStreamConsumer",
    "Transport",
]
