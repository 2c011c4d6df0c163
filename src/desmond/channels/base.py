"""Transport-facing contracts for the message stream consumer."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from desmond.chain.proposals import TransactionProposal

TEXT_CONTENT_TYPE = "text"


class ConversationKind(StrEnum):
    DIRECT = "direct"
    GROUP = "group"


@dataclass(frozen=True)
class Member:
    """One conversation participant: transport identity plus wallet address."""

    identity: str
    address: str


@dataclass(frozen=True)
class InboundEvent:
    """Message received from the transport feed."""

    sender_identity: str
    content_type: str
    conversation_id: str
    content: str
    event_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class Conversation(Protocol):
    """Handle used for replies and side-channel sends."""

    @property
    def id(self) -> str: ...

    @property
    def kind(self) -> ConversationKind: ...

    async def members(self) -> list[Member]: ...

    async def send_text(self, text: str) -> None: ...

    async def send_proposal(self, proposal: TransactionProposal) -> None: ...


class Transport(Protocol):
    """Live feed of inbound events from one connection."""

    @property
    def identity(self) -> str:
        """The agent's own sender identity on this transport."""
        ...

    async def sync(self) -> None:
        """(Re)establish the connection and catch up on conversations."""
        ...

    def stream_messages(self) -> AsyncIterator[InboundEvent]: ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    async def close(self) -> None: ...
