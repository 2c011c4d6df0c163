"""Queue-backed transport for tests and embedding."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING

from desmond.channels.base import ConversationKind, InboundEvent, Member

if TYPE_CHECKING:
    from desmond.chain.proposals import TransactionProposal


class InMemoryConversation:
    """Conversation that records everything sent to it."""

    def __init__(self, conversation_id: str, kind: ConversationKind, members: Iterable[Member]) -> None:
        self._id = conversation_id
        self._kind = kind
        self._members = list(members)
        self.texts: list[str] = []
        self.proposals: list[TransactionProposal] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def kind(self) -> ConversationKind:
        return self._kind

    async def members(self) -> list[Member]:
        return list(self._members)

    async def send_text(self, text: str) -> None:
        self.texts.append(text)

    async def send_proposal(self, proposal: TransactionProposal) -> None:
        self.proposals.append(proposal)


# Queue items: an event to deliver, an exception to raise from the stream
# (simulated disconnect), or None to end the stream.
QueueItem = InboundEvent | Exception | None


class InMemoryTransport:
    def __init__(self, identity: str) -> None:
        self._identity = identity
        self._queue: asyncio.Queue[QueueItem] = asyncio.Queue()
        self._conversations: dict[str, InMemoryConversation] = {}
        self.sync_count = 0
        self.closed = False

    @property
    def identity(self) -> str:
        return self._identity

    def add_conversation(self, conversation: InMemoryConversation) -> InMemoryConversation:
        self._conversations[conversation.id] = conversation
        return conversation

    def push(self, item: QueueItem) -> None:
        self._queue.put_nowait(item)

    async def sync(self) -> None:
        self.sync_count += 1

    async def stream_messages(self) -> AsyncIterator[InboundEvent]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def get_conversation(self, conversation_id: str) -> InMemoryConversation | None:
        return self._conversations.get(conversation_id)

    async def close(self) -> None:
        self.closed = True
