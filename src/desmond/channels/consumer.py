"""Long-running consumer of one transport's message stream."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Literal

from loguru import logger

from desmond.channels.base import TEXT_CONTENT_TYPE, Conversation, ConversationKind, InboundEvent, Transport
from desmond.session import Origin, Session, new_session_id

if TYPE_CHECKING:
    from desmond.core.router import ToolRouter

ThreadMode = Literal["turn", "conversation"]


class MessageStreamConsumer:
    """Filter inbound events and hand each accepted one to the tool router.

    Events are processed one at a time. A failure inside one event is logged
    and skipped; a failure of the stream itself is retried after a fixed
    backoff with a fresh sync and subscription.
    """

    def __init__(
        self,
        transport: Transport,
        router: ToolRouter,
        *,
        agent_address: str,
        mention_token: str = "@desmond",
        processing_text: str = "Processing...",
        reconnect_backoff_seconds: float = 1.0,
        thread_mode: ThreadMode = "turn",
        max_reconnects: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._router = router
        self._agent_address = agent_address
        self._mention_token = mention_token
        self._mention_pattern = re.compile(re.escape(mention_token), re.IGNORECASE)
        self._processing_text = processing_text
        self._backoff = reconnect_backoff_seconds
        self._thread_mode = thread_mode
        self._max_reconnects = max_reconnects
        self._sleep = sleep
        self._running = False
        self.reconnects = 0

    def stop(self) -> None:
        self._running = False

    async def run(self) -> None:
        self._running = True
        logger.info("consumer.start identity={} thread_mode={}", self._transport.identity, self._thread_mode)
        first = True
        while self._running:
            if not first:
                if self._max_reconnects is not None and self.reconnects >= self._max_reconnects:
                    logger.warning("consumer.reconnects.exhausted reconnects={}", self.reconnects)
                    break
                self.reconnects += 1
            first = False
            try:
                await self._transport.sync()
                async for event in self._transport.stream_messages():
                    await self.handle_event(event)
                    if not self._running:
                        break
                logger.info("consumer.stream.ended")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("consumer.stream.error backoff={}s", self._backoff)
                await self._sleep(self._backoff)
        self._running = False
        logger.info("consumer.stop reconnects={}", self.reconnects)

    async def handle_event(self, event: InboundEvent) -> None:
        try:
            await self._handle_event(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("consumer.event.error conversation={} event={}", event.conversation_id, event.event_id)

    async def _handle_event(self, event: InboundEvent) -> None:
        if event.sender_identity.lower() == self._transport.identity.lower():
            logger.debug("consumer.event.skip reason=self")
            return
        if event.content_type != TEXT_CONTENT_TYPE:
            logger.debug("consumer.event.skip reason=content_type content_type={}", event.content_type)
            return

        conversation = await self._resolve_conversation(event.conversation_id)
        if conversation is None:
            return

        text = event.content
        if conversation.kind is ConversationKind.GROUP:
            if not self._mention_pattern.search(text):
                return
            text = self._mention_pattern.sub("", text).strip()
            origin = Origin.GROUP
        else:
            origin = Origin.DIRECT
        if not text.strip():
            logger.debug("consumer.event.skip reason=empty conversation={}", event.conversation_id)
            return

        members = await conversation.members()
        sender = next((m for m in members if m.identity.lower() == event.sender_identity.lower()), None)
        if sender is None:
            logger.warning(
                "consumer.event.unknown_sender conversation={} sender={}", conversation.id, event.sender_identity
            )
            return
        agent = self._agent_address.lower()
        addresses = tuple(m.address for m in members if m.address.lower() != agent) if origin is Origin.GROUP else ()

        logger.info(
            "consumer.event.accept conversation={} kind={} sender={} content={}",
            conversation.id,
            conversation.kind,
            sender.address,
            text[:100],
        )
        await conversation.send_text(self._processing_text)

        session_id = new_session_id()
        session = Session(
            origin=origin,
            agent_address=self._agent_address,
            from_address=sender.address,
            conversation=conversation,
            members=addresses,
            session_id=session_id,
            thread_key=self._thread_key(session_id, conversation),
        )
        try:
            result = await self._router.run(session, text)
        finally:
            if self._thread_mode == "turn":
                self._router.history(session).discard()
        logger.info(
            "consumer.turn.done conversation={} outcome={} rounds={}", conversation.id, result.outcome, result.rounds
        )
        if result.reply:
            await conversation.send_text(result.reply)

    async def _resolve_conversation(self, conversation_id: str) -> Conversation | None:
        try:
            conversation = await self._transport.get_conversation(conversation_id)
        except Exception:
            logger.exception("consumer.conversation.error conversation={}", conversation_id)
            return None
        if conversation is None:
            logger.warning("consumer.conversation.missing conversation={}", conversation_id)
        return conversation

    def _thread_key(self, session_id: str, conversation: Conversation) -> str:
        if self._thread_mode == "conversation":
            return f"{conversation.kind}:{conversation.id}"
        return session_id
