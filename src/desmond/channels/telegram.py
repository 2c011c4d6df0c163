"""Telegram transport adapter."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from loguru import logger
from telegram import Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters
from telegramify_markdown import markdownify as md

from desmond.channels.base import TEXT_CONTENT_TYPE, ConversationKind, InboundEvent, Member
from desmond.errors import TransportError, TransportNotConfiguredError

if TYPE_CHECKING:
    from desmond.chain.proposals import TransactionProposal

GROUP_CHAT_TYPES = {"group", "supergroup"}
OTHER_CONTENT_TYPE = "other"


class TelegramConversation:
    """One Telegram chat, with wallet addresses taken from the configured directory."""

    ABSENT_STATUSES: ClassVar[set[str]] = {"left", "kicked"}

    def __init__(
        self,
        bot: Any,
        chat_id: int,
        kind: ConversationKind,
        *,
        wallets: Mapping[str, str],
        agent: Member,
    ) -> None:
        self._bot = bot
        self._chat_id = chat_id
        self._kind = kind
        self._wallets = wallets
        self._agent = agent

    @property
    def id(self) -> str:
        return str(self._chat_id)

    @property
    def kind(self) -> ConversationKind:
        return self._kind

    async def members(self) -> list[Member]:
        if self._kind is ConversationKind.DIRECT:
            address = self._wallets.get(self.id)
            humans = [Member(self.id, address)] if address else []
            return [*humans, self._agent]

        identities = list(self._wallets)
        present = await asyncio.gather(*(self._is_present(identity) for identity in identities))
        humans = [
            Member(identity, self._wallets[identity]) for identity, ok in zip(identities, present, strict=True) if ok
        ]
        return [*humans, self._agent]

    async def _is_present(self, identity: str) -> bool:
        try:
            member = await self._bot.get_chat_member(chat_id=self._chat_id, user_id=int(identity))
        except (TelegramError, ValueError) as exc:
            logger.debug("telegram.member.lookup_failed chat_id={} identity={} error={!r}", self._chat_id, identity, exc)
            return False
        return str(member.status) not in self.ABSENT_STATUSES

    async def send_text(self, text: str) -> None:
        try:
            await self._bot.send_message(chat_id=self._chat_id, text=md(text), parse_mode="MarkdownV2")
        except BadRequest:
            logger.warning("telegram.send.markdown_rejected chat_id={}", self._chat_id)
            await self._bot.send_message(chat_id=self._chat_id, text=text)

    async def send_proposal(self, proposal: TransactionProposal) -> None:
        descriptions = "\n".join(call.metadata.description for call in proposal.calls)
        payload = json.dumps(proposal.to_wire(), indent=2)
        await self.send_text(f"{descriptions}\n\n```json\n{payload}\n```")


class TelegramTransport:
    """Telegram transport using long polling.

    Updates are queued by the polling handler and drained by
    ``stream_messages``. Identities are Telegram user ids as strings.
    """

    def __init__(self, token: str, *, wallets: Mapping[str, str], agent_address: str) -> None:
        self._token = token
        self._wallets = dict(wallets)
        self._agent_address = agent_address
        self._app: Application | None = None
        self._queue: asyncio.Queue[InboundEvent] = asyncio.Queue()
        self._identity = ""

    @property
    def identity(self) -> str:
        return self._identity

    async def sync(self) -> None:
        if not self._token:
            raise TransportNotConfiguredError("telegram token is empty")
        if self._app is not None:
            return
        logger.info("telegram.transport.start wallets={}", len(self._wallets))
        app = Application.builder().token(self._token).build()
        app.add_handler(MessageHandler(filters.ALL & ~filters.COMMAND, self._on_message, block=False))
        await app.initialize()
        await app.start()
        self._identity = str(app.bot.id)
        if app.updater is not None:
            await app.updater.start_polling(allowed_updates=["message"])
        self._app = app
        logger.info("telegram.transport.polling identity={}", self._identity)

    async def stream_messages(self) -> AsyncIterator[InboundEvent]:
        while True:
            yield await self._queue.get()

    async def get_conversation(self, conversation_id: str) -> TelegramConversation | None:
        if self._app is None:
            return None
        bot = self._app.bot
        try:
            chat = await bot.get_chat(int(conversation_id))
        except TelegramError as exc:
            raise TransportError(f"cannot load chat {conversation_id}") from exc
        kind = ConversationKind.GROUP if chat.type in GROUP_CHAT_TYPES else ConversationKind.DIRECT
        return TelegramConversation(
            bot,
            chat.id,
            kind,
            wallets=self._wallets,
            agent=Member(self._identity, self._agent_address),
        )

    async def close(self) -> None:
        if self._app is None:
            return
        updater = self._app.updater
        if updater is not None:
            await updater.stop()
        await self._app.stop()
        await self._app.shutdown()
        self._app = None
        logger.info("telegram.transport.stopped")

    async def _on_message(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.message
        if message is None or message.from_user is None:
            return
        event = InboundEvent(
            sender_identity=str(message.from_user.id),
            content_type=TEXT_CONTENT_TYPE if message.text else OTHER_CONTENT_TYPE,
            conversation_id=str(message.chat_id),
            content=message.text or "",
            event_id=str(message.message_id),
        )
        logger.debug("telegram.transport.inbound chat_id={} sender={}", event.conversation_id, event.sender_identity)
        self._queue.put_nowait(event)
