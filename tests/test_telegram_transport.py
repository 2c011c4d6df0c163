from __future__ import annotations

from types import SimpleNamespace

import pytest
from conftest import AGENT, ALICE, BOB, CAROL
from telegram.error import BadRequest

from desmond.channels.base import ConversationKind, Member
from desmond.channels.telegram import TelegramConversation, TelegramTransport
from desmond.chain.proposals import CallMetadata, TransactionCall, TransactionProposal
from desmond.errors import TransportNotConfiguredError

WALLETS = {"1": ALICE, "2": BOB, "3": CAROL}


class DummyBot:
    def __init__(self, *, fail_first: bool = False, statuses: dict[int, str] | None = None) -> None:
        self.fail_first = fail_first
        self.statuses = statuses or {}
        self.calls: list[dict[str, object]] = []

    async def send_message(self, **kwargs: object) -> None:
        self.calls.append(kwargs)
        if self.fail_first and len(self.calls) == 1:
            raise BadRequest("Can't parse entities: unmatched end tag")

    async def get_chat_member(self, *, chat_id: int, user_id: int) -> SimpleNamespace:
        status = self.statuses.get(user_id)
        if status is None:
            raise BadRequest("User not found")
        return SimpleNamespace(status=status)


def _conversation(bot: DummyBot, kind: ConversationKind, chat_id: int = -100) -> TelegramConversation:
    return TelegramConversation(bot, chat_id, kind, wallets=WALLETS, agent=Member("999", AGENT))


@pytest.mark.asyncio
async def test_group_members_are_directory_entries_present_in_chat() -> None:
    bot = DummyBot(statuses={1: "member", 2: "administrator", 3: "left"})

    members = await _conversation(bot, ConversationKind.GROUP).members()

    assert members == [Member("1", ALICE), Member("2", BOB), Member("999", AGENT)]


@pytest.mark.asyncio
async def test_direct_members_are_the_chat_user_and_agent() -> None:
    conversation = _conversation(DummyBot(), ConversationKind.DIRECT, chat_id=2)

    assert await conversation.members() == [Member("2", BOB), Member("999", AGENT)]
    assert conversation.id == "2"
    assert conversation.kind is ConversationKind.DIRECT


@pytest.mark.asyncio
async def test_send_text_falls_back_to_plain_text_on_bad_markdown() -> None:
    bot = DummyBot(fail_first=True)

    await _conversation(bot, ConversationKind.DIRECT).send_text("**hi**")

    assert len(bot.calls) == 2
    assert bot.calls[0]["parse_mode"] == "MarkdownV2"
    assert bot.calls[1] == {"chat_id": -100, "text": "**hi**"}


@pytest.mark.asyncio
async def test_send_proposal_renders_description_and_payload() -> None:
    bot = DummyBot()
    proposal = TransactionProposal(
        version="1.0",
        from_address=ALICE,
        chain_id="0x2105",
        calls=[
            TransactionCall(
                to=BOB,
                value=1,
                metadata=CallMetadata(
                    description="Transfer 1 ETH", currency="ETH", amount="1", decimals=18, network_id="base-mainnet"
                ),
            )
        ],
    )

    await _conversation(bot, ConversationKind.DIRECT).send_proposal(proposal)

    text = str(bot.calls[0]["text"])
    assert "Transfer 1 ETH" in text
    assert "chainId" in text


@pytest.mark.asyncio
async def test_on_message_queues_inbound_events() -> None:
    transport = TelegramTransport("t", wallets=WALLETS, agent_address=AGENT)  # noqa: S106
    text_update = SimpleNamespace(
        message=SimpleNamespace(from_user=SimpleNamespace(id=1), chat_id=-100, text="@desmond hi", message_id=7)
    )
    photo_update = SimpleNamespace(
        message=SimpleNamespace(from_user=SimpleNamespace(id=2), chat_id=-100, text=None, message_id=8)
    )

    await transport._on_message(text_update, None)  # type: ignore[arg-type]
    await transport._on_message(photo_update, None)  # type: ignore[arg-type]

    stream = transport.stream_messages()
    first = await anext(stream)
    second = await anext(stream)
    assert (first.sender_identity, first.conversation_id, first.content, first.content_type) == (
        "1",
        "-100",
        "@desmond hi",
        "text",
    )
    assert first.event_id == "7"
    assert second.content_type == "other"


@pytest.mark.asyncio
async def test_sync_requires_token() -> None:
    transport = TelegramTransport("", wallets={}, agent_address=AGENT)

    with pytest.raises(TransportNotConfiguredError):
        await transport.sync()
    assert await transport.get_conversation("1") is None
