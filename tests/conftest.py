from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from desmond.chain.proposals import ProposalBuilder, TokenInfo
from desmond.channels.base import ConversationKind, Member
from desmond.channels.memory import InMemoryConversation
from desmond.core.gateway import ModelReply
from desmond.session import Origin, Session

AGENT = "0xc69449f60de274ca80b6d115019436788df274df"
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


class FakeGateway:
    """Scripted model: returns (or raises) the queued replies in order."""

    def __init__(self, replies: list[ModelReply | Exception] | None = None, *, repeat: ModelReply | None = None) -> None:
        self.replies = list(replies or [])
        self.repeat = repeat
        self.calls: list[dict[str, Any]] = []
        self.pings = 0

    async def infer(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> ModelReply:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": list(tools)})
        if not self.replies:
            if self.repeat is None:
                raise AssertionError("no scripted reply left")
            return self.repeat
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def ping(self) -> None:
        self.pings += 1


class FakeChain:
    def __init__(
        self,
        balances: dict[str, int] | None = None,
        tokens: dict[str, int] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.balances = balances or {}
        self.tokens = tokens or {}
        self.failing = failing or set()

    async def get_balance(self, address: str) -> int:
        if address in self.failing:
            raise RuntimeError("rpc down")
        return self.balances.get(address, 0)

    async def get_token_balance(self, address: str) -> int:
        if address in self.failing:
            raise RuntimeError("rpc down")
        return self.tokens.get(address, 0)


class FakeNames:
    def __init__(self, addresses: dict[str, str] | None = None, names: dict[str, str] | None = None) -> None:
        self.addresses = addresses or {}
        self.names = names or {}
        self.address_calls: list[str] = []

    async def resolve_address(self, name: str) -> str:
        self.address_calls.append(name)
        return self.addresses.get(name, "")

    async def resolve_name(self, address: str) -> str:
        return self.names.get(address, address)


@pytest.fixture
def names() -> FakeNames:
    return FakeNames(addresses={"bob.base.eth": BOB}, names={ALICE: "alice.base.eth"})


@pytest.fixture
def builder(names: FakeNames) -> ProposalBuilder:
    return ProposalBuilder(
        names,
        chain_id=8453,
        network_id="base-mainnet",
        network_label="Base Mainnet",
        token=TokenInfo(symbol="USDC", address=USDC, decimals=6),
    )


@pytest.fixture
def make_session() -> Callable[..., Session]:
    def _make(
        origin: Origin = Origin.DIRECT,
        *,
        from_address: str = ALICE,
        members: tuple[str, ...] = (),
        conversation: InMemoryConversation | None = None,
    ) -> Session:
        if conversation is None:
            kind = ConversationKind.GROUP if origin is Origin.GROUP else ConversationKind.DIRECT
            conversation = InMemoryConversation("conv-1", kind, [Member("alice", from_address), Member("agent", AGENT)])
        return Session(
            origin=origin,
            agent_address=AGENT,
            from_address=from_address,
            conversation=conversation,
            members=members,
        )

    return _make
