import pytest
from conftest import ALICE, BOB, CAROL

from desmond.core.fanout import FixedIntervalPacer, SplitPaymentOrchestrator
from desmond.session import Origin
from desmond.tools.payments import SENT_REPLY, PaymentTools, TransferInput, register_payment_tools
from desmond.tools.registry import ToolRegistry


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def registry(builder) -> ToolRegistry:
    orchestrator = SplitPaymentOrchestrator(builder, pacer_factory=lambda: FixedIntervalPacer(0, sleep=_no_sleep))
    registry = ToolRegistry()
    register_payment_tools(registry, payments=PaymentTools(builder, orchestrator), token_symbol="USDC")
    return registry


def test_payment_tools_are_proposals(registry) -> None:
    assert registry.proposal_names() == frozenset({"transfer_native", "transfer_usdc", "split_payment"})
    assert "split_payment" not in {item.name for item in registry.for_origin(Origin.DIRECT)}


def test_transfer_input_accepts_camel_case_alias() -> None:
    params = TransferInput.model_validate({"amount": " 0.5 ", "toAddress": "bob.base.eth"})

    assert (params.amount, params.to_address) == ("0.5", "bob.base.eth")
    assert "toAddress" in TransferInput.model_json_schema()["properties"]


@pytest.mark.parametrize("amount", ["-1", "0", "abc", "NaN", "Infinity"])
def test_transfer_input_rejects_bad_amounts(amount: str) -> None:
    with pytest.raises(ValueError):
        TransferInput.model_validate({"amount": amount, "toAddress": BOB})


@pytest.mark.asyncio
async def test_transfer_native_sends_proposal_on_side_channel(registry, make_session) -> None:
    session = make_session()

    result = await registry.execute("transfer_native", {"amount": "0.01", "toAddress": "bob.base.eth"}, session)

    assert result.ok
    assert result.output == SENT_REPLY
    [proposal] = session.conversation.proposals
    assert proposal.from_address == ALICE
    assert proposal.calls[0].to == BOB


@pytest.mark.asyncio
async def test_transfer_usdc_targets_token_contract(registry, builder, make_session) -> None:
    session = make_session()

    result = await registry.execute("transfer_usdc", {"amount": "5", "toAddress": BOB}, session)

    assert result.output == SENT_REPLY
    assert session.conversation.proposals[0].calls[0].to == builder.token.address


@pytest.mark.asyncio
async def test_unresolved_recipient_sends_nothing(registry, make_session) -> None:
    session = make_session()

    result = await registry.execute("transfer_usdc", {"amount": "5", "toAddress": "ghost.eth"}, session)

    assert result.ok
    assert result.output == "I couldn't resolve ghost.eth to an address, so no transaction was sent."
    assert session.conversation.proposals == []


@pytest.mark.asyncio
async def test_invalid_amount_is_a_failed_result(registry, make_session) -> None:
    session = make_session()

    result = await registry.execute("transfer_native", {"amount": "-3", "toAddress": BOB}, session)

    assert not result.ok
    assert session.conversation.proposals == []


@pytest.mark.asyncio
async def test_split_payment_fans_out_to_members(registry, make_session) -> None:
    session = make_session(Origin.GROUP, members=(ALICE, CAROL))

    result = await registry.execute("split_payment", {"amount": "10", "toAddress": BOB}, session)

    assert result.ok
    assert "each of the 2 recipients" in result.output
    assert [p.from_address for p in session.conversation.proposals] == [ALICE, CAROL]
    assert {p.calls[0].metadata.amount for p in session.conversation.proposals} == {"5"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("tool", "amount"),
    [("transfer_usdc", "0.0000001"), ("transfer_native", "0.0000000000000000001")],
)
async def test_amount_beyond_token_precision_sends_nothing(registry, make_session, tool: str, amount: str) -> None:
    session = make_session()

    result = await registry.execute(tool, {"amount": amount, "toAddress": BOB}, session)

    assert not result.ok
    assert session.conversation.proposals == []
