"""Proposal capabilities: transfers and split payments."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from desmond.chain.proposals import ProposalBuilder, TransactionProposal
from desmond.core.fanout import SplitPaymentOrchestrator
from desmond.session import Origin, Session
from desmond.tools.registry import Effect, ToolRegistry

SENT_REPLY = "I have sent the transaction. Please review and sign it when you're ready."


class TransferInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: str = Field(..., description="Amount as a decimal string, e.g. '0.01'")
    to_address: str = Field(..., alias="toAddress", description="Recipient address or name such as alice.base.eth")

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: str) -> str:
        value = value.strip()
        try:
            parsed = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError("amount must be a decimal number") from exc
        if not parsed.is_finite() or parsed <= 0:
            raise ValueError("amount must be a positive number")
        return value

    @field_validator("to_address")
    @classmethod
    def _check_recipient(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("recipient is required")
        return value


def unresolved_reply(recipient: str) -> str:
    return f"I couldn't resolve {recipient} to an address, so no transaction was sent."


async def deliver(proposal: TransactionProposal, recipient: str, session: Session) -> str:
    """Send a constructed proposal on the side channel."""
    if not proposal.sendable:
        logger.warning("payments.proposal.unresolved recipient={}", recipient)
        return unresolved_reply(recipient)
    await session.conversation.send_proposal(proposal)
    logger.info("payments.proposal.sent recipient={} calls={}", recipient, len(proposal.calls))
    return SENT_REPLY


class PaymentTools:
    """Handlers for the proposal-class capabilities."""

    def __init__(self, builder: ProposalBuilder, orchestrator: SplitPaymentOrchestrator) -> None:
        self._builder = builder
        self._orchestrator = orchestrator

    async def transfer_native(self, params: TransferInput, session: Session) -> str:
        proposal = await self._builder.native_transfer(params.amount, params.to_address, session.from_address)
        return await deliver(proposal, params.to_address, session)

    async def transfer_token(self, params: TransferInput, session: Session) -> str:
        proposal = await self._builder.token_transfer(params.amount, params.to_address, session.from_address)
        return await deliver(proposal, params.to_address, session)

    async def split_payment(self, params: TransferInput, session: Session) -> str:
        report = await self._orchestrator.split(params.amount, params.to_address, session.members, session.conversation)
        return report.reply(params.to_address)


def register_payment_tools(registry: ToolRegistry, *, payments: PaymentTools, token_symbol: str) -> None:
    """Register the proposal capabilities."""

    register = registry.register
    register(
        name="transfer_native",
        description=(
            "Prepare a native ETH transfer on Base mainnet for the user to sign. Use whenever the user explicitly "
            "asks to send or transfer ETH."
        ),
        schema=TransferInput,
        effect=Effect.PROPOSAL,
    )(payments.transfer_native)
    register(
        name="transfer_usdc",
        description=(
            f"Prepare a {token_symbol} transfer on Base mainnet for the user to sign. Use whenever the user "
            f"explicitly asks to send or transfer {token_symbol}."
        ),
        schema=TransferInput,
        effect=Effect.PROPOSAL,
    )(payments.transfer_token)
    register(
        name="split_payment",
        description=(
            f"Split a {token_symbol} payment evenly among all group members; each member receives a transaction "
            "to sign. Use whenever users ask to split a payment or share a bill."
        ),
        schema=TransferInput,
        effect=Effect.PROPOSAL,
        scopes=[Origin.GROUP],
    )(payments.split_payment)
