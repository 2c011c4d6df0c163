"""Transaction proposals sent to the user's wallet for signing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from eth_abi import encode
from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from desmond.chain.names import NameResolver, is_symbolic

PROPOSAL_VERSION = "1.0"
TRANSFER_SELECTOR = bytes(Web3.keccak(text="transfer(address,uint256)")[:4])
ETH_DECIMALS = 18


class CallMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str
    transaction_type: str = Field(default="transfer", alias="transactionType")
    currency: str
    amount: str
    decimals: int
    network_id: str = Field(alias="networkId")


class TransactionCall(BaseModel):
    to: str
    value: int | None = None
    data: str | None = None
    metadata: CallMetadata


class TransactionProposal(BaseModel):
    """Wallet send-calls payload.

    ``version == ""`` marks a proposal that could not be constructed; it must
    never be sent.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: str = ""
    from_address: str = Field(default="", alias="from")
    chain_id: str = Field(default="", alias="chainId")
    calls: list[TransactionCall] = Field(default_factory=list)

    @classmethod
    def unresolved(cls) -> TransactionProposal:
        return cls(version="")

    @property
    def sendable(self) -> bool:
        return self.version == PROPOSAL_VERSION

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    address: str
    decimals: int


@dataclass(frozen=True)
class Recipient:
    """A requested recipient and the address it resolved to (empty when unresolved)."""

    requested: str
    address: str

    @property
    def symbolic(self) -> bool:
        return self.requested != self.address

    @property
    def resolved(self) -> bool:
        return bool(self.address)

    @property
    def label(self) -> str:
        return self.requested if self.symbolic else self.address


def to_base_units(amount: str, decimals: int) -> int:
    """Exact conversion; amounts finer than ``decimals`` places are rejected, not rounded."""
    try:
        value = Decimal(amount.strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    exponent = value.normalize().as_tuple().exponent
    if isinstance(exponent, int) and -exponent > decimals:
        raise ValueError(f"amount {amount} has more than {decimals} decimal places")
    return int(value.scaleb(decimals))


def encode_token_transfer(to: str, units: int) -> str:
    payload = TRANSFER_SELECTOR + encode(["address", "uint256"], [Web3.to_checksum_address(to), units])
    return "0x" + payload.hex()


class ProposalBuilder:
    """Builds native and token transfer proposals for one network."""

    def __init__(
        self,
        names: NameResolver,
        *,
        chain_id: int,
        network_id: str,
        network_label: str,
        token: TokenInfo,
    ) -> None:
        self._names = names
        self._chain_id = chain_id
        self._network_id = network_id
        self._network_label = network_label
        self.token = token

    async def resolve_recipient(self, to: str) -> Recipient:
        requested = to.strip()
        if not is_symbolic(requested):
            return Recipient(requested=requested, address=requested)
        return Recipient(requested=requested, address=await self._names.resolve_address(requested))

    async def native_transfer(self, amount: str, to: str, from_address: str) -> TransactionProposal:
        recipient = await self.resolve_recipient(to)
        if not recipient.resolved:
            return TransactionProposal.unresolved()
        signer_label = await self._names.resolve_name(from_address)
        call = TransactionCall(
            to=recipient.address,
            value=to_base_units(amount, ETH_DECIMALS),
            metadata=self._metadata(amount, "ETH", ETH_DECIMALS, recipient, signer_label),
        )
        return self._proposal(from_address, call)

    async def token_transfer(
        self,
        amount: str,
        to: str,
        from_address: str,
        *,
        recipient: Recipient | None = None,
    ) -> TransactionProposal:
        if recipient is None:
            recipient = await self.resolve_recipient(to)
        if not recipient.resolved:
            return TransactionProposal.unresolved()
        signer_label = await self._names.resolve_name(from_address)
        call = TransactionCall(
            to=self.token.address,
            data=encode_token_transfer(recipient.address, to_base_units(amount, self.token.decimals)),
            metadata=self._metadata(amount, self.token.symbol, self.token.decimals, recipient, signer_label),
        )
        return self._proposal(from_address, call)

    async def token_transfers(self, amount: str, recipient: Recipient, payers: list[str]) -> list[TransactionProposal]:
        """One proposal per payer, all paying ``recipient``, built concurrently."""
        return list(
            await asyncio.gather(
                *(self.token_transfer(amount, recipient.requested, payer, recipient=recipient) for payer in payers)
            )
        )

    def _proposal(self, from_address: str, call: TransactionCall) -> TransactionProposal:
        return TransactionProposal(
            version=PROPOSAL_VERSION,
            from_address=from_address,
            chain_id=hex(self._chain_id),
            calls=[call],
        )

    def _metadata(
        self,
        amount: str,
        currency: str,
        decimals: int,
        recipient: Recipient,
        signer_label: str,
    ) -> CallMetadata:
        return CallMetadata(
            description=(
                f"Transfer {amount} {currency} on {self._network_label} to {recipient.label}. "
                f"Signing required from {signer_label}."
            ),
            currency=currency,
            amount=amount,
            decimals=decimals,
            network_id=self._network_id,
        )
