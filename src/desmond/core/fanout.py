"""Split one payment into paced per-member proposals."""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from loguru import logger

from desmond.chain.proposals import ProposalBuilder

if TYPE_CHECKING:
    from desmond.channels.base import Conversation

SHARE_DECIMALS = 6


def epsilon_round(value: float, decimals: int = SHARE_DECIMALS) -> Decimal:
    """Round half away from zero after nudging by machine epsilon."""
    quantum = Decimal(1).scaleb(-decimals)
    return Decimal(repr(value + sys.float_info.epsilon)).quantize(quantum, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    text = format(value.normalize(), "f")
    return "0" if text in {"-0", ""} else text


def split_share(amount: str, count: int) -> str:
    """Even share of ``amount`` across ``count`` payers; shares may not sum back exactly."""
    if count < 1:
        raise ValueError("count must be positive")
    return format_amount(epsilon_round(float(Decimal(amount)) / count))


class FixedIntervalPacer:
    """Fixed-interval scheduler: releases are at least ``interval`` seconds apart."""

    def __init__(
        self,
        interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._interval = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_release: float | None = None

    async def acquire(self) -> None:
        if self._last_release is not None:
            wait = self._last_release + self._interval - self._clock()
            if wait > 0:
                await self._sleep(wait)
        self._last_release = self._clock()


@dataclass(frozen=True)
class SplitReport:
    members: int
    share: str
    sent: int
    skipped: int

    def reply(self, recipient: str) -> str:
        if self.members == 0:
            return "There is nobody else in this chat to split the payment with."
        if Decimal(self.share) == 0:
            return (
                f"The amount is too small to split between {self.members} members, "
                "so no transactions were sent."
            )
        if self.sent == 0:
            return (
                f"I couldn't resolve {recipient} to an address, "
                f"so none of the {self.members} transactions were sent."
            )
        text = (
            f"I've sent a transaction to each of the {self.members} recipients. "
            "Each one needs to review and sign their transaction."
        )
        if self.skipped:
            text += f" {self.skipped} of them could not be prepared and were not sent."
        return text


class SplitPaymentOrchestrator:
    """Fan-out of one USDC payment into one proposal per member."""

    def __init__(
        self,
        builder: ProposalBuilder,
        *,
        pacer_factory: Callable[[], FixedIntervalPacer] | None = None,
        interval_seconds: float = 1.0,
    ) -> None:
        self._builder = builder
        self._pacer_factory = pacer_factory or (lambda: FixedIntervalPacer(interval_seconds))

    async def split(self, amount: str, to: str, members: Sequence[str], conversation: Conversation) -> SplitReport:
        payers = list(members)
        if not payers:
            return SplitReport(members=0, share="0", sent=0, skipped=0)

        share = split_share(amount, len(payers))
        if Decimal(share) == 0:
            logger.warning("fanout.share_too_small amount={} members={}", amount, len(payers))
            return SplitReport(members=len(payers), share=share, sent=0, skipped=len(payers))
        recipient = await self._builder.resolve_recipient(to)
        proposals = await self._builder.token_transfers(share, recipient, payers)

        pacer = self._pacer_factory()
        sent = 0
        for payer, proposal in zip(payers, proposals, strict=True):
            if not proposal.sendable:
                logger.warning("fanout.skip payer={} recipient={}", payer, to)
                continue
            await pacer.acquire()
            await conversation.send_proposal(proposal)
            sent += 1
            logger.info("fanout.sent payer={} share={} index={}", payer, share, sent)
        return SplitReport(members=len(payers), share=share, sent=sent, skipped=len(payers) - sent)
