import pytest
from conftest import ALICE, BOB, CAROL

from desmond.channels.base import ConversationKind
from desmond.channels.memory import InMemoryConversation
from desmond.core.fanout import FixedIntervalPacer, SplitPaymentOrchestrator, SplitReport, split_share

RECIPIENT = "0x" + "d4" * 20


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _orchestrator(builder, clock: FakeClock) -> SplitPaymentOrchestrator:
    return SplitPaymentOrchestrator(
        builder,
        pacer_factory=lambda: FixedIntervalPacer(1.0, clock=clock, sleep=clock.sleep),
    )


def test_split_share_rounds_to_six_places() -> None:
    assert split_share("100", 3) == "33.333333"
    assert split_share("100", 2) == "50"
    assert split_share("10", 4) == "2.5"
    assert split_share("2", 3) == "0.666667"
    assert split_share("0.000001", 2) == "0.000001"
    with pytest.raises(ValueError):
        split_share("1", 0)


@pytest.mark.asyncio
async def test_pacer_spaces_releases() -> None:
    clock = FakeClock()
    pacer = FixedIntervalPacer(1.0, clock=clock, sleep=clock.sleep)

    await pacer.acquire()
    await pacer.acquire()
    clock.now += 5
    await pacer.acquire()
    await pacer.acquire()

    assert clock.sleeps == [1.0, 1.0]


@pytest.mark.asyncio
async def test_split_sends_one_paced_proposal_per_member(builder) -> None:
    clock = FakeClock()
    conversation = InMemoryConversation("g", ConversationKind.GROUP, [])

    report = await _orchestrator(builder, clock).split("100", RECIPIENT, [ALICE, BOB, CAROL], conversation)

    assert report == SplitReport(members=3, share="33.333333", sent=3, skipped=0)
    assert [p.from_address for p in conversation.proposals] == [ALICE, BOB, CAROL]
    assert {p.calls[0].metadata.amount for p in conversation.proposals} == {"33.333333"}
    assert clock.sleeps == [1.0, 1.0]
    assert "3 recipients" in report.reply(RECIPIENT)


@pytest.mark.asyncio
async def test_split_resolves_symbolic_recipient_once(builder, names) -> None:
    conversation = InMemoryConversation("g", ConversationKind.GROUP, [])

    report = await _orchestrator(builder, FakeClock()).split("10", "bob.base.eth", [ALICE, CAROL], conversation)

    assert names.address_calls == ["bob.base.eth"]
    assert report.sent == 2
    assert all("to bob.base.eth." in p.calls[0].metadata.description for p in conversation.proposals)


@pytest.mark.asyncio
async def test_split_skips_every_share_when_recipient_is_unresolved(builder) -> None:
    clock = FakeClock()
    conversation = InMemoryConversation("g", ConversationKind.GROUP, [])

    report = await _orchestrator(builder, clock).split("10", "nobody.eth", [ALICE, BOB], conversation)

    assert conversation.proposals == []
    assert clock.sleeps == []
    assert (report.sent, report.skipped) == (0, 2)
    assert report.reply("nobody.eth").startswith("I couldn't resolve nobody.eth")


@pytest.mark.asyncio
async def test_split_with_no_members_sends_nothing(builder) -> None:
    conversation = InMemoryConversation("g", ConversationKind.GROUP, [])

    report = await _orchestrator(builder, FakeClock()).split("10", RECIPIENT, [], conversation)

    assert report.members == 0
    assert conversation.proposals == []
    assert "nobody" in report.reply(RECIPIENT)


def test_report_mentions_partially_skipped_shares() -> None:
    text = SplitReport(members=3, share="1", sent=2, skipped=1).reply(RECIPIENT)

    assert "each of the 3 recipients" in text
    assert "1 of them could not be prepared" in text


@pytest.mark.asyncio
async def test_split_too_small_for_any_share_sends_nothing(builder, names) -> None:
    clock = FakeClock()
    conversation = InMemoryConversation("g", ConversationKind.GROUP, [])

    report = await _orchestrator(builder, clock).split("0.000001", RECIPIENT, [ALICE, BOB, CAROL], conversation)

    assert report.share == "0"
    assert (report.sent, report.skipped) == (0, 3)
    assert conversation.proposals == []
    assert names.address_calls == []
    assert report.reply(RECIPIENT) == (
        "The amount is too small to split between 3 members, so no transactions were sent."
    )
