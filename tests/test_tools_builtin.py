import pytest
from conftest import AGENT, ALICE, BOB, CAROL, FakeChain, FakeNames

from desmond.chain.proposals import TokenInfo
from desmond.session import Origin
from desmond.tools.builtin import (
    FALLBACK_TEXT,
    VERBATIM_INSTRUCTION,
    BalanceTools,
    EmptyInput,
    SearchInput,
    WebSearch,
    format_search_results,
    format_units,
    register_builtin_tools,
)
from desmond.tools.registry import ToolRegistry

TOKEN = TokenInfo(symbol="USDC", address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", decimals=6)


def _balances(chain: FakeChain, names: FakeNames | None = None) -> BalanceTools:
    return BalanceTools(chain, names or FakeNames(), token=TOKEN, network_label="Base Mainnet")


def test_format_units_uses_six_decimals() -> None:
    assert format_units(1_500_000_000_000_000_000, 18) == "1.500000"
    assert format_units(1_234_567_890_123_456_789, 18) == "1.234568"
    assert format_units(2_500_000, 6) == "2.500000"
    assert format_units(0, 18) == "0.000000"


@pytest.mark.asyncio
async def test_native_balance_reports_sender_balance(make_session) -> None:
    chain = FakeChain(balances={ALICE: 1_500_000_000_000_000_000})

    text = await _balances(chain).native(EmptyInput(), make_session())

    assert text.startswith("The user's ETH (Base Mainnet) balance is 1.500000 ETH.")


@pytest.mark.asyncio
async def test_token_balance_reports_usdc(make_session) -> None:
    chain = FakeChain(tokens={ALICE: 12_340_000})

    text = await _balances(chain).token(EmptyInput(), make_session())

    assert "is 12.340000 USDC." in text


@pytest.mark.asyncio
async def test_group_balances_list_every_member(make_session) -> None:
    chain = FakeChain(balances={ALICE: 10**18, BOB: 2 * 10**18})
    names = FakeNames(names={ALICE: "alice.base.eth"})
    session = make_session(Origin.GROUP, members=(ALICE, BOB))

    text = await _balances(chain, names).group_native(EmptyInput(), session)

    assert "- alice.base.eth => 1.000000 ETH (Base Mainnet)" in text
    assert f"- {BOB} => 2.000000 ETH (Base Mainnet)" in text
    assert text.endswith(VERBATIM_INSTRUCTION)
    assert AGENT not in text


@pytest.mark.asyncio
async def test_group_balances_mark_failed_reads_unavailable(make_session) -> None:
    chain = FakeChain(tokens={ALICE: 1_000_000}, failing={CAROL})
    session = make_session(Origin.GROUP, members=(ALICE, CAROL))

    text = await _balances(chain).group_token(EmptyInput(), session)

    assert f"- {ALICE} => 1.000000 USDC (Base Mainnet)" in text
    assert f"- {CAROL} => unavailable USDC (Base Mainnet)" in text


@pytest.mark.asyncio
async def test_web_search_requires_api_key(make_session) -> None:
    search = WebSearch(api_base="https://ollama.com/api", api_key=None, max_results=5)

    assert await search(SearchInput(query="base"), make_session()) == "error: web search api key is not configured"


@pytest.mark.asyncio
async def test_web_search_rejects_bad_api_base(make_session) -> None:
    search = WebSearch(api_base="file:///etc", api_key="k", max_results=5)

    assert await search(SearchInput(query="base"), make_session()) == "error: invalid web search api base url"


def test_format_search_results_lists_entries() -> None:
    text = format_search_results(
        [
            {"title": "Base", "url": "https://base.org", "content": "An L2"},
            "junk",
            {"url": "https://example.com"},
        ]
    )

    assert text.splitlines() == [
        "1. Base",
        "   https://base.org",
        "   An L2",
        "3. (untitled)",
        "   https://example.com",
    ]
    assert format_search_results([]) == "none"


@pytest.mark.asyncio
async def test_registered_tools_scope_group_queries(make_session) -> None:
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        balances=_balances(FakeChain()),
        search=WebSearch(api_base="https://ollama.com/api", api_key=None, max_results=5),
        token_symbol="USDC",
    )

    direct = {item.name for item in registry.for_origin(Origin.DIRECT)}
    group = {item.name for item in registry.for_origin(Origin.GROUP)}

    assert direct == {"get_balance", "get_balance_usdc", "web_search", "fallback"}
    assert group == direct | {"get_balances", "get_balances_usdc"}
    assert registry.proposal_names() == frozenset()
    result = await registry.execute("fallback", {}, make_session())
    assert result.output == FALLBACK_TEXT
