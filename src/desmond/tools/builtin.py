"""Read-only capabilities: balances, web search, fallback."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from loguru import logger
from pydantic import BaseModel, Field

from desmond.chain.client import ChainReader
from desmond.chain.names import NameResolver
from desmond.chain.proposals import ETH_DECIMALS, TokenInfo
from desmond.session import Origin, Session
from desmond.tools.registry import ToolRegistry

WEB_REQUEST_TIMEOUT_SECONDS = 20
WEB_USER_AGENT = "desmond-web-tools/1.0"
UNAVAILABLE = "unavailable"
VERBATIM_INSTRUCTION = (
    "Return this list exactly as it is. Do not include any statements such as 'Please note that these "
    "balances are subject to change and may not reflect the current balance.' The values on this list are "
    "entirely real and up-to-date. Return this list exactly as it is."
)
FALLBACK_TEXT = "As stated above, say something friendly and invite the user to interact with you."


class EmptyInput(BaseModel):
    """Empty input payload."""


class SearchInput(BaseModel):
    query: str = Field(..., min_length=1, description="Search query")


def format_units(raw: int, decimals: int) -> str:
    value = Decimal(raw).scaleb(-decimals).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)
    return f"{value:.6f}"


def render_group_balances(rows: list[tuple[str, str]], currency: str, network_label: str) -> str:
    lines = "\n".join(f"- {name} => {balance} {currency} ({network_label})" for name, balance in rows)
    return (
        f"The {currency} ({network_label}) balance of the addresses in this chat are:\n\n"
        f"{lines}\n\n"
        f"{VERBATIM_INSTRUCTION}"
    )


class BalanceTools:
    """Sender and group balance queries for the native coin and one token."""

    def __init__(self, chain: ChainReader, names: NameResolver, *, token: TokenInfo, network_label: str) -> None:
        self._chain = chain
        self._names = names
        self._token = token
        self._network_label = network_label

    async def native(self, _params: EmptyInput, session: Session) -> str:
        balance = format_units(await self._chain.get_balance(session.from_address), ETH_DECIMALS)
        return f"The user's ETH ({self._network_label}) balance is {balance} ETH. Don't round or modify the balance."

    async def token(self, _params: EmptyInput, session: Session) -> str:
        raw = await self._chain.get_token_balance(session.from_address)
        balance = format_units(raw, self._token.decimals)
        symbol = self._token.symbol
        return (
            f"The user's {symbol} ({self._network_label}) balance is {balance} {symbol}. "
            "Don't round or modify the balance."
        )

    async def group_native(self, _params: EmptyInput, session: Session) -> str:
        rows = await self._group_rows(session.members, self._chain.get_balance, ETH_DECIMALS)
        return render_group_balances(rows, "ETH", self._network_label)

    async def group_token(self, _params: EmptyInput, session: Session) -> str:
        rows = await self._group_rows(session.members, self._chain.get_token_balance, self._token.decimals)
        return render_group_balances(rows, self._token.symbol, self._network_label)

    async def _group_rows(
        self, members: Sequence[str], read: Callable[[str], Awaitable[int]], decimals: int
    ) -> list[tuple[str, str]]:
        balances, names = await asyncio.gather(
            asyncio.gather(*(read(address) for address in members), return_exceptions=True),
            asyncio.gather(*(self._names.resolve_name(address) for address in members)),
        )
        rows: list[tuple[str, str]] = []
        for address, name, balance in zip(members, names, balances, strict=True):
            if isinstance(balance, BaseException):
                logger.warning("tools.group_balance.unavailable address={} error={!r}", address, balance)
                rows.append((name, UNAVAILABLE))
                continue
            rows.append((name, format_units(balance, decimals)))
        return rows


class WebSearch:
    """Web search through the Ollama web search API."""

    def __init__(self, *, api_base: str, api_key: str | None, max_results: int) -> None:
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._max_results = max_results

    async def __call__(self, params: SearchInput, _session: Session) -> str:
        return await asyncio.to_thread(self._search, params.query)

    def _search(self, query: str) -> str:
        if not self._api_key:
            return "error: web search api key is not configured"
        parsed = urllib_parse.urlparse(self._api_base)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            return "error: invalid web search api base url"

        request = urllib_request.Request(  # noqa: S310 - scheme is validated above.
            f"{self._api_base}/web_search",
            data=json.dumps({"query": query, "max_results": self._max_results}).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
                "User-Agent": WEB_USER_AGENT,
            },
            method="POST",
        )
        try:
            with urllib_request.urlopen(request, timeout=WEB_REQUEST_TIMEOUT_SECONDS) as response:  # noqa: S310
                body = response.read().decode("utf-8", errors="replace")
        except urllib_error.HTTPError as exc:
            return f"error: http {exc.code}"
        except (urllib_error.URLError, OSError) as exc:
            return f"error: {exc!s}"

        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            return f"error: invalid json response: {exc!s}"
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list) or not results:
            return "none"
        return format_search_results(results)


def format_search_results(results: list[object]) -> str:
    lines: list[str] = []
    for idx, item in enumerate(results, start=1):
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "(untitled)")
        url = str(item.get("url") or "")
        content = str(item.get("content") or "")
        lines.append(f"{idx}. {title}")
        if url:
            lines.append(f"   {url}")
        if content:
            lines.append(f"   {content}")
    return "\n".join(lines) if lines else "none"


async def fallback(_params: EmptyInput, _session: Session) -> str:
    return FALLBACK_TEXT


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    balances: BalanceTools,
    search: WebSearch,
    token_symbol: str,
) -> None:
    """Register the read-only capabilities."""

    register = registry.register
    register(
        name="get_balance",
        description=(
            "Retrieve the user's accurate, up-to-date ETH balance on Base mainnet. Use whenever the user asks "
            "for their ETH balance, checks wallet holdings, or mentions 'balance' or 'ETH'."
        ),
        schema=EmptyInput,
    )(balances.native)
    register(
        name="get_balance_usdc",
        description=(
            f"Retrieve the user's accurate, up-to-date {token_symbol} balance on Base mainnet. Use whenever the "
            f"user asks for their {token_symbol} balance or checks wallet holdings."
        ),
        schema=EmptyInput,
    )(balances.token)
    register(
        name="get_balances",
        description=(
            "Retrieve the ETH balances of every member of this group chat on Base mainnet. Use whenever users "
            "ask for the group's ETH balances."
        ),
        schema=EmptyInput,
        scopes=[Origin.GROUP],
    )(balances.group_native)
    register(
        name="get_balances_usdc",
        description=(
            f"Retrieve the {token_symbol} balances of every member of this group chat on Base mainnet. Use "
            f"whenever users ask for the group's {token_symbol} balances."
        ),
        schema=EmptyInput,
        scopes=[Origin.GROUP],
    )(balances.group_token)
    register(
        name="web_search",
        description=(
            "Search the internet for specific terms or phrases. Use when the user asks for a web search, "
            "real-time or updated information, or mentions 'search', 'latest' or 'current'."
        ),
        schema=SearchInput,
    )(search)
    register(
        name="fallback",
        description="Use only when no other tool applies to the user's message.",
        schema=EmptyInput,
    )(fallback)
