"""Read-only chain access with RPC fallback."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, TypeVar

from loguru import logger
from web3 import AsyncWeb3, Web3

T = TypeVar("T")

ERC20_ABI: list[dict[str, Any]] = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class ChainReader(Protocol):
    """Balance queries against one network."""

    async def get_balance(self, address: str) -> int: ...

    async def get_token_balance(self, address: str) -> int: ...


class FallbackRpc:
    """Ordered RPC endpoints; a failing endpoint hands the call to the next one.

    The endpoint that last answered is tried first on the following call.
    """

    def __init__(self, urls: Sequence[str], *, timeout_seconds: float) -> None:
        if not urls:
            raise ValueError("at least one rpc url is required")
        self._urls = list(urls)
        self._clients = [AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(url)) for url in self._urls]
        self._timeout_seconds = timeout_seconds
        self._preferred = 0

    async def call(self, fn: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        last_error: Exception | None = None
        count = len(self._clients)
        for offset in range(count):
            index = (self._preferred + offset) % count
            try:
                async with asyncio.timeout(self._timeout_seconds):
                    result = await fn(self._clients[index])
            except Exception as exc:
                last_error = exc
                logger.warning("chain.rpc.fallback url={} error={!r}", self._urls[index], exc)
                continue
            self._preferred = index
            return result
        assert last_error is not None
        raise last_error


class Web3ChainReader:
    """Native and ERC-20 balances through web3."""

    def __init__(self, rpc: FallbackRpc, *, token_address: str) -> None:
        self._rpc = rpc
        self._token_address = Web3.to_checksum_address(token_address)

    async def get_balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return int(await self._rpc.call(lambda w3: w3.eth.get_balance(checksum)))

    async def get_token_balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)

        async def _balance_of(w3: AsyncWeb3) -> int:
            contract = w3.eth.contract(address=self._token_address, abi=ERC20_ABI)
            return int(await contract.functions.balanceOf(checksum).call())

        return await self._rpc.call(_balance_of)
