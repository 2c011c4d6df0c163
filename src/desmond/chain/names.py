"""Human-readable name resolution (ENS forward, Basenames reverse)."""

from __future__ import annotations

from typing import Any, Protocol

from ens.utils import normal_name_to_hash
from eth_utils import is_hex_address
from loguru import logger
from web3 import AsyncWeb3, Web3

from desmond.chain.client import FallbackRpc

MAINNET_CHAIN_ID = 1

L2_RESOLVER_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"name": "node", "type": "bytes32"}],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class NameResolver(Protocol):
    """Address <-> name lookups. Both directions never raise."""

    async def resolve_address(self, name: str) -> str:
        """Return the address for ``name`` or an empty string."""
        ...

    async def resolve_name(self, address: str) -> str:
        """Return the primary name for ``address`` or the address itself."""
        ...


def is_symbolic(recipient: str) -> bool:
    """Whether ``recipient`` is a name that needs resolution rather than a literal address."""
    return not is_hex_address(recipient.strip())


def coin_type_label(chain_id: int) -> str:
    if chain_id == MAINNET_CHAIN_ID:
        return "addr"
    return format((0x80000000 | chain_id) & 0xFFFFFFFF, "X")


def reverse_node(address: str, chain_id: int) -> bytes:
    """Reverse-record node of ``address`` under the chain's coin-type reverse namespace."""
    address_node = Web3.keccak(text=address.lower().removeprefix("0x"))
    base_reverse_node = normal_name_to_hash(f"{coin_type_label(chain_id)}.reverse")
    return bytes(Web3.keccak(bytes(base_reverse_node) + bytes(address_node)))


class Web3NameResolver:
    """ENS forward resolution on mainnet and Basenames reverse lookup on Base."""

    def __init__(self, *, ens_rpc: FallbackRpc, l2_rpc: FallbackRpc, l2_resolver: str, chain_id: int) -> None:
        self._ens_rpc = ens_rpc
        self._l2_rpc = l2_rpc
        self._l2_resolver = Web3.to_checksum_address(l2_resolver)
        self._chain_id = chain_id

    async def resolve_address(self, name: str) -> str:
        try:
            address = await self._ens_rpc.call(lambda w3: w3.ens.address(name))
        except Exception:
            logger.exception("names.resolve_address.error name={}", name)
            return ""
        return str(address) if address else ""

    async def resolve_name(self, address: str) -> str:
        node = reverse_node(address, self._chain_id)

        async def _lookup(w3: AsyncWeb3) -> str:
            contract = w3.eth.contract(address=self._l2_resolver, abi=L2_RESOLVER_ABI)
            return str(await contract.functions.name(node).call())

        try:
            name = await self._l2_rpc.call(_lookup)
        except Exception as exc:
            logger.debug("names.resolve_name.miss address={} error={!r}", address, exc)
            return address
        return name or address
