"""Blockchain collaborators: balance reads, names, and proposal construction."""

from desmond.chain.client import ChainReader, FallbackRpc, Web3ChainReader
from desmond.chain.names import NameResolver, Web3NameResolver, is_symbolic
from desmond.chain.proposals import ProposalBuilder, Recipient, TokenInfo, TransactionProposal

__all__ = [
    "ChainReader",
    "FallbackRpc",
    "NameResolver",
    "ProposalBuilder",
    "Recipient",
    "TokenInfo",
    "TransactionProposal",
    "Web3ChainReader",
    "Web3NameResolver",
    "is_symbolic",
]
