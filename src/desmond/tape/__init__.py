"""Turn history storage."""

from desmond.tape.service import TurnHistory
from desmond.tape.store import FileTurnStore, TurnFile, TurnStore

__all__ = [
    "FileTurnStore",
    "TurnFile",
    "TurnHistory",
    "TurnStore",
]
