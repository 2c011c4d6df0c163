"""Per-turn session context."""

from __future__ import annotations

import contextlib
import uuid
from collections.abc import Generator
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from desmond.channels.base import Conversation


class Origin(StrEnum):
    DIRECT = "direct"
    GROUP = "group"


_session_context: ContextVar[Session] = ContextVar("session")


def current_session_id() -> str:
    """Get the id of the session being processed, or '-' outside a turn."""
    session = _session_context.get(None)
    if session is None:
        return "-"
    return session.session_id


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Session:
    """One turn-processing context for a single inbound message.

    ``thread_key`` selects the Turn Store history. With the default
    ``turn`` thread mode it equals ``session_id`` so every turn starts from an
    empty history; ``conversation`` mode keys it by conversation instead.
    """

    origin: Origin
    agent_address: str
    from_address: str
    conversation: Conversation
    members: tuple[str, ...] = ()
    session_id: str = field(default_factory=new_session_id)
    thread_key: str = ""

    def __post_init__(self) -> None:
        if not self.thread_key:
            object.__setattr__(self, "thread_key", self.session_id)

    @contextlib.contextmanager
    def activate(self) -> Generator[Session, None, None]:
        token = _session_context.set(self)
        try:
            yield self
        finally:
            _session_context.reset(token)
