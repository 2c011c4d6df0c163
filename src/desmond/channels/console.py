"""Interactive local transport for development."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.json import JSON

from desmond.channels.base import TEXT_CONTENT_TYPE, ConversationKind, InboundEvent, Member

if TYPE_CHECKING:
    from desmond.chain.proposals import TransactionProposal

CONSOLE_USER = "console-user"
CONSOLE_AGENT = "console-agent"
CONSOLE_CONVERSATION = "console"
EXIT_COMMANDS = {"exit", "quit", "q"}


class ConsoleConversation:
    def __init__(self, console: Console, *, user_address: str, agent_name: str, agent_address: str) -> None:
        self._console = console
        self._agent_name = agent_name
        self._members = [Member(CONSOLE_USER, user_address), Member(CONSOLE_AGENT, agent_address)]

    @property
    def id(self) -> str:
        return CONSOLE_CONVERSATION

    @property
    def kind(self) -> ConversationKind:
        return ConversationKind.DIRECT

    async def members(self) -> list[Member]:
        return list(self._members)

    async def send_text(self, text: str) -> None:
        self._console.print(f"[bold yellow]{self._agent_name}:[/bold yellow] {text}")

    async def send_proposal(self, proposal: TransactionProposal) -> None:
        self._console.print("[bold magenta]Transaction proposal:[/bold magenta]")
        self._console.print(JSON(json.dumps(proposal.to_wire())))


class ConsoleTransport:
    """Direct conversation between the local user and the agent."""

    def __init__(self, *, user_address: str, agent_name: str, agent_address: str) -> None:
        self.console = Console()
        self._prompt: PromptSession[str] = PromptSession()
        self._conversation = ConsoleConversation(
            self.console, user_address=user_address, agent_name=agent_name, agent_address=agent_address
        )
        self._counter = 0

    @property
    def identity(self) -> str:
        return CONSOLE_AGENT

    async def sync(self) -> None:
        self.console.print("[dim]Type a message, or 'exit' to quit.[/dim]")

    async def stream_messages(self) -> AsyncIterator[InboundEvent]:
        while True:
            try:
                with patch_stdout(raw=True):
                    text = await self._prompt.prompt_async("you> ")
            except (EOFError, KeyboardInterrupt):
                return
            text = text.strip()
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                return
            self._counter += 1
            yield InboundEvent(
                sender_identity=CONSOLE_USER,
                content_type=TEXT_CONTENT_TYPE,
                conversation_id=CONSOLE_CONVERSATION,
                content=text,
                event_id=str(self._counter),
            )

    async def get_conversation(self, conversation_id: str) -> ConsoleConversation | None:
        return self._conversation if conversation_id == CONSOLE_CONVERSATION else None

    async def close(self) -> None:
        return None
