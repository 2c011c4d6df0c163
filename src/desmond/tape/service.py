"""Message-level view over one thread of the turn store."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from republic import TapeEntry

from desmond.tape.store import TurnStore

if TYPE_CHECKING:
    from desmond.core.gateway import ToolCall


class TurnHistory:
    """Append-only message history for one thread key."""

    def __init__(self, store: TurnStore, thread: str) -> None:
        self._store = store
        self._thread = thread

    @property
    def thread(self) -> str:
        return self._thread

    def entries(self) -> list[TapeEntry]:
        return self._store.read(self._thread) or []

    def messages(self) -> list[dict[str, Any]]:
        return [dict(entry.payload) for entry in self.entries() if entry.kind == "message"]

    def is_empty(self) -> bool:
        return not self.messages()

    def append_system(self, content: str) -> None:
        self._append_message({"role": "system", "content": content})

    def append_user(self, content: str) -> None:
        self._append_message({"role": "user", "content": content})

    def append_assistant(self, content: str, tool_calls: list[ToolCall] | None = None) -> None:
        message: dict[str, Any] = {"role": "assistant", "content": content or None}
        if tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments, ensure_ascii=False)},
                }
                for call in tool_calls
            ]
        self._append_message(message)

    def append_tool_result(self, call_id: str, name: str, content: str) -> None:
        self._append_message({"role": "tool", "tool_call_id": call_id, "name": name, "content": content})

    def append_event(self, name: str, data: dict[str, Any]) -> None:
        self._store.append(self._thread, TapeEntry.event(name, data=data))

    def discard(self) -> None:
        self._store.reset(self._thread)

    def _append_message(self, message: dict[str, Any]) -> None:
        self._store.append(self._thread, TapeEntry.message(message))
