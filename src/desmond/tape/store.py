"""Append-only turn history stores."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol, cast
from urllib.parse import quote, unquote

from republic.tape import TapeEntry

THREAD_FILE_SUFFIX = ".jsonl"


class TurnStore(Protocol):
    """Keyed, append-only conversation history.

    Matches the republic tape store surface, so ``republic.tape.InMemoryTapeStore``
    serves stateless turns and ``FileTurnStore`` serves persistent threads.
    """

    def list_tapes(self) -> list[str]: ...

    def read(self, tape: str) -> list[TapeEntry] | None: ...

    def append(self, tape: str, entry: TapeEntry) -> None: ...

    def reset(self, tape: str) -> None: ...


class TurnFile:
    """Helper for one thread file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._read_entries: list[TapeEntry] = []
        self._read_offset = 0

    def _next_id(self) -> int:
        if self._read_entries:
            return cast(int, self._read_entries[-1].id + 1)
        return 1

    def _reset(self) -> None:
        self._read_entries = []
        self._read_offset = 0

    def reset(self) -> None:
        with self._lock:
            if self.path.exists():
                self.path.unlink()
            self._reset()

    def read(self) -> list[TapeEntry]:
        with self._lock:
            return self._read_locked()

    def _read_locked(self) -> list[TapeEntry]:
        if not self.path.exists():
            self._reset()
            return []

        if self.path.stat().st_size < self._read_offset:
            # Truncated or replaced: cached entries are stale.
            self._reset()

        with self.path.open("r", encoding="utf-8") as handle:
            handle.seek(self._read_offset)
            for raw_line in handle:
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    continue
                entry = self.entry_from_payload(payload)
                if entry is not None:
                    self._read_entries.append(entry)
            self._read_offset = handle.tell()

        return list(self._read_entries)

    @staticmethod
    def entry_to_payload(entry: TapeEntry) -> dict[str, object]:
        return {
            "id": entry.id,
            "kind": entry.kind,
            "payload": dict(entry.payload),
            "meta": dict(entry.meta),
        }

    @staticmethod
    def entry_from_payload(payload: object) -> TapeEntry | None:
        if not isinstance(payload, dict):
            return None
        entry_id = payload.get("id")
        kind = payload.get("kind")
        entry_payload = payload.get("payload")
        meta = payload.get("meta")
        if not isinstance(entry_id, int) or not isinstance(kind, str):
            return None
        if not isinstance(entry_payload, dict):
            return None
        if not isinstance(meta, dict):
            meta = {}
        return TapeEntry(entry_id, kind, dict(entry_payload), dict(meta))

    def append(self, entry: TapeEntry) -> None:
        with self._lock:
            # Sync cache and offset before allocating the next id.
            self._read_locked()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                stored = TapeEntry(self._next_id(), entry.kind, dict(entry.payload), dict(entry.meta))
                handle.write(json.dumps(self.entry_to_payload(stored), ensure_ascii=False) + "\n")
                self._read_entries.append(stored)
                self._read_offset = handle.tell()


class FileTurnStore:
    """Append-only JSONL store, one file per thread under ``home/threads``."""

    def __init__(self, home: Path) -> None:
        self._root = (home / "threads").resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._files: dict[str, TurnFile] = {}
        self._lock = threading.Lock()

    def list_tapes(self) -> list[str]:
        return sorted(
            unquote(path.name.removesuffix(THREAD_FILE_SUFFIX)) for path in self._root.glob(f"*{THREAD_FILE_SUFFIX}")
        )

    def read(self, tape: str) -> list[TapeEntry] | None:
        turn_file = self._file(tape)
        if not turn_file.path.exists():
            return None
        return turn_file.read()

    def append(self, tape: str, entry: TapeEntry) -> None:
        self._file(tape).append(entry)

    def reset(self, tape: str) -> None:
        self._file(tape).reset()

    def _file(self, tape: str) -> TurnFile:
        with self._lock:
            if tape not in self._files:
                self._files[tape] = TurnFile(self._root / f"{quote(tape, safe='')}{THREAD_FILE_SUFFIX}")
            return self._files[tape]
