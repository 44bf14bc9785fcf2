"""Bounded per-agent context memory with optional file or SQLite persistence."""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any

from codeorbit.errors import InvalidIdentifierError, PersistenceError
from codeorbit.schemas import PromptRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 100
DEFAULT_HISTORY_SIZE = 5
DEFAULT_FILE_PATH = Path.cwd() / "context-memory.json"
DEFAULT_DB_PATH = Path.cwd() / "context-memory.sqlite"


class PersistenceMode(str, Enum):
    """Where context memory snapshots are written."""

    MEMORY = "memory"
    FILE = "file"
    DATABASE = "database"


class MergeStrategy(str, Enum):
    """How ``ContextMemory.merge`` combines values."""

    SHALLOW = "shallow"
    DEEP_UNION = "deep_union"


def _union_lists(target: list[Any], source: list[Any]) -> list[Any]:
    """Concatenate two lists dropping duplicates, first occurrence wins."""
    merged: list[Any] = []
    for item in [*target, *source]:
        if item not in merged:
            merged.append(item)
    return merged


def deep_merge(target: Any, source: Any) -> Any:
    """Recursively merge ``source`` into a copy of ``target``.

    Nested mappings are unioned key by key and lists are unioned with
    duplicates removed. Any other value in ``source`` replaces the target's.
    Note that intentionally repeated list items collapse to one.
    """
    if isinstance(target, list) and isinstance(source, list):
        return _union_lists(target, source)
    if not isinstance(target, dict) or not isinstance(source, dict):
        return copy.deepcopy(source)

    result = copy.deepcopy(target)
    for key, value in source.items():
        existing = result.get(key)
        if isinstance(value, dict):
            result[key] = deep_merge(existing if isinstance(existing, dict) else {}, value)
        elif isinstance(value, list) and isinstance(existing, list):
            result[key] = _union_lists(existing, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class ContextMemory:
    """Per-agent key/value store bounded by FIFO eviction, plus prompt history."""

    def __init__(
        self,
        max_entries_per_agent: int = DEFAULT_MAX_ENTRIES,
        history_size: int = DEFAULT_HISTORY_SIZE,
        persistence: PersistenceMode | str = PersistenceMode.MEMORY,
        file_path: Path | str | None = None,
        db_path: Path | str | None = None,
    ):
        """Initialize the store.

        Args:
            max_entries_per_agent: Keys kept per agent before the oldest is evicted
            history_size: Capacity of the prompt history ring buffer
            persistence: Snapshot backend used by ``load`` and ``persist``
            file_path: JSON document path for file persistence
            db_path: SQLite database path for database persistence
        """
        if max_entries_per_agent < 1:
            raise ValueError("max_entries_per_agent must be at least 1")
        if history_size < 1:
            raise ValueError("history_size must be at least 1")

        self.max_entries_per_agent = max_entries_per_agent
        self.persistence = PersistenceMode(persistence)
        self.file_path = Path(file_path) if file_path else DEFAULT_FILE_PATH
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH

        self._memory: dict[str, dict[str, Any]] = {}
        self._history: deque[PromptRecord] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    # --- Entries ---

    def save(self, agent_id: str, key: str, value: Any) -> None:
        """Upsert ``key`` for ``agent_id``, evicting the oldest key when full.

        Raises:
            InvalidIdentifierError: If agent_id is empty or not a string
        """
        _check_agent_id(agent_id)
        with self._lock:
            self._put(agent_id, key, value)
        logger.debug(f"Saved context for {agent_id}.{key}")

    def get(self, agent_id: str, key: str, default: Any = None) -> Any:
        """Look up a value, returning ``default`` when absent."""
        if not isinstance(agent_id, str) or not agent_id:
            return default
        with self._lock:
            return self._memory.get(agent_id, {}).get(key, default)

    def get_all(self, agent_id: str) -> dict[str, Any]:
        """Return a deep copy of every entry stored for ``agent_id``."""
        with self._lock:
            return copy.deepcopy(self._memory.get(agent_id, {}))

    def merge(
        self,
        agent_id: str,
        key: str,
        value: dict[str, Any],
        deep: bool = True,
        strategy: MergeStrategy | str | None = None,
    ) -> None:
        """Merge ``value`` into the mapping stored under ``key``.

        ``strategy`` takes precedence over ``deep`` when given. The entry is
        created when absent; a stored non-mapping value is replaced.
        """
        _check_agent_id(agent_id)
        if not isinstance(value, dict):
            raise TypeError("merge value must be a mapping")
        if strategy is None:
            strategy = MergeStrategy.DEEP_UNION if deep else MergeStrategy.SHALLOW
        strategy = MergeStrategy(strategy)

        with self._lock:
            existing = self._memory.get(agent_id, {}).get(key)
            if not isinstance(existing, dict):
                existing = {}
            if strategy is MergeStrategy.DEEP_UNION:
                merged = deep_merge(existing, value)
            else:
                merged = {**existing, **copy.deepcopy(value)}
            self._put(agent_id, key, merged)

        logger.debug(f"Merged context for {agent_id}.{key} ({strategy.value})")

    def delete(self, agent_id: str, key: str) -> bool:
        """Remove one key. Returns whether it existed."""
        with self._lock:
            entries = self._memory.get(agent_id)
            if entries is None or key not in entries:
                return False
            del entries[key]
            return True

    def clear_agent(self, agent_id: str) -> None:
        with self._lock:
            self._memory.pop(agent_id, None)
        logger.info(f"Cleared all context for agent: {agent_id}")

    def clear_all(self) -> None:
        with self._lock:
            self._memory.clear()
        logger.info("Cleared all context data")

    def size(self, agent_id: str) -> int:
        with self._lock:
            return len(self._memory.get(agent_id, {}))

    def has(self, agent_id: str, key: str) -> bool:
        with self._lock:
            return key in self._memory.get(agent_id, {})

    def agent_ids(self) -> list[str]:
        with self._lock:
            return list(self._memory)

    def _put(self, agent_id: str, key: str, value: Any) -> None:
        # Caller holds the lock. Re-assigning an existing key keeps its slot.
        entries = self._memory.setdefault(agent_id, {})
        entries[key] = value
        if len(entries) > self.max_entries_per_agent:
            oldest = next(iter(entries))
            del entries[oldest]
            logger.debug(f"Evicted oldest context key {agent_id}.{oldest}")

    # --- Prompt history ---

    def record_prompt(self, prompt: str) -> None:
        """Append a prompt to the ring buffer, dropping the oldest when full."""
        with self._lock:
            self._history.append(PromptRecord(prompt=prompt))

    def get_history(self) -> list[PromptRecord]:
        """Return recorded prompts, most recent last."""
        with self._lock:
            return [record.model_copy() for record in self._history]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    @property
    def history_size(self) -> int:
        return self._history.maxlen or 0

    # --- Persistence ---

    def load(self) -> bool:
        """Replace in-memory state with the persisted snapshot.

        Failures are logged and leave the current state untouched.

        Returns:
            True if the snapshot was loaded (or persistence is disabled)
        """
        if self.persistence is PersistenceMode.MEMORY:
            return True
        try:
            if self.persistence is PersistenceMode.FILE:
                data = self._read_file()
            else:
                data = self._read_db()
        except PersistenceError as e:
            logger.error(f"Failed to load {self.persistence.value} persistence: {e}", exc_info=True)
            return False

        with self._lock:
            self._memory = {
                agent_id: self._trimmed(entries) for agent_id, entries in data.items()
            }
        logger.info(f"Loaded context for {len(data)} agents from {self.persistence.value}")
        return True

    def persist(self) -> bool:
        """Write the full per-agent mapping to the configured backend.

        Failures are logged and swallowed; in-memory state stays authoritative.

        Returns:
            True if the snapshot was written (or persistence is disabled)
        """
        if self.persistence is PersistenceMode.MEMORY:
            return True
        try:
            snapshot = self._snapshot()
            if self.persistence is PersistenceMode.FILE:
                self._write_file(snapshot)
            else:
                self._write_db(snapshot)
        except PersistenceError as e:
            logger.error(f"Failed to save {self.persistence.value} persistence: {e}", exc_info=True)
            return False
        logger.info(f"Saved context for {len(snapshot)} agents to {self.persistence.value}")
        return True

    def _snapshot(self) -> dict[str, dict[str, Any]]:
        """Detached JSON-safe copy of the per-agent mapping."""
        with self._lock:
            try:
                return json.loads(json.dumps(self._memory))
            except (TypeError, ValueError) as e:
                raise PersistenceError(f"context is not JSON serializable: {e}") from e

    def _trimmed(self, entries: dict[str, Any]) -> dict[str, Any]:
        items = list(entries.items())[-self.max_entries_per_agent:]
        return dict(items)

    def _read_file(self) -> dict[str, dict[str, Any]]:
        if not self.file_path.exists():
            return {}
        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            # ValueError covers both malformed JSON and undecodable bytes
            raise PersistenceError(f"cannot read {self.file_path}: {e}") from e
        return _validate_snapshot(data)

    def _write_file(self, snapshot: dict[str, dict[str, Any]]) -> None:
        try:
            payload = json.dumps(snapshot, indent=2)
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self.file_path.write_text(payload, encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"cannot write {self.file_path}: {e}") from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with the context table in place."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS context (agentId TEXT, key TEXT, value TEXT)")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _read_db(self) -> dict[str, dict[str, Any]]:
        data: dict[str, dict[str, Any]] = {}
        try:
            conn = self._get_connection()
            try:
                rows = conn.execute("SELECT agentId, key, value FROM context ORDER BY rowid").fetchall()
            finally:
                conn.close()
            for row in rows:
                data.setdefault(row["agentId"], {})[row["key"]] = json.loads(row["value"])
        except (OSError, sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceError(f"cannot read {self.db_path}: {e}") from e
        return data

    def _write_db(self, snapshot: dict[str, dict[str, Any]]) -> None:
        try:
            rows = [
                (agent_id, key, json.dumps(value))
                for agent_id, entries in snapshot.items()
                for key, value in entries.items()
            ]
            conn = self._get_connection()
            try:
                with conn:
                    conn.execute("DELETE FROM context")
                    conn.executemany(
                        "INSERT INTO context (agentId, key, value) VALUES (?, ?, ?)",
                        rows,
                    )
            finally:
                conn.close()
        except (OSError, sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceError(f"cannot write {self.db_path}: {e}") from e


def _check_agent_id(agent_id: Any) -> None:
    if not isinstance(agent_id, str) or not agent_id:
        raise InvalidIdentifierError("agent_id must be a non-empty string")


def _validate_snapshot(data: Any) -> dict[str, dict[str, Any]]:
    if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
        raise PersistenceError("snapshot must map agent ids to objects")
    return data
