"""In-memory storage backend.

Selected with ``DATABASE_BACKEND=memory`` for local runs and the test suite.
Repositories built on it keep the same guarded-write semantics as the
Cassandra ones: every read-check-write sequence that Cassandra runs as a
lightweight transaction runs here while holding ``MemoryDatabase.lock``.
"""

import asyncio
import copy
from collections import defaultdict
from typing import Any


class MemoryDatabase:
    """Dict-of-tables store shared by the in-memory repositories."""

    def __init__(self) -> None:
        self._tables: defaultdict[str, dict[Any, Any]] = defaultdict(dict)
        self.lock = asyncio.Lock()

    def table(self, name: str) -> dict[Any, Any]:
        """Get (creating on first use) a table keyed by primary key."""
        return self._tables[name]

    def get(self, table: str, key: Any) -> Any:
        """Return a copy of the stored record, or None."""
        record = self._tables[table].get(key)
        return copy.deepcopy(record) if record is not None else None

    def put(self, table: str, key: Any, record: Any) -> None:
        """Store a copy of the record under ``key``."""
        self._tables[table][key] = copy.deepcopy(record)

    def delete(self, table: str, key: Any) -> bool:
        """Delete a record; returns whether it existed."""
        return self._tables[table].pop(key, None) is not None

    def scan(self, table: str) -> list[Any]:
        """Return copies of every record in a table."""
        return [copy.deepcopy(record) for record in self._tables[table].values()]

    def clear(self) -> None:
        """Drop every table."""
        self._tables.clear()
