"""Repository interface for recommendation state.

Scoring logic never touches storage directly: components load and save
plain JSON-compatible dicts through a ``Repository`` keyed by namespace.
"""

import copy
from typing import Any, Protocol

# Namespaces for durable state
PROFILES = "profiles"
MATRICES = "matrices"
TRENDING_ITEMS = "trending_items"
PERF_METRICS = "perf_metrics"
EXPERIMENTS = "experiments"
FEEDBACK = "feedback"

NAMESPACES = (PROFILES, MATRICES, TRENDING_ITEMS, PERF_METRICS, EXPERIMENTS, FEEDBACK)


class Repository(Protocol):
    """Protocol for durable key-value record storage."""

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        """Fetch a record or None."""
        ...

    async def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        """Insert or overwrite a record."""
        ...

    async def delete(self, namespace: str, key: str) -> bool:
        """Delete a record, returning True if it existed."""
        ...

    async def scan(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        """Return every (key, record) pair in a namespace."""
        ...

    async def count(self, namespace: str) -> int:
        """Count records in a namespace."""
        ...

    async def close(self) -> None:
        """Release any underlying resources."""
        ...


class InMemoryRepository:
    """Process-local repository. Records are copied on the way in and out."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        record = self._data.get(namespace, {}).get(key)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    async def delete(self, namespace: str, key: str) -> bool:
        return self._data.get(namespace, {}).pop(key, None) is not None

    async def scan(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        return [(k, copy.deepcopy(v)) for k, v in self._data.get(namespace, {}).items()]

    async def count(self, namespace: str) -> int:
        return len(self._data.get(namespace, {}))

    async def close(self) -> None:
        self._data.clear()
