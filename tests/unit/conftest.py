"""Shared fixtures for the unit tests."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

import pytest

from archgroup.exceptions import StoreError, StoreUnavailableError
from archgroup.store.base import EdgeRef, NodeRef
from archgroup.store.memory import InMemoryGraphStore


class FlakyStore(InMemoryGraphStore):
    """In-memory store that fails every write once ``fail_after`` writes happened.

    ``error`` is the store fault raised; set ``fail_after`` back to ``None``
    to let writes through again.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail_after: Optional[int] = None
        self.error: type[StoreError] = StoreUnavailableError

    def fail_in(self, writes: int) -> None:
        """Let *writes* more writes through, then fail."""
        self.fail_after = self.write_count + writes

    def _check(self) -> None:
        if self.fail_after is not None and self.write_count >= self.fail_after:
            raise self.error("store went away")

    def create_node(self, labels: Iterable[str], properties: Optional[Mapping[str, Any]] = None) -> NodeRef:
        self._check()
        return super().create_node(labels, properties)

    def delete_node(self, node_id: int) -> None:
        self._check()
        super().delete_node(node_id)

    def set_properties(self, node_id: int, properties: Mapping[str, Any]) -> None:
        self._check()
        super().set_properties(node_id, properties)

    def remove_property(self, node_id: int, key: str) -> None:
        self._check()
        super().remove_property(node_id, key)

    def add_labels(self, node_id: int, labels: Iterable[str]) -> None:
        self._check()
        super().add_labels(node_id, labels)

    def remove_labels(self, node_id: int, labels: Iterable[str]) -> None:
        self._check()
        super().remove_labels(node_id, labels)

    def create_edge(
        self,
        source: int,
        target: int,
        edge_type: str,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> EdgeRef:
        self._check()
        return super().create_edge(source, target, edge_type, properties)

    def delete_edge(self, edge_id: int) -> None:
        self._check()
        super().delete_edge(edge_id)


@pytest.fixture
def flaky_store() -> FlakyStore:
    return FlakyStore()
