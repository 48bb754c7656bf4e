"""Graph store collaborator interface.

The grouping core never talks to a database directly. It consumes the
structural :class:`GraphStore` protocol below; any backend implementing these
methods qualifies without subclassing.

Every call is blocking and fallible. Backends raise
:class:`~archgroup.exceptions.StoreUnavailableError` or
:class:`~archgroup.exceptions.StoreTimeoutError`; the core treats both the
same way.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol, runtime_checkable

from archgroup.models.enums import Direction


@dataclass(frozen=True, slots=True)
class NodeRef:
    """Read-only snapshot of a node at the time it was fetched."""

    id: int
    labels: frozenset[str]
    properties: Mapping[str, Any] = field(default_factory=dict)

    def has_label(self, *labels: str) -> bool:
        """True when the node carries any of *labels*."""
        return any(label in self.labels for label in labels)


@dataclass(frozen=True, slots=True)
class EdgeRef:
    """Read-only snapshot of a directed edge."""

    id: int
    source: int
    target: int
    type: str
    properties: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class GraphStore(Protocol):
    """Transactional property-graph storage consumed by the grouping core."""

    def find_by_label(self, label: str) -> Iterator[NodeRef]:
        """Yield every node carrying *label*."""
        ...

    def find_nodes(
        self,
        labels: Iterable[str],
        properties: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[NodeRef]:
        """Yield nodes carrying all *labels* whose properties equal *properties*.

        Values are matched as parameters, never interpolated into query text.
        """
        ...

    def get_node(self, node_id: int) -> Optional[NodeRef]:
        """Return the node, or ``None`` when it does not exist."""
        ...

    def create_node(
        self,
        labels: Iterable[str],
        properties: Optional[Mapping[str, Any]] = None,
    ) -> NodeRef:
        """Create a node and return it."""
        ...

    def delete_node(self, node_id: int) -> None:
        """Delete a node and every edge attached to it."""
        ...

    def set_properties(self, node_id: int, properties: Mapping[str, Any]) -> None:
        """Set (overwrite) properties on a node."""
        ...

    def remove_property(self, node_id: int, key: str) -> None:
        """Remove a property from a node; missing keys are ignored."""
        ...

    def add_labels(self, node_id: int, labels: Iterable[str]) -> None:
        """Add labels to a node."""
        ...

    def remove_labels(self, node_id: int, labels: Iterable[str]) -> None:
        """Remove labels from a node; missing labels are ignored."""
        ...

    def create_edge(
        self,
        source: int,
        target: int,
        edge_type: str,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> EdgeRef:
        """Create a directed edge and return it."""
        ...

    def delete_edge(self, edge_id: int) -> None:
        """Delete one edge."""
        ...

    def iter_edges(
        self,
        node_id: int,
        direction: Direction = Direction.BOTH,
        edge_type: Optional[str] = None,
    ) -> Iterator[EdgeRef]:
        """Yield the edges of *node_id*, optionally filtered by direction and type."""
        ...

    def transaction(self) -> AbstractContextManager[Any]:
        """Return a unit of work: committed on normal exit, rolled back on error."""
        ...
