"""InMemoryGraphStore – networkx-backed implementation of :class:`GraphStore`.

Nodes and edges live in a :class:`networkx.MultiDiGraph`; each edge is keyed
by its integer id so parallel edges of different types can coexist.

Inside a transaction every write journals how to undo itself; when the block
raises, the journal is replayed backwards. This gives the grouping core the
commit/rollback boundary it expects from a real database at a cost
proportional to the writes made, not to the size of the graph.

Example::

    store = InMemoryGraphStore()
    app = "Shop"
    a = store.create_node(["Object", app], {"Name": "A", "Tags": ["module.Billing"]})
    with store.transaction():
        ...
    store.dump(Path("graph.json"))
"""

from __future__ import annotations

import copy
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator, Iterable, Iterator, Mapping, Optional

import networkx as nx

from archgroup.exceptions import NotFoundError
from archgroup.models.enums import Direction
from archgroup.store.base import EdgeRef, NodeRef

logger = logging.getLogger(__name__)


class InMemoryGraphStore:
    """Transactional property graph held in memory.

    Attributes:
        write_count: Number of mutating calls served so far. Used to verify
            that idempotent operations perform no writes.
    """

    def __init__(self) -> None:
        self._graph = nx.MultiDiGraph()
        self._edge_index: dict[int, tuple[int, int]] = {}
        self._next_node_id = 1
        self._next_edge_id = 1
        self._journal: Optional[list[Callable[[], None]]] = None
        self.write_count = 0

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _node_ref(self, node_id: int) -> NodeRef:
        data = self._graph.nodes[node_id]
        return NodeRef(
            id=node_id,
            labels=frozenset(data["labels"]),
            properties=copy.deepcopy(data["props"]),
        )

    def _edge_ref(self, source: int, target: int, key: int, data: dict) -> EdgeRef:
        return EdgeRef(
            id=key,
            source=source,
            target=target,
            type=data["type"],
            properties=copy.deepcopy(data["props"]),
        )

    def _require_node(self, node_id: int) -> dict:
        if node_id not in self._graph:
            raise NotFoundError("node", node_id)
        return self._graph.nodes[node_id]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_label(self, label: str) -> Iterator[NodeRef]:
        return self.find_nodes([label])

    def find_nodes(
        self,
        labels: Iterable[str],
        properties: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[NodeRef]:
        wanted = set(labels)
        props = dict(properties or {})
        matches = [
            self._node_ref(node_id)
            for node_id, data in self._graph.nodes(data=True)
            if wanted <= data["labels"]
            and all(data["props"].get(k) == v for k, v in props.items())
        ]
        return iter(matches)

    def get_node(self, node_id: int) -> Optional[NodeRef]:
        if node_id not in self._graph:
            return None
        return self._node_ref(node_id)

    def iter_edges(
        self,
        node_id: int,
        direction: Direction = Direction.BOTH,
        edge_type: Optional[str] = None,
    ) -> Iterator[EdgeRef]:
        if node_id not in self._graph:
            return iter(())
        raw: list[tuple[int, int, int, dict]] = []
        if direction in (Direction.OUTGOING, Direction.BOTH):
            raw.extend(self._graph.out_edges(node_id, keys=True, data=True))
        if direction in (Direction.INCOMING, Direction.BOTH):
            raw.extend(
                edge
                for edge in self._graph.in_edges(node_id, keys=True, data=True)
                if direction is Direction.INCOMING or edge[0] != edge[1]
            )
        edges = [
            self._edge_ref(u, v, k, d)
            for u, v, k, d in raw
            if edge_type is None or d["type"] == edge_type
        ]
        return iter(edges)

    # ------------------------------------------------------------------
    # Undo journal
    # ------------------------------------------------------------------

    def _record(self, undo: Callable[[], None]) -> None:
        """Remember how to revert the write about to happen, inside a transaction."""
        if self._journal is not None:
            self._journal.append(undo)

    def _restore_node(self, node_id: int, labels: set[str], props: dict) -> None:
        self._graph.add_node(node_id, labels=labels, props=props)

    def _restore_edge(self, source: int, target: int, key: int, data: dict) -> None:
        self._graph.add_edge(source, target, key=key, **data)
        self._edge_index[key] = (source, target)

    def _drop_edge(self, edge_id: int) -> None:
        source, target = self._edge_index.pop(edge_id)
        self._graph.remove_edge(source, target, key=edge_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_node(
        self,
        labels: Iterable[str],
        properties: Optional[Mapping[str, Any]] = None,
    ) -> NodeRef:
        node_id = self._next_node_id
        self._next_node_id += 1
        self._graph.add_node(
            node_id,
            labels=set(labels),
            props=copy.deepcopy(dict(properties or {})),
        )
        self._record(lambda: self._graph.remove_node(node_id))
        self.write_count += 1
        return self._node_ref(node_id)

    def delete_node(self, node_id: int) -> None:
        data = self._require_node(node_id)
        incident = list(self._graph.in_edges(node_id, keys=True, data=True))
        incident.extend(
            edge for edge in self._graph.out_edges(node_id, keys=True, data=True) if edge[0] != edge[1]
        )
        if self._journal is not None:
            # the removed objects are put back as-is so earlier undo steps still apply to them
            labels, props = data["labels"], data["props"]
            saved = [(u, v, k, dict(d)) for u, v, k, d in incident]

            def undo() -> None:
                self._restore_node(node_id, labels, props)
                for u, v, k, d in saved:
                    self._restore_edge(u, v, k, d)

            self._journal.append(undo)
        for _, _, key, _ in incident:
            self._edge_index.pop(key, None)
        self._graph.remove_node(node_id)
        self.write_count += 1

    def set_properties(self, node_id: int, properties: Mapping[str, Any]) -> None:
        props = self._require_node(node_id)["props"]
        if self._journal is not None:
            before = {k: copy.deepcopy(props[k]) for k in properties if k in props}
            added = [k for k in properties if k not in props]

            def undo() -> None:
                for key in added:
                    props.pop(key, None)
                props.update(before)

            self._journal.append(undo)
        props.update(copy.deepcopy(dict(properties)))
        self.write_count += 1

    def remove_property(self, node_id: int, key: str) -> None:
        props = self._require_node(node_id)["props"]
        if key in props:
            old = props[key]
            self._record(lambda: props.__setitem__(key, old))
        props.pop(key, None)
        self.write_count += 1

    def add_labels(self, node_id: int, labels: Iterable[str]) -> None:
        current = self._require_node(node_id)["labels"]
        added = set(labels) - current
        self._record(lambda: current.difference_update(added))
        current.update(added)
        self.write_count += 1

    def remove_labels(self, node_id: int, labels: Iterable[str]) -> None:
        current = self._require_node(node_id)["labels"]
        removed = current.intersection(labels)
        self._record(lambda: current.update(removed))
        current.difference_update(removed)
        self.write_count += 1

    def create_edge(
        self,
        source: int,
        target: int,
        edge_type: str,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> EdgeRef:
        self._require_node(source)
        self._require_node(target)
        edge_id = self._next_edge_id
        self._next_edge_id += 1
        data = {"type": edge_type, "props": copy.deepcopy(dict(properties or {}))}
        self._graph.add_edge(source, target, key=edge_id, **data)
        self._edge_index[edge_id] = (source, target)
        self._record(lambda: self._drop_edge(edge_id))
        self.write_count += 1
        return self._edge_ref(source, target, edge_id, data)

    def delete_edge(self, edge_id: int) -> None:
        if edge_id not in self._edge_index:
            raise NotFoundError("edge", edge_id)
        source, target = self._edge_index[edge_id]
        data = copy.deepcopy(self._graph.edges[source, target, edge_id])
        self._record(lambda: self._restore_edge(source, target, edge_id, data))
        self._drop_edge(edge_id)
        self.write_count += 1

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Generator[InMemoryGraphStore, None, None]:
        """Journal every write of the block; undo them if the block raises.

        Rolling back replays the journal backwards, so its cost follows the
        number of writes in the block, not the size of the graph. Nested
        transactions join the outermost one.
        """
        if self._journal is not None:
            yield self
            return

        counters = (self._next_node_id, self._next_edge_id)
        self._journal = []
        try:
            yield self
        except BaseException:
            journal = self._journal
            self._journal = None
            for undo in reversed(journal):
                undo()
            self._next_node_id, self._next_edge_id = counters
            logger.debug("Transaction rolled back (%d write(s) undone)", len(journal))
            raise
        finally:
            self._journal = None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        """Return the number of nodes in the store."""
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        """Return the number of edges in the store."""
        return self._graph.number_of_edges()

    def to_json(self, indent: int = 2) -> str:
        """Serialize the store to a JSON string."""
        data = {
            "nodes": [
                {"id": node_id, "labels": sorted(d["labels"]), "properties": d["props"]}
                for node_id, d in sorted(self._graph.nodes(data=True))
            ],
            "edges": [
                {
                    "id": key,
                    "source": u,
                    "target": v,
                    "type": d["type"],
                    "properties": d["props"],
                }
                for u, v, key, d in sorted(
                    self._graph.edges(keys=True, data=True), key=lambda e: e[2]
                )
            ],
        }
        return json.dumps(data, indent=indent, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> InMemoryGraphStore:
        """Deserialize a store from a JSON string produced by :meth:`to_json`.

        Raises:
            ValueError: If the JSON is invalid or references unknown nodes.
        """
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e

        store = cls()
        for node in data.get("nodes", []):
            node_id = int(node["id"])
            store._graph.add_node(
                node_id,
                labels=set(node.get("labels", [])),
                props=dict(node.get("properties", {})),
            )
            store._next_node_id = max(store._next_node_id, node_id + 1)
        for edge in data.get("edges", []):
            edge_id = int(edge["id"])
            source, target = int(edge["source"]), int(edge["target"])
            if source not in store._graph or target not in store._graph:
                raise ValueError(f"Edge {edge_id} references an unknown node")
            store._graph.add_edge(
                source,
                target,
                key=edge_id,
                type=edge["type"],
                props=dict(edge.get("properties", {})),
            )
            store._edge_index[edge_id] = (source, target)
            store._next_edge_id = max(store._next_edge_id, edge_id + 1)
        return store

    @classmethod
    def load(cls, path: Path) -> InMemoryGraphStore:
        """Load a store from a JSON file."""
        return cls.from_json(path.read_text(encoding="utf-8"))

    def dump(self, path: Path) -> None:
        """Write the store to a JSON file, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")

    def __repr__(self) -> str:
        return f"InMemoryGraphStore(nodes={self.node_count}, edges={self.edge_count})"
