"""Container repository: find-or-create, membership lookup, recount, prune.

Every dimension is described by a :class:`DimensionLayout`: the container
labels at each depth (root first), the edge type linking a parent container
to its child, and the edge type linking the leaf container to its members.

Containers are identified by (Name, label, scope). Lookups never key on
internal node ids, so re-running a grouping finds the structure created by
the previous run instead of duplicating it.

Counts are always recomputed from the edges present in the store, never
incremented, so a partially failed batch cannot leave a drifted Count behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from archgroup.config import GroupingConfig
from archgroup.events import EventBuilder, EventSink, NullSink
from archgroup.models.enums import Dimension, Direction
from archgroup.models.results import ContainerInfo
from archgroup.store.accessors import read_or_default
from archgroup.store.base import EdgeRef, GraphStore, NodeRef

logger = logging.getLogger(__name__)

HIDDEN_BY_PARENT = "HiddenByParent"


@dataclass(frozen=True)
class DimensionLayout:
    """Graph vocabulary of one grouping dimension.

    Attributes:
        dimension: The dimension described.
        depth_labels: Per depth, the labels a container at that depth may
            carry; the first is the visible label, any other is a hidden
            variant.
        link_edge: Edge type from a parent container to its child.
        member_edge: Edge type from the leaf container to a member.
        member_property: Member property mirroring the leaf container name.
        list_property: Whether ``member_property`` holds a list of names.
        free_standing: Only containers without an incoming ``HAS`` edge
            belong to the dimension (custom containers owned by an
            aggregation are excluded).
    """

    dimension: Dimension
    depth_labels: tuple[tuple[str, ...], ...]
    link_edge: str
    member_edge: str
    member_property: str
    list_property: bool = True
    free_standing: bool = False

    @property
    def depth(self) -> int:
        return len(self.depth_labels)

    @property
    def leaf_labels(self) -> tuple[str, ...]:
        return self.depth_labels[-1]

    def depth_of(self, labels: Iterable[str]) -> Optional[int]:
        """Return the 0-based depth matching *labels*, or ``None``."""
        label_set = set(labels)
        for index, candidates in enumerate(self.depth_labels):
            if label_set.intersection(candidates):
                return index
        return None

    def member_value(self, name: str) -> Any:
        """Value written to the member property for container *name*."""
        return [name] if self.list_property else name


def build_layouts(config: GroupingConfig) -> dict[Dimension, DimensionLayout]:
    """Derive the layout of every dimension from *config*."""
    return {
        Dimension.LEVEL: DimensionLayout(
            dimension=Dimension.LEVEL,
            depth_labels=tuple(
                (config.level_label(depth),) for depth in range(1, config.level_depth + 1)
            ),
            link_edge=config.aggregates_edge,
            member_edge=config.aggregates_edge,
            member_property="Level",
            list_property=False,
        ),
        Dimension.MODULE: DimensionLayout(
            dimension=Dimension.MODULE,
            depth_labels=((config.module_label, config.hidden_module_label),),
            link_edge=config.contains_edge,
            member_edge=config.contains_edge,
            member_property="Module",
        ),
        Dimension.ARCHITECTURE: DimensionLayout(
            dimension=Dimension.ARCHITECTURE,
            depth_labels=(
                (config.architecture_label, config.hidden_architecture_label),
                (config.subset_label, config.hidden_subset_label),
            ),
            link_edge=config.contains_edge,
            member_edge=config.contains_edge,
            member_property="Subset",
        ),
        Dimension.CUSTOM: DimensionLayout(
            dimension=Dimension.CUSTOM,
            depth_labels=((config.custom_label,),),
            link_edge=config.aggregates_edge,
            member_edge=config.aggregates_edge,
            member_property="Custom",
            free_standing=True,
        ),
    }


class ContainerRepository:
    """Reads and maintains container structure in a :class:`GraphStore`."""

    def __init__(
        self,
        store: GraphStore,
        config: GroupingConfig,
        sink: EventSink | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._sink = sink or NullSink()
        self._layouts = build_layouts(config)

    def layout(self, dimension: Dimension) -> DimensionLayout:
        return self._layouts[dimension]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _is_free_standing(self, node_id: int) -> bool:
        return not any(
            True
            for _ in self._store.iter_edges(node_id, Direction.INCOMING, self._config.has_edge)
        )

    def find(
        self, scope: str, layout: DimensionLayout, depth: int, name: str
    ) -> Optional[NodeRef]:
        """Find the container named *name* at *depth*, visible or hidden.

        When several match, the one with the lowest id is returned.
        """
        candidates: list[NodeRef] = []
        for label in layout.depth_labels[depth]:
            candidates.extend(self._store.find_nodes([label, scope], {"Name": name}))
        if layout.free_standing:
            candidates = [c for c in candidates if self._is_free_standing(c.id)]
        if not candidates:
            return None
        return min(candidates, key=lambda node: node.id)

    def all_containers(self, scope: str, layout: DimensionLayout, depth: int) -> list[NodeRef]:
        """Return every container of *scope* at *depth*, ordered by id."""
        nodes: dict[int, NodeRef] = {}
        for label in layout.depth_labels[depth]:
            for node in self._store.find_nodes([label, scope]):
                nodes[node.id] = node
        result = sorted(nodes.values(), key=lambda node: node.id)
        if layout.free_standing:
            result = [n for n in result if self._is_free_standing(n.id)]
        return result

    def depth_in(self, node: NodeRef, layout: DimensionLayout) -> Optional[int]:
        """Depth of *node* in *layout*, or ``None`` when it is not one of its containers."""
        depth = layout.depth_of(node.labels)
        if depth is not None and layout.free_standing and not self._is_free_standing(node.id):
            return None
        return depth

    def children(self, node_id: int, layout: DimensionLayout, depth: int) -> list[NodeRef]:
        """Containers directly below the container at *depth*."""
        if depth >= layout.depth - 1:
            return []
        child_labels = layout.depth_labels[depth + 1]
        nodes = []
        for edge in self._store.iter_edges(node_id, Direction.OUTGOING, layout.link_edge):
            target = self._store.get_node(edge.target)
            if target is not None and target.has_label(*child_labels):
                nodes.append(target)
        return nodes

    def parent_edges(self, node_id: int, layout: DimensionLayout, depth: int) -> list[EdgeRef]:
        """Incoming link edges of a container from containers one level up."""
        if depth == 0:
            return []
        parent_labels = layout.depth_labels[depth - 1]
        edges = []
        for edge in self._store.iter_edges(node_id, Direction.INCOMING, layout.link_edge):
            source = self._store.get_node(edge.source)
            if source is not None and source.has_label(*parent_labels):
                edges.append(edge)
        return edges

    def memberships(self, member_id: int, layout: DimensionLayout) -> list[EdgeRef]:
        """Current membership edges of a member in one dimension."""
        edges = []
        for edge in self._store.iter_edges(member_id, Direction.INCOMING, layout.member_edge):
            source = self._store.get_node(edge.source)
            if source is None or not source.has_label(*layout.leaf_labels):
                continue
            if layout.free_standing and not self._is_free_standing(source.id):
                continue
            edges.append(edge)
        return edges

    def members_of(self, container_id: int, layout: DimensionLayout) -> list[int]:
        """Ids of the members directly held by a leaf container."""
        members = []
        for edge in self._store.iter_edges(container_id, Direction.OUTGOING, layout.member_edge):
            target = self._store.get_node(edge.target)
            if target is not None and target.has_label(self._config.object_label):
                members.append(edge.target)
        return members

    def path_of(self, container_id: int, layout: DimensionLayout) -> tuple[str, ...]:
        """Names from the root container down to *container_id*."""
        names: list[str] = []
        node = self._store.get_node(container_id)
        while node is not None:
            names.append(read_or_default(node, "Name", ""))
            depth = layout.depth_of(node.labels)
            parents = self.parent_edges(node.id, layout, depth or 0)
            node = self._store.get_node(min(e.source for e in parents)) if parents else None
        return tuple(reversed(names))

    def info(self, node: NodeRef, layout: DimensionLayout) -> ContainerInfo:
        depth = layout.depth_of(node.labels) or 0
        label = next(
            (l for l in layout.depth_labels[depth] if l in node.labels),
            layout.depth_labels[depth][0],
        )
        return ContainerInfo(
            id=node.id,
            label=label,
            name=read_or_default(node, "Name", ""),
            full_name=read_or_default(node, "FullName", ""),
            count=read_or_default(node, "Count", 0),
            depth=depth + 1,
        )

    # ------------------------------------------------------------------
    # Find-or-create
    # ------------------------------------------------------------------

    def _create(
        self,
        scope: str,
        layout: DimensionLayout,
        depth: int,
        path: tuple[str, ...],
        hidden: bool,
    ) -> NodeRef:
        labels = layout.depth_labels[depth]
        label = labels[1] if hidden and len(labels) > 1 else labels[0]
        properties: dict[str, Any] = {
            "Name": path[depth],
            "FullName": self._config.full_name_separator.join(path[: depth + 1]),
            "Count": 0,
            "Level": depth + 1,
            "Type": layout.dimension.value,
        }
        if hidden and label != labels[0]:
            properties[HIDDEN_BY_PARENT] = True
        node = self._store.create_node([label, scope], properties)
        logger.info("Created %s container '%s' in '%s'", label, properties["FullName"], scope)
        self._sink.emit(EventBuilder.container_created(scope, node.id, label, path[depth]))
        return node

    def ensure_chain(
        self, scope: str, layout: DimensionLayout, path: tuple[str, ...]
    ) -> tuple[NodeRef, set[int], list[str]]:
        """Find or create every container of *path*, top-down, and link them.

        A child found under a different parent is moved to the parent named
        by *path*; the old parent is reported as touched so it gets recounted.

        Returns:
            ``(leaf, touched_ids, created_full_names)``.
        """
        if len(path) != layout.depth:
            raise ValueError(
                f"{layout.dimension.value} paths need {layout.depth} names, got {len(path)}"
            )

        touched: set[int] = set()
        created: list[str] = []
        parent: Optional[NodeRef] = None
        with self._store.transaction():
            for depth in range(layout.depth):
                full_name = self._config.full_name_separator.join(path[: depth + 1])
                node = self.find(scope, layout, depth, path[depth])
                if node is None:
                    hidden = parent is not None and not parent.has_label(
                        layout.depth_labels[depth - 1][0]
                    )
                    node = self._create(scope, layout, depth, path, hidden)
                    created.append(full_name)
                elif node.properties.get("FullName") != full_name:
                    # Moved under another parent since it was created.
                    self._store.set_properties(node.id, {"FullName": full_name})
                touched.add(node.id)
                if parent is not None:
                    touched.update(self._link(parent, node, layout, depth))
                parent = node
        if parent is None:
            raise ValueError(f"{layout.dimension.value} has no container depth")
        return parent, touched, created

    def _link(
        self, parent: NodeRef, child: NodeRef, layout: DimensionLayout, depth: int
    ) -> set[int]:
        """Make *parent* the only parent of *child*; return detached parents."""
        detached: set[int] = set()
        linked = False
        for edge in self.parent_edges(child.id, layout, depth):
            if edge.source == parent.id and not linked:
                linked = True
                continue
            self._store.delete_edge(edge.id)
            if edge.source != parent.id:
                detached.add(edge.source)
        if not linked:
            self._store.create_edge(parent.id, child.id, layout.link_edge)
        return detached

    # ------------------------------------------------------------------
    # Recount and prune
    # ------------------------------------------------------------------

    def count(self, node: NodeRef, layout: DimensionLayout) -> int:
        """Number of current direct membership edges of a container."""
        depth = layout.depth_of(node.labels)
        if depth is None:
            return 0
        if depth == layout.depth - 1:
            return len(self.members_of(node.id, layout))
        return len(self.children(node.id, layout, depth))

    def settle(
        self, scope: str, layout: DimensionLayout, container_ids: Iterable[int]
    ) -> tuple[list[ContainerInfo], list[str]]:
        """Recount *container_ids* and their ancestors; prune empty ones.

        Containers are processed deepest first so that pruning a child is
        reflected in its parent's count, and an emptied parent is pruned in
        turn.

        Returns:
            ``(surviving container infos, pruned full names)``.
        """
        depth_of: dict[int, int] = {}
        pending = list(container_ids)
        while pending:
            node_id = pending.pop()
            if node_id in depth_of:
                continue
            node = self._store.get_node(node_id)
            if node is None:
                continue
            depth = layout.depth_of(node.labels)
            if depth is None:
                continue
            depth_of[node_id] = depth
            pending.extend(e.source for e in self.parent_edges(node_id, layout, depth))

        survivors: list[ContainerInfo] = []
        pruned: list[str] = []
        for node_id in sorted(depth_of, key=lambda i: (-depth_of[i], i)):
            node = self._store.get_node(node_id)
            if node is None:
                continue
            count = self.count(node, layout)
            if count == 0:
                full_name = read_or_default(node, "FullName", read_or_default(node, "Name", ""))
                label = self.info(node, layout).label
                self._store.delete_node(node_id)
                pruned.append(full_name)
                logger.info("Pruned empty %s container '%s'", label, full_name)
                self._sink.emit(
                    EventBuilder.container_pruned(
                        scope, node_id, label, read_or_default(node, "Name", "")
                    )
                )
                continue
            previous = read_or_default(node, "Count", -1)
            if previous != count:
                self._store.set_properties(node_id, {"Count": count})
                self._sink.emit(EventBuilder.count_updated(scope, node_id, previous, count))
            survivors.append(self.info(node, layout).model_copy(update={"count": count}))
        survivors.sort(key=lambda c: (c.depth, c.id))
        return survivors, pruned
