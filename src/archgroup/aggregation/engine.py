"""Aggregation engine: user-defined custom views over existing members.

An aggregation is a second-order grouping::

    (CustomView) -[HAS]-> (Custom) -[Aggregates]-> (Object)
                           (Custom) -[References]-> (Custom)

Custom containers owned by an aggregation are distinct from the tag-driven
custom dimension: the grouping engine ignores any ``Custom`` with an incoming
``HAS`` edge.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from archgroup.config import GroupingConfig
from archgroup.events import EventBuilder, EventSink, NullSink
from archgroup.exceptions import NotFoundError
from archgroup.models.enums import Direction
from archgroup.models.results import ContainerInfo
from archgroup.store.accessors import read_or_default
from archgroup.store.base import GraphStore, NodeRef

logger = logging.getLogger(__name__)


class AggregationEngine:
    """Creates, refreshes and deletes aggregations of custom containers."""

    def __init__(
        self,
        store: GraphStore,
        config: GroupingConfig | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self._store = store
        self._config = config or GroupingConfig()
        self._sink = sink or NullSink()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _info(self, node: NodeRef, label: str, depth: int) -> ContainerInfo:
        return ContainerInfo(
            id=node.id,
            label=label,
            name=read_or_default(node, "Name", ""),
            full_name=read_or_default(node, "FullName", read_or_default(node, "Name", "")),
            count=read_or_default(node, "Count", 0),
            depth=depth,
        )

    def _aggregation(self, scope: str, aggregation_id: int) -> NodeRef:
        node = self._store.get_node(aggregation_id)
        if node is None or not node.has_label(self._config.aggregation_label):
            raise NotFoundError("aggregation", aggregation_id)
        if scope not in node.labels:
            raise NotFoundError("aggregation", f"{scope}/{aggregation_id}")
        return node

    def _custom_nodes(self, aggregation_id: int) -> list[NodeRef]:
        customs = []
        for edge in self._store.iter_edges(
            aggregation_id, Direction.OUTGOING, self._config.has_edge
        ):
            node = self._store.get_node(edge.target)
            if node is not None and node.has_label(self._config.custom_label):
                customs.append(node)
        return sorted(customs, key=lambda n: n.id)

    def _members(self, custom_id: int) -> set[int]:
        members = set()
        for edge in self._store.iter_edges(
            custom_id, Direction.OUTGOING, self._config.aggregates_edge
        ):
            target = self._store.get_node(edge.target)
            if target is not None and target.has_label(self._config.object_label):
                members.add(edge.target)
        return members

    def _recount(self, node_id: int, count: int) -> None:
        node = self._store.get_node(node_id)
        if node is not None and read_or_default(node, "Count", -1) != count:
            self._store.set_properties(node_id, {"Count": count})

    # ------------------------------------------------------------------
    # Aggregations
    # ------------------------------------------------------------------

    def find_aggregation(self, scope: str, name: str) -> Optional[ContainerInfo]:
        """Return the aggregation named *name* in *scope*, or ``None``."""
        nodes = sorted(
            self._store.find_nodes([self._config.aggregation_label, scope], {"Name": name}),
            key=lambda n: n.id,
        )
        if not nodes:
            return None
        return self._info(nodes[0], self._config.aggregation_label, 1)

    def find_or_create_aggregation(self, scope: str, name: str) -> ContainerInfo:
        """Return the aggregation named *name*, creating it with default settings.

        New aggregations get ``AggregationDepth = 1``, ``Published = True``
        and no collaborators.
        """
        existing = self.find_aggregation(scope, name)
        if existing is not None:
            return existing
        node = self._store.create_node(
            [self._config.aggregation_label, scope],
            {
                "Name": name,
                "FullName": name,
                "Count": 0,
                "AggregationDepth": 1,
                "Published": True,
                "Collaborators": [],
            },
        )
        logger.info("Created aggregation '%s' in '%s'", name, scope)
        self._sink.emit(EventBuilder.aggregation_created(scope, node.id, name))
        return self._info(node, self._config.aggregation_label, 1)

    def list_aggregations(self, scope: str) -> list[ContainerInfo]:
        nodes = self._store.find_nodes([self._config.aggregation_label, scope])
        return [
            self._info(n, self._config.aggregation_label, 1)
            for n in sorted(nodes, key=lambda n: n.id)
        ]

    def list_customs(self, scope: str, aggregation_id: int) -> list[ContainerInfo]:
        """Return the customs of an aggregation.

        Raises:
            NotFoundError: If *aggregation_id* is not an aggregation of *scope*.
        """
        self._aggregation(scope, aggregation_id)
        return [
            self._info(n, self._config.custom_label, 2) for n in self._custom_nodes(aggregation_id)
        ]

    def delete_aggregation_by_name(self, scope: str, name: str) -> int:
        """Delete an aggregation and all its customs.

        Returns:
            Number of nodes deleted; ``0`` when no aggregation has that name.
        """
        deleted = 0
        with self._store.transaction():
            for aggregation in list(
                self._store.find_nodes([self._config.aggregation_label, scope], {"Name": name})
            ):
                for custom in self._custom_nodes(aggregation.id):
                    self._store.delete_node(custom.id)
                    deleted += 1
                self._store.delete_node(aggregation.id)
                deleted += 1
        if deleted:
            logger.info("Deleted aggregation '%s' in '%s' (%d nodes)", name, scope, deleted)
            self._sink.emit(EventBuilder.aggregation_deleted(scope, name, deleted))
        else:
            logger.debug("No aggregation named '%s' in '%s'", name, scope)
        return deleted

    # ------------------------------------------------------------------
    # Customs
    # ------------------------------------------------------------------

    def create_custom(
        self,
        scope: str,
        aggregation_id: int,
        custom_name: str,
        member_ids: Iterable[int],
    ) -> ContainerInfo:
        """Find or create a custom under an aggregation and add members to it.

        Member ids that are not ``Object`` nodes of *scope* are dropped. The
        member set is unioned with the custom's existing members, never
        replaced.

        Raises:
            NotFoundError: If *aggregation_id* is not an aggregation of *scope*.
        """
        aggregation = self._aggregation(scope, aggregation_id)
        aggregation_name = read_or_default(aggregation, "Name", "")

        valid = []
        for member_id in dict.fromkeys(member_ids):
            node = self._store.get_node(member_id)
            if node is not None and node.has_label(self._config.object_label) and scope in node.labels:
                valid.append(member_id)
            else:
                logger.debug("Dropping unknown member %s from custom '%s'", member_id, custom_name)

        with self._store.transaction():
            custom = next(
                (c for c in self._custom_nodes(aggregation_id)
                 if read_or_default(c, "Name", "") == custom_name),
                None,
            )
            if custom is None:
                custom = self._store.create_node(
                    [self._config.custom_label, scope],
                    {
                        "Name": custom_name,
                        "FullName": self._config.full_name_separator.join(
                            [aggregation_name, custom_name]
                        ),
                        "Count": 0,
                        "Level": 2,
                    },
                )
                self._store.create_edge(aggregation_id, custom.id, self._config.has_edge)
                logger.info("Created custom '%s' in aggregation '%s'", custom_name, aggregation_name)

            current = self._members(custom.id)
            for member_id in valid:
                if member_id not in current:
                    self._store.create_edge(custom.id, member_id, self._config.aggregates_edge)
                    current.add(member_id)
            self._recount(custom.id, len(current))
            self._recount(aggregation_id, len(self._custom_nodes(aggregation_id)))

        info = self._info(custom, self._config.custom_label, 2)
        return info.model_copy(update={"count": len(current)})

    def delete_custom(self, scope: str, custom_id: int) -> None:
        """Delete one custom of an aggregation and recount its aggregation.

        Raises:
            NotFoundError: If *custom_id* is not an aggregation-owned custom
                of *scope*.
        """
        node = self._store.get_node(custom_id)
        if node is None or not node.has_label(self._config.custom_label) or scope not in node.labels:
            raise NotFoundError("custom", custom_id)
        owners = [
            e.source
            for e in self._store.iter_edges(custom_id, Direction.INCOMING, self._config.has_edge)
        ]
        if not owners:
            raise NotFoundError("custom", custom_id)
        with self._store.transaction():
            self._store.delete_node(custom_id)
            for owner in owners:
                self._recount(owner, len(self._custom_nodes(owner)))
        logger.info("Deleted custom %d in '%s'", custom_id, scope)

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def refresh_aggregation(self, scope: str, aggregation_id: int) -> list[tuple[int, int]]:
        """Add ``References`` between customs of an aggregation.

        For every ordered pair of distinct customs ``(c1, c2)``, a
        ``References`` edge ``c1 -> c2`` is merged when a member of ``c1`` has
        an outgoing edge to a member of ``c2``. Existing edges are never
        duplicated nor removed.

        This is O(n^2) in the number of customs of the aggregation, on top of
        reading each member's outgoing edges once.

        Returns:
            The ``(c1, c2)`` pairs for which an edge was created.

        Raises:
            NotFoundError: If *aggregation_id* is not an aggregation of *scope*.
        """
        self._aggregation(scope, aggregation_id)
        customs = self._custom_nodes(aggregation_id)
        members = {c.id: self._members(c.id) for c in customs}

        neighbours: dict[int, set[int]] = {}
        for custom_id, member_set in members.items():
            reached: set[int] = set()
            for member_id in member_set:
                reached.update(
                    e.target for e in self._store.iter_edges(member_id, Direction.OUTGOING)
                )
            neighbours[custom_id] = reached

        created: list[tuple[int, int]] = []
        with self._store.transaction():
            for c1 in customs:
                existing = {
                    e.target
                    for e in self._store.iter_edges(
                        c1.id, Direction.OUTGOING, self._config.references_edge
                    )
                }
                for c2 in customs:
                    if c1.id == c2.id or c2.id in existing:
                        continue
                    if neighbours[c1.id] & members[c2.id]:
                        self._store.create_edge(c1.id, c2.id, self._config.references_edge)
                        created.append((c1.id, c2.id))
        if created:
            logger.info(
                "Aggregation %d in '%s': %d reference(s) added", aggregation_id, scope, len(created)
            )
        return created
