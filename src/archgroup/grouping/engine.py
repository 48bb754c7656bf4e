"""Grouping engine: attach members to containers, one dimension at a time.

The central operation is :meth:`GroupingEngine.group`, a merge of a batch of
``(member_id, GroupTarget)`` pairs into the live graph:

1. duplicate pairs are resolved (last wins, conflict recorded) and paths that
   disagree on the parent of a container are made consistent;
2. members that are not ``Object`` nodes of the scope are reported missing;
3. container chains are found or created top-down;
4. each member is re-wired in its own store transaction;
5. Counts of every touched container and its ancestors are recomputed;
6. emptied containers are pruned, cascading upward;
7. ``References`` between leaf containers are refreshed.

A store fault during steps 3-4 stops the batch with
:class:`~archgroup.exceptions.BatchInterruptedError`. Work committed before
the fault stays; calling ``group`` again with the same batch finishes it.

Concurrency: the engine holds no state between calls and assumes at most one
grouping operation per scope at a time. Callers running several workers must
serialize them per scope.

Example::

    engine = GroupingEngine(store, GroupingConfig())
    results = engine.group_from_tags("Shop")
    results[Dimension.MODULE].containers_touched
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Sequence

from archgroup.config import GroupingConfig
from archgroup.events import EventBuilder, EventSink, NullSink
from archgroup.exceptions import BatchInterruptedError, NotFoundError, StoreError
from archgroup.grouping.containers import ContainerRepository, DimensionLayout
from archgroup.grouping.references import refresh_references
from archgroup.models.enums import Dimension
from archgroup.models.results import (
    Conflict,
    GroupingResult,
    GroupTarget,
    ReferenceRefresh,
)
from archgroup.store.accessors import read_or_default
from archgroup.store.base import GraphStore, NodeRef
from archgroup.tags.parser import TagParser

logger = logging.getLogger(__name__)

# Per-member action: returns (changed, touched container ids).
_MemberAction = Callable[[NodeRef], tuple[bool, set[int]]]


class GroupingEngine:
    """Groups member artifacts into containers of one dimension per call.

    Args:
        store: Graph store to read and write.
        config: Labels, edge types and tag grammar. Defaults to
            :class:`GroupingConfig` defaults.
        sink: Observer for grouping events. Defaults to :class:`NullSink`.
    """

    def __init__(
        self,
        store: GraphStore,
        config: GroupingConfig | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self._store = store
        self._config = config or GroupingConfig()
        self._sink = sink or NullSink()
        self._parser = TagParser(self._config)
        self._containers = ContainerRepository(store, self._config, self._sink)

    @property
    def config(self) -> GroupingConfig:
        return self._config

    @property
    def containers(self) -> ContainerRepository:
        return self._containers

    # ------------------------------------------------------------------
    # Group
    # ------------------------------------------------------------------

    def group(
        self,
        assignments: Iterable[tuple[int, GroupTarget]],
        dimension: Dimension,
        scope: str,
    ) -> GroupingResult:
        """Merge a batch of member assignments into the graph.

        Args:
            assignments: ``(member_id, target)`` pairs; every target must be
                of *dimension*.
            dimension: The dimension being grouped.
            scope: Application label shared by members and containers.

        Returns:
            What changed: touched, created and pruned containers plus the
            re-wired, unchanged and missing members.

        Raises:
            ValueError: If a target is of another dimension or has the wrong
                path length for it.
            BatchInterruptedError: If the store fails mid-batch. The error
                carries the partial result.
        """
        layout = self._containers.layout(dimension)
        result = GroupingResult(dimension=dimension, scope=scope)
        targets = self._resolve(assignments, layout, scope, result)
        self._canonicalize(targets, layout, scope, result)

        present: dict[int, NodeRef] = {}
        for member_id in targets:
            member = self._member(member_id, scope)
            if member is None:
                result.missing.append(member_id)
            else:
                present[member_id] = member
        if result.missing:
            logger.warning(
                "%d member id(s) not found in '%s': %s",
                len(result.missing),
                scope,
                result.missing,
            )

        touched: set[int] = set()
        leaves: dict[tuple[str, ...], int] = {}

        def rewire(member: NodeRef) -> tuple[bool, set[int]]:
            path = targets[member.id].path
            if path not in leaves:
                leaf, chain_touched, created = self._containers.ensure_chain(scope, layout, path)
                leaves[path] = leaf.id
                touched.update(chain_touched)
                result.created.extend(created)
            leaf_id = leaves[path]
            return self._attach(member, leaf_id, path[-1], layout, scope)

        self._run(list(present.values()), layout, scope, result, touched, rewire)
        return result

    def _resolve(
        self,
        assignments: Iterable[tuple[int, GroupTarget]],
        layout: DimensionLayout,
        scope: str,
        result: GroupingResult,
    ) -> dict[int, GroupTarget]:
        targets: dict[int, GroupTarget] = {}
        for member_id, target in assignments:
            if target.dimension is not layout.dimension:
                raise ValueError(
                    f"Target {target.path} is {target.dimension.value}, "
                    f"expected {layout.dimension.value}"
                )
            if len(target.path) != layout.depth:
                raise ValueError(
                    f"{layout.dimension.value} paths need {layout.depth} names, "
                    f"got {len(target.path)}"
                )
            previous = targets.pop(member_id, None)
            if previous is not None and previous != target:
                result.conflicts.append(
                    Conflict(
                        member_id=member_id,
                        dimension=layout.dimension,
                        discarded=previous.path,
                        kept=target.path,
                    )
                )
                logger.warning(
                    "Member %d listed twice for %s; keeping %s over %s",
                    member_id,
                    layout.dimension.value,
                    "/".join(target.path),
                    "/".join(previous.path),
                )
                self._sink.emit(
                    EventBuilder.tag_conflict(
                        scope, member_id, layout.dimension.value, target.path, previous.path
                    )
                )
            targets[member_id] = target
        return targets

    def _canonicalize(
        self,
        targets: dict[int, GroupTarget],
        layout: DimensionLayout,
        scope: str,
        result: GroupingResult,
    ) -> None:
        """Give every container name of the batch a single parent.

        A container is identified by its name, so two paths that put the same
        name under different parents cannot both hold. Paths are considered in
        descending order and the first parent seen for a name wins, making the
        outcome independent of the order of the batch.
        """
        if layout.depth < 2:
            return
        parent_of: dict[tuple[int, str], str] = {}
        canonical: dict[tuple[str, ...], tuple[str, ...]] = {}
        for path in sorted({t.path for t in targets.values()}, reverse=True):
            names = [path[-1]]
            for depth in range(len(path) - 1, 0, -1):
                names.insert(0, parent_of.setdefault((depth, names[0]), path[depth - 1]))
            canonical[path] = tuple(names)

        for member_id, target in targets.items():
            kept = canonical[target.path]
            if kept == target.path:
                continue
            targets[member_id] = GroupTarget(dimension=layout.dimension, path=kept)
            result.conflicts.append(
                Conflict(
                    member_id=member_id,
                    dimension=layout.dimension,
                    discarded=target.path,
                    kept=kept,
                )
            )
            logger.warning(
                "Member %d: %s path %s clashes with %s in the same batch; using the latter",
                member_id,
                layout.dimension.value,
                "/".join(target.path),
                "/".join(kept),
            )
            self._sink.emit(
                EventBuilder.tag_conflict(
                    scope, member_id, layout.dimension.value, kept, target.path
                )
            )

    def _member(self, member_id: int, scope: str) -> Optional[NodeRef]:
        node = self._store.get_node(member_id)
        if node is None or not node.has_label(self._config.object_label):
            return None
        if scope not in node.labels:
            return None
        return node

    def _attach(
        self,
        member: NodeRef,
        leaf_id: int,
        leaf_name: str,
        layout: DimensionLayout,
        scope: str,
    ) -> tuple[bool, set[int]]:
        wanted_value = layout.member_value(leaf_name)
        with self._store.transaction():
            current = self._containers.memberships(member.id, layout)
            kept = [e for e in current if e.source == leaf_id]
            stale = [e for e in current if e.source != leaf_id] + kept[1:]
            in_sync = member.properties.get(layout.member_property) == wanted_value
            if len(kept) == 1 and not stale and in_sync:
                return False, {leaf_id}

            for edge in stale:
                self._store.delete_edge(edge.id)
            if not kept:
                self._store.create_edge(leaf_id, member.id, layout.member_edge)
            if not in_sync:
                self._store.set_properties(member.id, {layout.member_property: wanted_value})

        previous = sorted({e.source for e in stale if e.source != leaf_id})
        if kept and not previous:
            # Only the property or a duplicate edge was repaired.
            return False, {leaf_id}
        logger.debug(
            "Member %d -> %s container %d (was %s)",
            member.id,
            layout.dimension.value,
            leaf_id,
            previous,
        )
        self._sink.emit(
            EventBuilder.member_rewired(
                scope, member.id, layout.dimension.value, leaf_id, previous
            )
        )
        return True, {leaf_id, *previous}

    def _run(
        self,
        members: Sequence[NodeRef],
        layout: DimensionLayout,
        scope: str,
        result: GroupingResult,
        touched: set[int],
        action: _MemberAction,
    ) -> None:
        """Apply *action* to each member, then recount, prune and refresh."""
        done = 0
        try:
            for member in members:
                changed, member_touched = action(member)
                touched.update(member_touched)
                (result.rewired if changed else result.unchanged).append(member.id)
                done += 1
        except StoreError as exc:
            result.pending = [m.id for m in members[done:]]
            logger.error(
                "Grouping %s in '%s' interrupted: %d done, %d pending: %s",
                layout.dimension.value,
                scope,
                done,
                len(result.pending),
                exc.message,
            )
            try:
                result.containers_touched, result.pruned = self._containers.settle(
                    scope, layout, touched
                )
            except StoreError as settle_exc:
                logger.warning("Recount after interruption failed: %s", settle_exc.message)
            self._sink.emit(
                EventBuilder.batch_interrupted(
                    scope,
                    layout.dimension.value,
                    len(result.rewired),
                    len(result.pending),
                    exc.message,
                )
            )
            raise BatchInterruptedError(result, exc) from exc

        result.containers_touched, result.pruned = self._containers.settle(
            scope, layout, touched
        )
        if self._config.refresh_references:
            refresh_references(self._store, self._containers, self._config, layout, scope, self._sink)
        logger.info(
            "Grouped %s in '%s': %d re-wired, %d unchanged, %d created, %d pruned",
            layout.dimension.value,
            scope,
            len(result.rewired),
            len(result.unchanged),
            len(result.created),
            len(result.pruned),
        )

    # ------------------------------------------------------------------
    # Tag-driven and manual grouping
    # ------------------------------------------------------------------

    def group_from_tags(
        self,
        scope: str,
        dimensions: Optional[Iterable[Dimension]] = None,
    ) -> dict[Dimension, GroupingResult]:
        """Group every member of *scope* according to its own tags.

        Members are scanned in id order. Tags are parsed with
        :meth:`TagParser.parse_tags`; malformed tags are skipped and reported,
        conflicting tags are resolved lexicographically and reported.

        When ``config.clean_tags`` is set the consumed prefixed tags are
        removed from the members once every dimension has been grouped.
        """
        wanted = list(dimensions) if dimensions is not None else list(Dimension)
        batches: dict[Dimension, list[tuple[int, GroupTarget]]] = {d: [] for d in wanted}
        conflicts: dict[Dimension, list[Conflict]] = {d: [] for d in wanted}
        malformed: dict[Dimension, list[str]] = {d: [] for d in wanted}

        members = sorted(
            self._store.find_nodes([self._config.object_label, scope]), key=lambda n: n.id
        )
        for member in members:
            tags = read_or_default(member, self._config.tags_property, [])
            outcome = self._parser.parse_tags(tags)
            for error in outcome.malformed:
                dimension = self._parser.dimension_of(error.tag)
                if dimension in malformed:
                    malformed[dimension].append(error.tag)
                    self._sink.emit(
                        EventBuilder.tag_malformed(scope, member.id, error.tag, error.reason)
                    )
            for dimension, discarded, kept in outcome.conflicts:
                if dimension not in conflicts:
                    continue
                conflicts[dimension].append(
                    Conflict(
                        member_id=member.id,
                        dimension=dimension,
                        discarded=discarded.path,
                        kept=kept.path,
                        tags=sorted(t for t in tags if self._parser.dimension_of(t) is dimension),
                    )
                )
                self._sink.emit(
                    EventBuilder.tag_conflict(
                        scope, member.id, dimension.value, kept.path, discarded.path
                    )
                )
            for dimension, target in outcome.targets.items():
                if dimension in batches:
                    batches[dimension].append((member.id, target))

        results: dict[Dimension, GroupingResult] = {}
        for dimension in wanted:
            result = self.group(batches[dimension], dimension, scope)
            result.conflicts.extend(conflicts[dimension])
            result.malformed_tags.extend(malformed[dimension])
            results[dimension] = result

        if self._config.clean_tags:
            self.clean_tags(scope, wanted)
        return results

    def clean_tags(self, scope: str, dimensions: Optional[Iterable[Dimension]] = None) -> int:
        """Remove grouping tags of *dimensions* from every member of *scope*.

        Returns:
            The number of members whose tag list changed.
        """
        wanted = set(dimensions) if dimensions is not None else set(Dimension)
        cleaned = 0
        for member in self._store.find_nodes([self._config.object_label, scope]):
            tags = read_or_default(member, self._config.tags_property, [])
            kept = [t for t in tags if self._parser.dimension_of(t) not in wanted]
            if len(kept) != len(tags):
                self._store.set_properties(member.id, {self._config.tags_property: kept})
                cleaned += 1
        if cleaned:
            logger.info("Removed grouping tags from %d member(s) in '%s'", cleaned, scope)
        return cleaned

    def group_members(
        self,
        scope: str,
        dimension: Dimension,
        path: Sequence[str],
        member_ids: Iterable[int],
    ) -> GroupingResult:
        """Put every member of *member_ids* under one explicit *path*."""
        target = GroupTarget(dimension=dimension, path=tuple(path))
        return self.group(((m, target) for m in member_ids), dimension, scope)

    # ------------------------------------------------------------------
    # Ungroup
    # ------------------------------------------------------------------

    def ungroup(
        self, member_ids: Iterable[int], dimension: Dimension, scope: str
    ) -> GroupingResult:
        """Detach members from their container of *dimension*.

        Members without a container are reported ``unchanged``. Emptied
        containers are pruned. Same interruption contract as :meth:`group`.
        """
        layout = self._containers.layout(dimension)
        result = GroupingResult(dimension=dimension, scope=scope)
        present: list[NodeRef] = []
        for member_id in dict.fromkeys(member_ids):
            member = self._member(member_id, scope)
            if member is None:
                result.missing.append(member_id)
            else:
                present.append(member)

        def detach(member: NodeRef) -> tuple[bool, set[int]]:
            with self._store.transaction():
                current = self._containers.memberships(member.id, layout)
                for edge in current:
                    self._store.delete_edge(edge.id)
                if layout.member_property in member.properties:
                    self._store.remove_property(member.id, layout.member_property)
            previous = sorted({e.source for e in current})
            if previous:
                self._sink.emit(
                    EventBuilder.member_detached(
                        scope, member.id, layout.dimension.value, previous
                    )
                )
            return bool(previous), set(previous)

        self._run(present, layout, scope, result, set(), detach)
        return result

    # ------------------------------------------------------------------
    # Container maintenance
    # ------------------------------------------------------------------

    def delete_container(
        self,
        scope: str,
        dimension: Dimension,
        container_id: int,
        depth: Optional[int] = None,
    ) -> int:
        """Delete a container together with every container below it.

        Members held by the deleted leaves lose their membership and the
        member property of *dimension*; the members themselves stay. The
        former parent is recounted, and pruned when this leaves it empty.

        Args:
            depth: When given, *container_id* must sit at this 0-based depth.

        Returns:
            The number of members detached.

        Raises:
            NotFoundError: If *container_id* is not a container of
                *dimension* in *scope* (at *depth*, when given).
        """
        layout = self._containers.layout(dimension)
        node = self._store.get_node(container_id)
        found = None if node is None else self._containers.depth_in(node, layout)
        if node is None or found is None or scope not in node.labels:
            raise NotFoundError(f"{dimension.value} container", container_id)
        if depth is not None and found != depth:
            raise NotFoundError(layout.depth_labels[depth][0], container_id)

        subtree: list[tuple[NodeRef, int]] = [(node, found)]
        for current, current_depth in subtree:
            subtree.extend(
                (child, current_depth + 1)
                for child in self._containers.children(current.id, layout, current_depth)
            )
        held: list[int] = []
        for current, current_depth in subtree:
            if current_depth == layout.depth - 1:
                held.extend(self._containers.members_of(current.id, layout))
        members = list(dict.fromkeys(held))
        parents = {e.source for e in self._containers.parent_edges(node.id, layout, found)}

        with self._store.transaction():
            for member_id in members:
                member = self._store.get_node(member_id)
                if member is not None and layout.member_property in member.properties:
                    self._store.remove_property(member_id, layout.member_property)
            for current, _ in reversed(subtree):
                self._store.delete_node(current.id)

        self._containers.settle(scope, layout, parents)
        if self._config.refresh_references:
            refresh_references(self._store, self._containers, self._config, layout, scope, self._sink)
        label = self._containers.info(node, layout).label
        name = read_or_default(node, "Name", "")
        logger.info(
            "Deleted %s container '%s' in '%s': %d container(s), %d member(s) detached",
            label,
            name,
            scope,
            len(subtree),
            len(members),
        )
        self._sink.emit(EventBuilder.container_deleted(scope, node.id, label, name, len(members)))
        return len(members)

    def delete_module(self, scope: str, module_id: int) -> int:
        """Delete a module and detach its members."""
        return self.delete_container(scope, Dimension.MODULE, module_id)

    def delete_architecture(self, scope: str, architecture_id: int) -> int:
        """Delete an architecture view, its subsets and their memberships."""
        return self.delete_container(scope, Dimension.ARCHITECTURE, architecture_id, depth=0)

    def delete_subset(self, scope: str, subset_id: int) -> int:
        """Delete one subset of an architecture view and detach its members."""
        return self.delete_container(scope, Dimension.ARCHITECTURE, subset_id, depth=1)

    def rename_level(self, scope: str, old_name: str, new_name: str) -> bool:
        """Rename a leaf level and the ``Level`` property of its members.

        Returns:
            ``False`` when *scope* has no leaf level named *old_name*.

        Raises:
            ValueError: If *new_name* is empty or already names another
                leaf level of *scope*.
        """
        if not new_name.strip():
            raise ValueError("level name must not be empty")
        layout = self._containers.layout(Dimension.LEVEL)
        leaf_depth = layout.depth - 1
        node = self._containers.find(scope, layout, leaf_depth, old_name)
        if node is None:
            logger.debug("No level named '%s' in '%s'", old_name, scope)
            return False
        if new_name == old_name:
            return True
        if self._containers.find(scope, layout, leaf_depth, new_name) is not None:
            raise ValueError(f"Level '{new_name}' already exists in '{scope}'")

        path = self._containers.path_of(node.id, layout)[:-1] + (new_name,)
        with self._store.transaction():
            self._store.set_properties(
                node.id,
                {"Name": new_name, "FullName": self._config.full_name_separator.join(path)},
            )
            for member_id in self._containers.members_of(node.id, layout):
                self._store.set_properties(
                    member_id, {layout.member_property: layout.member_value(new_name)}
                )
        logger.info("Renamed level '%s' to '%s' in '%s'", old_name, new_name, scope)
        self._sink.emit(EventBuilder.level_renamed(scope, node.id, old_name, new_name))
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_assignment(
        self, member_id: int, dimension: Dimension
    ) -> Optional[tuple[str, ...]]:
        """Return the root-to-leaf path of the member's container, if any."""
        layout = self._containers.layout(dimension)
        edges = self._containers.memberships(member_id, layout)
        if not edges:
            return None
        return self._containers.path_of(min(e.source for e in edges), layout)

    def discover_scopes(self) -> list[str]:
        """Return the scope labels of members carrying at least one grouping tag."""
        scopes: set[str] = set()
        for member in self._store.find_by_label(self._config.object_label):
            tags = read_or_default(member, self._config.tags_property, [])
            if any(self._parser.dimension_of(t) is not None for t in tags):
                scopes.update(member.labels - {self._config.object_label})
        return sorted(scopes)

    def refresh_references(self, dimension: Dimension, scope: str) -> ReferenceRefresh:
        """Recompute ``References`` between the leaf containers of *dimension*."""
        return refresh_references(
            self._store,
            self._containers,
            self._config,
            self._containers.layout(dimension),
            scope,
            self._sink,
        )
