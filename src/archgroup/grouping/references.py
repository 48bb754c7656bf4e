"""``References`` edges between the leaf containers of one dimension.

Leaf container ``c1`` references ``c2`` when some member of ``c1`` has an
outgoing edge to a member of ``c2``. The refresh computes the wanted edge set
from the live graph and applies only the difference, so running it twice in a
row writes nothing the second time.
"""

from __future__ import annotations

import logging

from archgroup.config import GroupingConfig
from archgroup.events import EventBuilder, EventSink, NullSink
from archgroup.grouping.containers import ContainerRepository, DimensionLayout
from archgroup.models.enums import Direction
from archgroup.models.results import ReferenceRefresh
from archgroup.store.base import GraphStore

logger = logging.getLogger(__name__)


def refresh_references(
    store: GraphStore,
    containers: ContainerRepository,
    config: GroupingConfig,
    layout: DimensionLayout,
    scope: str,
    sink: EventSink | None = None,
) -> ReferenceRefresh:
    """Bring the ``References`` edges of *layout*'s leaf containers up to date.

    Edges that touch a container outside the dimension are left alone.

    Returns:
        The created and removed ``(source, target)`` pairs.
    """
    sink = sink or NullSink()
    leaves = containers.all_containers(scope, layout, layout.depth - 1)
    leaf_ids = {leaf.id for leaf in leaves}

    owner: dict[int, set[int]] = {}
    for leaf in leaves:
        for member_id in containers.members_of(leaf.id, layout):
            owner.setdefault(member_id, set()).add(leaf.id)

    wanted: set[tuple[int, int]] = set()
    for member_id, sources in owner.items():
        for edge in store.iter_edges(member_id, Direction.OUTGOING):
            for target in owner.get(edge.target, ()):
                for source in sources:
                    if source != target:
                        wanted.add((source, target))

    existing: dict[tuple[int, int], list[int]] = {}
    for leaf_id in sorted(leaf_ids):
        for edge in store.iter_edges(leaf_id, Direction.OUTGOING, config.references_edge):
            if edge.target in leaf_ids:
                existing.setdefault((edge.source, edge.target), []).append(edge.id)

    result = ReferenceRefresh()
    with store.transaction():
        for pair, edge_ids in sorted(existing.items()):
            # Keep a single edge per wanted pair.
            stale = edge_ids if pair not in wanted else edge_ids[1:]
            for edge_id in stale:
                store.delete_edge(edge_id)
            if pair not in wanted:
                result.removed.append(pair)
        for pair in sorted(wanted - existing.keys()):
            store.create_edge(pair[0], pair[1], config.references_edge)
            result.created.append(pair)

    if result.created or result.removed:
        logger.info(
            "References for %s in '%s': %d created, %d removed",
            layout.dimension.value,
            scope,
            len(result.created),
            len(result.removed),
        )
        sink.emit(
            EventBuilder.references_refreshed(
                scope, layout.leaf_labels[0], len(result.created), len(result.removed)
            )
        )
    return result
