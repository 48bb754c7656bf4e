"""Grouping event type definitions and factory class.

This module is the canonical source for all GroupingEvent types. It has no
runtime dependencies beyond the standard library.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Event type alias
# ---------------------------------------------------------------------------

EventType = Literal[
    "container.created",
    "container.pruned",
    "container.deleted",
    "level.renamed",
    "count.updated",
    "member.rewired",
    "member.detached",
    "tag.malformed",
    "tag.conflict",
    "batch.interrupted",
    "references.refreshed",
    "visibility.changed",
    "aggregation.created",
    "aggregation.deleted",
    "save.created",
    "save.deleted",
    "rollback.completed",
]


# ---------------------------------------------------------------------------
# GroupingEvent: immutable, slotted
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class GroupingEvent:
    """An immutable record of one observable step of a grouping operation.

    ``scope`` is the application label the operation ran in; ``node_id`` is
    the container or member the event is about, ``None`` for batch-level
    events. ``sequence`` is 0 as built; a sink that needs ordering stamps
    its own monotonic counter with :func:`dataclasses.replace`.
    """

    type: EventType
    timestamp: datetime        # Always timezone-aware UTC
    scope: str
    node_id: int | None
    data: dict[str, Any]
    sequence: int = 0


# ---------------------------------------------------------------------------
# EventBuilder: centralised factory
# ---------------------------------------------------------------------------

class EventBuilder:
    """Factory methods that produce valid GroupingEvent instances.

    Call sites use these methods rather than constructing GroupingEvent
    directly. The builder holds no state.
    """

    @classmethod
    def _build(
        cls,
        event_type: EventType,
        scope: str,
        node_id: int | None,
        data: dict[str, Any],
    ) -> GroupingEvent:
        return GroupingEvent(
            type=event_type,
            timestamp=datetime.now(timezone.utc),
            scope=scope,
            node_id=node_id,
            data=data,
        )

    # ------------------------------------------------------------------
    # Containers and members
    # ------------------------------------------------------------------

    @classmethod
    def container_created(cls, scope: str, node_id: int, label: str, name: str) -> GroupingEvent:
        return cls._build("container.created", scope, node_id, {"label": label, "name": name})

    @classmethod
    def container_pruned(cls, scope: str, node_id: int, label: str, name: str) -> GroupingEvent:
        return cls._build("container.pruned", scope, node_id, {"label": label, "name": name})

    @classmethod
    def container_deleted(
        cls, scope: str, node_id: int, label: str, name: str, detached: int
    ) -> GroupingEvent:
        return cls._build(
            "container.deleted",
            scope,
            node_id,
            {"label": label, "name": name, "detached": detached},
        )

    @classmethod
    def level_renamed(cls, scope: str, node_id: int, old: str, new: str) -> GroupingEvent:
        return cls._build("level.renamed", scope, node_id, {"old": old, "new": new})

    @classmethod
    def count_updated(cls, scope: str, node_id: int, old: int, new: int) -> GroupingEvent:
        return cls._build("count.updated", scope, node_id, {"old": old, "new": new})

    @classmethod
    def member_rewired(
        cls,
        scope: str,
        member_id: int,
        dimension: str,
        container_id: int,
        previous: list[int],
    ) -> GroupingEvent:
        return cls._build(
            "member.rewired",
            scope,
            member_id,
            {"dimension": dimension, "container_id": container_id, "previous": previous},
        )

    @classmethod
    def member_detached(
        cls, scope: str, member_id: int, dimension: str, previous: list[int]
    ) -> GroupingEvent:
        return cls._build(
            "member.detached", scope, member_id, {"dimension": dimension, "previous": previous}
        )

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    @classmethod
    def tag_malformed(cls, scope: str, member_id: int, tag: str, reason: str) -> GroupingEvent:
        return cls._build("tag.malformed", scope, member_id, {"tag": tag, "reason": reason})

    @classmethod
    def tag_conflict(
        cls,
        scope: str,
        member_id: int,
        dimension: str,
        kept: tuple[str, ...],
        discarded: tuple[str, ...],
    ) -> GroupingEvent:
        return cls._build(
            "tag.conflict",
            scope,
            member_id,
            {"dimension": dimension, "kept": list(kept), "discarded": list(discarded)},
        )

    # ------------------------------------------------------------------
    # Batch-level
    # ------------------------------------------------------------------

    @classmethod
    def batch_interrupted(
        cls, scope: str, dimension: str, rewired: int, pending: int, error: str
    ) -> GroupingEvent:
        return cls._build(
            "batch.interrupted",
            scope,
            None,
            {"dimension": dimension, "rewired": rewired, "pending": pending, "error": error},
        )

    @classmethod
    def references_refreshed(
        cls, scope: str, label: str, created: int, removed: int
    ) -> GroupingEvent:
        return cls._build(
            "references.refreshed",
            scope,
            None,
            {"label": label, "created": created, "removed": removed},
        )

    @classmethod
    def visibility_changed(cls, scope: str, node_id: int, state: str, changed: list[int]) -> GroupingEvent:
        return cls._build("visibility.changed", scope, node_id, {"state": state, "changed": changed})

    # ------------------------------------------------------------------
    # Aggregations and saves
    # ------------------------------------------------------------------

    @classmethod
    def aggregation_created(cls, scope: str, node_id: int, name: str) -> GroupingEvent:
        return cls._build("aggregation.created", scope, node_id, {"name": name})

    @classmethod
    def aggregation_deleted(cls, scope: str, name: str, deleted: int) -> GroupingEvent:
        return cls._build("aggregation.deleted", scope, None, {"name": name, "deleted": deleted})

    @classmethod
    def save_created(cls, scope: str, node_id: int, name: str, members: int) -> GroupingEvent:
        return cls._build("save.created", scope, node_id, {"name": name, "members": members})

    @classmethod
    def save_deleted(cls, scope: str, name: str) -> GroupingEvent:
        return cls._build("save.deleted", scope, None, {"name": name})

    @classmethod
    def rollback_completed(
        cls, scope: str, name: str, divergences: int, restored: int
    ) -> GroupingEvent:
        return cls._build(
            "rollback.completed",
            scope,
            None,
            {"name": name, "divergences": divergences, "restored": restored},
        )
