"""Named saves of member assignments, divergence report and rollback.

A save is stored in the graph next to the model it describes::

    (GroupingSave {Name, Description, Timestamp, MemberCount, Dimensions})
        -[BACKED_BY]-> (Object)                     every captured member
        -[HAS_ENTRY]-> (GroupingSaveEntry {Dimension, Path, Taxonomy})
                           -[BACKED_BY]-> (Object)  members on that path

A captured member with no entry in a dimension had no container there when
the save was taken; rolling back detaches it.

Rollback re-applies saved paths through :meth:`GroupingEngine.group` and
:meth:`GroupingEngine.ungroup`, so it inherits their idempotence and their
partial-failure contract. Saves are never touched by grouping, and deleting
a save never touches the live graph.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from archgroup.config import GroupingConfig
from archgroup.events import EventBuilder, EventSink, NullSink
from archgroup.exceptions import DuplicateSaveNameError, SaveNotFoundError
from archgroup.grouping.engine import GroupingEngine
from archgroup.models.enums import Dimension, Direction
from archgroup.models.results import Divergence, GroupTarget, RollbackResult, SaveInfo
from archgroup.store.accessors import read_or_default
from archgroup.store.base import GraphStore, NodeRef

logger = logging.getLogger(__name__)


class BackupManager:
    """Takes, compares, restores and deletes named saves of one scope."""

    def __init__(
        self,
        store: GraphStore,
        engine: GroupingEngine,
        config: GroupingConfig | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._config = config or engine.config
        self._sink = sink or NullSink()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_save(self, scope: str, save_name: str) -> Optional[NodeRef]:
        nodes = sorted(
            self._store.find_nodes([self._config.save_label, scope], {"Name": save_name}),
            key=lambda n: n.id,
        )
        return nodes[0] if nodes else None

    def _require_save(self, scope: str, save_name: str) -> NodeRef:
        save = self._find_save(scope, save_name)
        if save is None:
            raise SaveNotFoundError(scope, save_name)
        return save

    def _backed(self, node_id: int) -> list[int]:
        return sorted(
            e.target
            for e in self._store.iter_edges(node_id, Direction.OUTGOING, self._config.backed_by_edge)
        )

    def _entries(self, save_id: int) -> list[NodeRef]:
        entries = []
        for edge in self._store.iter_edges(
            save_id, Direction.OUTGOING, self._config.save_entry_edge
        ):
            node = self._store.get_node(edge.target)
            if node is not None and node.has_label(self._config.save_entry_label):
                entries.append(node)
        return entries

    def _saved_dimensions(self, save: NodeRef) -> list[Dimension]:
        stored = read_or_default(save, "Dimensions", [])
        known = {d.value: d for d in Dimension}
        dimensions = [known[value] for value in stored if value in known]
        return dimensions or list(self._config.backup_dimensions)

    def _info(self, save: NodeRef, scope: str) -> SaveInfo:
        raw = read_or_default(save, "Timestamp", "")
        try:
            timestamp = datetime.fromisoformat(raw) if raw else None
        except ValueError:
            logger.debug("Unreadable timestamp %r on save %d", raw, save.id)
            timestamp = None
        return SaveInfo(
            id=save.id,
            scope=scope,
            name=read_or_default(save, "Name", ""),
            description=read_or_default(save, "Description", ""),
            timestamp=timestamp,
            member_count=read_or_default(save, "MemberCount", 0),
        )

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save_state(self, scope: str, save_name: str, description: str = "") -> int:
        """Record the current assignment of every member of *scope*.

        Returns:
            The number of members captured.

        Raises:
            DuplicateSaveNameError: If *scope* already has a save named
                *save_name*.
        """
        if self._find_save(scope, save_name) is not None:
            raise DuplicateSaveNameError(scope, save_name)

        dimensions = list(self._config.backup_dimensions)
        members = sorted(
            self._store.find_nodes([self._config.object_label, scope]), key=lambda n: n.id
        )
        paths: dict[tuple[Dimension, tuple[str, ...]], list[int]] = {}
        for dimension in dimensions:
            for member in members:
                path = self._engine.current_assignment(member.id, dimension)
                if path is not None:
                    paths.setdefault((dimension, path), []).append(member.id)

        separator = self._config.full_name_separator
        with self._store.transaction():
            save = self._store.create_node(
                [self._config.save_label, scope],
                {
                    "Name": save_name,
                    "Description": description,
                    "Timestamp": datetime.now(timezone.utc).isoformat(),
                    "MemberCount": len(members),
                    "Dimensions": [d.value for d in dimensions],
                },
            )
            for member in members:
                self._store.create_edge(save.id, member.id, self._config.backed_by_edge)
            for (dimension, path), member_ids in sorted(
                paths.items(), key=lambda item: (item[0][0].value, item[0][1])
            ):
                entry = self._store.create_node(
                    [self._config.save_entry_label, scope],
                    {
                        "Dimension": dimension.value,
                        "Path": list(path),
                        "Taxonomy": separator.join(path),
                    },
                )
                self._store.create_edge(save.id, entry.id, self._config.save_entry_edge)
                for member_id in member_ids:
                    self._store.create_edge(entry.id, member_id, self._config.backed_by_edge)

        logger.info(
            "Saved '%s' in '%s': %d member(s), %d path(s)",
            save_name,
            scope,
            len(members),
            len(paths),
        )
        self._sink.emit(EventBuilder.save_created(scope, save.id, save_name, len(members)))
        return len(members)

    # ------------------------------------------------------------------
    # Compare and restore
    # ------------------------------------------------------------------

    def _saved_paths(self, save: NodeRef) -> dict[Dimension, dict[int, tuple[str, ...]]]:
        saved: dict[Dimension, dict[int, tuple[str, ...]]] = {}
        for entry in self._entries(save.id):
            try:
                dimension = Dimension(read_or_default(entry, "Dimension", ""))
            except ValueError:
                logger.warning("Skipping save entry %d with unknown dimension", entry.id)
                continue
            path = tuple(read_or_default(entry, "Path", []))
            if not path:
                continue
            for member_id in self._backed(entry.id):
                saved.setdefault(dimension, {})[member_id] = path
        return saved

    def get_differences(self, scope: str, save_name: str) -> list[Divergence]:
        """Return the members whose live assignment differs from the save.

        Members created after the save are not reported; members deleted
        since are gone from the save too.

        Raises:
            SaveNotFoundError: If the save does not exist.
        """
        save = self._require_save(scope, save_name)
        saved = self._saved_paths(save)
        captured = self._backed(save.id)

        divergences: list[Divergence] = []
        for dimension in self._saved_dimensions(save):
            saved_paths = saved.get(dimension, {})
            for member_id in captured:
                before = saved_paths.get(member_id)
                now = self._engine.current_assignment(member_id, dimension)
                if before != now:
                    divergences.append(
                        Divergence(
                            member_id=member_id, dimension=dimension, saved=before, current=now
                        )
                    )
        return divergences

    def rollback_to_save(self, scope: str, save_name: str) -> RollbackResult:
        """Restore every divergent member to its saved assignment.

        Raises:
            SaveNotFoundError: If the save does not exist.
            BatchInterruptedError: If the store fails mid-way; calling again
                finishes the rollback.
        """
        divergences = self.get_differences(scope, save_name)
        result = RollbackResult(scope=scope, save_name=save_name, divergences=divergences)

        for dimension in Dimension:
            regroup = [
                (d.member_id, GroupTarget(dimension=dimension, path=d.saved))
                for d in divergences
                if d.dimension is dimension and d.saved is not None
            ]
            detach = [
                d.member_id for d in divergences if d.dimension is dimension and d.saved is None
            ]
            if regroup:
                result.results.append(self._engine.group(regroup, dimension, scope))
            if detach:
                result.results.append(self._engine.ungroup(detach, dimension, scope))

        logger.info(
            "Rolled back '%s' to '%s': %d divergence(s), %d restored",
            scope,
            save_name,
            len(divergences),
            result.restored,
        )
        self._sink.emit(
            EventBuilder.rollback_completed(scope, save_name, len(divergences), result.restored)
        )
        return result

    # ------------------------------------------------------------------
    # Listing and deletion
    # ------------------------------------------------------------------

    def list_saves(self, scope: str) -> list[SaveInfo]:
        """Return the saves of *scope*, oldest first."""
        infos = [self._info(n, scope) for n in self._store.find_nodes([self._config.save_label, scope])]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(infos, key=lambda s: (s.timestamp or epoch, s.id))

    def delete_save(self, scope: str, save_name: str) -> None:
        """Delete a save and its entries.

        Raises:
            SaveNotFoundError: If the save does not exist.
        """
        save = self._require_save(scope, save_name)
        with self._store.transaction():
            for entry in self._entries(save.id):
                self._store.delete_node(entry.id)
            self._store.delete_node(save.id)
        logger.info("Deleted save '%s' in '%s'", save_name, scope)
        self._sink.emit(EventBuilder.save_deleted(scope, save_name))

    def delete_all_saves(self, scope: str) -> int:
        """Delete every save of *scope* and return how many were deleted."""
        names = [read_or_default(n, "Name", "") for n in self._store.find_nodes([self._config.save_label, scope])]
        for name in names:
            self.delete_save(scope, name)
        return len(names)
