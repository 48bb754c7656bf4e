"""Visibility of architecture containers, their subsets and modules.

Visibility is a label swap on the node itself (``ArchiModel`` <->
``HiddenArchiModel``, ``Subset`` <-> ``HiddenSubset``, ``Module`` <->
``HiddenModule``), so edges and properties survive a hide/display cycle
untouched.

Transitions::

    hide_architecture(a)                  a HIDDEN, visible subsets HIDDEN + HiddenByParent
    display_architecture_with_children(a) a VISIBLE, HiddenByParent subsets VISIBLE
    display_architecture(a)               a VISIBLE only
    hide_subset(s)                        s HIDDEN (independent)
    display_subset(s)                     s VISIBLE, parent architecture VISIBLE
    hide_module(m) / display_module(m)    m HIDDEN / VISIBLE

A subset hidden on its own keeps no ``HiddenByParent`` flag, so displaying
its architecture with children leaves it hidden.
"""

from __future__ import annotations

import logging

from archgroup.config import GroupingConfig
from archgroup.events import EventBuilder, EventSink, NullSink
from archgroup.exceptions import NotFoundError
from archgroup.grouping.containers import HIDDEN_BY_PARENT
from archgroup.models.enums import Direction, Visibility
from archgroup.models.results import VisibilityChange
from archgroup.store.accessors import read_or_default
from archgroup.store.base import GraphStore, NodeRef

logger = logging.getLogger(__name__)


class VisibilityStateMachine:
    """Hide and display architecture views, subsets and modules."""

    def __init__(
        self,
        store: GraphStore,
        config: GroupingConfig | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self._store = store
        self._config = config or GroupingConfig()
        self._sink = sink or NullSink()
        self._architecture = (
            self._config.architecture_label,
            self._config.hidden_architecture_label,
        )
        self._subset = (self._config.subset_label, self._config.hidden_subset_label)
        self._module = (self._config.module_label, self._config.hidden_module_label)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, node_id: int, labels: tuple[str, str], kind: str) -> NodeRef:
        node = self._store.get_node(node_id)
        if node is None or not node.has_label(*labels):
            raise NotFoundError(kind, node_id)
        return node

    def _scope_of(self, node: NodeRef) -> str:
        known = {*self._architecture, *self._subset, *self._module}
        others = sorted(node.labels - known)
        return others[0] if others else ""

    @staticmethod
    def _state(node: NodeRef, labels: tuple[str, str]) -> Visibility:
        return Visibility.HIDDEN if labels[1] in node.labels else Visibility.VISIBLE

    def _swap(self, node: NodeRef, labels: tuple[str, str], target: Visibility) -> bool:
        if self._state(node, labels) is target:
            return False
        visible, hidden = labels
        if target is Visibility.HIDDEN:
            self._store.remove_labels(node.id, [visible])
            self._store.add_labels(node.id, [hidden])
        else:
            self._store.remove_labels(node.id, [hidden])
            self._store.add_labels(node.id, [visible])
        return True

    def _subsets(self, architecture_id: int) -> list[NodeRef]:
        subsets = []
        for edge in self._store.iter_edges(
            architecture_id, Direction.OUTGOING, self._config.contains_edge
        ):
            node = self._store.get_node(edge.target)
            if node is not None and node.has_label(*self._subset):
                subsets.append(node)
        return sorted(subsets, key=lambda n: n.id)

    def _parents(self, subset_id: int) -> list[NodeRef]:
        parents = []
        for edge in self._store.iter_edges(subset_id, Direction.INCOMING, self._config.contains_edge):
            node = self._store.get_node(edge.source)
            if node is not None and node.has_label(*self._architecture):
                parents.append(node)
        return parents

    def _finish(self, node: NodeRef, state: Visibility, changed: list[int]) -> VisibilityChange:
        if changed:
            logger.info(
                "Visibility of %s '%s' -> %s (%d node(s) changed)",
                sorted(node.labels)[0],
                read_or_default(node, "Name", ""),
                state.value,
                len(changed),
            )
            self._sink.emit(
                EventBuilder.visibility_changed(self._scope_of(node), node.id, state.value, changed)
            )
        return VisibilityChange(node_id=node.id, changed=changed, state=state)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _kinds(self) -> list[tuple[str, tuple[str, str]]]:
        return [
            ("architecture", self._architecture),
            ("subset", self._subset),
            ("module", self._module),
        ]

    def kind(self, node_id: int) -> str:
        """Return ``"architecture"``, ``"subset"`` or ``"module"``.

        Raises:
            NotFoundError: If *node_id* is none of them.
        """
        node = self._store.get_node(node_id)
        if node is not None:
            for kind, labels in self._kinds():
                if node.has_label(*labels):
                    return kind
        raise NotFoundError("architecture, subset or module", node_id)

    def visibility(self, node_id: int) -> Visibility:
        """Return the state of an architecture, subset or module.

        Raises:
            NotFoundError: If *node_id* is none of them.
        """
        kind = self.kind(node_id)
        labels = dict(self._kinds())[kind]
        return self._state(self._require(node_id, labels, kind), labels)

    def hide(self, node_id: int) -> VisibilityChange:
        """Hide whatever kind of node *node_id* is."""
        kind = self.kind(node_id)
        if kind == "architecture":
            return self.hide_architecture(node_id)
        if kind == "subset":
            return self.hide_subset(node_id)
        return self.hide_module(node_id)

    def display(self, node_id: int, cascade: bool = True) -> VisibilityChange:
        """Display whatever kind of node *node_id* is.

        With *cascade* an architecture brings back the subsets its hide
        cascaded to; subsets and modules ignore the flag.
        """
        kind = self.kind(node_id)
        if kind == "architecture":
            if cascade:
                return self.display_architecture_with_children(node_id)
            return self.display_architecture(node_id)
        if kind == "subset":
            return self.display_subset(node_id)
        return self.display_module(node_id)

    # ------------------------------------------------------------------
    # Architecture transitions
    # ------------------------------------------------------------------

    def hide_architecture(self, architecture_id: int) -> VisibilityChange:
        """Hide an architecture and cascade to its visible subsets."""
        node = self._require(architecture_id, self._architecture, "architecture")
        changed: list[int] = []
        with self._store.transaction():
            if self._swap(node, self._architecture, Visibility.HIDDEN):
                changed.append(node.id)
            for subset in self._subsets(node.id):
                if self._swap(subset, self._subset, Visibility.HIDDEN):
                    self._store.set_properties(subset.id, {HIDDEN_BY_PARENT: True})
                    changed.append(subset.id)
        return self._finish(node, Visibility.HIDDEN, changed)

    def display_architecture(self, architecture_id: int) -> VisibilityChange:
        """Display an architecture; its subsets keep their state."""
        node = self._require(architecture_id, self._architecture, "architecture")
        changed: list[int] = []
        with self._store.transaction():
            if self._swap(node, self._architecture, Visibility.VISIBLE):
                changed.append(node.id)
        return self._finish(node, Visibility.VISIBLE, changed)

    def display_architecture_with_children(self, architecture_id: int) -> VisibilityChange:
        """Display an architecture and the subsets its hide cascaded to."""
        node = self._require(architecture_id, self._architecture, "architecture")
        changed: list[int] = []
        with self._store.transaction():
            if self._swap(node, self._architecture, Visibility.VISIBLE):
                changed.append(node.id)
            for subset in self._subsets(node.id):
                if not read_or_default(subset, HIDDEN_BY_PARENT, False):
                    continue
                self._swap(subset, self._subset, Visibility.VISIBLE)
                self._store.remove_property(subset.id, HIDDEN_BY_PARENT)
                changed.append(subset.id)
        return self._finish(node, Visibility.VISIBLE, changed)

    # ------------------------------------------------------------------
    # Subset transitions
    # ------------------------------------------------------------------

    def hide_subset(self, subset_id: int) -> VisibilityChange:
        """Hide one subset on its own."""
        node = self._require(subset_id, self._subset, "subset")
        changed: list[int] = []
        with self._store.transaction():
            if self._swap(node, self._subset, Visibility.HIDDEN):
                changed.append(node.id)
            if HIDDEN_BY_PARENT in node.properties:
                self._store.remove_property(node.id, HIDDEN_BY_PARENT)
        return self._finish(node, Visibility.HIDDEN, changed)

    def display_subset(self, subset_id: int) -> VisibilityChange:
        """Display a subset and its parent architecture."""
        node = self._require(subset_id, self._subset, "subset")
        changed: list[int] = []
        with self._store.transaction():
            if self._swap(node, self._subset, Visibility.VISIBLE):
                changed.append(node.id)
            if HIDDEN_BY_PARENT in node.properties:
                self._store.remove_property(node.id, HIDDEN_BY_PARENT)
            for parent in self._parents(node.id):
                if self._swap(parent, self._architecture, Visibility.VISIBLE):
                    changed.append(parent.id)
        return self._finish(node, Visibility.VISIBLE, changed)

    # ------------------------------------------------------------------
    # Module transitions
    # ------------------------------------------------------------------

    def hide_module(self, module_id: int) -> VisibilityChange:
        """Hide a module; its members and counts stay as they are."""
        node = self._require(module_id, self._module, "module")
        changed: list[int] = []
        with self._store.transaction():
            if self._swap(node, self._module, Visibility.HIDDEN):
                changed.append(node.id)
        return self._finish(node, Visibility.HIDDEN, changed)

    def display_module(self, module_id: int) -> VisibilityChange:
        """Display a hidden module."""
        node = self._require(module_id, self._module, "module")
        changed: list[int] = []
        with self._store.transaction():
            if self._swap(node, self._module, Visibility.VISIBLE):
                changed.append(node.id)
        return self._finish(node, Visibility.VISIBLE, changed)
