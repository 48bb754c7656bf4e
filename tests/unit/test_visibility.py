"""Unit tests for archgroup.visibility.machine."""

from __future__ import annotations

import pytest

from archgroup.config import GroupingConfig
from archgroup.events import RecordingSink
from archgroup.exceptions import NotFoundError
from archgroup.grouping import GroupingEngine
from archgroup.models.enums import Dimension, Direction, Visibility
from archgroup.store.base import NodeRef
from archgroup.store.memory import InMemoryGraphStore
from archgroup.visibility import VisibilityStateMachine

SCOPE = "Shop"


def _node(store: InMemoryGraphStore, node_id: int) -> NodeRef:
    node = store.get_node(node_id)
    assert node is not None
    return node


def _one(store: InMemoryGraphStore, labels: tuple[str, ...], name: str) -> NodeRef:
    for label in labels:
        nodes = list(store.find_nodes([label, SCOPE], {"Name": name}))
        if nodes:
            return nodes[0]
    raise AssertionError(f"{name} not found")


class _Model:
    """One architecture view with two subsets, each holding one member.

    Both members also sit in one module.
    """

    def __init__(self) -> None:
        self.store = InMemoryGraphStore()
        self.sink = RecordingSink()
        self.engine = GroupingEngine(self.store, GroupingConfig())
        self.machine = VisibilityStateMachine(self.store, GroupingConfig(), self.sink)
        a = self.store.create_node(["Object", SCOPE], {"Name": "A"}).id
        b = self.store.create_node(["Object", SCOPE], {"Name": "B"}).id
        self.member_a = a
        self.engine.group_members(SCOPE, Dimension.ARCHITECTURE, ["Business", "Actors"], [a])
        self.engine.group_members(SCOPE, Dimension.ARCHITECTURE, ["Business", "Roles"], [b])
        self.view = _one(self.store, ("ArchiModel",), "Business").id
        self.actors = _one(self.store, ("Subset",), "Actors").id
        self.roles = _one(self.store, ("Subset",), "Roles").id
        self.engine.group_members(SCOPE, Dimension.MODULE, ["Billing"], [a, b])
        self.module = _one(self.store, ("Module",), "Billing").id


@pytest.fixture
def model() -> _Model:
    return _Model()


# ---------------------------------------------------------------------------
# Architecture transitions
# ---------------------------------------------------------------------------


class TestHideArchitecture:
    def test_initial_state_visible(self, model: _Model) -> None:
        assert model.machine.visibility(model.view) is Visibility.VISIBLE
        assert model.machine.visibility(model.actors) is Visibility.VISIBLE

    def test_hide_cascades_to_subsets(self, model: _Model) -> None:
        change = model.machine.hide_architecture(model.view)
        assert change.state is Visibility.HIDDEN
        assert sorted(change.changed) == sorted([model.view, model.actors, model.roles])
        view = _node(model.store, model.view)
        assert view.labels == frozenset({"HiddenArchiModel", SCOPE})
        for subset in (model.actors, model.roles):
            node = _node(model.store, subset)
            assert "HiddenSubset" in node.labels and "Subset" not in node.labels
            assert node.properties["HiddenByParent"] is True

    def test_edges_survive(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        out = list(model.store.iter_edges(model.view, Direction.OUTGOING, "Contains"))
        assert sorted(e.target for e in out) == sorted([model.actors, model.roles])
        assert [e.target for e in model.store.iter_edges(model.actors, Direction.OUTGOING)] == [model.member_a]

    def test_hide_twice_changes_nothing(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        writes = model.store.write_count
        change = model.machine.hide_architecture(model.view)
        assert change.changed == []
        assert model.store.write_count == writes


class TestDisplayArchitecture:
    def test_with_children_restores_cascaded_subsets(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        model.machine.display_architecture_with_children(model.view)
        for node_id in (model.view, model.actors, model.roles):
            assert model.machine.visibility(node_id) is Visibility.VISIBLE
        assert "HiddenByParent" not in _node(model.store, model.actors).properties

    def test_independently_hidden_subset_stays_hidden(self, model: _Model) -> None:
        model.machine.hide_subset(model.roles)
        model.machine.hide_architecture(model.view)
        model.machine.display_architecture_with_children(model.view)
        assert model.machine.visibility(model.actors) is Visibility.VISIBLE
        assert model.machine.visibility(model.roles) is Visibility.HIDDEN

    def test_display_only_leaves_subsets(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        change = model.machine.display_architecture(model.view)
        assert change.changed == [model.view]
        assert model.machine.visibility(model.actors) is Visibility.HIDDEN


# ---------------------------------------------------------------------------
# Subset transitions
# ---------------------------------------------------------------------------


class TestSubsets:
    def test_hide_subset_is_independent(self, model: _Model) -> None:
        model.machine.hide_subset(model.actors)
        assert model.machine.visibility(model.actors) is Visibility.HIDDEN
        assert model.machine.visibility(model.view) is Visibility.VISIBLE
        assert "HiddenByParent" not in _node(model.store, model.actors).properties

    def test_display_subset_shows_parent(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        change = model.machine.display_subset(model.actors)
        assert sorted(change.changed) == sorted([model.actors, model.view])
        assert model.machine.visibility(model.view) is Visibility.VISIBLE
        assert model.machine.visibility(model.roles) is Visibility.HIDDEN

    def test_subset_created_under_hidden_architecture(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        c = model.store.create_node(["Object", SCOPE], {"Name": "C"}).id
        model.engine.group_members(SCOPE, Dimension.ARCHITECTURE, ["Business", "Places"], [c])

        places = _one(model.store, ("Subset", "HiddenSubset"), "Places")
        assert "HiddenSubset" in places.labels
        assert places.properties["HiddenByParent"] is True
        assert model.engine.current_assignment(c, Dimension.ARCHITECTURE) == ("Business", "Places")

        model.machine.display_architecture_with_children(model.view)
        assert model.machine.visibility(places.id) is Visibility.VISIBLE

    def test_grouping_reuses_hidden_containers(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        nodes_before = model.store.node_count
        d = model.store.create_node(["Object", SCOPE], {"Name": "D"}).id
        model.engine.group_members(SCOPE, Dimension.ARCHITECTURE, ["Business", "Actors"], [d])
        assert model.store.node_count == nodes_before + 1
        assert _node(model.store, model.actors).properties["Count"] == 2


# ---------------------------------------------------------------------------
# Modules
# ---------------------------------------------------------------------------


class TestModules:
    def test_hide_and_display_module(self, model: _Model) -> None:
        change = model.machine.hide_module(model.module)
        assert change.changed == [model.module]
        assert _node(model.store, model.module).labels == frozenset({"HiddenModule", SCOPE})
        assert model.machine.visibility(model.module) is Visibility.HIDDEN
        assert model.engine.current_assignment(model.member_a, Dimension.MODULE) == ("Billing",)

        change = model.machine.display_module(model.module)
        assert change.state is Visibility.VISIBLE
        assert _node(model.store, model.module).labels == frozenset({"Module", SCOPE})

    def test_hidden_module_is_reused_by_grouping(self, model: _Model) -> None:
        model.machine.hide_module(model.module)
        c = model.store.create_node(["Object", SCOPE], {"Name": "C"}).id
        model.engine.group_members(SCOPE, Dimension.MODULE, ["Billing"], [c])
        assert list(model.store.find_nodes(["Module", SCOPE])) == []
        assert _node(model.store, model.module).properties["Count"] == 3

    def test_module_transitions_reject_other_kinds(self, model: _Model) -> None:
        with pytest.raises(NotFoundError):
            model.machine.hide_module(model.view)
        with pytest.raises(NotFoundError):
            model.machine.hide_architecture(model.module)


class TestDispatch:
    def test_kind(self, model: _Model) -> None:
        assert model.machine.kind(model.view) == "architecture"
        assert model.machine.kind(model.actors) == "subset"
        assert model.machine.kind(model.module) == "module"
        with pytest.raises(NotFoundError):
            model.machine.kind(model.member_a)

    def test_hide_and_display_follow_the_kind(self, model: _Model) -> None:
        assert sorted(model.machine.hide(model.view).changed) == sorted(
            [model.view, model.actors, model.roles]
        )
        assert model.machine.display(model.view, cascade=False).changed == [model.view]
        assert model.machine.visibility(model.actors) is Visibility.HIDDEN
        model.machine.display(model.actors)
        assert model.machine.visibility(model.actors) is Visibility.VISIBLE
        assert model.machine.hide(model.module).changed == [model.module]
        assert model.machine.display(model.module).changed == [model.module]


# ---------------------------------------------------------------------------
# Errors and events
# ---------------------------------------------------------------------------


class TestErrorsAndEvents:
    def test_unknown_id(self, model: _Model) -> None:
        with pytest.raises(NotFoundError):
            model.machine.visibility(9999)
        with pytest.raises(NotFoundError):
            model.machine.hide_architecture(9999)

    def test_wrong_kind(self, model: _Model) -> None:
        with pytest.raises(NotFoundError):
            model.machine.hide_architecture(model.actors)
        with pytest.raises(NotFoundError):
            model.machine.display_subset(model.view)
        with pytest.raises(NotFoundError):
            model.machine.visibility(model.member_a)

    def test_event_carries_scope(self, model: _Model) -> None:
        model.machine.hide_architecture(model.view)
        events = model.sink.of_type("visibility.changed")
        assert len(events) == 1
        assert events[0].scope == SCOPE
        assert events[0].data["state"] == "HIDDEN"
