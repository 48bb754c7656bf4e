"""Unit tests for archgroup.store – InMemoryGraphStore and read_or_default."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from archgroup.exceptions import NotFoundError
from archgroup.models.enums import Direction
from archgroup.store import GraphStore, InMemoryGraphStore, NodeRef, read_or_default


def _make_node(properties: dict | None = None) -> NodeRef:
    return NodeRef(id=1, labels=frozenset({"Object"}), properties=properties or {})


# ---------------------------------------------------------------------------
# Protocol conformance
# ---------------------------------------------------------------------------


class TestProtocol:
    def test_memory_store_is_graph_store(self) -> None:
        assert isinstance(InMemoryGraphStore(), GraphStore)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class TestNodes:
    def test_create_and_get(self) -> None:
        store = InMemoryGraphStore()
        node = store.create_node(["Object", "Shop"], {"Name": "A"})
        fetched = store.get_node(node.id)
        assert fetched is not None
        assert fetched.labels == frozenset({"Object", "Shop"})
        assert fetched.properties["Name"] == "A"

    def test_get_missing_returns_none(self) -> None:
        assert InMemoryGraphStore().get_node(99) is None

    def test_ids_are_distinct(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["X"])
        b = store.create_node(["X"])
        assert a.id != b.id

    def test_find_nodes_matches_all_labels_and_properties(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["Module", "Shop"], {"Name": "Billing"})
        store.create_node(["Module", "Other"], {"Name": "Billing"})
        store.create_node(["Module", "Shop"], {"Name": "Payments"})
        found = list(store.find_nodes(["Module", "Shop"], {"Name": "Billing"}))
        assert [n.id for n in found] == [a.id]

    def test_find_by_label(self) -> None:
        store = InMemoryGraphStore()
        store.create_node(["Object"])
        store.create_node(["Object"])
        store.create_node(["Module"])
        assert len(list(store.find_by_label("Object"))) == 2

    def test_returned_snapshot_is_detached(self) -> None:
        store = InMemoryGraphStore()
        node = store.create_node(["Object"], {"Tags": ["a"]})
        node.properties["Tags"].append("b")
        fetched = store.get_node(node.id)
        assert fetched is not None
        assert fetched.properties["Tags"] == ["a"]

    def test_set_and_remove_property(self) -> None:
        store = InMemoryGraphStore()
        node = store.create_node(["Object"], {"Count": 1})
        store.set_properties(node.id, {"Count": 2, "Name": "x"})
        store.remove_property(node.id, "Name")
        store.remove_property(node.id, "Absent")
        fetched = store.get_node(node.id)
        assert fetched is not None
        assert dict(fetched.properties) == {"Count": 2}

    def test_labels(self) -> None:
        store = InMemoryGraphStore()
        node = store.create_node(["Subset"])
        store.remove_labels(node.id, ["Subset"])
        store.add_labels(node.id, ["HiddenSubset"])
        fetched = store.get_node(node.id)
        assert fetched is not None
        assert fetched.labels == frozenset({"HiddenSubset"})

    def test_write_on_missing_node_raises(self) -> None:
        store = InMemoryGraphStore()
        with pytest.raises(NotFoundError):
            store.set_properties(42, {"a": 1})
        with pytest.raises(NotFoundError):
            store.delete_node(42)

    def test_delete_node_detaches_edges(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["A"])
        b = store.create_node(["B"])
        edge = store.create_edge(a.id, b.id, "Contains")
        store.delete_node(a.id)
        assert store.edge_count == 0
        with pytest.raises(NotFoundError):
            store.delete_edge(edge.id)


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------


class TestEdges:
    def test_iter_edges_by_direction_and_type(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["A"])
        b = store.create_node(["B"])
        store.create_edge(a.id, b.id, "Contains")
        store.create_edge(a.id, b.id, "References")
        store.create_edge(b.id, a.id, "Contains")

        out = list(store.iter_edges(a.id, Direction.OUTGOING))
        assert {e.type for e in out} == {"Contains", "References"}
        incoming = list(store.iter_edges(a.id, Direction.INCOMING, "Contains"))
        assert [(e.source, e.target) for e in incoming] == [(b.id, a.id)]
        assert len(list(store.iter_edges(a.id))) == 3

    def test_parallel_edges_are_distinct(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["A"])
        b = store.create_node(["B"])
        e1 = store.create_edge(a.id, b.id, "Aggregates")
        e2 = store.create_edge(a.id, b.id, "Aggregates")
        assert e1.id != e2.id
        store.delete_edge(e1.id)
        assert [e.id for e in store.iter_edges(a.id, Direction.OUTGOING)] == [e2.id]

    def test_iter_edges_of_missing_node_is_empty(self) -> None:
        assert list(InMemoryGraphStore().iter_edges(7)) == []

    def test_create_edge_to_missing_node_raises(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["A"])
        with pytest.raises(NotFoundError):
            store.create_edge(a.id, 99, "Contains")


# ---------------------------------------------------------------------------
# Transactions and write counting
# ---------------------------------------------------------------------------


class TestTransactions:
    def test_commit_on_success(self) -> None:
        store = InMemoryGraphStore()
        with store.transaction():
            store.create_node(["A"])
        assert store.node_count == 1

    def test_rollback_on_error(self) -> None:
        store = InMemoryGraphStore()
        kept = store.create_node(["A"])
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.create_node(["B"])
                store.set_properties(kept.id, {"x": 1})
                raise RuntimeError("boom")
        assert store.node_count == 1
        fetched = store.get_node(kept.id)
        assert fetched is not None
        assert "x" not in fetched.properties

    def test_nested_transaction_joins_outer(self) -> None:
        store = InMemoryGraphStore()
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.create_node(["A"])
                raise RuntimeError("outer fails")
        assert store.node_count == 0

    def test_rollback_restores_id_counter(self) -> None:
        store = InMemoryGraphStore()
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.create_node(["A"])
                raise RuntimeError
        node = store.create_node(["B"])
        assert node.id == 1

    def test_rollback_restores_deleted_node_and_its_edges(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["A"], {"Name": "a", "Tags": ["x"]})
        b = store.create_node(["B"])
        out_edge = store.create_edge(a.id, b.id, "Contains", {"w": 1})
        in_edge = store.create_edge(b.id, a.id, "References")
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.delete_node(a.id)
                raise RuntimeError
        assert store.get_node(a.id) == a
        assert {e.id for e in store.iter_edges(a.id)} == {out_edge.id, in_edge.id}
        # the edge index is restored too
        store.delete_edge(out_edge.id)
        assert store.edge_count == 1

    def test_rollback_restores_labels_properties_and_edges(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["Subset", "Shop"], {"Name": "a", "Count": 2})
        b = store.create_node(["Object", "Shop"])
        edge = store.create_edge(a.id, b.id, "Contains")
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.remove_labels(a.id, ["Subset"])
                store.add_labels(a.id, ["HiddenSubset"])
                store.set_properties(a.id, {"Count": 5, "HiddenByParent": True})
                store.remove_property(a.id, "Name")
                store.delete_edge(edge.id)
                store.create_edge(b.id, a.id, "References")
                raise RuntimeError
        assert store.get_node(a.id) == a
        assert [e.id for e in store.iter_edges(a.id)] == [edge.id]

    def test_rollback_of_changes_made_before_a_delete(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["Module", "Shop"], {"Count": 1})
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_labels(a.id, ["Extra"])
                store.set_properties(a.id, {"Count": 9})
                store.delete_node(a.id)
                raise RuntimeError
        assert store.get_node(a.id) == a

    def test_rollback_undoes_only_the_failed_block(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["A"])
        with store.transaction():
            store.set_properties(a.id, {"x": 1})
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.set_properties(a.id, {"x": 2})
                raise RuntimeError
        assert store.get_node(a.id).properties == {"x": 1}

    def test_write_count(self) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["A"])
        b = store.create_node(["B"])
        store.create_edge(a.id, b.id, "X")
        list(store.find_by_label("A"))
        store.get_node(a.id)
        assert store.write_count == 3


# ---------------------------------------------------------------------------
# JSON round trip
# ---------------------------------------------------------------------------


class TestSerialization:
    def test_dump_and_load(self, tmp_path: Path) -> None:
        store = InMemoryGraphStore()
        a = store.create_node(["Object", "Shop"], {"Name": "A", "Tags": ["module.X"]})
        b = store.create_node(["Module", "Shop"], {"Name": "X", "Count": 1})
        store.create_edge(b.id, a.id, "Contains")

        path = tmp_path / "nested" / "graph.json"
        store.dump(path)
        loaded = InMemoryGraphStore.load(path)

        assert loaded.node_count == 2
        assert loaded.edge_count == 1
        node = loaded.get_node(a.id)
        assert node is not None
        assert node.properties["Tags"] == ["module.X"]
        # New ids continue after the loaded ones
        assert loaded.create_node(["Object"]).id == 3

    def test_to_json_is_valid_json(self) -> None:
        store = InMemoryGraphStore()
        store.create_node(["A"])
        data = json.loads(store.to_json())
        assert data["nodes"][0]["labels"] == ["A"]

    def test_invalid_json_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid JSON"):
            InMemoryGraphStore.from_json("{not json")

    def test_dangling_edge_raises_value_error(self) -> None:
        payload = json.dumps(
            {"nodes": [{"id": 1, "labels": ["A"]}], "edges": [
                {"id": 1, "source": 1, "target": 2, "type": "X"}
            ]}
        )
        with pytest.raises(ValueError, match="unknown node"):
            InMemoryGraphStore.from_json(payload)

    def test_repr(self) -> None:
        assert repr(InMemoryGraphStore()) == "InMemoryGraphStore(nodes=0, edges=0)"


# ---------------------------------------------------------------------------
# read_or_default
# ---------------------------------------------------------------------------


class TestReadOrDefault:
    def test_missing_returns_default(self) -> None:
        assert read_or_default(_make_node(), "Count", 0) == 0

    def test_none_returns_default(self) -> None:
        assert read_or_default(_make_node({"Count": None}), "Count", 5) == 5

    def test_int_from_string_and_float(self) -> None:
        assert read_or_default(_make_node({"Count": "3"}), "Count", 0) == 3
        assert read_or_default(_make_node({"Count": "3.0"}), "Count", 0) == 3
        assert read_or_default(_make_node({"Count": 2.0}), "Count", 0) == 2

    def test_bool_from_string(self) -> None:
        assert read_or_default(_make_node({"Published": "true"}), "Published", False) is True
        assert read_or_default(_make_node({"Published": "no"}), "Published", True) is False

    def test_list_from_scalar(self) -> None:
        assert read_or_default(_make_node({"Module": "Billing"}), "Module", []) == ["Billing"]
        assert read_or_default(_make_node({"Module": ("a", "b")}), "Module", []) == ["a", "b"]

    def test_uncoercible_returns_default(self) -> None:
        assert read_or_default(_make_node({"Count": "many"}), "Count", 0) == 0

    def test_unknown_default_type_passes_value_through(self) -> None:
        value = {"k": 1}
        assert read_or_default(_make_node({"Meta": value}), "Meta", None) == value
