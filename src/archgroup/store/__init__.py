"""Graph store collaborator: protocol, typed accessor, in-memory backend."""

from archgroup.store.accessors import read_or_default
from archgroup.store.base import EdgeRef, GraphStore, NodeRef
from archgroup.store.memory import InMemoryGraphStore

__all__ = [
    "EdgeRef",
    "GraphStore",
    "InMemoryGraphStore",
    "NodeRef",
    "read_or_default",
]
