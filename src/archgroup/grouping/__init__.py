"""Grouping engine: containers, the group merge, references."""

from archgroup.grouping.containers import (
    ContainerRepository,
    DimensionLayout,
    build_layouts,
)
from archgroup.grouping.engine import GroupingEngine
from archgroup.grouping.references import refresh_references

__all__ = [
    "ContainerRepository",
    "DimensionLayout",
    "GroupingEngine",
    "build_layouts",
    "refresh_references",
]
