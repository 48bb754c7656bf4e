"""Value objects and operation results for the grouping core."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from archgroup.models.enums import Dimension, Visibility


class GroupTarget(BaseModel):
    """A parsed grouping target: a dimension plus an ancestors-to-leaf path."""

    model_config = ConfigDict(frozen=True)

    dimension: Dimension
    path: tuple[str, ...] = Field(..., description="Container names, root first")

    @field_validator("path")
    @classmethod
    def _validate_path(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("path must contain at least one name")
        if any(not name or not name.strip() for name in value):
            raise ValueError("path names must not be empty")
        return value

    @property
    def leaf(self) -> str:
        """Name of the container that directly holds the member."""
        return self.path[-1]


class ContainerInfo(BaseModel):
    """Snapshot of a container node."""

    id: int
    label: str
    name: str
    full_name: str = ""
    count: int = 0
    depth: int = 1


class Conflict(BaseModel):
    """Two targets for one member in the same dimension; the winner is kept."""

    member_id: int
    dimension: Dimension
    discarded: tuple[str, ...]
    kept: tuple[str, ...]
    tags: list[str] = Field(default_factory=list)


class GroupingResult(BaseModel):
    """Outcome of one grouping batch for one dimension.

    ``rewired`` members changed container, ``unchanged`` were already in
    place, ``missing`` are ids that are not members of the scope and
    ``pending`` are members left unprocessed by an interrupted batch.
    """

    dimension: Dimension
    scope: str
    containers_touched: list[ContainerInfo] = Field(default_factory=list)
    created: list[str] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
    rewired: list[int] = Field(default_factory=list)
    unchanged: list[int] = Field(default_factory=list)
    missing: list[int] = Field(default_factory=list)
    pending: list[int] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    malformed_tags: list[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True when no member is left pending."""
        return not self.pending


class ReferenceRefresh(BaseModel):
    """Diff applied to the ``References`` edges of one dimension."""

    created: list[tuple[int, int]] = Field(default_factory=list)
    removed: list[tuple[int, int]] = Field(default_factory=list)


class VisibilityChange(BaseModel):
    """Nodes whose visibility changed in one transition."""

    node_id: int
    changed: list[int] = Field(default_factory=list)
    state: Visibility


class SaveInfo(BaseModel):
    """A named snapshot of member assignments."""

    id: int
    scope: str
    name: str
    description: str = ""
    timestamp: Optional[datetime] = None
    member_count: int = 0


class Divergence(BaseModel):
    """A member whose live assignment differs from a save."""

    member_id: int
    dimension: Dimension
    saved: Optional[tuple[str, ...]] = None
    current: Optional[tuple[str, ...]] = None


class RollbackResult(BaseModel):
    """Outcome of restoring a save."""

    scope: str
    save_name: str
    divergences: list[Divergence] = Field(default_factory=list)
    results: list[GroupingResult] = Field(default_factory=list)

    @property
    def restored(self) -> int:
        """Number of member assignments re-applied."""
        return sum(len(r.rewired) for r in self.results)
