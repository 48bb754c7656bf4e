"""Tag grammar and parser.

Turns a raw tag string found on a member artifact into a
:class:`~archgroup.models.results.GroupTarget`.

Grammar (prefixes and delimiter come from :class:`GroupingConfig`)::

    level.<l1>/<l2>/<l3>/<l4>/<l5>     level dimension, exactly level_depth names
    architecture.<view>/<subset>      architecture dimension, exactly two names
    module.<name>                     module dimension, name taken verbatim
    custom.<name>                     custom dimension, name taken verbatim

Tags that match no prefix are ignored. Parsing is pure and never touches
the graph store.

Example::

    parser = TagParser(GroupingConfig())
    parser.parse("module.Billing")
    # GroupTarget(dimension=<Dimension.MODULE: 'module'>, path=('Billing',))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from archgroup.config import GroupingConfig
from archgroup.exceptions import MalformedTagError
from archgroup.models.enums import Dimension
from archgroup.models.results import GroupTarget

logger = logging.getLogger(__name__)

# An architecture path is <view>/<subset>.
_ARCHITECTURE_SEGMENTS = 2


@dataclass
class TagParseOutcome:
    """Everything extracted from one member's tag list.

    Attributes:
        targets: The winning target per dimension.
        winning_tags: The raw tag that produced each winning target.
        malformed: Tags rejected with the parse error.
        conflicts: ``(dimension, discarded, kept)`` for every overridden target.
    """

    targets: dict[Dimension, GroupTarget] = field(default_factory=dict)
    winning_tags: dict[Dimension, str] = field(default_factory=dict)
    malformed: list[MalformedTagError] = field(default_factory=list)
    conflicts: list[tuple[Dimension, GroupTarget, GroupTarget]] = field(default_factory=list)


class TagParser:
    """Parse tag strings against the configured prefix-to-dimension mapping."""

    def __init__(self, config: GroupingConfig | None = None) -> None:
        self._config = config or GroupingConfig()
        # Longest prefix first so that "module.x" never shadows "module.ext."
        self._prefixes: list[tuple[str, Dimension]] = sorted(
            ((self._config.prefix_for(d), d) for d in Dimension),
            key=lambda item: len(item[0]),
            reverse=True,
        )

    @property
    def config(self) -> GroupingConfig:
        return self._config

    def dimension_of(self, tag: str) -> Optional[Dimension]:
        """Return the dimension whose prefix *tag* starts with, if any."""
        for prefix, dimension in self._prefixes:
            if prefix and tag.startswith(prefix):
                return dimension
        return None

    def prefix_of(self, tag: str) -> Optional[str]:
        """Return the configured prefix *tag* starts with, if any."""
        dimension = self.dimension_of(tag)
        return self._config.prefix_for(dimension) if dimension else None

    def parse(self, tag: str) -> Optional[GroupTarget]:
        """Parse one tag.

        Args:
            tag: The raw tag string.

        Returns:
            The parsed target, or ``None`` when no prefix matches.

        Raises:
            MalformedTagError: If the tag has a known prefix but an invalid
                remainder.
        """
        dimension = self.dimension_of(tag)
        if dimension is None:
            return None

        remainder = tag[len(self._config.prefix_for(dimension)):]
        if not remainder.strip():
            raise MalformedTagError(tag, "nothing follows the prefix")

        if dimension is Dimension.LEVEL:
            path = self._split(tag, remainder, self._config.level_depth)
        elif dimension is Dimension.ARCHITECTURE:
            path = self._split(tag, remainder, _ARCHITECTURE_SEGMENTS)
        else:
            path = (remainder,)

        return GroupTarget(dimension=dimension, path=path)

    def _split(self, tag: str, remainder: str, expected: int) -> tuple[str, ...]:
        segments = tuple(remainder.split(self._config.path_delimiter))
        if any(not segment.strip() for segment in segments):
            raise MalformedTagError(tag, "empty name in path")
        if len(segments) != expected:
            raise MalformedTagError(
                tag, f"expected {expected} names in path, found {len(segments)}"
            )
        return segments

    def parse_tags(self, tags: Iterable[str]) -> TagParseOutcome:
        """Parse a member's whole tag list.

        Tags are processed in lexicographic order; when two tags resolve to
        different targets in the same dimension the later one wins and the
        override is recorded as a conflict. Malformed tags are collected and
        skipped.
        """
        outcome = TagParseOutcome()
        for tag in sorted(set(tags)):
            try:
                target = self.parse(tag)
            except MalformedTagError as exc:
                logger.warning("Skipping tag: %s", exc.message)
                outcome.malformed.append(exc)
                continue
            if target is None:
                continue

            previous = outcome.targets.get(target.dimension)
            if previous is not None and previous != target:
                logger.warning(
                    "Conflicting %s tags %r and %r; keeping %r",
                    target.dimension.value,
                    outcome.winning_tags[target.dimension],
                    tag,
                    tag,
                )
                outcome.conflicts.append((target.dimension, previous, target))
            outcome.targets[target.dimension] = target
            outcome.winning_tags[target.dimension] = tag
        return outcome
