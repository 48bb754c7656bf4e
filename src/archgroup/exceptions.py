"""Exception hierarchy for archgroup.

All exceptions raised by the package derive from ``ArchGroupError`` and carry
a stable :class:`~archgroup.models.enums.ErrorCode`, so the binding layer can
catch everything with one clause and still report a machine-readable code.

Error taxonomy:

Per-item, recovered locally:
    MalformedTagError       - tag does not parse; the tag is skipped

Store faults (abort the current operation, never swallowed):
    StoreUnavailableError   - store call failed
    StoreTimeoutError       - store call exceeded its deadline
    BatchInterruptedError   - a grouping batch stopped on a store fault;
                              carries the partial result

Required existence:
    NotFoundError           - container, member or save missing
    SaveNotFoundError

Conflicts:
    DuplicateSaveNameError  - a save with that name already exists
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from archgroup.models.enums import ErrorCode

if TYPE_CHECKING:
    from archgroup.models.results import GroupingResult


class ArchGroupError(Exception):
    """Base class for all archgroup errors."""

    code: ErrorCode = ErrorCode.NOT_FOUND

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Return a ``{code, message}`` payload for callers."""
        return {"code": self.code.value, "message": self.message}


# ---------------------------------------------------------------------------
# Tag errors
# ---------------------------------------------------------------------------


class MalformedTagError(ArchGroupError):
    """Raised when a recognised tag does not parse into a valid path.

    Attributes:
        tag: The raw tag string.
        reason: Why the tag was rejected.
    """

    code = ErrorCode.MALFORMED_TAG

    def __init__(self, tag: str, reason: str) -> None:
        self.tag = tag
        self.reason = reason
        super().__init__(f"Malformed tag '{tag}': {reason}")


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------


class StoreError(ArchGroupError):
    """Base class for graph store faults."""

    code = ErrorCode.STORE_UNAVAILABLE


class StoreUnavailableError(StoreError):
    """Raised when the graph store cannot serve a call."""

    code = ErrorCode.STORE_UNAVAILABLE


class StoreTimeoutError(StoreError):
    """Raised when a graph store call exceeds its deadline."""

    code = ErrorCode.STORE_TIMEOUT


class BatchInterruptedError(StoreError):
    """A grouping batch stopped part-way on a store fault.

    Already committed re-wirings stay in place. ``result`` lists the members
    re-wired before the fault and the members still pending, so the caller
    can retry the whole batch.

    Attributes:
        result: The partial :class:`GroupingResult`.
    """

    code = ErrorCode.BATCH_INTERRUPTED

    def __init__(self, result: GroupingResult, cause: StoreError) -> None:
        self.result = result
        self.cause_code = cause.code
        super().__init__(
            f"Grouping interrupted after {len(result.rewired)} re-wired member(s), "
            f"{len(result.pending)} pending: {cause.message}"
        )


# ---------------------------------------------------------------------------
# Existence errors
# ---------------------------------------------------------------------------


class NotFoundError(ArchGroupError):
    """Raised when a node required by an operation does not exist.

    Attributes:
        kind: What was looked up (``"aggregation"``, ``"node"``...).
        key: The id or name used for the lookup.
    """

    code = ErrorCode.NOT_FOUND

    def __init__(self, kind: str, key: Any) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} found for '{key}'")


class SaveNotFoundError(NotFoundError):
    """Raised when a named save does not exist in the scope."""

    def __init__(self, scope: str, name: str) -> None:
        super().__init__("save", f"{scope}/{name}")
        self.scope = scope
        self.name = name


class DuplicateSaveNameError(ArchGroupError):
    """Raised when a save name is already used in the scope."""

    code = ErrorCode.DUPLICATE_SAVE_NAME

    def __init__(self, scope: str, name: str) -> None:
        self.scope = scope
        self.name = name
        super().__init__(f"A save named '{name}' already exists in scope '{scope}'")
