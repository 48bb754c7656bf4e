"""Enumerations for the grouping data model."""

from enum import Enum


class Dimension(str, Enum):
    """Independent grouping axis. A member has at most one container per axis."""

    LEVEL = "level"
    MODULE = "module"
    ARCHITECTURE = "architecture"
    CUSTOM = "custom"


class Visibility(str, Enum):
    """Display state of an architecture or subset container."""

    VISIBLE = "VISIBLE"
    HIDDEN = "HIDDEN"


class Direction(str, Enum):
    """Edge direction relative to a node."""

    OUTGOING = "OUTGOING"
    INCOMING = "INCOMING"
    BOTH = "BOTH"


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""

    MALFORMED_TAG = "MALFORMED_TAG"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STORE_TIMEOUT = "STORE_TIMEOUT"
    BATCH_INTERRUPTED = "BATCH_INTERRUPTED"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_SAVE_NAME = "DUPLICATE_SAVE_NAME"
    CONFLICTING_TAG = "CONFLICTING_TAG"
