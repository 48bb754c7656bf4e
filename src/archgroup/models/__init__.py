"""archgroup data models."""

from archgroup.models.enums import Dimension, Direction, ErrorCode, Visibility
from archgroup.models.results import (
    Conflict,
    ContainerInfo,
    Divergence,
    GroupingResult,
    GroupTarget,
    ReferenceRefresh,
    RollbackResult,
    SaveInfo,
    VisibilityChange,
)

__all__ = [
    "Conflict",
    "ContainerInfo",
    "Dimension",
    "Direction",
    "Divergence",
    "ErrorCode",
    "GroupTarget",
    "GroupingResult",
    "ReferenceRefresh",
    "RollbackResult",
    "SaveInfo",
    "Visibility",
    "VisibilityChange",
]
