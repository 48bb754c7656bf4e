"""Typed property access for graph nodes.

Node properties arrive from the store as loosely typed values (a count may be
stored as ``int``, ``float`` or ``str`` depending on who wrote it).
:func:`read_or_default` coerces a property to the type of the supplied
default through one explicit coercion table.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from archgroup.store.base import NodeRef

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _to_list(value: Any) -> list:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


_COERCIONS: dict[type, Callable[[Any], Any]] = {
    bool: _to_bool,
    int: lambda v: int(float(v)) if isinstance(v, str) else int(v),
    float: float,
    str: str,
    list: _to_list,
}


def read_or_default(node: NodeRef, field: str, default: T) -> T:
    """Return ``node.properties[field]`` coerced to ``type(default)``.

    Missing properties, ``None`` values and values that fail coercion all
    yield *default*.

    Args:
        node: The node to read.
        field: Property name.
        default: Fallback value; its type selects the coercion.

    Returns:
        The coerced property value or *default*.
    """
    value = node.properties.get(field)
    if value is None:
        return default
    coerce = _COERCIONS.get(type(default))
    if coerce is None:
        return value
    try:
        return coerce(value)
    except (TypeError, ValueError):
        logger.debug(
            "Property %s=%r on node %d is not coercible to %s",
            field,
            value,
            node.id,
            type(default).__name__,
        )
        return default
