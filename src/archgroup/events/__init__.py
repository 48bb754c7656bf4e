"""Events package: public re-exports.

Exports the canonical types and sink protocol so call sites can import
from one stable namespace::

    from archgroup.events import (
        GroupingEvent, EventBuilder, EventSink,
        CompositeSink, NullSink, RecordingSink,
    )
"""
from __future__ import annotations

from archgroup.events.emitter import (
    CompositeSink,
    EventSink,
    LoggingSink,
    NullSink,
    RecordingSink,
)
from archgroup.events.types import EventBuilder, EventType, GroupingEvent

__all__ = [
    # types
    "GroupingEvent",
    "EventType",
    "EventBuilder",
    # sinks
    "EventSink",
    "CompositeSink",
    "LoggingSink",
    "NullSink",
    "RecordingSink",
]
