"""EventSink protocol and the bundled sinks.

The sink protocol is structural; any class implementing ``emit()``
qualifies without subclassing.  Components receive a sink through their
constructor; tests pass a :class:`RecordingSink` and assert on what was
emitted.
"""
from __future__ import annotations

import dataclasses
import itertools
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from archgroup.events.types import GroupingEvent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# EventSink Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class EventSink(Protocol):
    """Structural protocol for grouping event observers."""

    def emit(self, event: GroupingEvent) -> None:
        """Receive one event.

        Should not raise; :class:`CompositeSink` guards against sinks that do.
        """
        ...


# ---------------------------------------------------------------------------
# NullSink: default when no observer is configured
# ---------------------------------------------------------------------------

class NullSink:
    """No-op sink.  Accepts all events, stores nothing."""

    def emit(self, event: GroupingEvent) -> None:
        return


# ---------------------------------------------------------------------------
# RecordingSink: keeps events in memory
# ---------------------------------------------------------------------------

class RecordingSink:
    """Sink that appends every event to :attr:`events`.

    Each recorded event carries this sink's own sequence number, starting at 1.
    """

    def __init__(self) -> None:
        self.events: list[GroupingEvent] = []
        self._sequence = itertools.count(1)

    def emit(self, event: GroupingEvent) -> None:
        self.events.append(dataclasses.replace(event, sequence=next(self._sequence)))

    def of_type(self, event_type: str) -> list[GroupingEvent]:
        """Return the recorded events of one type, in emission order."""
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        self.events.clear()


# ---------------------------------------------------------------------------
# LoggingSink: forwards events to a logger
# ---------------------------------------------------------------------------

class LoggingSink:
    """Sink that logs each event at DEBUG, conflicts and malformed tags at WARNING."""

    _WARNING_TYPES = frozenset({"tag.conflict", "tag.malformed", "batch.interrupted"})

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    def emit(self, event: GroupingEvent) -> None:
        level = logging.WARNING if event.type in self._WARNING_TYPES else logging.DEBUG
        self._logger.log(
            level,
            "[%s] %s node=%s %s",
            event.scope,
            event.type,
            event.node_id,
            event.data,
        )


# ---------------------------------------------------------------------------
# CompositeSink: fans out to several sinks
# ---------------------------------------------------------------------------

class CompositeSink:
    """Fan-out sink that forwards each event to all configured sinks.

    Exceptions from individual sinks are logged at WARNING and discarded so
    an observer can never break a grouping operation.
    """

    def __init__(self, sinks: list[EventSink]) -> None:
        self._sinks = list(sinks)

    def emit(self, event: GroupingEvent) -> None:
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception as exc:
                logger.warning(
                    "Event sink %s failed on event %s: %s",
                    type(sink).__name__,
                    getattr(event, "type", "<unknown>"),
                    exc,
                )
