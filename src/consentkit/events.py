"""
Ordered, deferred dispatch of capability callbacks.

A queue collects callback invocations for one user action and runs them
grouped by event kind: every UPDATE before any VALUE_CHANGE, every
VALUE_CHANGE before any ACCEPT, every ACCEPT before any REJECT. Within a
kind, entries run in the order they were enqueued.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import IntEnum

logger = logging.getLogger(__name__)

Thunk = Callable[[], Awaitable[None] | None]


class EventKind(IntEnum):
    """Dispatch categories. The numeric order is the run order."""

    UPDATE = 1
    VALUE_CHANGE = 2
    ACCEPT = 3
    REJECT = 4

    @property
    def slot(self) -> str:
        """Name of the capability descriptor attribute holding the handler."""
        return _SLOTS[self]


_SLOTS = {
    EventKind.UPDATE: "on_update",
    EventKind.VALUE_CHANGE: "on_value_change",
    EventKind.ACCEPT: "on_accept",
    EventKind.REJECT: "on_reject",
}


@dataclass(frozen=True)
class QueueEntry:
    """A deferred callback invocation tagged with its event kind."""

    kind: EventKind
    thunk: Thunk
    label: str = ""


class EventQueue:
    """Per-action buffer of callback invocations."""

    def __init__(self) -> None:
        self._entries: list[QueueEntry] = []
        self._running = False

    def enqueue(self, kind: EventKind, thunk: Thunk, label: str = "") -> None:
        """Append an entry. Nothing runs until run() is awaited."""
        if self._running:
            raise RuntimeError("Cannot enqueue while the queue is running")
        self._entries.append(QueueEntry(kind, thunk, label))

    @property
    def entries(self) -> list[QueueEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def ordered(self) -> list[QueueEntry]:
        """Entries in run order: by kind, then by enqueue order."""
        return [entry for kind in EventKind for entry in self._entries if entry.kind is kind]

    async def run(self) -> None:
        """Drain the queue in fixed kind order, then empty it.

        Thunks may be plain callables or return awaitables. An exception
        raised by a thunk stops the run and propagates; the queue is
        emptied either way.
        """
        if self._running:
            raise RuntimeError("EventQueue.run() is not re-entrant")

        self._running = True
        try:
            for entry in self.ordered():
                logger.debug("Running %s %s", entry.kind.name, entry.label)
                result = entry.thunk()
                if inspect.isawaitable(result):
                    await result
        finally:
            self._entries = []
            self._running = False
