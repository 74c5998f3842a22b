"""Shared data types for responses-stream."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Callable


# ---------------------------------------------------------------------------
# Reasoning records
# ---------------------------------------------------------------------------

class ReasoningKind(str, enum.Enum):
    """Category of a reasoning trace."""

    SUMMARY = "summary"
    TEXT = "text"


@dataclass(frozen=True)
class ReasoningWindow:
    """Collapsible region holding the reasoning panels of one response.

    Records are immutable; the store replaces them wholesale on every
    change so observers never see a half-updated window.
    """

    id: str
    conversation_id: str | None
    model: str
    anchor_index: int | None = None
    open: bool = True
    done: bool = False
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ReasoningPanel:
    """Accumulation buffer for one reasoning kind within a window."""

    id: str
    conversation_id: str | None
    response_id: str | None  # owning window id
    kind: ReasoningKind
    text: str = ""
    open: bool = True
    done: bool = False
    abandoned: bool = False  # force-closed because its stream was cancelled
    started_at: float = field(default_factory=time.time)


@dataclass
class StreamContext:
    """Where reasoning records of a stream are anchored in the UI."""

    conversation_id: str | None = None
    anchor_index: int | None = None


# ---------------------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------------------

# Callbacks may be plain functions or coroutine functions.
Callback = Callable[..., Any]


@dataclass
class StreamCallbacks:
    """Optional hooks fired while a stream is consumed.

    ``on_reasoning_start(kind, part)``, ``on_reasoning_delta(kind, delta)``
    and ``on_reasoning_done(kind, final_text)`` receive a
    :class:`ReasoningKind`.  ``on_event`` receives ``{"type", "data"}``
    for every resolved frame.
    """

    on_text_delta: Callback | None = None
    on_reasoning_start: Callback | None = None
    on_reasoning_delta: Callback | None = None
    on_reasoning_done: Callback | None = None
    on_completed: Callback | None = None
    on_error: Callback | None = None
    on_event: Callback | None = None


# ---------------------------------------------------------------------------
# Wire types
# ---------------------------------------------------------------------------

# Frame name used when a block carries no ``event:`` line
DEFAULT_EVENT_NAME = "message"

# Literal data value that terminates a logical response
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class SSEFrame:
    """One decoded SSE block."""

    data: str
    event: str = DEFAULT_EVENT_NAME


class EventKind(enum.Enum):
    """Closed set of event kinds the stream session reacts to."""

    TEXT_DELTA = "text_delta"
    COMPLETED = "completed"
    DONE_SENTINEL = "done_sentinel"
    SUMMARY_DELTA = "summary_delta"
    SUMMARY_DONE = "summary_done"
    REASONING_DELTA = "reasoning_delta"
    REASONING_DONE = "reasoning_done"
    ERROR = "error"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (EventKind.COMPLETED, EventKind.DONE_SENTINEL)


@dataclass(frozen=True)
class ResolvedEvent:
    """A frame with its canonical type and decoded payload."""

    kind: EventKind
    type: str
    data: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}
