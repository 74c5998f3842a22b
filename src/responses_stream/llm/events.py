"""Event resolution for Responses stream frames.

Turns an :class:`SSEFrame` into a :class:`ResolvedEvent` whose ``kind``
drives the stream session.  An explicit ``event:`` name wins over the
payload's own ``type`` field; the ``[DONE]`` sentinel never reaches the
JSON parser.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from responses_stream.errors import FrameParseError
from responses_stream.types import (
    DEFAULT_EVENT_NAME,
    DONE_SENTINEL,
    EventKind,
    ReasoningKind,
    ResolvedEvent,
    SSEFrame,
)

_logger = logging.getLogger(__name__)

_EVENT_KINDS: dict[str, EventKind] = {
    "response.output_text.delta": EventKind.TEXT_DELTA,
    "response.completed": EventKind.COMPLETED,
    # Summary trace
    "response.reasoning_summary_part.added": EventKind.SUMMARY_DELTA,
    "response.reasoning_summary_text.delta": EventKind.SUMMARY_DELTA,
    "response.reasoning_summary.delta": EventKind.SUMMARY_DELTA,
    "response.reasoning_summary_part.done": EventKind.SUMMARY_DONE,
    "response.reasoning_summary_text.done": EventKind.SUMMARY_DONE,
    "response.reasoning_summary.done": EventKind.SUMMARY_DONE,
    # Full reasoning trace
    "response.reasoning_text.delta": EventKind.REASONING_DELTA,
    "response.reasoning.delta": EventKind.REASONING_DELTA,
    "response.reasoning_text.done": EventKind.REASONING_DONE,
    "response.reasoning.done": EventKind.REASONING_DONE,
    "error": EventKind.ERROR,
}

# Reasoning kind addressed by each delta/done event kind
REASONING_KIND_OF: dict[EventKind, ReasoningKind] = {
    EventKind.SUMMARY_DELTA: ReasoningKind.SUMMARY,
    EventKind.SUMMARY_DONE: ReasoningKind.SUMMARY,
    EventKind.REASONING_DELTA: ReasoningKind.TEXT,
    EventKind.REASONING_DONE: ReasoningKind.TEXT,
}


def classify_event_type(event_type: str) -> EventKind:
    return _EVENT_KINDS.get(event_type, EventKind.UNKNOWN)


def resolve_frame(frame: SSEFrame) -> ResolvedEvent:
    """Resolve *frame* to a typed event.

    Raises
    ------
    FrameParseError
        The frame's data is neither ``[DONE]`` nor valid JSON.
    """
    if frame.data == DONE_SENTINEL:
        return ResolvedEvent(EventKind.DONE_SENTINEL, DONE_SENTINEL)

    try:
        data = json.loads(frame.data)
    except json.JSONDecodeError as e:
        raise FrameParseError(
            f"Failed to parse SSE data JSON: {e}", data=frame.data[:200],
        ) from e

    if frame.event != DEFAULT_EVENT_NAME:
        event_type = frame.event
    elif isinstance(data, Mapping) and isinstance(data.get("type"), str) and data["type"]:
        event_type = data["type"]
    else:
        event_type = DEFAULT_EVENT_NAME

    kind = classify_event_type(event_type)
    if kind is EventKind.UNKNOWN:
        _logger.debug("Unhandled stream event type: %s", event_type)
    return ResolvedEvent(kind, event_type, data)


# ---------------------------------------------------------------------------
# Payload accessors
# ---------------------------------------------------------------------------

def text_delta(data: Any) -> str:
    """Answer text carried by a ``response.output_text.delta`` payload."""
    if not isinstance(data, Mapping):
        return ""
    delta = data.get("delta")
    if isinstance(delta, Mapping):
        delta = delta.get("text")
    for candidate in (delta, data.get("output_text_delta"), data.get("text")):
        if isinstance(candidate, str) and candidate:
            return candidate
    return ""


def reasoning_delta(data: Any) -> str:
    if isinstance(data, Mapping) and isinstance(data.get("delta"), str):
        return data["delta"]
    return ""


def reasoning_final_text(kind: ReasoningKind, data: Any) -> str:
    """Authoritative final text supplied by a ``*.done`` payload, if any."""
    if not isinstance(data, Mapping):
        return ""
    if kind is ReasoningKind.SUMMARY:
        part = data.get("part")
        if isinstance(part, Mapping) and isinstance(part.get("text"), str) and part["text"]:
            return part["text"]
    text = data.get("text")
    return text if isinstance(text, str) else ""
