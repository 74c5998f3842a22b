"""Per-stream reasoning session.

A :class:`StreamSession` lives for exactly one stream call.  It folds
resolved events into the visible answer text and into reasoning panels
held by the shared :class:`ReasoningStore`, and fires the caller's
callbacks.  Each reasoning kind moves ``absent -> open -> done``
independently; at most one panel per kind is open at a time.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from responses_stream.llm.events import (
    REASONING_KIND_OF,
    reasoning_delta,
    reasoning_final_text,
    text_delta,
)
from responses_stream.reasoning.store import ReasoningStore
from responses_stream.types import (
    EventKind,
    ReasoningKind,
    ResolvedEvent,
    StreamCallbacks,
    StreamContext,
)

_logger = logging.getLogger(__name__)


@dataclass
class StreamSession:
    store: ReasoningStore
    model: str
    callbacks: StreamCallbacks = field(default_factory=StreamCallbacks)
    context: StreamContext = field(default_factory=StreamContext)
    auto_collapse: bool = True

    final_text: str = ""
    window_id: str | None = None
    completed: bool = False
    # kind -> id of the currently open panel of that kind
    active_panels: dict[ReasoningKind, str] = field(default_factory=dict)
    # panel id -> text accumulated by this stream
    panel_texts: dict[str, str] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open_window(self) -> str:
        """Create the reasoning window this stream reports into."""
        if self.window_id is None:
            self.window_id = self.store.create_window(
                self.context.conversation_id,
                self.model,
                self.context.anchor_index,
            )
        return self.window_id

    async def apply(self, event: ResolvedEvent) -> None:
        """Process one resolved event, in stream order."""
        await self._fire("on_event", event.as_dict())
        self.store.log_sse_event(event.type, event.data, self.context.conversation_id)

        kind = event.kind
        if self.completed and kind is not EventKind.UNKNOWN:
            _logger.debug("Ignoring %s after completion", event.type)
            return

        if kind in (EventKind.SUMMARY_DELTA, EventKind.REASONING_DELTA):
            await self._on_reasoning_delta(REASONING_KIND_OF[kind], event.data)
        elif kind in (EventKind.SUMMARY_DONE, EventKind.REASONING_DONE):
            await self._on_reasoning_done(REASONING_KIND_OF[kind], event.data)
        elif kind is EventKind.TEXT_DELTA:
            delta = text_delta(event.data)
            if delta:
                self.final_text += delta
                await self._fire("on_text_delta", delta)
        elif kind is EventKind.COMPLETED:
            await self.complete(event.data)
        elif kind is EventKind.DONE_SENTINEL:
            await self.complete()
        elif kind is EventKind.ERROR:
            _logger.warning("Error event received from stream: %s", event.data)
            await self._fire("on_error", event.data)

    async def report_error(self, error: Any) -> None:
        await self._fire("on_error", error)

    async def complete(self, raw: Any = None, *, abandoned: bool = False) -> None:
        """Close every open panel and the window, then fire ``on_completed``.

        Runs at most once per session.  *abandoned* marks panels that
        were cut short by cancellation.
        """
        if self.completed:
            return
        self._finalize(abandoned)
        await self._fire("on_completed", self.final_text, raw)

    async def abandon(self) -> None:
        await self.complete(
            {"type": "response.completed", "synthetic": True, "reason": "user_aborted"},
            abandoned=True,
        )

    def fail(self) -> None:
        """Close everything after a transport failure, without ``on_completed``."""
        if not self.completed:
            self._finalize(abandoned=True)

    def _finalize(self, abandoned: bool) -> None:
        for panel_id in self.active_panels.values():
            self.store.complete_panel(panel_id, abandoned=abandoned)
        self.active_panels.clear()
        self.panel_texts.clear()
        if self.window_id is not None:
            self.store.finish_window(self.window_id, collapse=self.auto_collapse)
        self.completed = True

    # ------------------------------------------------------------------
    # Reasoning kinds
    # ------------------------------------------------------------------

    async def _open_panel(self, kind: ReasoningKind, part: Any = None) -> str:
        panel_id = self.store.start_panel(
            kind, self.context.conversation_id, self.window_id,
        )
        self.active_panels[kind] = panel_id
        self.panel_texts[panel_id] = ""
        await self._fire("on_reasoning_start", kind, part)
        return panel_id

    async def _on_reasoning_delta(self, kind: ReasoningKind, data: Any) -> None:
        panel_id = self.active_panels.get(kind)
        if panel_id is None:
            part = data.get("part") if isinstance(data, Mapping) else None
            panel_id = await self._open_panel(kind, part)

        delta = reasoning_delta(data)
        if delta:
            text = self.panel_texts.get(panel_id, "") + delta
            self.panel_texts[panel_id] = text
            self.store.set_text(panel_id, text)
            await self._fire("on_reasoning_delta", kind, delta)

    async def _on_reasoning_done(self, kind: ReasoningKind, data: Any) -> None:
        final = reasoning_final_text(kind, data)
        panel_id = self.active_panels.get(kind)

        # A full trace may arrive only as its done event.
        if panel_id is None and kind is ReasoningKind.TEXT and final:
            panel_id = await self._open_panel(kind)
        if panel_id is None:
            return

        if final:
            self.panel_texts[panel_id] = final
            self.store.set_text(panel_id, final)
        self.store.complete_panel(panel_id)
        text = self.panel_texts.pop(panel_id, "")
        del self.active_panels[kind]
        await self._fire("on_reasoning_done", kind, text)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fire(self, name: str, *args: Any) -> None:
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception("Stream callback %s raised", name)
