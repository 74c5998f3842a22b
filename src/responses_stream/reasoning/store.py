"""Observable store of reasoning windows and panels.

All mutations replace whole records (the dataclasses are frozen) and
then notify subscribers with an immutable snapshot, so observers never
see a partially updated window or panel.
"""

from __future__ import annotations

import inspect
import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable

from responses_stream.types import ReasoningKind, ReasoningPanel, ReasoningWindow

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    windows: tuple[ReasoningWindow, ...]
    panels: tuple[ReasoningPanel, ...]


Observer = Callable[[StoreSnapshot], Any]


def _gen_id(prefix: str, conversation_id: str | None) -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:10]}-{prefix}-{conversation_id or 'na'}"


class ReasoningStore:
    """Windows and panels shared between stream sessions and the UI.

    Panels are append-only while open; once ``done`` their text is
    frozen and further writes are ignored.
    """

    def __init__(self, max_event_history: int = 200) -> None:
        self._windows: tuple[ReasoningWindow, ...] = ()
        self._panels: tuple[ReasoningPanel, ...] = ()
        self._observers: list[Observer] = []
        self._sse_events: list[dict[str, Any]] = []
        self._max_event_history = max_event_history

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def windows(self) -> tuple[ReasoningWindow, ...]:
        return self._windows

    @property
    def panels(self) -> tuple[ReasoningPanel, ...]:
        return self._panels

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(self._windows, self._panels)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer*; returns a callable that unsubscribes it.

        Observers are called synchronously after every mutation, so
        coroutine functions are rejected with :class:`TypeError`.
        """
        if inspect.iscoroutinefunction(observer):
            raise TypeError("Reasoning store observers must be synchronous callables")
        self._observers.append(observer)

        def _unsubscribe() -> None:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self) -> None:
        snap = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snap)
            except Exception:
                _logger.exception(
                    "Reasoning store observer %s raised",
                    getattr(observer, "__name__", observer),
                )

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def create_window(
        self,
        conversation_id: str | None,
        model: str,
        anchor_index: int | None = None,
    ) -> str:
        window = ReasoningWindow(
            id=_gen_id("window", conversation_id),
            conversation_id=conversation_id,
            model=model,
            anchor_index=anchor_index,
        )
        self._windows = self._windows + (window,)
        _logger.debug("Created reasoning window %s (model=%s)", window.id, model)
        self._notify()
        return window.id

    def collapse_window(self, window_id: str) -> None:
        self._replace_window(window_id, open=False)

    def finish_window(self, window_id: str, collapse: bool = True) -> None:
        """Mark the window's stream as over, collapsing it if requested."""
        changes: dict[str, Any] = {"done": True}
        if collapse:
            changes["open"] = False
        self._replace_window(window_id, **changes)

    def get_window(self, window_id: str) -> ReasoningWindow | None:
        return next((w for w in self._windows if w.id == window_id), None)

    def windows_for(
        self,
        conversation_id: str | None,
        anchor_index: int | None = None,
    ) -> list[ReasoningWindow]:
        return [
            w for w in self._windows
            if w.conversation_id == conversation_id
            and (anchor_index is None or w.anchor_index == anchor_index)
        ]

    def _replace_window(self, window_id: str, **changes: Any) -> ReasoningWindow | None:
        for i, w in enumerate(self._windows):
            if w.id == window_id:
                updated = replace(w, **changes)
                self._windows = self._windows[:i] + (updated,) + self._windows[i + 1:]
                self._notify()
                return updated
        _logger.debug("Unknown reasoning window %s", window_id)
        return None

    # ------------------------------------------------------------------
    # Panels
    # ------------------------------------------------------------------

    def start_panel(
        self,
        kind: ReasoningKind,
        conversation_id: str | None = None,
        window_id: str | None = None,
    ) -> str:
        panel = ReasoningPanel(
            id=_gen_id(kind.value, conversation_id),
            conversation_id=conversation_id,
            response_id=window_id,
            kind=kind,
        )
        self._panels = self._panels + (panel,)
        self._notify()
        return panel.id

    def append_text(self, panel_id: str, chunk: str) -> None:
        if not chunk:
            return
        panel = self.get_panel(panel_id)
        if panel is None or panel.done:
            _logger.debug("Ignoring append to closed or unknown panel %s", panel_id)
            return
        self._replace_panel(panel_id, text=panel.text + chunk)

    def set_text(self, panel_id: str, text: str) -> None:
        panel = self.get_panel(panel_id)
        if panel is None or panel.done:
            _logger.debug("Ignoring write to closed or unknown panel %s", panel_id)
            return
        if panel.text != text:
            self._replace_panel(panel_id, text=text)

    def complete_panel(self, panel_id: str, abandoned: bool = False) -> None:
        panel = self.get_panel(panel_id)
        if panel is None or panel.done:
            return
        self._replace_panel(panel_id, open=False, done=True, abandoned=abandoned)

    def get_panel(self, panel_id: str) -> ReasoningPanel | None:
        return next((p for p in self._panels if p.id == panel_id), None)

    def panels_for_window(self, window_id: str) -> list[ReasoningPanel]:
        return [p for p in self._panels if p.response_id == window_id]

    def _replace_panel(self, panel_id: str, **changes: Any) -> ReasoningPanel | None:
        for i, p in enumerate(self._panels):
            if p.id == panel_id:
                updated = replace(p, **changes)
                self._panels = self._panels[:i] + (updated,) + self._panels[i + 1:]
                self._notify()
                return updated
        return None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        self._windows = ()
        self._panels = ()
        self._sse_events.clear()
        self._notify()

    def cleanup_for_deleted_messages(
        self,
        conversation_id: str | None,
        *,
        delete_at_index: int | None = None,
        reindex_after_index: int | None = None,
        delete_at_or_after_index: int | None = None,
    ) -> None:
        """Drop windows anchored to deleted messages and shift the rest.

        Windows of other conversations are never touched.  Panels owned
        by a removed window are removed with it.
        """
        def _doomed(w: ReasoningWindow) -> bool:
            if w.conversation_id != conversation_id or w.anchor_index is None:
                return False
            if delete_at_index is not None and w.anchor_index == delete_at_index:
                return True
            return (
                delete_at_or_after_index is not None
                and w.anchor_index >= delete_at_or_after_index
            )

        removed = {w.id for w in self._windows if _doomed(w)}
        windows = [w for w in self._windows if w.id not in removed]

        if reindex_after_index is not None:
            windows = [
                replace(w, anchor_index=w.anchor_index - 1)
                if w.conversation_id == conversation_id
                and w.anchor_index is not None
                and w.anchor_index > reindex_after_index
                else w
                for w in windows
            ]

        self._windows = tuple(windows)
        self._panels = tuple(p for p in self._panels if p.response_id not in removed)
        if removed:
            _logger.debug(
                "Removed %d reasoning window(s) from conversation %s",
                len(removed), conversation_id,
            )
        self._notify()

    # ------------------------------------------------------------------
    # SSE event log
    # ------------------------------------------------------------------

    def log_sse_event(
        self,
        event_type: str,
        data: Any = None,
        conversation_id: str | None = None,
    ) -> None:
        self._sse_events.append({
            "type": event_type,
            "data": data,
            "conversation_id": conversation_id,
            "timestamp": time.time(),
        })
        if len(self._sse_events) > self._max_event_history:
            self._sse_events = self._sse_events[-self._max_event_history:]

    @property
    def sse_events(self) -> list[dict[str, Any]]:
        """Return a copy of the logged SSE events."""
        return list(self._sse_events)
