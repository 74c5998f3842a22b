"""Tests for the per-stream reasoning session state machine."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any

import pytest

from responses_stream.llm.events import classify_event_type
from responses_stream.reasoning.session import StreamSession
from responses_stream.reasoning.store import ReasoningStore
from responses_stream.types import (
    EventKind,
    ReasoningKind,
    ResolvedEvent,
    StreamCallbacks,
    StreamContext,
)


def ev(event_type: str, data: Any = None) -> ResolvedEvent:
    if event_type == "[DONE]":
        return ResolvedEvent(EventKind.DONE_SENTINEL, event_type)
    return ResolvedEvent(classify_event_type(event_type), event_type, data)


class Recorder:
    """Collects every callback invocation as ``(name, args)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []

    def callbacks(self) -> StreamCallbacks:
        def make(name):
            def cb(*args):
                self.calls.append((name, args))
            return cb

        return StreamCallbacks(**{
            name: make(name) for name in (
                "on_text_delta", "on_reasoning_start", "on_reasoning_delta",
                "on_reasoning_done", "on_completed", "on_error", "on_event",
            )
        })

    def named(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]


@pytest.fixture
def store():
    return ReasoningStore()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def session(store: ReasoningStore, recorder: Recorder) -> StreamSession:
    s = StreamSession(
        store=store,
        model="gpt-5",
        callbacks=recorder.callbacks(),
        context=StreamContext(conversation_id="c1", anchor_index=2),
    )
    s.open_window()
    return s


class TestTextDeltas:
    async def test_accumulates_answer(self, session: StreamSession, recorder: Recorder):
        await session.apply(ev("response.output_text.delta", {"delta": "Hel"}))
        await session.apply(ev("response.output_text.delta", {"delta": {"text": "lo"}}))
        await session.apply(ev("response.output_text.delta", {"delta": ""}))
        assert session.final_text == "Hello"
        assert recorder.named("on_text_delta") == [("Hel",), ("lo",)]

    async def test_on_event_for_every_frame(self, session: StreamSession, recorder: Recorder):
        await session.apply(ev("response.created", {"type": "response.created"}))
        await session.apply(ev("[DONE]"))
        assert recorder.named("on_event") == [
            ({"type": "response.created", "data": {"type": "response.created"}},),
            ({"type": "[DONE]", "data": None},),
        ]

    async def test_events_logged_to_store(self, session: StreamSession, store: ReasoningStore):
        await session.apply(ev("response.output_text.delta", {"delta": "x"}))
        assert store.sse_events[-1]["type"] == "response.output_text.delta"
        assert store.sse_events[-1]["conversation_id"] == "c1"


class TestWindow:
    def test_window_anchored(self, session: StreamSession, store: ReasoningStore):
        window = store.get_window(session.window_id)
        assert window.conversation_id == "c1"
        assert window.anchor_index == 2
        assert window.model == "gpt-5"
        assert window.open

    def test_open_window_once(self, session: StreamSession, store: ReasoningStore):
        assert session.open_window() == session.window_id
        assert len(store.windows) == 1


class TestReasoningPanels:
    async def test_one_open_panel_per_kind(self, session: StreamSession, store: ReasoningStore):
        await session.apply(ev("response.reasoning_summary_part.added", {"part": {"type": "summary_text"}}))
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "a"}))
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "b"}))
        await session.apply(ev("response.reasoning_text.delta", {"delta": "x"}))

        panels = store.panels_for_window(session.window_id)
        assert [p.kind for p in panels] == [ReasoningKind.SUMMARY, ReasoningKind.TEXT]
        assert panels[0].text == "ab"
        assert panels[1].text == "x"
        assert all(p.open for p in panels)

    async def test_start_receives_part(self, session: StreamSession, recorder: Recorder):
        part = {"type": "summary_text", "text": ""}
        await session.apply(ev("response.reasoning_summary_part.added", {"part": part}))
        assert recorder.named("on_reasoning_start") == [(ReasoningKind.SUMMARY, part)]
        assert recorder.named("on_reasoning_delta") == []

    async def test_start_receives_part_from_any_mapping(self, session: StreamSession, recorder: Recorder):
        part = {"type": "summary_text"}
        await session.apply(ev(
            "response.reasoning_summary_part.added", MappingProxyType({"part": part}),
        ))
        assert recorder.named("on_reasoning_start") == [(ReasoningKind.SUMMARY, part)]

    async def test_deltas_forwarded(self, session: StreamSession, recorder: Recorder):
        await session.apply(ev("response.reasoning.delta", {"delta": "think"}))
        assert recorder.named("on_reasoning_start") == [(ReasoningKind.TEXT, None)]
        assert recorder.named("on_reasoning_delta") == [(ReasoningKind.TEXT, "think")]

    async def test_done_overrides_text(self, session: StreamSession, store: ReasoningStore, recorder: Recorder):
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "draf"}))
        await session.apply(ev("response.reasoning_summary_part.done", {"part": {"text": "Final summary"}}))

        panel = store.panels_for_window(session.window_id)[0]
        assert panel.text == "Final summary"
        assert panel.done and not panel.open
        assert recorder.named("on_reasoning_done") == [(ReasoningKind.SUMMARY, "Final summary")]
        assert session.active_panels == {}

    async def test_done_without_final_keeps_accumulated(self, session: StreamSession, recorder: Recorder):
        await session.apply(ev("response.reasoning_text.delta", {"delta": "kept"}))
        await session.apply(ev("response.reasoning_text.done", {}))
        assert recorder.named("on_reasoning_done") == [(ReasoningKind.TEXT, "kept")]

    async def test_new_panel_after_done(self, session: StreamSession, store: ReasoningStore):
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "one"}))
        await session.apply(ev("response.reasoning_summary_text.done", {"text": "one"}))
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "two"}))

        panels = store.panels_for_window(session.window_id)
        assert [p.text for p in panels] == ["one", "two"]
        assert panels[0].done and not panels[1].done

    async def test_text_done_without_delta_creates_panel(
        self, session: StreamSession, store: ReasoningStore, recorder: Recorder,
    ):
        await session.apply(ev("response.reasoning_text.done", {"text": "whole trace"}))
        panels = store.panels_for_window(session.window_id)
        assert len(panels) == 1
        assert panels[0].kind is ReasoningKind.TEXT
        assert panels[0].text == "whole trace"
        assert panels[0].done
        assert recorder.named("on_reasoning_start") == [(ReasoningKind.TEXT, None)]
        assert recorder.named("on_reasoning_done") == [(ReasoningKind.TEXT, "whole trace")]

    async def test_summary_done_without_panel_ignored(
        self, session: StreamSession, store: ReasoningStore, recorder: Recorder,
    ):
        await session.apply(ev("response.reasoning_summary_text.done", {"text": "orphan"}))
        assert store.panels == ()
        assert recorder.named("on_reasoning_done") == []


class TestCompletion:
    async def test_completed_closes_everything(
        self, session: StreamSession, store: ReasoningStore, recorder: Recorder,
    ):
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "s"}))
        await session.apply(ev("response.reasoning_text.delta", {"delta": "t"}))
        await session.apply(ev("response.output_text.delta", {"delta": "answer"}))
        raw = {"type": "response.completed", "response": {"id": "r1"}}
        await session.apply(ev("response.completed", raw))

        assert all(p.done and not p.abandoned for p in store.panels)
        window = store.get_window(session.window_id)
        assert window.done and not window.open
        assert recorder.named("on_completed") == [("answer", raw)]
        assert session.completed

    async def test_done_sentinel_completes(self, session: StreamSession, store: ReasoningStore, recorder: Recorder):
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "s"}))
        await session.apply(ev("[DONE]"))
        assert store.panels[0].done
        assert recorder.named("on_completed") == [("", None)]

    async def test_completed_fires_once(self, session: StreamSession, recorder: Recorder):
        await session.apply(ev("response.completed", {"type": "response.completed"}))
        await session.apply(ev("[DONE]"))
        assert len(recorder.named("on_completed")) == 1

    async def test_events_after_completion_ignored(
        self, session: StreamSession, store: ReasoningStore, recorder: Recorder,
    ):
        await session.apply(ev("[DONE]"))
        await session.apply(ev("response.output_text.delta", {"delta": "late"}))
        await session.apply(ev("response.reasoning_text.delta", {"delta": "late"}))
        assert session.final_text == ""
        assert store.panels == ()
        assert recorder.named("on_text_delta") == []
        assert len(recorder.named("on_event")) == 3

    async def test_no_collapse_when_disabled(self, store: ReasoningStore):
        s = StreamSession(store=store, model="gpt-5", auto_collapse=False)
        s.open_window()
        await s.complete()
        window = store.get_window(s.window_id)
        assert window.done
        assert window.open

    async def test_abandon_marks_panels(self, session: StreamSession, store: ReasoningStore, recorder: Recorder):
        await session.apply(ev("response.reasoning_text.delta", {"delta": "partial"}))
        await session.apply(ev("response.output_text.delta", {"delta": "part"}))
        await session.abandon()

        panel = store.panels[0]
        assert panel.done and panel.abandoned
        assert panel.text == "partial"
        ((text, raw),) = recorder.named("on_completed")
        assert text == "part"
        assert raw["synthetic"] is True
        assert raw["reason"] == "user_aborted"

    async def test_fail_closes_without_callback(
        self, session: StreamSession, store: ReasoningStore, recorder: Recorder,
    ):
        await session.apply(ev("response.reasoning_text.delta", {"delta": "x"}))
        session.fail()
        assert store.panels[0].abandoned
        assert store.get_window(session.window_id).done
        assert recorder.named("on_completed") == []

    async def test_tracker_cleared_on_completion(self, session: StreamSession):
        await session.apply(ev("response.reasoning_summary_text.delta", {"delta": "s"}))
        await session.apply(ev("response.reasoning_text.delta", {"delta": "t"}))
        await session.complete()
        assert session.active_panels == {}
        assert session.panel_texts == {}


class TestErrors:
    async def test_error_event_reported_not_terminal(self, session: StreamSession, recorder: Recorder):
        data = {"type": "error", "message": "rate limited"}
        await session.apply(ev("error", data))
        assert recorder.named("on_error") == [(data,)]
        assert not session.completed

    async def test_raising_callback_does_not_stop_stream(self, store: ReasoningStore):
        def boom(*_args):
            raise RuntimeError("callback failure")

        s = StreamSession(store=store, model="gpt-5", callbacks=StreamCallbacks(on_text_delta=boom))
        await s.apply(ev("response.output_text.delta", {"delta": "a"}))
        await s.apply(ev("response.output_text.delta", {"delta": "b"}))
        assert s.final_text == "ab"

    async def test_async_callbacks_awaited(self, store: ReasoningStore):
        received = []

        async def on_text(delta):
            received.append(delta)

        s = StreamSession(store=store, model="gpt-5", callbacks=StreamCallbacks(on_text_delta=on_text))
        await s.apply(ev("response.output_text.delta", {"delta": "z"}))
        assert received == ["z"]

    async def test_report_error(self, session: StreamSession, recorder: Recorder):
        err = ValueError("bad frame")
        await session.report_error(err)
        assert recorder.named("on_error") == [(err,)]
