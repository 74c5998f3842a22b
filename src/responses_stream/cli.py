"""CLI that streams one prompt through the Responses API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
import time
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel

from responses_stream.config import load_config
from responses_stream.errors import ResponsesStreamError
from responses_stream.llm.client import ResponsesClient
from responses_stream.types import ReasoningKind, StreamCallbacks, StreamContext

console = Console()


class StreamingDisplay:
    """Renders stream callbacks to the terminal in real time."""

    def __init__(self, con: Console, show_events: bool = False):
        self.con = con
        self.show_events = show_events
        self._in_reasoning = False

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_text_delta=self.on_text_delta,
            on_reasoning_start=self.on_reasoning_start,
            on_reasoning_delta=self.on_reasoning_delta,
            on_reasoning_done=self.on_reasoning_done,
            on_completed=self.on_completed,
            on_error=self.on_error,
            on_event=self.on_event,
        )

    def on_text_delta(self, text: str):
        self._end_reasoning()
        self.con.print(text, end="", highlight=False, markup=False)

    def on_reasoning_start(self, kind: ReasoningKind, part: Any = None):
        self._in_reasoning = True
        self.con.print(f"\n[dim italic]reasoning ({kind.value}):[/dim italic]")

    def on_reasoning_delta(self, kind: ReasoningKind, delta: str):
        self.con.print(delta, end="", style="dim", highlight=False, markup=False)

    def on_reasoning_done(self, kind: ReasoningKind, final_text: str):
        self._end_reasoning()

    def on_completed(self, final_text: str, raw: Any = None):
        self.con.print()
        if isinstance(raw, dict) and raw.get("synthetic"):
            self.con.print(f"[yellow]~ stream ended: {raw.get('reason', 'unknown')}[/yellow]")

    def on_error(self, error: Any):
        self._end_reasoning()
        self.con.print(f"[red]Error: {error}[/red]")

    def on_event(self, event: dict[str, Any]):
        if self.show_events:
            self.con.print(f"[dim]- {event['type']}[/dim]")

    def _end_reasoning(self):
        if self._in_reasoning:
            self._in_reasoning = False
            self.con.print("\n")


def _render_reasoning(client: ResponsesClient, window_id: str | None) -> None:
    if window_id is None:
        return
    for panel in client.store.panels_for_window(window_id):
        status = "abandoned" if panel.abandoned else ("done" if panel.done else "open")
        text = panel.text if len(panel.text) <= 600 else panel.text[:600] + "\n..."
        console.print(Panel(
            text or "[dim](empty)[/dim]",
            title=f"reasoning: {panel.kind.value} [{status}]",
            border_style="dim",
            expand=False,
        ))


async def _stream_once(
    client: ResponsesClient,
    prompt: str,
    model: str | None,
    overrides: dict[str, str],
    display: StreamingDisplay,
) -> str:
    loop = asyncio.get_running_loop()
    try:
        handle = client.start_stream(
            prompt,
            model=model,
            callbacks=display.callbacks(),
            context=StreamContext(conversation_id="cli", anchor_index=1),
            overrides=overrides,
        )
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGINT, handle.cancel)
        text = await handle
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)
        await client.close()
    _render_reasoning(client, handle.session.window_id)
    return text


@click.command()
@click.argument("prompt")
@click.option("--config", "-c", "config_path", default=None,
              help="Path to responses_stream.yaml (auto-detected from CWD or ~/.responses_stream/)")
@click.option("--model", "-m", default=None, help="Model id (defaults to the configured model)")
@click.option("--effort", default=None, help="Reasoning effort: none|minimal|low|medium|high")
@click.option("--verbosity", default=None, help="Text verbosity: low|medium|high")
@click.option("--summary", default=None, help="Reasoning summary: auto|detailed|null")
@click.option("--events", "show_events", is_flag=True, help="Print every stream event type")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(prompt: str, config_path: str | None, model: str | None, effort: str | None,
         verbosity: str | None, summary: str | None, show_events: bool, verbose: bool):
    """Stream PROMPT through the Responses API, showing reasoning traces."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config, config_file = load_config(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    if config_file:
        console.print(f"[dim]Config: {config_file}[/dim]")

    overrides = {
        k: v for k, v in (
            ("reasoning_effort", effort), ("verbosity", verbosity), ("summary", summary),
        ) if v
    }
    client = ResponsesClient(config)
    console.print(f"[dim]Model: {client.resolve_model(model)}[/dim]")
    display = StreamingDisplay(console, show_events=show_events)

    start = time.monotonic()
    try:
        asyncio.run(_stream_once(client, prompt, model, overrides, display))
    except ResponsesStreamError as e:
        console.print(f"[red]Error: {e}[/red]")
        if e.hint:
            console.print(f"[dim]{e.hint}[/dim]")
        sys.exit(1)
    console.print(f"[dim]({time.monotonic() - start:.1f}s)[/dim]")


if __name__ == "__main__":
    main()
