"""Async client for the streaming Responses API.

Uses ``httpx.AsyncClient``.  ``start_stream()`` validates the request,
schedules the stream as a task and hands back a :class:`StreamHandle`
that owns its own cancellation; ``stream_response()`` is the awaitable
shortcut.  The response body is decoded frame by frame and folded
through a :class:`StreamSession`, which updates the shared
:class:`ReasoningStore` and fires the caller's callbacks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Mapping

import httpx

from responses_stream.config import ReasoningSettings, ResponsesConfig
from responses_stream.errors import ConfigurationError, FrameParseError, TransportError
from responses_stream.reasoning.session import StreamSession
from responses_stream.reasoning.store import ReasoningStore
from responses_stream.types import StreamCallbacks, StreamContext

from .events import resolve_frame
from .request_builder import (
    build_responses_input_from_prompt,
    build_responses_payload,
    resolve_model,
    supports_reasoning,
)
from .sse import iter_sse_frames

_logger = logging.getLogger(__name__)

_RESPONSES_PATH = "/responses"

# Retry configuration (non-streaming calls only)
_MAX_RETRIES = 3
_BACKOFF_BASE = 1  # seconds -- exponential: 1, 2, 4
_RETRY_STATUSES = (429, 500, 502, 503, 504)

CredentialGetter = Callable[[], str | None]
SettingsGetter = Callable[[], ReasoningSettings]


class StreamHandle:
    """One in-flight stream.

    Await the handle (or :meth:`result`) for the final answer text.
    :meth:`cancel` stops the read loop; open reasoning panels are then
    closed as abandoned and the handle resolves to the partial text.
    """

    def __init__(
        self,
        task: asyncio.Task[str],
        cancel_event: asyncio.Event,
        session: StreamSession,
    ) -> None:
        self._task = task
        self._cancel_event = cancel_event
        self.session = session

    def cancel(self) -> None:
        """Stop the stream.  Safe to call from the stream's own callbacks."""
        if self._task.done():
            return
        self._cancel_event.set()
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # From inside the task the read loop sees the event before its next frame.
        if current is not self._task:
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> str:
        try:
            return await self._task
        except asyncio.CancelledError:
            # Cancelled before the stream coroutine got to run.
            if not (self._task.cancelled() and self._cancel_event.is_set()):
                raise
            await self.session.abandon()
            return self.session.final_text

    def __await__(self):
        return self.result().__await__()


class ResponsesClient:
    """Client for the vendor's ``/responses`` endpoint.

    Parameters
    ----------
    config:
        Connection and reasoning settings.  Defaults to built-in values.
    store:
        Reasoning window/panel store shared with observers.
    credentials:
        Synchronous getter for the bearer token.  Defaults to
        ``config.resolve_api_key``.
    settings:
        Synchronous getter for reasoning settings.  Defaults to
        ``config.reasoning``.
    """

    def __init__(
        self,
        config: ResponsesConfig | None = None,
        *,
        store: ReasoningStore | None = None,
        credentials: CredentialGetter | None = None,
        settings: SettingsGetter | None = None,
    ) -> None:
        self.config = config or ResponsesConfig()
        self.store = store or ReasoningStore()
        self._credentials = credentials or self.config.resolve_api_key
        self._settings = settings or (lambda: self.config.reasoning)
        self._current: StreamHandle | None = None

        timeout = self.config.timeout
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(timeout, connect=30, read=300),
        )
        self._stream_client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(timeout, connect=30, read=60),
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def start_stream(
        self,
        prompt: str = "",
        model: str | None = None,
        callbacks: StreamCallbacks | None = None,
        input_override: list[dict[str, Any]] | None = None,
        context: StreamContext | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> StreamHandle:
        """Start streaming a response and return its handle.

        Must be called from a running event loop.  Raises
        :class:`ConfigurationError` immediately, before any network I/O,
        when no API key is available.
        """
        api_key = self._require_api_key()
        resolved = self.resolve_model(model)
        settings = self._settings()
        payload = build_responses_payload(
            resolved,
            input_override or build_responses_input_from_prompt(prompt),
            True,
            settings,
            overrides,
        )
        session = StreamSession(
            store=self.store,
            model=resolved,
            callbacks=callbacks or StreamCallbacks(),
            context=context or StreamContext(),
            auto_collapse=settings.auto_collapse,
        )

        cancel_event = asyncio.Event()
        task = asyncio.get_running_loop().create_task(
            self._run_stream(payload, api_key, session, cancel_event),
            name="responses-stream",
        )
        handle = StreamHandle(task, cancel_event, session)

        if self._current is not None and not self._current.done:
            _logger.debug("Starting a new stream while another is still running")
        self._current = handle
        task.add_done_callback(lambda _t: self._release(handle))
        return handle

    async def stream_response(
        self,
        prompt: str = "",
        model: str | None = None,
        callbacks: StreamCallbacks | None = None,
        input_override: list[dict[str, Any]] | None = None,
        context: StreamContext | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> str:
        """Stream a response and return the accumulated answer text."""
        handle = self.start_stream(
            prompt, model, callbacks, input_override, context, overrides,
        )
        return await handle

    @property
    def current_stream(self) -> StreamHandle | None:
        """Handle of the most recently started, still running stream."""
        return self._current

    def close_stream(self) -> bool:
        """Cancel the current stream.  Returns False if none was running."""
        handle = self._current
        if handle is None or handle.done:
            return False
        handle.cancel()
        return True

    async def _run_stream(
        self,
        payload: dict[str, Any],
        api_key: str,
        session: StreamSession,
        cancel_event: asyncio.Event,
    ) -> str:
        try:
            async with self._stream_client.stream(
                "POST", _RESPONSES_PATH, json=payload, headers=self._headers(api_key),
            ) as resp:
                if not resp.is_success:
                    body = ""
                    try:
                        body = (await resp.aread()).decode(errors="replace")
                    except httpx.HTTPError:
                        pass
                    raise TransportError(
                        f"Responses API stream error {resp.status_code}: "
                        f"{body or resp.reason_phrase}",
                        status_code=resp.status_code,
                        body=body,
                    )

                if supports_reasoning(session.model):
                    session.open_window()

                async with contextlib.aclosing(iter_sse_frames(resp.aiter_bytes())) as frames:
                    async for frame in frames:
                        if cancel_event.is_set():
                            break
                        try:
                            event = resolve_frame(frame)
                        except FrameParseError as e:
                            _logger.warning("Failed to parse SSE JSON block: %.200s", e.data)
                            await session.report_error(e)
                            continue
                        await session.apply(event)
        except asyncio.CancelledError:
            if not cancel_event.is_set():
                # Cancelled from outside the handle (timeout, task group).
                session.fail()
                raise
        except httpx.HTTPError as e:
            session.fail()
            raise TransportError(f"Responses API stream failed: {e}") from e

        if cancel_event.is_set():
            _logger.debug("Stream aborted (partial text: %d chars)", len(session.final_text))
            await session.abandon()
        elif not session.completed:
            _logger.warning(
                "Stream ended without response.completed or [DONE]; "
                "emitting synthetic completion (model=%s, partial text: %d chars)",
                session.model, len(session.final_text),
            )
            await session.complete({
                "type": "response.completed",
                "synthetic": True,
                "reason": "eof_without_terminal_event",
            })
        return session.final_text

    def _release(self, handle: StreamHandle) -> None:
        if self._current is handle:
            self._current = None

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def create_response(
        self,
        prompt: str = "",
        model: str | None = None,
        input_override: list[dict[str, Any]] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a non-streaming request and return the decoded JSON.

        Retries timeouts, 429 and 5xx responses with exponential backoff.
        """
        api_key = self._require_api_key()
        resolved = self.resolve_model(model)
        payload = build_responses_payload(
            resolved,
            input_override or build_responses_input_from_prompt(prompt),
            False,
            self._settings(),
            overrides,
        )

        last_error: str = "exhausted retries"
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.post(
                    _RESPONSES_PATH, json=payload, headers=self._headers(api_key),
                )
            except httpx.TimeoutException as e:
                last_error = str(e) or "timed out"
                _logger.warning(
                    "Responses API timeout (attempt %d/%d): %s",
                    attempt + 1, _MAX_RETRIES, e,
                )
                await asyncio.sleep(_BACKOFF_BASE * (2 ** attempt))
                continue
            except httpx.HTTPError as e:
                raise TransportError(f"Responses API request failed: {e}") from e

            if resp.status_code in _RETRY_STATUSES:
                last_error = f"status {resp.status_code}"
                _logger.warning(
                    "Responses API returned %d (attempt %d/%d), retrying...",
                    resp.status_code, attempt + 1, _MAX_RETRIES,
                )
                await asyncio.sleep(_BACKOFF_BASE * (2 ** attempt))
                continue
            if not resp.is_success:
                raise TransportError(
                    f"Responses API error {resp.status_code}: "
                    f"{resp.text or resp.reason_phrase}",
                    status_code=resp.status_code,
                    body=resp.text,
                )
            try:
                return resp.json()
            except ValueError as e:
                raise TransportError(
                    "Responses API returned invalid JSON", status_code=resp.status_code,
                ) from e

        raise TransportError(f"Responses API error: {last_error}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_model(self, model: str | None = None) -> str:
        return resolve_model(model, self.config.model, self.config.default_model)

    def _require_api_key(self) -> str:
        key = self._credentials()
        if not key:
            raise ConfigurationError(
                "No API key configured",
                hint="Set api_key in responses_stream.yaml or export OPENAI_API_KEY",
            )
        return key

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def close(self) -> None:
        """Cancel any running stream and close the HTTP clients."""
        self.close_stream()
        await self._client.aclose()
        await self._stream_client.aclose()
