"""Responses API wire layer: request building, SSE decoding, the client."""

from responses_stream.llm.events import classify_event_type, resolve_frame
from responses_stream.llm.request_builder import (
    build_responses_input_from_messages,
    build_responses_input_from_prompt,
    build_responses_payload,
    extract_output_text,
    supports_reasoning,
)
from responses_stream.llm.sse import SSEDecoder, iter_sse_frames
from responses_stream.llm.client import ResponsesClient, StreamHandle

__all__ = [
    "ResponsesClient",
    "SSEDecoder",
    "StreamHandle",
    "build_responses_input_from_messages",
    "build_responses_input_from_prompt",
    "build_responses_payload",
    "classify_event_type",
    "extract_output_text",
    "iter_sse_frames",
    "resolve_frame",
    "supports_reasoning",
]
