"""Streaming client for the Responses API with reasoning-trace tracking."""

from responses_stream.config import ReasoningSettings, ResponsesConfig, load_config
from responses_stream.errors import (
    ConfigurationError,
    FrameParseError,
    ResponsesStreamError,
    TransportError,
)
from responses_stream.llm import ResponsesClient, StreamHandle
from responses_stream.reasoning import ReasoningStore, StreamSession
from responses_stream.types import (
    ReasoningKind,
    ReasoningPanel,
    ReasoningWindow,
    StreamCallbacks,
    StreamContext,
)

__all__ = [
    "ConfigurationError",
    "FrameParseError",
    "ReasoningKind",
    "ReasoningPanel",
    "ReasoningSettings",
    "ReasoningStore",
    "ReasoningWindow",
    "ResponsesClient",
    "ResponsesConfig",
    "ResponsesStreamError",
    "StreamCallbacks",
    "StreamContext",
    "StreamHandle",
    "StreamSession",
    "TransportError",
    "load_config",
]
