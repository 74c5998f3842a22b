"""Reasoning window/panel records and per-stream session tracking."""

from responses_stream.reasoning.store import ReasoningStore, StoreSnapshot
from responses_stream.reasoning.session import StreamSession

__all__ = ["ReasoningStore", "StoreSnapshot", "StreamSession"]
