"""Request payload construction for the Responses API.

Pure helpers: chat-style messages in, Responses ``input`` turns and the
JSON request body out.  Nothing here raises on odd content; unexpected
shapes degrade to a text representation.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from responses_stream.config import ReasoningSettings

# Substrings identifying model families that accept ``reasoning`` options
_REASONING_MARKERS = ("gpt-5", "o1-", "o3", "o4", "reason")

# Families the Responses endpoint does not serve well
_LEGACY_MODEL_RE = re.compile(r"gpt-3\.5|gpt-4(\.|$)")

_DEFAULT_EFFORT = "medium"
_DEFAULT_VERBOSITY = "medium"
_DEFAULT_SUMMARY = "auto"


# ---------------------------------------------------------------------------
# Model predicates
# ---------------------------------------------------------------------------

def supports_reasoning(model: str | None) -> bool:
    """True if *model* belongs to a reasoning-capable family."""
    m = (model or "").lower()
    return any(marker in m for marker in _REASONING_MARKERS)


def is_gpt51(model: str | None) -> bool:
    """gpt-5.1 has no ``minimal`` effort."""
    return "gpt-5.1" in (model or "").lower()


def is_legacy_model(model: str | None) -> bool:
    return bool(_LEGACY_MODEL_RE.search(model or ""))


def resolve_model(
    requested: str | None,
    selected: str | None,
    default: str,
) -> str:
    """Pick the model for a request.

    An explicit *requested* model always wins.  Otherwise the *selected*
    model is used unless it is missing or a legacy family, in which case
    *default* is returned.
    """
    if requested:
        return requested
    if not selected or is_legacy_model(selected):
        return default
    return selected


# ---------------------------------------------------------------------------
# Input conversion
# ---------------------------------------------------------------------------

def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _image_url(part: Mapping[str, Any]) -> str:
    """Unwrap ``{"image_url": {"url": ...}}`` and the flatter variants."""
    ref = part.get("image_url")
    if isinstance(ref, Mapping):
        ref = ref.get("url", ref.get("image_url"))
    if ref is None:
        ref = part.get("url", "")
    return ref if isinstance(ref, str) else _stringify(ref)


def _convert_part(part: Any, is_assistant: bool) -> dict[str, Any]:
    text_type = "output_text" if is_assistant else "input_text"

    if isinstance(part, str):
        return {"type": text_type, "text": part}
    if not isinstance(part, Mapping):
        return {"type": text_type, "text": _stringify(part)}

    ptype = part.get("type")
    text = part.get("text")
    if is_assistant:
        if ptype in ("text", "input_text") and isinstance(text, str):
            return {"type": text_type, "text": text}
    else:
        if ptype == "text" and isinstance(text, str):
            return {"type": text_type, "text": text}
        if ptype == "image_url":
            return {"type": "input_image", "image_url": _image_url(part)}
        if ptype in ("input_text", "input_image"):
            return dict(part)

    return {"type": text_type, "text": _stringify(part)}


def convert_content(content: Any, role: str | None = None) -> list[dict[str, Any]]:
    """Convert chat message content into Responses content parts."""
    is_assistant = (role or "").lower() == "assistant"
    if isinstance(content, str):
        return [{"type": "output_text" if is_assistant else "input_text", "text": content}]
    if isinstance(content, (list, tuple)):
        return [_convert_part(part, is_assistant) for part in content]
    return [{
        "type": "output_text" if is_assistant else "input_text",
        "text": _stringify(content),
    }]


def build_responses_input_from_messages(
    messages: list[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Map each ``{role, content}`` message to one Responses turn."""
    turns: list[dict[str, Any]] = []
    for m in messages:
        if isinstance(m, Mapping):
            role = m.get("role") or "user"
            content = m.get("content")
        else:
            role, content = "user", m
        turns.append({"role": role, "content": convert_content(content, role)})
    return turns


def build_responses_input_from_prompt(prompt: str) -> list[dict[str, Any]]:
    return [{"role": "user", "content": [{"type": "input_text", "text": prompt}]}]


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

def build_responses_payload(
    model: str,
    input: list[dict[str, Any]],
    stream: bool,
    settings: ReasoningSettings | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the request body shared by streaming and one-shot calls.

    ``text.verbosity`` and ``reasoning`` are only added for
    reasoning-capable models.  *overrides* may carry ``reasoning_effort``,
    ``verbosity`` and ``summary`` and take precedence over *settings*.
    An effort of ``"none"`` omits ``reasoning`` entirely; a summary of
    ``"null"`` is sent as JSON ``null``.
    """
    payload: dict[str, Any] = {
        "model": model,
        "input": input,
        "store": False,
        "stream": stream,
    }
    if not supports_reasoning(model):
        return payload

    settings = settings or ReasoningSettings()
    overrides = overrides or {}

    effort = overrides.get("reasoning_effort") or settings.effort or _DEFAULT_EFFORT
    verbosity = overrides.get("verbosity") or settings.verbosity or _DEFAULT_VERBOSITY
    summary = overrides.get("summary") or settings.summary or _DEFAULT_SUMMARY

    if is_gpt51(model) and effort == "minimal":
        effort = "low"

    payload["text"] = {"verbosity": verbosity}
    if effort != "none":
        payload["reasoning"] = {
            "effort": effort,
            "summary": None if summary == "null" else summary,
        }
    return payload


# ---------------------------------------------------------------------------
# Non-streaming output
# ---------------------------------------------------------------------------

_TEXT_FALLBACK_RE = re.compile(r'"text"\s*:\s*"([^"]{1,200})')


def extract_output_text(obj: Any) -> str:
    """Extract plain text from a non-streaming Responses result.

    Supports ``output_text`` and ``output[].content[].text`` (or
    ``outputs``), then a top-level ``content[]`` list; returns ``""``
    when nothing text-like is found.
    """
    if not obj or not isinstance(obj, Mapping):
        return ""
    if isinstance(obj.get("output_text"), str):
        return obj["output_text"].strip()

    outputs = obj.get("output")
    if not isinstance(outputs, list):
        outputs = obj.get("outputs")
    if isinstance(outputs, list):
        text = ""
        for item in outputs:
            content = item.get("content") if isinstance(item, Mapping) else None
            for part in content if isinstance(content, list) else []:
                if isinstance(part, Mapping) and isinstance(part.get("text"), str):
                    text += part["text"]
                elif isinstance(part, str):
                    text += part
        if text.strip():
            return text.strip()

    content = obj.get("content")
    if isinstance(content, list):
        text = "".join(
            p["text"] for p in content
            if isinstance(p, Mapping) and isinstance(p.get("text"), str)
        )
        if text.strip():
            return text.strip()

    match = _TEXT_FALLBACK_RE.search(_stringify(obj))
    return match.group(1) if match else ""
