"""Ordered extractors that pull JSON and image payloads out of model responses.

Responses arrive in several shapes depending on the invocation mode and the
upstream provider. Each extractor inspects one shape and returns ``None`` when
it does not apply; :func:`extract_json` runs them in priority order and keeps
the first hit.
"""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import unquote_to_bytes

JsonDict = Dict[str, Any]
JsonExtractor = Callable[[Mapping[str, Any]], Optional[Any]]

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
_DATA_URL_PATTERN = re.compile(r"^data:([^;,]+)?((?:;[^,]*)?),(.*)$", re.IGNORECASE | re.DOTALL)


def response_to_mapping(response: Any) -> Optional[Mapping[str, Any]]:
    """Return a plain mapping view of an SDK response object."""

    if isinstance(response, Mapping):
        return response
    dump = getattr(response, "model_dump", None)
    if callable(dump):
        dumped = dump()
        if isinstance(dumped, Mapping):
            return dumped
    return None


def parse_json_text(value: Any) -> Optional[Any]:
    """Decode *value* when it is JSON text; pass through decoded objects."""

    if isinstance(value, (dict, list)):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    fenced = _FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = _OBJECT_PATTERN.search(text)
        if not match:
            return None
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            return None


def _blocks(response: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    value = response.get(key)
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]


def _from_output_tool_calls(response: Mapping[str, Any]) -> Optional[Any]:
    for block in _blocks(response, "output"):
        if block.get("type") not in {"function_call", "tool_call"}:
            continue
        parsed = parse_json_text(block.get("arguments"))
        if parsed is not None:
            return parsed
        nested = block.get("tool_call")
        if isinstance(nested, Mapping):
            parsed = parse_json_text(nested.get("arguments"))
            if parsed is not None:
                return parsed
    return None


def _from_output_content(response: Mapping[str, Any]) -> Optional[Any]:
    for block in _blocks(response, "output"):
        content = block.get("content")
        if not isinstance(content, list):
            continue
        for item in content:
            if not isinstance(item, Mapping):
                continue
            kind = item.get("type")
            if kind == "output_json" and isinstance(item.get("json"), (dict, list)):
                return item["json"]
            if kind in {"output_text", "text"}:
                parsed = parse_json_text(item.get("text"))
                if parsed is not None:
                    return parsed
            if kind == "tool_call" and isinstance(item.get("tool_call"), Mapping):
                parsed = parse_json_text(item["tool_call"].get("arguments"))
                if parsed is not None:
                    return parsed
    return None


def _from_output_text(response: Mapping[str, Any]) -> Optional[Any]:
    return parse_json_text(response.get("output_text"))


def _messages(response: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    for choice in _blocks(response, "choices"):
        message = choice.get("message")
        if isinstance(message, Mapping):
            yield message


def _from_choice_tool_calls(response: Mapping[str, Any]) -> Optional[Any]:
    for message in _messages(response):
        calls = message.get("tool_calls")
        if not isinstance(calls, list):
            continue
        for call in calls:
            function = call.get("function") if isinstance(call, Mapping) else None
            if isinstance(function, Mapping):
                parsed = parse_json_text(function.get("arguments"))
                if parsed is not None:
                    return parsed
    return None


def _from_choice_content(response: Mapping[str, Any]) -> Optional[Any]:
    for message in _messages(response):
        content = message.get("content")
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") for part in content if isinstance(part, Mapping)
            )
        parsed = parse_json_text(content)
        if parsed is not None:
            return parsed
    return None


JSON_EXTRACTORS: Tuple[JsonExtractor, ...] = (
    _from_output_tool_calls,
    _from_output_content,
    _from_output_text,
    _from_choice_tool_calls,
    _from_choice_content,
)


def extract_json(
    response: Any,
    extractors: Sequence[JsonExtractor] = JSON_EXTRACTORS,
) -> Optional[Any]:
    """Return the first JSON payload found by *extractors*, else ``None``."""

    mapping = response_to_mapping(response)
    if mapping is None:
        return None
    for extractor in extractors:
        found = extractor(mapping)
        if found is not None:
            return found
    return None


def extract_usage(response: Any) -> Optional[Dict[str, int]]:
    """Return token counts from whichever usage spelling the provider used."""

    mapping = response_to_mapping(response)
    usage = mapping.get("usage") if mapping is not None else None
    if not isinstance(usage, Mapping):
        return None

    def _first(*keys: str) -> Optional[int]:
        for key in keys:
            value = usage.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return int(value)
        return None

    metrics = {
        "input_tokens": _first("input_tokens", "prompt_tokens", "total_input_tokens"),
        "output_tokens": _first("output_tokens", "completion_tokens", "total_output_tokens"),
        "total_tokens": _first("total_tokens", "totalTokenCount", "combined_tokens"),
    }
    metrics = {key: value for key, value in metrics.items() if value is not None}
    return metrics or None


@dataclass(frozen=True)
class ImageCandidate:
    """An image reference found in a chat response."""

    base64: Optional[str]
    url: Optional[str]
    mime_type: Optional[str]
    revised_prompt: Optional[str]


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _image_url(entry: Any) -> Optional[str]:
    direct = _clean(entry)
    if direct:
        return direct
    if not isinstance(entry, Mapping):
        return None
    for key in ("url", "image_url", "imageUrl"):
        value = entry.get(key)
        found = _clean(value)
        if found:
            return found
        if isinstance(value, Mapping):
            found = _clean(value.get("url"))
            if found:
                return found
    return None


def _image_base64(entry: Any) -> Optional[str]:
    if not isinstance(entry, Mapping):
        return None
    return _clean(entry.get("b64_json")) or _clean(entry.get("b64Json"))


def _image_mime_type(entry: Any) -> Optional[str]:
    if not isinstance(entry, Mapping):
        return None
    for key in ("mime_type", "mimeType"):
        value = _clean(entry.get(key))
        if value and value.startswith("image/"):
            return value
    return None


def message_text(content: Any) -> Optional[str]:
    """Return the text parts of a chat message *content* joined by newlines."""

    if isinstance(content, str):
        return content.strip() or None
    if not isinstance(content, list):
        return None
    parts = [
        block["text"].strip()
        for block in content
        if isinstance(block, Mapping) and isinstance(block.get("text"), str) and block["text"].strip()
    ]
    return "\n".join(parts) if parts else None


def iter_image_candidates(response: Any) -> Iterator[ImageCandidate]:
    """Yield every image reference in a chat completion, in response order."""

    mapping = response_to_mapping(response)
    if mapping is None:
        return
    for message in _messages(mapping):
        revised_prompt = message_text(message.get("content"))
        entries: List[Any] = []
        images = message.get("images")
        if isinstance(images, list):
            entries.extend(images)
        content = message.get("content")
        if isinstance(content, list):
            for block in content:
                if not isinstance(block, Mapping):
                    continue
                if block.get("type") in {"image_url", "image"} or _image_url(block) or _image_base64(block):
                    entries.append(block)
        for entry in entries:
            encoded = _image_base64(entry)
            url = None if encoded else _image_url(entry)
            if encoded or url:
                yield ImageCandidate(encoded, url, _image_mime_type(entry), revised_prompt)


def parse_data_url(value: str) -> Optional[Tuple[str, str]]:
    """Return ``(base64, mime_type)`` for a ``data:`` URL, else ``None``."""

    match = _DATA_URL_PATTERN.match(value.strip())
    if not match:
        return None
    mime_type = (match.group(1) or "").strip() or "image/png"
    params, payload = match.group(2) or "", match.group(3) or ""
    if ";base64" in params.lower():
        return payload, mime_type
    return base64.b64encode(unquote_to_bytes(payload)).decode("ascii"), mime_type


__all__ = [
    "ImageCandidate",
    "JSON_EXTRACTORS",
    "JsonExtractor",
    "extract_json",
    "extract_usage",
    "iter_image_candidates",
    "message_text",
    "parse_data_url",
    "parse_json_text",
    "response_to_mapping",
]
