"""Model identifiers understood by the OpenRouter client."""

from __future__ import annotations

import re
from typing import Any

DEFAULT_MODEL = "openai/gpt-5-mini"
DEFAULT_IMAGE_MODEL = "openai/gpt-5-image-mini"

_IMAGE_ALIASES = {
    "gpt-image-1": "openai/gpt-5-image",
    "openai/gpt-image-1": "openai/gpt-5-image",
    "gpt-image": "openai/gpt-5-image",
    "openai/gpt-image": "openai/gpt-5-image",
}

_OPENAI_BARE_PATTERN = re.compile(r"^(gpt-|o[1-4])", re.IGNORECASE)


def normalize_model_id(model: Any, fallback: str) -> str:
    """Return the routed model id for *model*, using *fallback* when blank.

    Bare OpenAI model names gain the ``openai/`` vendor prefix and retired
    image model aliases map onto their replacement.
    """

    if not isinstance(model, str) or not model.strip():
        return fallback

    trimmed = model.strip()
    alias = _IMAGE_ALIASES.get(trimmed.lower())
    if alias:
        return alias
    if "/" in trimmed:
        return trimmed
    if _OPENAI_BARE_PATTERN.match(trimmed):
        return f"openai/{trimmed}"
    return trimmed


def supports_temperature(model: str) -> bool:
    """Return False for model families that reject a temperature override."""

    name = model.rsplit("/", 1)[-1]
    return not name.startswith("gpt-5")


__all__ = ["DEFAULT_IMAGE_MODEL", "DEFAULT_MODEL", "normalize_model_id", "supports_temperature"]
