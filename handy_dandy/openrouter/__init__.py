"""OpenRouter integration: model ids, capability catalog, and request client."""

from handy_dandy.openrouter.models import DEFAULT_IMAGE_MODEL, DEFAULT_MODEL, normalize_model_id
from handy_dandy.openrouter.catalog import (
    CapabilityCatalog,
    ModelCapabilities,
    load_capability_catalog,
)
from handy_dandy.openrouter.client import GeneratedImage, OpenRouterClient, ReferenceImage

__all__ = [
    "CapabilityCatalog",
    "DEFAULT_IMAGE_MODEL",
    "DEFAULT_MODEL",
    "GeneratedImage",
    "ModelCapabilities",
    "OpenRouterClient",
    "ReferenceImage",
    "load_capability_catalog",
    "normalize_model_id",
]
