"""Handy Dandy: generate, validate and map PF2e content for Foundry VTT."""

from handy_dandy.exceptions import (
    CapabilityError,
    HandyDandyError,
    MigrationError,
    ParseError,
    SchemaValidationError,
    TransportError,
)
from handy_dandy.generation import (
    DEFAULT_GENERATION_SEED,
    GenerationResult,
    PromptInput,
    generate_action,
    generate_actor,
    generate_item,
)
from handy_dandy.generation.batch import BatchResult, generate_batch
from handy_dandy.generation.images import generate_item_image, generate_transparent_token_image
from handy_dandy.mappers import (
    from_foundry_action,
    from_foundry_actor,
    from_foundry_item,
    to_foundry_action_data,
    to_foundry_actor_data,
    to_foundry_item_data,
)
from handy_dandy.migrations import migrate, migrate_to_latest
from handy_dandy.openrouter import OpenRouterClient
from handy_dandy.validation import ensure_valid, validate

__all__ = [
    "BatchResult",
    "CapabilityError",
    "DEFAULT_GENERATION_SEED",
    "GenerationResult",
    "HandyDandyError",
    "MigrationError",
    "OpenRouterClient",
    "ParseError",
    "PromptInput",
    "SchemaValidationError",
    "TransportError",
    "ensure_valid",
    "from_foundry_action",
    "from_foundry_actor",
    "from_foundry_item",
    "generate_action",
    "generate_actor",
    "generate_batch",
    "generate_item",
    "generate_item_image",
    "generate_transparent_token_image",
    "migrate",
    "migrate_to_latest",
    "to_foundry_action_data",
    "to_foundry_actor_data",
    "to_foundry_item_data",
    "validate",
]
