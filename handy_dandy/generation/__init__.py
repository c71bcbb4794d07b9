"""Generation facade: prompt, generate, validate and map one entity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from handy_dandy.generation.prompts import DEFAULT_PROMPT_BUILDERS, PromptBuilder, PromptInput
from handy_dandy.mappers.foundry import to_foundry_action_data, to_foundry_actor_data, to_foundry_item_data
from handy_dandy.pf2e.config import DEFAULT_SYSTEM_CONFIG, SystemConfig
from handy_dandy.pf2e.images import default_image_for_category
from handy_dandy.schemas import schema_definition
from handy_dandy.validation.ensure_valid import DEFAULT_MAX_ATTEMPTS, SchemaGenerator, ensure_valid

JsonDict = Dict[str, Any]
RequestLike = Union[PromptInput, Mapping[str, Any]]

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_SEED = 1337

_MAPPERS: Dict[str, Callable[..., JsonDict]] = {
    "action": to_foundry_action_data,
    "item": to_foundry_item_data,
    "actor": to_foundry_actor_data,
}


@dataclass(frozen=True)
class GenerationResult:
    """A validated canonical record and the host document mapped from it."""

    canonical: JsonDict
    document: JsonDict

    @property
    def name(self) -> str:
        return str(self.canonical.get("name") or self.document.get("name") or "")


def _as_prompt_input(request: RequestLike) -> PromptInput:
    if isinstance(request, PromptInput):
        return request
    return PromptInput.from_mapping(request)


async def generate_entity(
    entity_type: str,
    request: RequestLike,
    *,
    client: SchemaGenerator,
    prompt_builder: Optional[PromptBuilder] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    seed: Optional[int] = DEFAULT_GENERATION_SEED,
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> GenerationResult:
    """Generate one *entity_type* record and map it to a host document.

    Parameters
    ----------
    entity_type:
        ``"action"``, ``"item"`` or ``"actor"``.
    request:
        Prompt input, either a :class:`PromptInput` or a mapping with a
        ``title`` and optional ``referenceText``/``slug``/``level``/``img``.
    client:
        Object exposing ``generate_with_schema``; the first draft and every
        repair attempt go through it.
    prompt_builder:
        Replaces the default prompt text for *entity_type*.
    max_attempts:
        Total generation budget including the first draft.
    seed:
        Sampling seed forwarded with every request.
    config:
        System lookup tables used by the mapper.
    """

    if entity_type not in _MAPPERS:
        raise ValueError(f"unsupported entity type: {entity_type}")

    build_prompt = prompt_builder or DEFAULT_PROMPT_BUILDERS[entity_type]
    definition = schema_definition(entity_type)
    prompt = build_prompt(_as_prompt_input(request))

    draft = await client.generate_with_schema(prompt, definition, seed=seed)
    canonical = await ensure_valid(
        entity_type,
        draft,
        client=client,
        definition=definition,
        max_attempts=max_attempts,
        seed=seed,
    )

    if entity_type == "item" and not str(canonical.get("img") or "").strip():
        canonical = dict(canonical, img=default_image_for_category(canonical.get("itemType")))

    document = _MAPPERS[entity_type](canonical, config)
    logger.info("generated %s slug=%s name=%s", entity_type, canonical.get("slug"), canonical.get("name"))
    return GenerationResult(canonical=canonical, document=document)


async def generate_action(request: RequestLike, **options: Any) -> GenerationResult:
    return await generate_entity("action", request, **options)


async def generate_item(request: RequestLike, **options: Any) -> GenerationResult:
    return await generate_entity("item", request, **options)


async def generate_actor(request: RequestLike, **options: Any) -> GenerationResult:
    return await generate_entity("actor", request, **options)


__all__ = [
    "DEFAULT_GENERATION_SEED",
    "GenerationResult",
    "PromptInput",
    "generate_action",
    "generate_actor",
    "generate_entity",
    "generate_item",
]
