"""Default prompt text for entity generation requests."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from handy_dandy.schemas import SYSTEM_IDS, get_schema

_DOCUMENT_TITLES = {
    "action": "Generate a Foundry VTT Action JSON document.",
    "item": "Generate a Foundry VTT Item JSON document.",
    "actor": "Generate a Foundry VTT Actor JSON document.",
}


@dataclass(frozen=True)
class PromptInput:
    """Structured request handed to a prompt builder."""

    title: str
    reference_text: str = ""
    system_id: str = "pf2e"
    slug: Optional[str] = None
    level: Optional[int] = None
    image_path: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PromptInput":
        title = str(payload.get("title") or payload.get("name") or "").strip()
        if not title:
            raise ValueError("prompt input requires a title")
        level = payload.get("level")
        return cls(
            title=title,
            reference_text=str(payload.get("referenceText") or payload.get("reference_text") or "").strip(),
            system_id=str(payload.get("systemId") or payload.get("system_id") or "pf2e"),
            slug=payload.get("slug") or None,
            level=int(level) if isinstance(level, (int, float)) and not isinstance(level, bool) else None,
            image_path=payload.get("img") or payload.get("image_path") or None,
        )


PromptBuilder = Callable[[PromptInput], str]


def _describe_property(name: str, node: Mapping[str, Any], required: bool) -> str:
    kind = node.get("type", "object")
    if isinstance(kind, list):
        kind = "/".join(str(entry) for entry in kind if entry != "null")
    text = f"- {name}: {'required' if required else 'optional'} {kind}"
    enum = [value for value in node.get("enum", []) if value is not None]
    if enum:
        text += f" (one of: {', '.join(str(value) for value in enum)})"
    if "default" in node:
        text += f"; defaults to {json.dumps(node['default'])}"
    return text + "."


def schema_overview(entity_type: str) -> str:
    """Summarise the top-level fields of the *entity_type* schema."""

    schema = get_schema(entity_type)
    required = set(schema.get("required", []))
    lines = [f"{schema.get('title', entity_type)} schema overview:"]
    for name, node in schema.get("properties", {}).items():
        if isinstance(node, Mapping):
            lines.append(_describe_property(name, node, name in required))
    return "\n".join(lines)


def _system_section(system_id: str) -> str:
    allowed = "\n".join(f"- {value}" for value in SYSTEM_IDS)
    return "\n".join(["System ID handling:", "- Allowed values:", allowed, f'- Use the requested systemId: "{system_id}".'])


def build_prompt(entity_type: str, request: PromptInput) -> str:
    """Return the default generation prompt for *entity_type*."""

    details: List[str] = [f'Create a {request.system_id} {entity_type} entry titled "{request.title}".']
    if request.slug:
        details.append(f"Slug suggestion: {request.slug}")
    if request.level is not None:
        details.append(f"Target level: {request.level}")
    if request.image_path:
        details.append(f"Use this image path: {request.image_path}")
    if request.reference_text:
        details.extend(["Use the reference text verbatim where appropriate:", request.reference_text])

    sections = [
        _DOCUMENT_TITLES.get(entity_type, f"Generate a Foundry VTT {entity_type} JSON document."),
        "Always respond with valid JSON matching the schema. Do not add commentary.",
        _system_section(request.system_id),
        schema_overview(entity_type),
        "User request:",
        "\n\n".join(details),
    ]
    return "\n\n".join(sections)


def build_action_prompt(request: PromptInput) -> str:
    return build_prompt("action", request)


def build_item_prompt(request: PromptInput) -> str:
    return build_prompt("item", request)


def build_actor_prompt(request: PromptInput) -> str:
    return build_prompt("actor", request)


DEFAULT_PROMPT_BUILDERS: Dict[str, PromptBuilder] = {
    "action": build_action_prompt,
    "item": build_item_prompt,
    "actor": build_actor_prompt,
}


__all__ = [
    "DEFAULT_PROMPT_BUILDERS",
    "PromptBuilder",
    "PromptInput",
    "build_action_prompt",
    "build_actor_prompt",
    "build_item_prompt",
    "build_prompt",
    "schema_overview",
]
