"""Bounded generate, validate and repair loop for model-produced records."""

from __future__ import annotations

import copy
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from handy_dandy.exceptions import SchemaValidationError
from handy_dandy.migrations import DEFAULT_REGISTRY, MigrationRegistry, migrate_to_latest
from handy_dandy.schemas import (
    ACTION_COSTS,
    ACTION_EXECUTIONS,
    ACTOR_CATEGORIES,
    ACTOR_SIZES,
    ENTITY_TYPES,
    ITEM_CATEGORIES,
    LATEST_SCHEMA_VERSION,
    RARITIES,
    SPELLCASTING_TYPES,
    STRIKE_TYPES,
    SYSTEM_IDS,
    SchemaDefinition,
    get_schema,
    schema_definition,
)
from handy_dandy.validation.validator import ValidationResult, validate

JsonDict = Dict[str, Any]

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class SchemaGenerator(Protocol):
    async def generate_with_schema(
        self,
        prompt: str,
        definition: SchemaDefinition,
        *,
        seed: Optional[int] = None,
    ) -> Any:
        ...


@dataclass(frozen=True)
class AttemptDiagnostics:
    """What one validation attempt saw."""

    attempt: int
    errors: List[str]
    payload: Any
    normalized: JsonDict

    def as_dict(self) -> JsonDict:
        return {
            "attempt": self.attempt,
            "errors": list(self.errors),
            "payload": self.payload,
            "normalized": self.normalized,
        }


@dataclass(frozen=True)
class CorrectionContext:
    """Validation feedback handed to the repair prompt."""

    entity_type: str
    attempt: int
    max_attempts: int
    summary: List[str]
    previous_draft: JsonDict
    diagnostics: List[AttemptDiagnostics] = field(default_factory=list)


CorrectionPromptBuilder = Callable[[CorrectionContext], str]


def build_correction_prompt(context: CorrectionContext) -> str:
    """Return the default repair prompt for *context*."""

    header = f"Repair the following {context.entity_type} JSON so that it matches the Handy Dandy schema."
    if context.summary:
        details = "Validation errors:\n" + "\n".join(f"- {message}" for message in context.summary)
    else:
        details = "Validation failed without detailed errors."
    body = json.dumps(context.previous_draft, indent=2, sort_keys=True)
    return "\n\n".join([header, details, "Current JSON:", body])


_KEY_PATTERN = re.compile(r"[^a-z0-9]+")


def _enum_key(value: str) -> str:
    return _KEY_PATTERN.sub("-", value.strip().lower()).strip("-")


def _enum_lookup(values: Sequence[str], aliases: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    lookup = {_enum_key(value): value for value in values}
    for alias, target in (aliases or {}).items():
        lookup[_enum_key(alias)] = target
    return lookup


_EXECUTION_ALIASES = {
    "one": "one-action",
    "1": "one-action",
    "single-action": "one-action",
    "two": "two-actions",
    "2": "two-actions",
    "two-action": "two-actions",
    "three": "three-actions",
    "3": "three-actions",
    "three-action": "three-actions",
    "free-action": "free",
}

_ACTION_TYPE_LOOKUP = _enum_lookup(ACTION_EXECUTIONS, _EXECUTION_ALIASES)
_ACTION_COST_LOOKUP = _enum_lookup(ACTION_COSTS, _EXECUTION_ALIASES)
_ITEM_TYPE_LOOKUP = _enum_lookup(ITEM_CATEGORIES, {"shield": "armor", "gear": "equipment"})
_ACTOR_TYPE_LOOKUP = _enum_lookup(ACTOR_CATEGORIES, {"creature": "npc", "monster": "npc", "trap": "hazard"})
_SIZE_LOOKUP = _enum_lookup(
    ACTOR_SIZES,
    {"small": "sm", "medium": "med", "large": "lg", "gargantuan": "grg"},
)
_RARITY_LOOKUP = _enum_lookup(RARITIES)
_SYSTEM_ID_LOOKUP = _enum_lookup(SYSTEM_IDS)
_ENTITY_TYPE_LOOKUP = _enum_lookup(ENTITY_TYPES)
_STRIKE_TYPE_LOOKUP = _enum_lookup(STRIKE_TYPES)
_CASTING_LOOKUP = _enum_lookup(SPELLCASTING_TYPES)


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _coerce_integer(value: Any) -> Optional[int]:
    number = _coerce_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _coerce_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _coerce_string_list(value: Any) -> Optional[List[str]]:
    if isinstance(value, list):
        return [entry.strip() for entry in value if isinstance(entry, str) and entry.strip()]
    if isinstance(value, str):
        return [part.strip() for part in re.split(r"[,;\n]", value) if part.strip()]
    return None


def _assign_enum(target: JsonDict, key: str, lookup: Mapping[str, str]) -> None:
    if key not in target:
        return
    value = target[key]
    if value is None:
        del target[key]
        return
    coerced = lookup.get(_enum_key(str(value)))
    if coerced:
        target[key] = coerced


def _assign_integer(target: JsonDict, key: str) -> None:
    if key not in target:
        return
    value = target[key]
    if value is None or (isinstance(value, str) and not value.strip()):
        del target[key]
        return
    coerced = _coerce_integer(value)
    if coerced is not None:
        target[key] = coerced


def _assign_number(target: JsonDict, key: str) -> None:
    if key not in target:
        return
    value = target[key]
    if value is None or (isinstance(value, str) and not value.strip()):
        del target[key]
        return
    coerced = _coerce_number(value)
    if coerced is not None:
        target[key] = int(coerced) if coerced.is_integer() else coerced


def _assign_string(target: JsonDict, key: str, *, required: bool = False) -> None:
    if key not in target:
        return
    value = target[key]
    if value is None and not required:
        del target[key]
        return
    if not isinstance(value, str):
        return
    trimmed = value.strip()
    if trimmed or not required:
        target[key] = trimmed
    else:
        del target[key]


def _assign_string_list(target: JsonDict, key: str) -> None:
    if key not in target:
        return
    coerced = _coerce_string_list(target[key])
    if coerced:
        target[key] = coerced
    elif coerced is not None or target[key] is None:
        del target[key]


def _entries(target: JsonDict, key: str) -> List[JsonDict]:
    value = target.get(key)
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _coerce_action(value: JsonDict) -> None:
    value["type"] = "action"
    _assign_enum(value, "actionType", _ACTION_TYPE_LOOKUP)
    _assign_string_list(value, "traits")
    _assign_string(value, "requirements")
    _assign_string(value, "description", required=True)
    _assign_string(value, "img")
    _assign_enum(value, "rarity", _RARITY_LOOKUP)


def _coerce_item(value: JsonDict) -> None:
    value["type"] = "item"
    _assign_enum(value, "itemType", _ITEM_TYPE_LOOKUP)
    _assign_enum(value, "rarity", _RARITY_LOOKUP)
    _assign_integer(value, "level")
    _assign_number(value, "price")
    _assign_string_list(value, "traits")
    _assign_string(value, "description")
    _assign_string(value, "img")


def _coerce_actor(value: JsonDict) -> None:
    value["type"] = "actor"
    _assign_enum(value, "actorType", _ACTOR_TYPE_LOOKUP)
    _assign_enum(value, "rarity", _RARITY_LOOKUP)
    _assign_enum(value, "size", _SIZE_LOOKUP)
    _assign_integer(value, "level")
    _assign_string_list(value, "traits")
    _assign_string_list(value, "languages")
    _assign_string(value, "img")
    for strike in _entries(value, "strikes"):
        _assign_enum(strike, "type", _STRIKE_TYPE_LOOKUP)
        _assign_integer(strike, "attackBonus")
        _assign_string_list(strike, "traits")
        _assign_string_list(strike, "effects")
    for action in _entries(value, "actions"):
        _assign_enum(action, "actionCost", _ACTION_COST_LOOKUP)
        _assign_string_list(action, "traits")
    for skill in _entries(value, "skills"):
        _assign_integer(skill, "modifier")
    for entry in _entries(value, "spellcasting"):
        _assign_enum(entry, "castingType", _CASTING_LOOKUP)
        for spell in _entries(entry, "spells"):
            _assign_integer(spell, "level")
    for entry in _entries(value, "inventory"):
        _assign_enum(entry, "itemType", _ITEM_TYPE_LOOKUP)
        _assign_integer(entry, "quantity")
        _assign_integer(entry, "level")


def _coerce_pack_entry(value: JsonDict) -> None:
    _assign_string(value, "id", required=True)
    _assign_enum(value, "entityType", _ENTITY_TYPE_LOOKUP)
    _assign_string(value, "img")
    _assign_integer(value, "sort")
    if isinstance(value.get("folder"), str):
        value["folder"] = value["folder"].strip() or None


_TYPE_COERCERS: Dict[str, Callable[[JsonDict], None]] = {
    "action": _coerce_action,
    "item": _coerce_item,
    "actor": _coerce_actor,
    "packEntry": _coerce_pack_entry,
}


def apply_schema_defaults(schema: Mapping[str, Any], instance: Any) -> Any:
    """Fill missing properties that declare a ``default`` in *schema*, in place."""

    if isinstance(instance, dict):
        properties = schema.get("properties")
        if isinstance(properties, Mapping):
            for key, child in properties.items():
                if not isinstance(child, Mapping):
                    continue
                if key not in instance and "default" in child:
                    instance[key] = copy.deepcopy(child["default"])
                if key in instance:
                    apply_schema_defaults(child, instance[key])
    elif isinstance(instance, list):
        items = schema.get("items")
        if isinstance(items, Mapping):
            for entry in instance:
                apply_schema_defaults(items, entry)
    return instance


def normalize_payload(
    entity_type: str,
    payload: Any,
    *,
    registry: MigrationRegistry = DEFAULT_REGISTRY,
) -> JsonDict:
    """Return a cleaned copy of *payload* ready for schema validation."""

    if not isinstance(payload, Mapping):
        return {}

    schema = get_schema(entity_type)
    properties = schema.get("properties", {})
    normalized = {key: copy.deepcopy(value) for key, value in payload.items() if key in properties}

    _assign_integer(normalized, "schema_version")
    _assign_enum(normalized, "systemId", _SYSTEM_ID_LOOKUP)
    _assign_string(normalized, "slug", required=True)
    _assign_string(normalized, "name", required=True)
    _TYPE_COERCERS[entity_type](normalized)

    version = normalized.get("schema_version")
    if isinstance(version, int) and 1 <= version < LATEST_SCHEMA_VERSION:
        logger.info("upgrading stale %s payload schema_version=%d", entity_type, version)
        normalized = migrate_to_latest(entity_type, normalized, registry=registry)

    return apply_schema_defaults(schema, normalized)


async def ensure_valid(
    entity_type: str,
    payload: Any,
    *,
    client: Optional[SchemaGenerator] = None,
    definition: Optional[SchemaDefinition] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    seed: Optional[int] = None,
    prompt_builder: Optional[CorrectionPromptBuilder] = None,
    registry: MigrationRegistry = DEFAULT_REGISTRY,
) -> JsonDict:
    """Return a schema-valid record derived from *payload*.

    Each attempt normalises and validates the current draft. A failing draft
    is sent back to *client* with its validation errors and the repaired
    draft becomes the next attempt. After *max_attempts* failed attempts, or
    on the first failure when no client is given, a
    :class:`~handy_dandy.exceptions.SchemaValidationError` carrying every
    attempt's diagnostics is raised.
    """

    attempts_allowed = max(1, int(max_attempts))
    resolved_definition = definition or schema_definition(entity_type)
    build_prompt = prompt_builder or build_correction_prompt
    diagnostics: List[AttemptDiagnostics] = []
    original_payload = copy.deepcopy(payload)
    draft = copy.deepcopy(payload)
    last_normalized: JsonDict = {}
    last_errors: List[str] = []

    for attempt in range(1, attempts_allowed + 1):
        normalized = normalize_payload(entity_type, draft, registry=registry)
        result: ValidationResult = validate(entity_type, normalized)
        if result.ok:
            if attempt > 1:
                logger.info("%s payload validated after %d attempts", entity_type, attempt)
            return normalized

        last_errors = result.messages()
        last_normalized = normalized
        diagnostics.append(
            AttemptDiagnostics(
                attempt=attempt,
                errors=list(last_errors),
                payload=copy.deepcopy(draft),
                normalized=copy.deepcopy(normalized),
            )
        )
        logger.info(
            "%s payload failed validation attempt=%d/%d errors=%d",
            entity_type,
            attempt,
            attempts_allowed,
            len(last_errors),
        )

        if client is None or attempt == attempts_allowed:
            break

        context = CorrectionContext(
            entity_type=entity_type,
            attempt=attempt,
            max_attempts=attempts_allowed,
            summary=list(last_errors),
            previous_draft=copy.deepcopy(normalized),
            diagnostics=list(diagnostics),
        )
        draft = await client.generate_with_schema(build_prompt(context), resolved_definition, seed=seed)

    raise SchemaValidationError(
        entity_type,
        len(diagnostics),
        errors=last_errors,
        diagnostics=[entry.as_dict() for entry in diagnostics],
        original_payload=original_payload,
        last_payload=last_normalized,
    )


__all__ = [
    "AttemptDiagnostics",
    "CorrectionContext",
    "CorrectionPromptBuilder",
    "DEFAULT_MAX_ATTEMPTS",
    "SchemaGenerator",
    "apply_schema_defaults",
    "build_correction_prompt",
    "ensure_valid",
    "normalize_payload",
]
