"""Versioned JSON Schemas for canonical Handy Dandy entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

JsonDict = Dict[str, Any]

SYSTEM_IDS = ("pf2e", "sf2e")
ACTION_EXECUTIONS = ("one-action", "two-actions", "three-actions", "free", "reaction")
ACTION_COSTS = ACTION_EXECUTIONS + ("passive",)
ITEM_CATEGORIES = (
    "armor",
    "weapon",
    "equipment",
    "consumable",
    "feat",
    "spell",
    "wand",
    "staff",
    "other",
)
ACTOR_CATEGORIES = ("character", "npc", "hazard", "vehicle", "familiar", "loot")
ACTOR_SIZES = ("tiny", "sm", "med", "lg", "huge", "grg")
RARITIES = ("common", "uncommon", "rare", "unique")
SPELLCASTING_TYPES = ("prepared", "spontaneous", "innate", "focus", "ritual")
STRIKE_TYPES = ("melee", "ranged")
LOOT_SHEET_TYPES = ("Loot", "Merchant")
HAZARD_SOUND_MODES = ("always", "never", "encounter")
ENTITY_TYPES = ("action", "item", "actor")
SCHEMA_TYPES = ("action", "item", "actor", "packEntry")

LATEST_SCHEMA_VERSION = 3

SCHEMA_BASE_URI = "https://handy-dandy.local/schemas"


def schema_uri(schema_type: str) -> str:
    """Return the stable ``$id`` URI used for *schema_type*."""

    return f"{SCHEMA_BASE_URI}/{schema_type}.schema.json"


def _string(*, min_length: Optional[int] = 1) -> JsonDict:
    node: JsonDict = {"type": "string"}
    if min_length is not None:
        node["minLength"] = min_length
    return node


def _enum(values: Sequence[str], *, default: Any = None, nullable: bool = False) -> JsonDict:
    node: JsonDict = {
        "type": ["string", "null"] if nullable else "string",
        "enum": list(values) + ([None] if nullable else []),
    }
    if default is not None or nullable:
        node["default"] = default
    return node


def _nullable_string(default: Optional[str] = None) -> JsonDict:
    return {"type": ["string", "null"], "default": default}


def _nullable_integer(default: Optional[int] = None, *, minimum: Optional[int] = None) -> JsonDict:
    node: JsonDict = {"type": ["integer", "null"], "default": default}
    if minimum is not None:
        node["minimum"] = minimum
    return node


def _string_list(*, nullable: bool = True) -> JsonDict:
    return {
        "type": ["array", "null"] if nullable else "array",
        "items": _string(),
        "default": [],
    }


def _object(properties: JsonDict, required: List[str]) -> JsonDict:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": required,
        "properties": properties,
    }


def _object_list(item: JsonDict, *, nullable: bool = True, min_items: Optional[int] = None) -> JsonDict:
    node: JsonDict = {
        "type": ["array", "null"] if nullable else "array",
        "items": item,
    }
    if min_items is None:
        node["default"] = []
    else:
        node["minItems"] = min_items
    return node


def _base_meta(entity_type: str) -> JsonDict:
    return {
        "schema_version": {
            "type": "integer",
            "enum": [LATEST_SCHEMA_VERSION],
            "default": LATEST_SCHEMA_VERSION,
        },
        "systemId": {"type": "string", "enum": list(SYSTEM_IDS), "default": "pf2e"},
        "type": {"type": "string", "enum": [entity_type]},
        "slug": _string(),
        "name": _string(),
    }


def _value_block(extra: Optional[JsonDict] = None, *, minimum: Optional[int] = None) -> JsonDict:
    value: JsonDict = {"type": "integer"}
    if minimum is not None:
        value["minimum"] = minimum
    properties: JsonDict = {"value": value, "details": _nullable_string()}
    properties.update(extra or {})
    return _object(properties, ["value"])


ACTION_SCHEMA: JsonDict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": schema_uri("action"),
    "title": "Action",
    **_object(
        {
            **_base_meta("action"),
            "actionType": {"type": "string", "enum": list(ACTION_EXECUTIONS)},
            "traits": _string_list(),
            "requirements": _nullable_string(""),
            "description": _string(),
            "img": _nullable_string(),
            "rarity": _enum(RARITIES, default="common", nullable=True),
            "source": _nullable_string(""),
        },
        ["schema_version", "systemId", "type", "slug", "name", "actionType", "description"],
    ),
}

ITEM_SCHEMA: JsonDict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": schema_uri("item"),
    "title": "Item",
    **_object(
        {
            **_base_meta("item"),
            "itemType": {"type": "string", "enum": list(ITEM_CATEGORIES)},
            "rarity": {"type": "string", "enum": list(RARITIES)},
            "level": {"type": "integer", "minimum": 0},
            "price": {"type": ["number", "null"], "minimum": 0, "default": 0},
            "traits": _string_list(),
            "description": _nullable_string(""),
            "img": _nullable_string(),
            "source": _nullable_string(""),
        },
        ["schema_version", "systemId", "type", "slug", "name", "itemType", "rarity", "level"],
    ),
}

_SAVE = _value_block()

_ATTRIBUTES = _object(
    {
        "hp": _object(
            {
                "value": {"type": "integer", "minimum": 0},
                "max": {"type": "integer", "minimum": 0},
                "temp": _nullable_integer(0),
                "details": _nullable_string(),
            },
            ["value", "max"],
        ),
        "ac": _value_block(),
        "perception": _value_block({"senses": _string_list()}),
        "speed": _value_block(
            {
                "other": _object_list(
                    _object(
                        {
                            "type": _string(),
                            "value": {"type": "integer", "minimum": 0},
                            "details": _nullable_string(),
                        },
                        ["type", "value"],
                    )
                )
            },
            minimum=0,
        ),
        "saves": _object(
            {"fortitude": _SAVE, "reflex": _SAVE, "will": _SAVE},
            ["fortitude", "reflex", "will"],
        ),
        "immunities": _object_list(
            _object(
                {
                    "type": _string(),
                    "exceptions": _string_list(),
                    "details": _nullable_string(),
                },
                ["type"],
            )
        ),
        "weaknesses": _object_list(
            _object(
                {
                    "type": _string(),
                    "value": {"type": "integer", "minimum": 0},
                    "exceptions": _string_list(),
                    "details": _nullable_string(),
                },
                ["type", "value"],
            )
        ),
        "resistances": _object_list(
            _object(
                {
                    "type": _string(),
                    "value": {"type": "integer", "minimum": 0},
                    "exceptions": _string_list(),
                    "doubleVs": _string_list(),
                    "details": _nullable_string(),
                },
                ["type", "value"],
            )
        ),
    },
    ["hp", "ac", "perception", "speed", "saves"],
)

_ABILITIES = _object(
    {key: {"type": "integer"} for key in ("str", "dex", "con", "int", "wis", "cha")},
    ["str", "dex", "con", "int", "wis", "cha"],
)

_SKILL = _object(
    {"slug": _string(), "modifier": {"type": "integer"}, "details": _nullable_string()},
    ["slug", "modifier"],
)

_STRIKE = _object(
    {
        "name": _string(),
        "type": {"type": "string", "enum": list(STRIKE_TYPES)},
        "attackBonus": {"type": "integer"},
        "traits": _string_list(),
        "damage": _object_list(
            _object(
                {
                    "formula": _string(),
                    "damageType": _nullable_string(),
                    "notes": _nullable_string(),
                },
                ["formula"],
            ),
            nullable=False,
            min_items=1,
        ),
        "effects": _string_list(),
        "description": _nullable_string(),
    },
    ["name", "type", "attackBonus", "damage"],
)

_ACTOR_ACTION = _object(
    {
        "name": _string(),
        "actionCost": {"type": "string", "enum": list(ACTION_COSTS)},
        "description": _string(),
        "traits": _string_list(),
        "requirements": _nullable_string(),
        "trigger": _nullable_string(),
        "frequency": _nullable_string(),
    },
    ["name", "actionCost", "description"],
)

_SPELLCASTING = _object(
    {
        "name": _string(),
        "tradition": _string(),
        "castingType": {"type": "string", "enum": list(SPELLCASTING_TYPES)},
        "attackBonus": _nullable_integer(),
        "saveDC": _nullable_integer(),
        "notes": _nullable_string(),
        "spells": _object_list(
            _object(
                {
                    "level": {"type": "integer", "minimum": 0},
                    "name": _string(),
                    "description": _nullable_string(),
                    "tradition": _nullable_string(),
                },
                ["level", "name"],
            ),
            nullable=False,
        ),
    },
    ["name", "tradition", "castingType", "spells"],
)

_INVENTORY_ENTRY = _object(
    {
        "name": _string(),
        "itemType": _enum(ITEM_CATEGORIES, nullable=True),
        "quantity": _nullable_integer(1, minimum=0),
        "level": _nullable_integer(0, minimum=0),
        "description": _nullable_string(),
        "img": _nullable_string(),
    },
    ["name"],
)

_LOOT = {
    **_object(
        {
            "lootSheetType": {"type": "string", "enum": list(LOOT_SHEET_TYPES), "default": "Loot"},
            "hiddenWhenEmpty": {"type": "boolean", "default": False},
        },
        [],
    ),
    "type": ["object", "null"],
    "default": None,
}

_HAZARD = {
    **_object(
        {
            "isComplex": {"type": "boolean", "default": False},
            "disable": _nullable_string(),
            "routine": _nullable_string(),
            "reset": _nullable_string(),
            "emitsSound": _enum(HAZARD_SOUND_MODES, default="encounter", nullable=True),
            "hardness": _nullable_integer(0, minimum=0),
            "stealthBonus": _nullable_integer(),
            "stealthDetails": _nullable_string(),
        },
        [],
    ),
    "type": ["object", "null"],
    "default": None,
}

ACTOR_SCHEMA: JsonDict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": schema_uri("actor"),
    "title": "Actor",
    **_object(
        {
            **_base_meta("actor"),
            "actorType": {"type": "string", "enum": list(ACTOR_CATEGORIES)},
            "rarity": {"type": "string", "enum": list(RARITIES)},
            "level": {"type": "integer", "minimum": 0},
            "size": {"type": "string", "enum": list(ACTOR_SIZES)},
            "traits": _string_list(nullable=False),
            "alignment": _nullable_string(),
            "languages": _string_list(nullable=False),
            "attributes": _ATTRIBUTES,
            "abilities": _ABILITIES,
            "skills": _object_list(_SKILL, nullable=False),
            "strikes": _object_list(_STRIKE, nullable=False),
            "actions": _object_list(_ACTOR_ACTION, nullable=False),
            "spellcasting": _object_list(_SPELLCASTING),
            "inventory": _object_list(_INVENTORY_ENTRY),
            "loot": _LOOT,
            "hazard": _HAZARD,
            "description": _nullable_string(),
            "recallKnowledge": _nullable_string(),
            "img": _nullable_string(),
            "source": {"type": "string", "default": ""},
        },
        [
            "schema_version",
            "systemId",
            "type",
            "slug",
            "name",
            "actorType",
            "rarity",
            "level",
            "size",
            "traits",
            "languages",
            "attributes",
            "abilities",
            "skills",
            "strikes",
            "actions",
            "img",
            "source",
        ],
    ),
}

PACK_ENTRY_SCHEMA: JsonDict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": schema_uri("packEntry"),
    "title": "PackEntry",
    **_object(
        {
            "schema_version": _base_meta("packEntry")["schema_version"],
            "systemId": _base_meta("packEntry")["systemId"],
            "id": _string(),
            "entityType": {"type": "string", "enum": list(ENTITY_TYPES)},
            "name": _string(),
            "slug": _string(),
            "img": _nullable_string(),
            "sort": _nullable_integer(0),
            "folder": _nullable_string(),
        },
        ["schema_version", "systemId", "id", "entityType", "name", "slug"],
    ),
}

SCHEMAS: Dict[str, JsonDict] = {
    "action": ACTION_SCHEMA,
    "item": ITEM_SCHEMA,
    "actor": ACTOR_SCHEMA,
    "packEntry": PACK_ENTRY_SCHEMA,
}


@dataclass(frozen=True)
class SchemaDefinition:
    """A named schema handed to the request client."""

    name: str
    schema: JsonDict
    description: Optional[str] = None


def get_schema(schema_type: str) -> JsonDict:
    """Return the JSON Schema registered for *schema_type*."""

    try:
        return SCHEMAS[schema_type]
    except KeyError as exc:
        raise KeyError(f"unknown schema type: {schema_type}") from exc


def schema_definition(entity_type: str) -> SchemaDefinition:
    """Return the request-client definition used to generate *entity_type*."""

    schema = get_schema(entity_type)
    return SchemaDefinition(
        name=str(schema.get("title") or entity_type),
        schema=schema,
        description=f"Schema for {entity_type} entries",
    )


__all__ = [
    "ACTION_COSTS",
    "ACTION_EXECUTIONS",
    "ACTION_SCHEMA",
    "ACTOR_CATEGORIES",
    "ACTOR_SCHEMA",
    "ACTOR_SIZES",
    "ENTITY_TYPES",
    "HAZARD_SOUND_MODES",
    "ITEM_CATEGORIES",
    "ITEM_SCHEMA",
    "LATEST_SCHEMA_VERSION",
    "LOOT_SHEET_TYPES",
    "PACK_ENTRY_SCHEMA",
    "RARITIES",
    "SCHEMAS",
    "SCHEMA_TYPES",
    "SPELLCASTING_TYPES",
    "STRIKE_TYPES",
    "SYSTEM_IDS",
    "SchemaDefinition",
    "get_schema",
    "schema_definition",
    "schema_uri",
]
