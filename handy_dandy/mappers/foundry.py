"""Canonical record to Foundry VTT PF2e document mapping."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping

from handy_dandy.mappers.actor_items import (
    as_int,
    build_action_item,
    build_inventory_item,
    build_spellcasting_items,
    build_strike_item,
    clean_text,
    demoted_traits_paragraph,
    entries,
    host_item_type,
    physical_item_system,
    publication,
    split_traits,
    string_list,
)
from handy_dandy.migrations import DEFAULT_REGISTRY, MigrationRegistry, migrate_to_latest
from handy_dandy.pf2e.config import DEFAULT_SYSTEM_CONFIG, SystemConfig, slugify
from handy_dandy.pf2e.images import (
    DEFAULT_ACTION_IMAGE,
    DEFAULT_ACTOR_IMAGE,
    DEFAULT_HAZARD_IMAGE,
    DEFAULT_LOOT_IMAGE,
    default_image_for_category,
)
from handy_dandy.schemas import HAZARD_SOUND_MODES, LATEST_SCHEMA_VERSION, LOOT_SHEET_TYPES
from handy_dandy.text.rich_text import to_rich_text

JsonDict = Dict[str, Any]

logger = logging.getLogger(__name__)

MODULE_FLAG = "handy-dandy"

ACTION_EXECUTIONS = {
    "one-action": ("action", 1),
    "two-actions": ("action", 2),
    "three-actions": ("action", 3),
    "free": ("free", None),
    "reaction": ("reaction", None),
}

HOST_ACTOR_TYPES = frozenset({"npc", "hazard", "loot", "character", "familiar", "vehicle"})

TOKEN_SIZES = {"tiny": 1, "sm": 1, "med": 1, "lg": 2, "huge": 3, "grg": 4}


def ensure_current(
    entity_type: str,
    record: Mapping[str, Any],
    *,
    registry: MigrationRegistry = DEFAULT_REGISTRY,
) -> JsonDict:
    """Return a copy of *record* advanced to the current schema version."""

    version = record.get("schema_version")
    if isinstance(version, int) and not isinstance(version, bool) and version < LATEST_SCHEMA_VERSION:
        logger.info("migrating stale %s before mapping slug=%s version=%d", entity_type, record.get("slug"), version)
        return migrate_to_latest(entity_type, record, registry=registry)
    return copy.deepcopy(dict(record))


def _flags(record: Mapping[str, Any]) -> JsonDict:
    return {
        MODULE_FLAG: {
            "slug": clean_text(record.get("slug")),
            "schemaVersion": LATEST_SCHEMA_VERSION,
            "systemId": clean_text(record.get("systemId")) or "pf2e",
        }
    }


def _document(name: str, doc_type: str, img: str, system: JsonDict, record: Mapping[str, Any]) -> JsonDict:
    return {
        "name": name,
        "type": doc_type,
        "img": img,
        "system": system,
        "effects": [],
        "folder": None,
        "flags": _flags(record),
    }


def to_foundry_action_data(
    action: Mapping[str, Any],
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> JsonDict:
    """Map a canonical action onto a PF2e ``action`` item document."""

    record = ensure_current("action", action)
    action_type, count = ACTION_EXECUTIONS.get(str(record.get("actionType")), ("action", 1))
    traits, other_traits = split_traits(record.get("traits"), "action", config)
    description = to_rich_text(record.get("description"), config) + demoted_traits_paragraph(other_traits, config)
    source = clean_text(record.get("source"))

    system = {
        "slug": clean_text(record.get("slug")),
        "description": {"value": description, "gm": ""},
        "traits": {
            "value": traits,
            "rarity": record.get("rarity") or "common",
            "otherTags": other_traits,
        },
        "actionType": {"value": action_type},
        "actions": {"value": count},
        "category": "defensive" if action_type == "reaction" else "offensive",
        "requirements": {"value": to_rich_text(record.get("requirements"), config)},
        "trigger": {"value": ""},
        "source": {"value": source},
        "publication": publication(source),
        "rules": [],
    }
    image = clean_text(record.get("img")) or DEFAULT_ACTION_IMAGE
    return _document(clean_text(record.get("name")), "action", image, system, record)


def to_foundry_item_data(
    item: Mapping[str, Any],
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> JsonDict:
    """Map a canonical item onto a PF2e item document of the matching type."""

    record = ensure_current("item", item)
    category = clean_text(record.get("itemType")) or "equipment"
    trait_kind = "weapon" if host_item_type(category) == "weapon" else "equipment"
    traits, other_traits = split_traits(record.get("traits"), trait_kind, config)
    description = to_rich_text(record.get("description"), config) + demoted_traits_paragraph(other_traits, config)

    system = physical_item_system(
        slug=clean_text(record.get("slug")),
        category=category,
        level=max(as_int(record.get("level"), 0) or 0, 0),
        quantity=1,
        price=record.get("price"),
        description=description,
        traits=traits,
        other_traits=other_traits,
        rarity=record.get("rarity") or "common",
        source=record.get("source"),
    )
    image = clean_text(record.get("img")) or default_image_for_category(category)
    return _document(clean_text(record.get("name")), host_item_type(category), image, system, record)


def _iwr_entries(
    kind: str,
    values: Any,
    config: SystemConfig,
) -> List[JsonDict]:
    result: List[JsonDict] = []
    for entry in entries(values):
        raw_type = clean_text(entry.get("type"))
        notes: List[str] = []
        details = clean_text(entry.get("details"))
        if details:
            notes.append(details)

        iwr_type = config.normalize_iwr_slug(kind, raw_type)
        if iwr_type is None:
            if not raw_type:
                continue
            iwr_type = "custom"
            custom_label = raw_type
        else:
            custom_label = ""

        mapped: JsonDict = {"type": iwr_type}
        if kind != "immunities":
            mapped["value"] = max(as_int(entry.get("value"), 0) or 0, 0)

        exceptions: List[str] = []
        for exception in string_list(entry.get("exceptions")):
            slug = config.normalize_iwr_slug(kind, exception)
            if slug is None:
                notes.append(f"except {exception}")
            elif slug not in exceptions:
                exceptions.append(slug)
        mapped["exceptions"] = exceptions

        if kind == "resistances":
            double_vs: List[str] = []
            for value in string_list(entry.get("doubleVs")):
                slug = config.normalize_iwr_slug(kind, value)
                if slug is None:
                    notes.append(f"double resistance vs. {value}")
                elif slug not in double_vs:
                    double_vs.append(slug)
            mapped["doubleVs"] = double_vs

        if custom_label:
            mapped["customLabel"] = custom_label
        mapped["notes"] = "; ".join(notes)
        result.append(mapped)
    return result


def _attribute(value: Any, key: str) -> JsonDict:
    block = value.get(key) if isinstance(value, Mapping) else None
    return block if isinstance(block, Mapping) else {}


def build_skill_map(skills: Any) -> JsonDict:
    result: JsonDict = {}
    for skill in entries(skills):
        slug = slugify(skill.get("slug"))
        if not slug:
            continue
        modifier = as_int(skill.get("modifier"), 0)
        result[slug] = {"value": modifier, "base": modifier, "details": clean_text(skill.get("details"))}
    return result


def build_prototype_token(record: Mapping[str, Any], *, image: str, loot: bool = False) -> JsonDict:
    size = TOKEN_SIZES.get(str(record.get("size")), 1)
    return {
        "name": clean_text(record.get("name")),
        "displayName": 20,
        "actorLink": loot,
        "width": size,
        "height": size,
        "texture": {
            "src": image,
            "anchorX": 0.5,
            "anchorY": 0.5,
            "offsetX": 0,
            "offsetY": 0,
            "fit": "contain",
            "scaleX": 1,
            "scaleY": 1,
            "rotation": 0,
            "tint": "#ffffff",
            "alphaThreshold": 0.75,
        },
        "lockRotation": True,
        "rotation": 0,
        "alpha": 1,
        "disposition": 0 if loot else -1,
        "displayBars": 0 if loot else 20,
        "bar1": {"attribute": None if loot else "attributes.hp"},
        "bar2": {"attribute": None},
        "light": {
            "negative": False,
            "priority": 0,
            "alpha": 0.5,
            "angle": 360,
            "bright": 0,
            "color": None,
            "coloration": 1,
            "dim": 0,
            "attenuation": 0.5,
            "luminosity": 0.5,
            "saturation": 0,
            "contrast": 0,
            "shadows": 0,
            "animation": {"type": None, "speed": 5, "intensity": 5, "reverse": False},
            "darkness": {"min": 0, "max": 1},
        },
        "sight": {
            "enabled": False,
            "range": 0,
            "angle": 360,
            "visionMode": "basic",
            "color": None,
            "attenuation": 0.1,
            "brightness": 0,
            "saturation": 0,
            "contrast": 0,
        },
        "detectionModes": [],
        "occludable": {"radius": 0},
        "ring": {
            "enabled": False,
            "colors": {"ring": None, "background": None},
            "effects": 0,
            "subject": {"scale": 1, "texture": None},
        },
        "turnMarker": {"mode": 1, "animation": None, "src": None, "disposition": False},
        "movementAction": None,
        "flags": {},
        "randomImg": False,
        "appendNumber": False,
        "prependAdjective": False,
    }


def _actor_host_type(record: Mapping[str, Any]) -> str:
    actor_type = clean_text(record.get("actorType"))
    if actor_type in HOST_ACTOR_TYPES:
        return actor_type
    logger.warning("unknown actor category %r mapped to npc slug=%s", actor_type, record.get("slug"))
    return "npc"


def _actor_image(record: Mapping[str, Any], host_type: str) -> str:
    image = clean_text(record.get("img"))
    if image:
        return image
    if host_type == "hazard":
        return DEFAULT_HAZARD_IMAGE
    if host_type == "loot":
        return DEFAULT_LOOT_IMAGE
    return DEFAULT_ACTOR_IMAGE


def _saves(attributes: Mapping[str, Any]) -> JsonDict:
    saves = _attribute(attributes, "saves")
    return {
        name: {
            "value": as_int(_attribute(saves, name).get("value"), 0),
            "saveDetail": clean_text(_attribute(saves, name).get("details")),
        }
        for name in ("fortitude", "reflex", "will")
    }


def _hit_points(attributes: Mapping[str, Any]) -> JsonDict:
    hp = _attribute(attributes, "hp")
    return {
        "value": as_int(hp.get("value"), 0),
        "max": as_int(hp.get("max"), 0),
        "temp": as_int(hp.get("temp"), 0) or 0,
        "details": clean_text(hp.get("details")),
    }


def _actor_traits(record: Mapping[str, Any], config: SystemConfig) -> JsonDict:
    traits, other_traits = split_traits(record.get("traits"), "creature", config)
    return {
        "value": traits,
        "rarity": record.get("rarity") or "common",
        "size": {"value": record.get("size") or "med"},
        "otherTags": other_traits,
    }


def _public_notes(record: Mapping[str, Any], traits: JsonDict, config: SystemConfig) -> str:
    return to_rich_text(record.get("description"), config) + demoted_traits_paragraph(traits["otherTags"], config)


def _combat_items(slug: str, record: Mapping[str, Any], config: SystemConfig) -> List[JsonDict]:
    items = [build_strike_item(slug, strike, index, config) for index, strike in enumerate(entries(record.get("strikes")))]
    items.extend(
        build_action_item(slug, action, index, config) for index, action in enumerate(entries(record.get("actions")))
    )
    for index, entry in enumerate(entries(record.get("spellcasting"))):
        items.extend(build_spellcasting_items(slug, entry, index, config))
    return items


def _inventory_items(
    slug: str,
    record: Mapping[str, Any],
    config: SystemConfig,
    *,
    physical_only: bool = False,
) -> List[JsonDict]:
    items = []
    for index, entry in enumerate(entries(record.get("inventory"))):
        if physical_only and entry.get("itemType") in {"spell", "feat"}:
            # Loot sheets only hold physical items; keep the entry as plain gear.
            entry = dict(entry, itemType="equipment")
        items.append(build_inventory_item(slug, entry, index, config))
    return items


def _creature_system(record: Mapping[str, Any], config: SystemConfig) -> JsonDict:
    attributes = _attribute(record, "attributes")
    abilities = _attribute(record, "abilities")
    perception = _attribute(attributes, "perception")
    speed = _attribute(attributes, "speed")
    ac = _attribute(attributes, "ac")
    traits = _actor_traits(record, config)
    source = clean_text(record.get("source"))

    return {
        "slug": clean_text(record.get("slug")),
        "traits": traits,
        "details": {
            "level": {"value": as_int(record.get("level"), 0)},
            "alignment": {"value": clean_text(record.get("alignment"))},
            "publicNotes": _public_notes(record, traits, config),
            "privateNotes": to_rich_text(record.get("recallKnowledge"), config),
            "blurb": "",
            "languages": {
                "value": [language.lower() for language in string_list(record.get("languages"))],
                "details": "",
            },
            "source": {"value": source},
            "publication": publication(source),
        },
        "initiative": {"statistic": "perception"},
        "attributes": {
            "hp": _hit_points(attributes),
            "ac": {"value": as_int(ac.get("value"), 0), "details": clean_text(ac.get("details"))},
            "speed": {
                "value": as_int(speed.get("value"), 0),
                "details": clean_text(speed.get("details")),
                "otherSpeeds": [
                    {
                        "type": clean_text(entry.get("type")),
                        "value": as_int(entry.get("value"), 0),
                        "details": clean_text(entry.get("details")),
                    }
                    for entry in entries(speed.get("other"))
                ],
            },
            "immunities": _iwr_entries("immunities", attributes.get("immunities"), config),
            "weaknesses": _iwr_entries("weaknesses", attributes.get("weaknesses"), config),
            "resistances": _iwr_entries("resistances", attributes.get("resistances"), config),
            "allSaves": {"value": ""},
        },
        "perception": {
            "mod": as_int(perception.get("value"), 0),
            "details": clean_text(perception.get("details")),
            "senses": [sense.lower() for sense in string_list(perception.get("senses"))],
            "vision": True,
        },
        "saves": _saves(attributes),
        "abilities": {key: {"mod": as_int(abilities.get(key), 0)} for key in ("str", "dex", "con", "int", "wis", "cha")},
        "skills": build_skill_map(record.get("skills")),
        "resources": {},
    }


def _hazard_system(record: Mapping[str, Any], config: SystemConfig) -> JsonDict:
    attributes = _attribute(record, "attributes")
    hazard = _attribute(record, "hazard")
    ac = _attribute(attributes, "ac")
    traits = _actor_traits(record, config)
    source = clean_text(record.get("source"))
    sound = hazard.get("emitsSound")

    return {
        "slug": clean_text(record.get("slug")),
        "traits": traits,
        "details": {
            "level": {"value": as_int(record.get("level"), 0)},
            "isComplex": bool(hazard.get("isComplex")),
            "description": _public_notes(record, traits, config),
            "disable": to_rich_text(hazard.get("disable"), config),
            "routine": to_rich_text(hazard.get("routine"), config),
            "reset": to_rich_text(hazard.get("reset"), config),
            "source": {"value": source},
            "publication": publication(source),
        },
        "attributes": {
            "hp": _hit_points(attributes),
            "ac": {"value": as_int(ac.get("value"), 0), "details": clean_text(ac.get("details"))},
            "hardness": max(as_int(hazard.get("hardness"), 0) or 0, 0),
            "stealth": {
                "value": as_int(hazard.get("stealthBonus"), None),
                "details": to_rich_text(hazard.get("stealthDetails"), config),
            },
            "emitsSound": sound if isinstance(sound, str) and sound in HAZARD_SOUND_MODES else "encounter",
            "immunities": _iwr_entries("immunities", attributes.get("immunities"), config),
            "weaknesses": _iwr_entries("weaknesses", attributes.get("weaknesses"), config),
            "resistances": _iwr_entries("resistances", attributes.get("resistances"), config),
        },
        "saves": _saves(attributes),
    }


def _loot_system(record: Mapping[str, Any], config: SystemConfig) -> JsonDict:
    loot = _attribute(record, "loot")
    sheet = loot.get("lootSheetType")
    source = clean_text(record.get("source"))
    return {
        "slug": clean_text(record.get("slug")),
        "lootSheetType": sheet if isinstance(sheet, str) and sheet in LOOT_SHEET_TYPES else "Loot",
        "hiddenWhenEmpty": bool(loot.get("hiddenWhenEmpty")),
        "details": {
            "level": {"value": as_int(record.get("level"), 0)},
            "description": to_rich_text(record.get("description"), config),
            "source": {"value": source},
            "publication": publication(source),
        },
        "traits": {"value": [], "rarity": record.get("rarity") or "common", "size": {"value": record.get("size") or "med"}},
    }


def to_foundry_actor_data(
    actor: Mapping[str, Any],
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> JsonDict:
    """Map a canonical actor onto a PF2e actor document with embedded items.

    Hazards receive hazard-only attributes and no ability or perception
    blocks. Loot actors receive a loot sheet and only their physical
    inventory. Every other category is mapped as a full creature.
    """

    record = ensure_current("actor", actor)
    host_type = _actor_host_type(record)
    slug = clean_text(record.get("slug")) or slugify(record.get("name"))
    image = _actor_image(record, host_type)

    if host_type == "loot":
        system = _loot_system(record, config)
        items = _inventory_items(slug, record, config, physical_only=True)
    elif host_type == "hazard":
        system = _hazard_system(record, config)
        items = _combat_items(slug, record, config)
    else:
        system = _creature_system(record, config)
        items = _combat_items(slug, record, config) + _inventory_items(slug, record, config)

    document = _document(clean_text(record.get("name")), host_type, image, system, record)
    document["prototypeToken"] = build_prototype_token(record, image=image, loot=host_type == "loot")
    document["items"] = items
    return document


__all__ = [
    "ACTION_EXECUTIONS",
    "HOST_ACTOR_TYPES",
    "MODULE_FLAG",
    "TOKEN_SIZES",
    "build_prototype_token",
    "build_skill_map",
    "ensure_current",
    "to_foundry_action_data",
    "to_foundry_actor_data",
    "to_foundry_item_data",
]
