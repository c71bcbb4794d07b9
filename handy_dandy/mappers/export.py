"""Foundry VTT PF2e document to canonical record mapping.

The inverse of :mod:`handy_dandy.mappers.foundry`: a host document exported
from a world or compendium is read back into the canonical record it would
have been generated as. Rich text is flattened with
:func:`~handy_dandy.text.rich_text.to_plain_text`, demoted traits rejoin the
trait list and coin prices collapse to gold pieces. Placeholder and system
default icons are dropped so that re-mapping the record picks the default
again.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional

from handy_dandy.mappers.actor_items import as_int, clean_text, entries, infer_item_category, string_list
from handy_dandy.mappers.foundry import MODULE_FLAG
from handy_dandy.pf2e.config import slugify
from handy_dandy.pf2e.images import is_default_image
from handy_dandy.schemas import (
    ACTOR_CATEGORIES,
    ACTOR_SIZES,
    HAZARD_SOUND_MODES,
    ITEM_CATEGORIES,
    LATEST_SCHEMA_VERSION,
    LOOT_SHEET_TYPES,
    RARITIES,
    SPELLCASTING_TYPES,
    SYSTEM_IDS,
)
from handy_dandy.text.rich_text import to_plain_text

JsonDict = Dict[str, Any]

logger = logging.getLogger(__name__)

COIN_VALUES = {"pp": 10.0, "gp": 1.0, "sp": 0.1, "cp": 0.01}

_ACTION_COUNTS = {1: "one-action", 2: "two-actions", 3: "three-actions"}
_ACTION_ALIASES = {
    "one": "one-action",
    "1": "one-action",
    "two": "two-actions",
    "2": "two-actions",
    "three": "three-actions",
    "3": "three-actions",
    "free": "free",
    "reaction": "reaction",
    "passive": "passive",
}
_HOST_ITEM_CATEGORIES = {"shield": "armor"}
_PHYSICAL_HOST_TYPES = frozenset(
    {"armor", "shield", "weapon", "equipment", "consumable", "treasure", "backpack", "kit", "book"}
)
_PRICE_TEXT = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*(pp|gp|sp|cp)\b", re.IGNORECASE)
_HEADER_LINE = re.compile(r"^\*\*(Requirements|Trigger|Frequency)\*\*\s", re.IGNORECASE)
_FREQUENCY_WORDS = {1: "once", 2: "twice", 3: "thrice"}
_FREQUENCY_PERIODS = {
    "round": "round",
    "turn": "turn",
    "PT1M": "minute",
    "PT10M": "10 minutes",
    "PT1H": "hour",
    "PT24H": "24 hours",
    "day": "day",
    "P1W": "week",
    "P1M": "month",
    "P1Y": "year",
}
_RANGED_TRAIT = re.compile(r"^(?:range|range-increment-\d+|ranged|thrown(?:-\d+)?)$")
_ABILITY_KEYS = ("str", "dex", "con", "int", "wis", "cha")
_LIST_SEPARATORS = re.compile(r"[,;\n]")


def _block(value: Any, key: str) -> JsonDict:
    block = value.get(key) if isinstance(value, Mapping) else None
    return block if isinstance(block, Mapping) else {}


def _value(container: Any, key: str) -> Any:
    """Return ``container[key]["value"]``, or ``container[key]`` when it is not a block."""

    raw = container.get(key) if isinstance(container, Mapping) else None
    if isinstance(raw, Mapping):
        return raw.get("value")
    return raw


def _optional_text(value: Any) -> Optional[str]:
    return clean_text(value) or None


def _prose(value: Any) -> Optional[str]:
    """Return the plain text of a rich text field or block, ``None`` when empty."""

    if isinstance(value, Mapping):
        value = value.get("value")
    return to_plain_text(value) or None


def _flag(document: Mapping[str, Any], key: str) -> Any:
    return _block(_block(document, "flags"), MODULE_FLAG).get(key)


def _slug(document: Mapping[str, Any]) -> str:
    for candidate in (_flag(document, "slug"), _block(document, "system").get("slug")):
        slug = slugify(clean_text(candidate))
        if slug:
            return slug
    return slugify(clean_text(document.get("name"))) or "unnamed"


def _system_id(document: Mapping[str, Any]) -> str:
    system_id = _flag(document, "systemId")
    return system_id if system_id in SYSTEM_IDS else "pf2e"


def _rarity(value: Any) -> str:
    rarity = clean_text(value).lower()
    return rarity if rarity in RARITIES else "common"


def _split(value: Any) -> List[str]:
    if isinstance(value, str):
        return string_list(_LIST_SEPARATORS.split(value))
    return string_list(value)


def _traits(system: Mapping[str, Any]) -> List[str]:
    traits = _block(system, "traits")
    return string_list(_split(traits.get("value")) + _split(traits.get("otherTags")))


def _image(document: Mapping[str, Any]) -> Optional[str]:
    image = clean_text(document.get("img"))
    if not image or is_default_image(image):
        return None
    return image


def _source(system: Mapping[str, Any]) -> str:
    source = clean_text(_value(system, "source")) or clean_text(_block(system, "publication").get("title"))
    if source:
        return source
    details = _block(system, "details")
    return clean_text(_value(details, "source")) or clean_text(_block(details, "publication").get("title"))


def _meta(document: Mapping[str, Any], entity_type: str) -> JsonDict:
    return {
        "schema_version": LATEST_SCHEMA_VERSION,
        "systemId": _system_id(document),
        "type": entity_type,
        "slug": _slug(document),
        "name": clean_text(document.get("name")) or "Unnamed",
    }


def coins_to_price(value: Any) -> Optional[float]:
    """Collapse a PF2e coin block, coin text or number into gold pieces.

    Returns ``None`` when *value* names no recognisable amount.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        matches = _PRICE_TEXT.findall(value)
        if matches:
            return round(sum(float(amount) * COIN_VALUES[coin.lower()] for amount, coin in matches), 2)
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, Mapping):
        coins = value.get("value") if isinstance(value.get("value"), Mapping) else value
        total = 0.0
        matched = False
        for coin, rate in COIN_VALUES.items():
            amount = as_int(coins.get(coin), None)
            if amount is None:
                continue
            matched = True
            total += amount * rate
        return round(total, 2) if matched else None
    return None


def action_cost(system: Mapping[str, Any]) -> str:
    """Return the canonical action cost recorded by a host action's ``actionType`` and ``actions``."""

    kind = clean_text(_value(system, "actionType")).lower()
    count = as_int(_value(system, "actions"), None)
    if kind in {"free", "reaction", "passive"}:
        return kind
    if kind == "action" or not kind:
        if count in _ACTION_COUNTS:
            return _ACTION_COUNTS[count]
        return "one-action" if kind else "free"
    return _ACTION_ALIASES.get(kind, "free")


def format_frequency(value: Any) -> Optional[str]:
    """Render a PF2e frequency block as text such as ``once per minute``."""

    if not isinstance(value, Mapping):
        return None
    count = as_int(value.get("max"), None) or as_int(value.get("value"), None)
    period = _FREQUENCY_PERIODS.get(clean_text(value.get("per")))
    if not count or period is None:
        return None
    return f"{_FREQUENCY_WORDS.get(count, f'{count} times')} per {period}"


def item_category(host_type: str, system: Mapping[str, Any], name: str = "") -> str:
    """Return the canonical item category stored as host document *host_type*."""

    host_type = clean_text(host_type).lower()
    if host_type == "consumable" and system.get("category") == "wand":
        return "wand"
    if host_type == "weapon" and system.get("group") == "club" and infer_item_category(name) == "staff":
        return "staff"
    category = _HOST_ITEM_CATEGORIES.get(host_type, host_type)
    if category in ITEM_CATEGORIES:
        return category
    if host_type in _PHYSICAL_HOST_TYPES:
        return "equipment"
    return "other"


def from_foundry_action(document: Mapping[str, Any]) -> JsonDict:
    """Read a PF2e ``action`` item document back into a canonical action."""

    system = _block(document, "system")
    record = _meta(document, "action")
    execution = action_cost(system)
    record.update(
        {
            # Canonical actions have no passive cost; host passives read back as free.
            "actionType": "free" if execution == "passive" else execution,
            "traits": _traits(system),
            "requirements": to_plain_text(_value(system, "requirements")),
            "description": to_plain_text(_value(system, "description")) or record["name"],
            "img": _image(document),
            "rarity": _rarity(_block(system, "traits").get("rarity")),
            "source": _source(system),
        }
    )
    return record


def from_foundry_item(document: Mapping[str, Any]) -> JsonDict:
    """Read a PF2e item document of any physical or feat type into a canonical item."""

    system = _block(document, "system")
    record = _meta(document, "item")
    price = coins_to_price(system.get("price"))
    record.update(
        {
            "itemType": item_category(clean_text(document.get("type")), system, record["name"]),
            "rarity": _rarity(_block(system, "traits").get("rarity") or _value(system, "rarity")),
            "level": max(as_int(_value(system, "level"), 0) or 0, 0),
            "price": max(price, 0.0) if price is not None else 0,
            "traits": _traits(system),
            "description": to_plain_text(_value(system, "description")),
            "img": _image(document),
            "source": _source(system),
        }
    )
    return record


def _iwr(kind: str, values: Any) -> List[JsonDict]:
    result: List[JsonDict] = []
    for entry in entries(values):
        iwr_type = clean_text(entry.get("type"))
        if iwr_type == "custom":
            iwr_type = clean_text(entry.get("customLabel"))
        if not iwr_type:
            continue
        mapped: JsonDict = {"type": iwr_type}
        if kind != "immunities":
            mapped["value"] = max(as_int(entry.get("value"), 0) or 0, 0)
        mapped["exceptions"] = string_list(entry.get("exceptions"))
        if kind == "resistances":
            mapped["doubleVs"] = string_list(entry.get("doubleVs"))
        mapped["details"] = _optional_text(entry.get("notes"))
        result.append(mapped)
    return result


def _value_with_details(block: Mapping[str, Any], value_key: str = "value", details_key: str = "details") -> JsonDict:
    return {"value": as_int(block.get(value_key), 0), "details": _optional_text(block.get(details_key))}


def _attributes(system: Mapping[str, Any]) -> JsonDict:
    attributes = _block(system, "attributes")
    hp = _block(attributes, "hp")
    speed = _block(attributes, "speed")
    perception = _block(system, "perception")
    saves = _block(system, "saves")
    return {
        "hp": {
            "value": max(as_int(hp.get("value"), 0) or 0, 0),
            "max": max(as_int(hp.get("max"), 0) or 0, 0),
            "temp": as_int(hp.get("temp"), 0),
            "details": _optional_text(hp.get("details")),
        },
        "ac": _value_with_details(_block(attributes, "ac")),
        "perception": dict(
            _value_with_details(perception, value_key="mod"),
            senses=string_list(perception.get("senses")),
        ),
        "speed": {
            "value": max(as_int(speed.get("value"), 0) or 0, 0),
            "details": _optional_text(speed.get("details")),
            "other": [
                {
                    "type": clean_text(entry.get("type")),
                    "value": max(as_int(entry.get("value"), 0) or 0, 0),
                    "details": _optional_text(entry.get("details")),
                }
                for entry in entries(speed.get("otherSpeeds"))
                if clean_text(entry.get("type"))
            ],
        },
        "saves": {
            name: _value_with_details(_block(saves, name), details_key="saveDetail")
            for name in ("fortitude", "reflex", "will")
        },
        "immunities": _iwr("immunities", attributes.get("immunities")),
        "weaknesses": _iwr("weaknesses", attributes.get("weaknesses")),
        "resistances": _iwr("resistances", attributes.get("resistances")),
    }


def _skills(system: Mapping[str, Any]) -> List[JsonDict]:
    skills = _block(system, "skills")
    result = []
    for slug, block in skills.items():
        if not isinstance(block, Mapping) or not slugify(slug):
            continue
        modifier = as_int(block.get("base"), None)
        if modifier is None:
            modifier = as_int(block.get("value"), 0)
        result.append({"slug": slugify(slug), "modifier": modifier, "details": _optional_text(block.get("details"))})
    return result


def _strike(item: Mapping[str, Any]) -> Optional[JsonDict]:
    system = _block(item, "system")
    damage = [
        {
            "formula": clean_text(roll.get("damage")),
            "damageType": _optional_text(roll.get("damageType")),
            "notes": "persistent" if roll.get("category") == "persistent" else None,
        }
        for roll in _block(system, "damageRolls").values()
        if isinstance(roll, Mapping) and clean_text(roll.get("damage"))
    ]
    if not damage:
        logger.warning("strike without damage rolls skipped name=%s", item.get("name"))
        return None
    traits = _traits(system)
    ranged = any(_RANGED_TRAIT.match(slugify(trait)) for trait in traits) or "ranged" in clean_text(item.get("img"))
    return {
        "name": clean_text(item.get("name")) or "Strike",
        "type": "ranged" if ranged else "melee",
        "attackBonus": as_int(_value(system, "bonus"), 0),
        "traits": traits,
        "damage": damage,
        "effects": string_list(_value(system, "attackEffects")),
        "description": _prose(system.get("description")),
    }


def _actor_action(item: Mapping[str, Any]) -> JsonDict:
    system = _block(item, "system")
    name = clean_text(item.get("name")) or "Action"
    requirements = to_plain_text(_value(system, "requirements"))
    trigger = to_plain_text(_value(system, "trigger"))
    frequency = format_frequency(system.get("frequency"))
    body = [
        line
        for line in to_plain_text(_value(system, "description")).splitlines()
        if not _HEADER_LINE.match(line)
    ]
    return {
        "name": name,
        "actionCost": action_cost(system),
        "description": "\n".join(body).strip() or name,
        "traits": _traits(system),
        "requirements": requirements or None,
        "trigger": trigger or None,
        "frequency": frequency,
    }


def _spellcasting(items: List[Mapping[str, Any]]) -> List[JsonDict]:
    spells_by_entry: Dict[str, List[Mapping[str, Any]]] = {}
    for item in items:
        if item.get("type") == "spell":
            location = clean_text(_value(_block(item, "system"), "location"))
            spells_by_entry.setdefault(location, []).append(item)

    result = []
    for item in items:
        if item.get("type") != "spellcastingEntry":
            continue
        system = _block(item, "system")
        tradition = slugify(_value(system, "tradition")) or "arcane"
        casting_type = clean_text(_value(system, "prepared"))
        spelldc = _block(system, "spelldc")
        spells = []
        for spell in spells_by_entry.get(clean_text(item.get("_id")), []):
            spell_system = _block(spell, "system")
            spell_traits = string_list(_value(spell_system, "traits"))
            spell_tradition = slugify(spell_traits[0]) if spell_traits else ""
            spells.append(
                {
                    "level": 0 if "cantrip" in spell_traits else max(as_int(_value(spell_system, "level"), 1) or 1, 0),
                    "name": clean_text(spell.get("name")) or "Spell",
                    "description": _prose(spell_system.get("description")),
                    "tradition": spell_tradition if spell_tradition and spell_tradition != tradition else None,
                }
            )
        result.append(
            {
                "name": clean_text(item.get("name")) or "Spellcasting",
                "tradition": tradition,
                "castingType": casting_type if casting_type in SPELLCASTING_TYPES else "innate",
                "attackBonus": as_int(spelldc.get("value"), None) or None,
                "saveDC": as_int(spelldc.get("dc"), None) or None,
                "notes": _prose(system.get("description")),
                "spells": spells,
            }
        )
    return result


def _inventory(items: List[Mapping[str, Any]]) -> List[JsonDict]:
    result = []
    for item in items:
        host_type = clean_text(item.get("type"))
        if host_type not in _PHYSICAL_HOST_TYPES:
            continue
        system = _block(item, "system")
        name = clean_text(item.get("name")) or "Item"
        result.append(
            {
                "name": name,
                "itemType": item_category(host_type, system, name),
                "quantity": max(as_int(system.get("quantity"), 1) or 0, 0),
                "level": max(as_int(_value(system, "level"), 0) or 0, 0),
                "description": _prose(system.get("description")),
                "img": _image(item),
            }
        )
    return result


def _of_type(items: List[Mapping[str, Any]], item_type: str) -> List[Mapping[str, Any]]:
    return [item for item in items if item.get("type") == item_type]


def _actor_type(document: Mapping[str, Any]) -> str:
    actor_type = clean_text(document.get("type")).lower()
    if actor_type in ACTOR_CATEGORIES:
        return actor_type
    logger.warning("unknown host actor type %r read as npc name=%s", actor_type, document.get("name"))
    return "npc"


def _languages(system: Mapping[str, Any]) -> List[str]:
    details = _block(system, "details")
    traits = _block(system, "traits")
    languages: List[str] = []
    seen = set()
    for language in _split(_value(details, "languages")) + _split(_value(traits, "languages")):
        if language.lower() not in seen:
            seen.add(language.lower())
            languages.append(language)
    return languages


def _hazard(system: Mapping[str, Any]) -> JsonDict:
    details = _block(system, "details")
    attributes = _block(system, "attributes")
    stealth = _block(attributes, "stealth")
    sound = attributes.get("emitsSound")
    return {
        "isComplex": bool(details.get("isComplex")),
        "disable": _prose(details.get("disable")),
        "routine": _prose(details.get("routine")),
        "reset": _prose(details.get("reset")),
        "emitsSound": sound if isinstance(sound, str) and sound in HAZARD_SOUND_MODES else "encounter",
        "hardness": max(as_int(attributes.get("hardness"), 0) or 0, 0),
        "stealthBonus": as_int(stealth.get("value"), None),
        "stealthDetails": _prose(stealth.get("details")),
    }


def _loot(system: Mapping[str, Any]) -> JsonDict:
    sheet = system.get("lootSheetType")
    return {
        "lootSheetType": sheet if isinstance(sheet, str) and sheet in LOOT_SHEET_TYPES else "Loot",
        "hiddenWhenEmpty": bool(system.get("hiddenWhenEmpty")),
    }


def from_foundry_actor(document: Mapping[str, Any]) -> JsonDict:
    """Read a PF2e actor document and its embedded items into a canonical actor.

    Embedded ``melee`` items become strikes, ``action`` items become special
    actions, spellcasting entries collect the spells located in them and
    physical items become inventory entries. Hazard and loot actors also
    carry their hazard or loot block.
    """

    system = _block(document, "system")
    details = _block(system, "details")
    traits = _block(system, "traits")
    abilities = _block(system, "abilities")
    items = entries(document.get("items"))
    actor_type = _actor_type(document)
    size = clean_text(_value(traits, "size"))

    record = _meta(document, "actor")
    record.update(
        {
            "actorType": actor_type,
            "rarity": _rarity(traits.get("rarity")),
            "level": max(as_int(_value(details, "level"), 0) or 0, 0),
            "size": size if size in ACTOR_SIZES else "med",
            "traits": _traits(system),
            "alignment": _optional_text(_value(details, "alignment")),
            "languages": _languages(system),
            "attributes": _attributes(system),
            "abilities": {key: as_int(_block(abilities, key).get("mod"), 0) for key in _ABILITY_KEYS},
            "skills": _skills(system),
            "strikes": [strike for strike in map(_strike, _of_type(items, "melee")) if strike is not None],
            "actions": [_actor_action(item) for item in _of_type(items, "action")],
            "spellcasting": _spellcasting(items),
            "inventory": _inventory(items),
            "loot": _loot(system) if actor_type == "loot" else None,
            "hazard": _hazard(system) if actor_type == "hazard" else None,
            "description": _prose(details.get("publicNotes") or details.get("description")),
            "recallKnowledge": _prose(details.get("privateNotes")),
            "img": _image(document),
            "source": _source(system),
        }
    )
    return record


__all__ = [
    "COIN_VALUES",
    "action_cost",
    "coins_to_price",
    "format_frequency",
    "from_foundry_action",
    "from_foundry_actor",
    "from_foundry_item",
    "item_category",
]
