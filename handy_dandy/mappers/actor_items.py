"""Embedded item documents built from an actor's nested sub-records.

Every strike, special action, spellcasting entry, spell and inventory entry
becomes its own PF2e item document. Document ids and damage roll keys are
derived from the owning actor's slug and the sub-record position so that the
same canonical actor always maps to the same documents.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from handy_dandy.pf2e.config import DEFAULT_SYSTEM_CONFIG, SystemConfig, slugify
from handy_dandy.pf2e.images import (
    DEFAULT_ACTION_IMAGE,
    DEFAULT_RANGED_STRIKE_IMAGE,
    DEFAULT_SPELL_IMAGE,
    DEFAULT_SPELLCASTING_IMAGE,
    DEFAULT_STRIKE_IMAGE,
    PLACEHOLDER_IMAGES,
    default_image_for_category,
)
from handy_dandy.text.rich_text import paragraphs, to_rich_text

JsonDict = Dict[str, Any]

logger = logging.getLogger(__name__)

ACTION_COSTS: Dict[str, Tuple[str, Optional[int]]] = {
    "one-action": ("action", 1),
    "two-actions": ("action", 2),
    "three-actions": ("action", 3),
    "free": ("free", None),
    "reaction": ("reaction", None),
    "passive": ("passive", None),
}

PHYSICAL_ITEM_TYPES = frozenset({"armor", "weapon", "equipment", "consumable"})

_LEGACY_DAMAGE_TYPES = {
    "negative": "void",
    "positive": "vitality",
    "good": "holy",
    "evil": "unholy",
}

_FREQUENCY_COUNTS = {"once": 1, "twice": 2, "thrice": 3}
_FREQUENCY_PERIODS = {
    "round": "round",
    "turn": "turn",
    "minute": "PT1M",
    "10 minutes": "PT10M",
    "ten minutes": "PT10M",
    "hour": "PT1H",
    "24 hours": "PT24H",
    "day": "day",
    "week": "P1W",
    "month": "P1M",
    "year": "P1Y",
}
_FREQUENCY_PATTERN = re.compile(
    r"^\s*(once|twice|thrice|(\d+)\s+times?)\s+(?:per|every|each|a|an)\s+(.+?)\s*\.?\s*$",
    re.IGNORECASE,
)

_CATEGORY_KEYWORDS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("wand", ("wand",)),
    ("staff", ("staff",)),
    (
        "armor",
        ("armor", "armour", "shield", "breastplate", "chain mail", "chainmail", "plate mail", "hide"),
    ),
    (
        "weapon",
        (
            "weapon",
            "sword",
            "longsword",
            "shortsword",
            "greatsword",
            "rapier",
            "scimitar",
            "dagger",
            "knife",
            "axe",
            "mace",
            "hammer",
            "club",
            "flail",
            "spear",
            "halberd",
            "glaive",
            "trident",
            "whip",
            "bow",
            "crossbow",
            "sling",
            "javelin",
            "pistol",
            "musket",
        ),
    ),
    (
        "consumable",
        (
            "potion",
            "elixir",
            "scroll",
            "bomb",
            "oil",
            "talisman",
            "poison",
            "ammunition",
            "arrows",
            "bolts",
            "draught",
            "tonic",
        ),
    ),
)


def stable_id(*parts: Any) -> str:
    """Return a 16 character document id derived from *parts*."""

    digest = hashlib.sha256("|".join(str(part) for part in parts).encode("utf-8")).hexdigest()
    return digest[:16]


def clean_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def string_list(values: Any) -> List[str]:
    """Return the trimmed, de-duplicated strings of *values* in order."""

    if isinstance(values, str):
        values = [values]
    if not isinstance(values, Iterable):
        return []
    seen = set()
    result: List[str] = []
    for value in values:
        text = clean_text(value)
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


def entries(values: Any) -> List[JsonDict]:
    if not isinstance(values, list):
        return []
    return [value for value in values if isinstance(value, Mapping)]


def as_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return default
    return default


def split_traits(values: Any, kind: str, config: SystemConfig) -> Tuple[List[str], List[str]]:
    """Partition *values* into traits the *kind* table knows and everything else."""

    known: List[str] = []
    unknown: List[str] = []
    for value in string_list(values):
        slug = slugify(value)
        if slug and config.is_known_trait(kind, slug):
            if slug not in known:
                known.append(slug)
        elif value not in unknown:
            unknown.append(value)
    return known, unknown


def demoted_traits_paragraph(unknown: Sequence[str], config: SystemConfig) -> str:
    if not unknown:
        return ""
    return to_rich_text(f"**Other Traits** {', '.join(unknown)}", config)


def publication(source: Any) -> JsonDict:
    return {"title": clean_text(source), "authors": "", "license": "OGL", "remaster": False}


def price_to_coins(price: Any) -> Dict[str, int]:
    """Split a gold piece *price* into platinum, gold, silver and copper."""

    if isinstance(price, bool) or not isinstance(price, (int, float)) or not math.isfinite(price) or price <= 0:
        return {"pp": 0, "gp": 0, "sp": 0, "cp": 0}
    copper = int(round(price * 100))
    pp, copper = divmod(copper, 1000)
    gp, copper = divmod(copper, 100)
    sp, cp = divmod(copper, 10)
    return {"pp": pp, "gp": gp, "sp": sp, "cp": cp}


def is_host_local_image(value: Any) -> bool:
    """Return True for image paths the host can serve from its own data."""

    path = clean_text(value)
    if not path or path in PLACEHOLDER_IMAGES:
        return False
    return not re.match(r"^(?:[a-z][a-z0-9+.-]*:)?//", path, re.IGNORECASE) and not path.lower().startswith("data:")


def embedded_document(
    document_id: str,
    name: str,
    item_type: str,
    img: str,
    system: JsonDict,
) -> JsonDict:
    return {
        "_id": document_id,
        "name": name,
        "type": item_type,
        "img": img,
        "system": system,
        "effects": [],
        "folder": None,
        "sort": 0,
        "flags": {},
    }


def parse_frequency(value: Any) -> Optional[JsonDict]:
    """Parse text such as ``once per minute`` into a PF2e frequency block."""

    match = _FREQUENCY_PATTERN.match(clean_text(value))
    if not match:
        return None
    count = int(match.group(2)) if match.group(2) else _FREQUENCY_COUNTS[match.group(1).lower()]
    period = re.sub(r"\s+", " ", match.group(3).lower())
    per = _FREQUENCY_PERIODS.get(period) or _FREQUENCY_PERIODS.get(period.rstrip("s"))
    if per is None:
        return None
    return {"value": count, "max": count, "per": per}


def build_strike_item(
    actor_slug: str,
    strike: Mapping[str, Any],
    index: int,
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> JsonDict:
    name = clean_text(strike.get("name")) or f"Strike {index + 1}"
    ranged = strike.get("type") == "ranged"

    damage_rolls: JsonDict = {}
    for position, damage in enumerate(entries(strike.get("damage"))):
        formula = clean_text(damage.get("formula"))
        if not formula:
            continue
        damage_type = slugify(damage.get("damageType")) or None
        damage_type = _LEGACY_DAMAGE_TYPES.get(damage_type, damage_type) if damage_type else None
        notes = clean_text(damage.get("notes")).lower()
        damage_rolls[stable_id(actor_slug, "strike", index, "damage", position)] = {
            "damage": formula,
            "damageType": damage_type,
            "category": "persistent" if "persistent" in notes else None,
        }

    traits, other_traits = split_traits(strike.get("traits"), "weapon", config)

    attack_effects: List[str] = []
    demoted_effects: List[str] = []
    for effect in string_list(strike.get("effects")):
        slug = slugify(effect)
        if slug in config.attack_effects:
            if slug not in attack_effects:
                attack_effects.append(slug)
        else:
            demoted_effects.append(effect)

    description = (
        to_rich_text(strike.get("description"), config)
        + paragraphs(demoted_effects, config)
        + demoted_traits_paragraph(other_traits, config)
    )

    system = {
        "slug": slugify(name) or stable_id(actor_slug, "strike", index),
        "bonus": {"value": as_int(strike.get("attackBonus"))},
        "damageRolls": damage_rolls,
        "traits": {"value": traits, "otherTags": other_traits},
        "attackEffects": {"value": attack_effects},
        "description": {"value": description, "gm": ""},
        "rules": [],
        "publication": publication(""),
    }
    return embedded_document(
        stable_id(actor_slug, "strike", index, name),
        name,
        "melee",
        DEFAULT_RANGED_STRIKE_IMAGE if ranged else DEFAULT_STRIKE_IMAGE,
        system,
    )


def _action_category(action_type: str) -> str:
    if action_type == "reaction":
        return "defensive"
    if action_type == "passive":
        return "interaction"
    return "offensive"


def build_action_item(
    actor_slug: str,
    action: Mapping[str, Any],
    index: int,
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
    *,
    trait_kind: str = "action",
) -> JsonDict:
    name = clean_text(action.get("name")) or f"Action {index + 1}"
    action_type, count = ACTION_COSTS.get(str(action.get("actionCost")), ("action", 1))
    requirements = clean_text(action.get("requirements"))
    trigger = clean_text(action.get("trigger"))
    frequency_text = clean_text(action.get("frequency"))
    frequency = parse_frequency(frequency_text)

    lines: List[str] = []
    if requirements:
        lines.append(f"**Requirements** {requirements}")
    if trigger:
        lines.append(f"**Trigger** {trigger}")
    if frequency_text:
        lines.append(f"**Frequency** {frequency_text}")
    body = clean_text(action.get("description"))

    traits, other_traits = split_traits(action.get("traits"), trait_kind, config)
    header = to_rich_text("\n".join(lines), config) if lines else ""
    description = header + to_rich_text(body, config) + demoted_traits_paragraph(other_traits, config)

    system = {
        "slug": slugify(name) or stable_id(actor_slug, "action", index),
        "actionType": {"value": action_type},
        "actions": {"value": count},
        "category": _action_category(action_type),
        "traits": {"value": traits, "otherTags": other_traits},
        "description": {"value": description, "gm": ""},
        "requirements": {"value": requirements},
        "trigger": {"value": trigger},
        "frequency": frequency,
        "rules": [],
        "publication": publication(""),
    }
    return embedded_document(
        stable_id(actor_slug, "action", index, name),
        name,
        "action",
        DEFAULT_ACTION_IMAGE,
        system,
    )


def build_spellcasting_items(
    actor_slug: str,
    entry: Mapping[str, Any],
    index: int,
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> List[JsonDict]:
    """Return the spellcasting entry document followed by one document per spell."""

    name = clean_text(entry.get("name")) or f"Spellcasting {index + 1}"
    tradition = slugify(entry.get("tradition")) or "arcane"
    casting_type = clean_text(entry.get("castingType")) or "innate"
    entry_id = stable_id(actor_slug, "spellcasting", index, name)

    entry_system = {
        "slug": slugify(name),
        "tradition": {"value": tradition},
        "prepared": {"value": casting_type, "flexible": False},
        "spelldc": {
            "value": as_int(entry.get("attackBonus"), None) or 0,
            "dc": as_int(entry.get("saveDC"), None) or 0,
        },
        "showSlotlessLevels": {"value": False},
        "description": {"value": to_rich_text(entry.get("notes"), config), "gm": ""},
        "rules": [],
        "publication": publication(""),
    }
    documents = [embedded_document(entry_id, name, "spellcastingEntry", DEFAULT_SPELLCASTING_IMAGE, entry_system)]

    for position, spell in enumerate(entries(entry.get("spells"))):
        spell_name = clean_text(spell.get("name"))
        if not spell_name:
            continue
        rank = as_int(spell.get("level"), 0) or 0
        spell_tradition = slugify(spell.get("tradition")) or tradition
        traits = [spell_tradition]
        if rank == 0:
            traits.append("cantrip")
        spell_system = {
            "slug": slugify(spell_name),
            "level": {"value": max(rank, 1)},
            "traits": {"value": traits, "rarity": "common", "otherTags": []},
            "description": {"value": to_rich_text(spell.get("description"), config), "gm": ""},
            "location": {"value": entry_id},
            "rules": [],
            "publication": publication(""),
        }
        documents.append(
            embedded_document(
                stable_id(actor_slug, "spell", index, position, spell_name),
                spell_name,
                "spell",
                DEFAULT_SPELL_IMAGE,
                spell_system,
            )
        )
    return documents


def infer_item_category(name: Any, description: Any = None) -> str:
    """Guess an item category from its name, falling back to its description."""

    for text in (clean_text(name).lower(), clean_text(description).lower()):
        if not text:
            continue
        for category, keywords in _CATEGORY_KEYWORDS:
            if any(re.search(rf"\b{re.escape(keyword)}\b", text) for keyword in keywords):
                return category
    return "equipment"


def host_item_type(category: str) -> str:
    """Return the PF2e document type that stores a canonical item *category*."""

    if category == "wand":
        return "consumable"
    if category == "staff":
        return "weapon"
    if category == "other":
        return "equipment"
    return category


def physical_item_system(
    *,
    slug: str,
    category: str,
    level: int,
    quantity: int,
    price: Any,
    description: str,
    traits: List[str],
    other_traits: List[str],
    rarity: str,
    source: Any,
) -> JsonDict:
    item_type = host_item_type(category)
    system: JsonDict = {
        "slug": slug,
        "description": {"value": description, "gm": ""},
        "traits": {"value": traits, "rarity": rarity, "otherTags": other_traits},
        "level": {"value": level},
        "price": {"value": price_to_coins(price)},
        "source": {"value": clean_text(source)},
        "publication": publication(source),
        "rules": [],
    }
    if item_type in PHYSICAL_ITEM_TYPES:
        system.update(
            {
                "quantity": max(quantity, 0),
                "usage": {"value": "wornarmor" if item_type == "armor" else "held-in-one-hand"},
                "bulk": {"value": 0},
                "size": "med",
            }
        )
    if category == "wand":
        system["category"] = "wand"
    elif category == "staff":
        system["category"] = "simple"
        system["group"] = "club"
    return system


def build_inventory_item(
    actor_slug: str,
    entry: Mapping[str, Any],
    index: int,
    config: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> JsonDict:
    name = clean_text(entry.get("name")) or f"Item {index + 1}"
    category = clean_text(entry.get("itemType"))
    if not category:
        category = infer_item_category(name, entry.get("description"))
        logger.debug("inferred inventory category actor=%s item=%s category=%s", actor_slug, name, category)
    image = clean_text(entry.get("img")) if is_host_local_image(entry.get("img")) else default_image_for_category(category)
    system = physical_item_system(
        slug=slugify(name) or stable_id(actor_slug, "inventory", index),
        category=category,
        level=max(as_int(entry.get("level"), 0) or 0, 0),
        quantity=as_int(entry.get("quantity"), 1),
        price=None,
        description=to_rich_text(entry.get("description"), config),
        traits=[],
        other_traits=[],
        rarity="common",
        source="",
    )
    return embedded_document(
        stable_id(actor_slug, "inventory", index, name),
        name,
        host_item_type(category),
        image,
        system,
    )


__all__ = [
    "ACTION_COSTS",
    "PHYSICAL_ITEM_TYPES",
    "as_int",
    "build_action_item",
    "build_inventory_item",
    "build_spellcasting_items",
    "build_strike_item",
    "clean_text",
    "demoted_traits_paragraph",
    "embedded_document",
    "entries",
    "host_item_type",
    "infer_item_category",
    "is_host_local_image",
    "parse_frequency",
    "physical_item_system",
    "price_to_coins",
    "publication",
    "split_traits",
    "stable_id",
    "string_list",
]
