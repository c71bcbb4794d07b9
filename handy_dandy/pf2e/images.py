"""Fallback image paths for PF2e host documents."""

from __future__ import annotations

from typing import Dict, Optional

_ICON_ROOT = "systems/pf2e/icons/default-icons"

FALLBACK_ITEM_IMAGE = f"{_ICON_ROOT}/equipment.svg"
DEFAULT_ACTION_IMAGE = f"{_ICON_ROOT}/action.svg"
DEFAULT_ACTOR_IMAGE = f"{_ICON_ROOT}/monster.svg"
DEFAULT_HAZARD_IMAGE = f"{_ICON_ROOT}/hazard.svg"
DEFAULT_LOOT_IMAGE = f"{_ICON_ROOT}/loot.svg"
DEFAULT_STRIKE_IMAGE = f"{_ICON_ROOT}/melee.svg"
DEFAULT_RANGED_STRIKE_IMAGE = f"{_ICON_ROOT}/ranged.svg"
DEFAULT_SPELLCASTING_IMAGE = f"{_ICON_ROOT}/spellcastingEntry.svg"
DEFAULT_SPELL_IMAGE = f"{_ICON_ROOT}/spell.svg"

# Placeholder icons that generation prompts tend to echo back.
PLACEHOLDER_IMAGES = frozenset({"icons/svg/item-bag.svg", "icons/svg/mystery-man.svg"})

_ITEM_IMAGE_DEFAULTS: Dict[str, str] = {
    "armor": f"{_ICON_ROOT}/shield.svg",
    "weapon": f"{_ICON_ROOT}/weapon.svg",
    "equipment": FALLBACK_ITEM_IMAGE,
    "consumable": f"{_ICON_ROOT}/consumable.svg",
    "feat": f"{_ICON_ROOT}/feat.svg",
    "spell": DEFAULT_SPELL_IMAGE,
    "wand": f"{_ICON_ROOT}/wand.svg",
    "staff": f"{_ICON_ROOT}/staff.svg",
    "other": FALLBACK_ITEM_IMAGE,
}


def is_default_image(path: Optional[str]) -> bool:
    """Return True for placeholder icons and the system's own default icons."""

    return bool(path) and (path in PLACEHOLDER_IMAGES or path.startswith(f"{_ICON_ROOT}/"))


def default_image_for_category(category: Optional[str]) -> str:
    """Return the fallback image for an item *category*."""

    if not category:
        return FALLBACK_ITEM_IMAGE
    return _ITEM_IMAGE_DEFAULTS.get(category, FALLBACK_ITEM_IMAGE)


__all__ = [
    "DEFAULT_ACTION_IMAGE",
    "DEFAULT_ACTOR_IMAGE",
    "DEFAULT_HAZARD_IMAGE",
    "DEFAULT_LOOT_IMAGE",
    "DEFAULT_RANGED_STRIKE_IMAGE",
    "DEFAULT_SPELLCASTING_IMAGE",
    "DEFAULT_SPELL_IMAGE",
    "DEFAULT_STRIKE_IMAGE",
    "FALLBACK_ITEM_IMAGE",
    "PLACEHOLDER_IMAGES",
    "default_image_for_category",
    "is_default_image",
]
