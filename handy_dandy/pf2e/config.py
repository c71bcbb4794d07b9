"""Game-system lookup tables consumed by the canonical-to-host mapper.

The host application ships these tables in its own configuration (the PF2e
system exposes them on ``CONFIG.PF2E``). The mapper never reads them from a
global: a :class:`SystemConfig` is built once and handed to each mapping call.
:func:`load_system_config` accepts an exported ``CONFIG.PF2E`` snapshot so a
live system can override the bundled defaults.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Condition:
    """A condition document in the system's condition compendium."""

    slug: str
    label: str
    document_id: str
    valued: bool = False

    @property
    def uuid(self) -> str:
        return f"Compendium.pf2e.conditionitems.Item.{self.document_id}"


def _conditions(*entries: Tuple[str, str, str, bool]) -> Dict[str, Condition]:
    return {slug: Condition(slug, label, document_id, valued) for slug, label, document_id, valued in entries}


_DEFAULT_CONDITIONS = _conditions(
    ("blinded", "Blinded", "XgEqL1kFApUbl5Z2", False),
    ("clumsy", "Clumsy", "i3OJZU2nk64Df3xm", True),
    ("concealed", "Concealed", "DmAIPqOBomZ7H95W", False),
    ("confused", "Confused", "yblD8fOR1J8rDwEQ", False),
    ("controlled", "Controlled", "9qGBRpbX9NEwtAAr", False),
    ("dazzled", "Dazzled", "TkIyaNPgTZFBCCuh", False),
    ("deafened", "Deafened", "9PR9y0bi4JPKnHPR", False),
    ("doomed", "Doomed", "3uh1r86TzbQvosxv", True),
    ("drained", "Drained", "4D2KBtexWXa6oUMR", True),
    ("enfeebled", "Enfeebled", "MIRkyAjyBeXivMa7", True),
    ("fascinated", "Fascinated", "AdPVz7rbaVSRxHFg", False),
    ("fatigued", "Fatigued", "HL2l2VRSaQHu9lUw", False),
    ("fleeing", "Fleeing", "sDPxOjQ9kx2RZE8D", False),
    ("frightened", "Frightened", "TBSHQspnbcqxsmjL", True),
    ("grabbed", "Grabbed", "kWc1fhmv9LBiTuei", False),
    ("hidden", "Hidden", "iU0fEDdBp3rXpTMC", False),
    ("immobilized", "Immobilized", "eIcWbB5o3pP6OIMe", False),
    ("invisible", "Invisible", "zJxUflt9np0q4yML", False),
    ("off-guard", "Off-Guard", "AJh5ex99aV6VTggg", False),
    ("paralyzed", "Paralyzed", "6uEgoh53GbXuHpTF", False),
    ("petrified", "Petrified", "dTwPJuKgBQCMxixg", False),
    ("prone", "Prone", "j91X7x0XSomq8d60", False),
    ("quickened", "Quickened", "nlCjDvLMf2EkV2dl", False),
    ("restrained", "Restrained", "VcDeM8A5oI6VqhbM", False),
    ("sickened", "Sickened", "fesd1n5eVhpCSS18", True),
    ("slowed", "Slowed", "xYTAsEpcJE1Ccni3", True),
    ("stunned", "Stunned", "dfCMdR4wnpbYNTix", True),
    ("stupefied", "Stupefied", "e1XGnhKNSQIm5IXg", True),
    ("unconscious", "Unconscious", "fBnFDH2MTzgFijKf", False),
    ("wounded", "Wounded", "Lb4q2bBAgxamtix5", True),
)

_DEFAULT_CONDITION_ALIASES = {"flat-footed": "off-guard", "flatfooted": "off-guard"}

_DAMAGE_TRAITS = frozenset(
    {
        "acid",
        "air",
        "cold",
        "earth",
        "electricity",
        "fire",
        "force",
        "holy",
        "mental",
        "metal",
        "poison",
        "sonic",
        "spirit",
        "unholy",
        "vitality",
        "void",
        "water",
        "wood",
    }
)

_TRADITION_TRAITS = frozenset({"arcane", "divine", "occult", "primal"})

_CLASS_TRAITS = frozenset(
    {
        "alchemist",
        "barbarian",
        "bard",
        "champion",
        "cleric",
        "druid",
        "fighter",
        "gunslinger",
        "inventor",
        "investigator",
        "kineticist",
        "magus",
        "monk",
        "oracle",
        "psychic",
        "ranger",
        "rogue",
        "sorcerer",
        "summoner",
        "swashbuckler",
        "thaumaturge",
        "witch",
        "wizard",
    }
)

_DEFAULT_ACTION_TRAITS = (
    frozenset(
        {
            "attack",
            "auditory",
            "aura",
            "concentrate",
            "curse",
            "darkness",
            "death",
            "detection",
            "disease",
            "downtime",
            "emotion",
            "exploration",
            "fear",
            "flourish",
            "fortune",
            "general",
            "healing",
            "illusion",
            "incapacitation",
            "light",
            "linguistic",
            "magical",
            "manipulate",
            "misfortune",
            "morph",
            "move",
            "olfactory",
            "open",
            "polymorph",
            "press",
            "rage",
            "scrying",
            "secret",
            "skill",
            "sleep",
            "stance",
            "summon",
            "teleportation",
            "visual",
        }
    )
    | _DAMAGE_TRAITS
    | _TRADITION_TRAITS
    | _CLASS_TRAITS
)

_DEFAULT_CREATURE_TRAITS = (
    frozenset(
        {
            "aberration",
            "amphibious",
            "animal",
            "aquatic",
            "astral",
            "beast",
            "celestial",
            "construct",
            "daemon",
            "demon",
            "devil",
            "dragon",
            "dwarf",
            "elemental",
            "elf",
            "ethereal",
            "fey",
            "fiend",
            "fungus",
            "giant",
            "gnome",
            "goblin",
            "halfling",
            "human",
            "humanoid",
            "incorporeal",
            "kobold",
            "magical",
            "mechanical",
            "mindless",
            "monitor",
            "ooze",
            "orc",
            "plant",
            "shadow",
            "swarm",
            "trap",
            "troop",
            "undead",
            "haunt",
            "environmental",
        }
    )
    | _DAMAGE_TRAITS
    | _TRADITION_TRAITS
)

_DEFAULT_WEAPON_TRAITS = frozenset(
    {
        "agile",
        "attached",
        "backstabber",
        "backswing",
        "brutal",
        "concealable",
        "disarm",
        "finesse",
        "forceful",
        "free-hand",
        "grapple",
        "magical",
        "monk",
        "nonlethal",
        "parry",
        "propulsive",
        "reach",
        "shove",
        "sweep",
        "tethered",
        "trip",
        "twin",
        "unarmed",
    }
) | _DAMAGE_TRAITS

# Traits that carry a parameter suffix, such as ``deadly-d10`` or ``reach-15``.
_DEFAULT_PARAMETRIC_TRAITS = (
    "deadly",
    "fatal",
    "fatal-aim",
    "jousting",
    "range-increment",
    "range",
    "reach",
    "reload",
    "scatter",
    "thrown",
    "two-hand",
    "versatile",
    "volley",
)

_DEFAULT_EQUIPMENT_TRAITS = (
    frozenset(
        {
            "alchemical",
            "apex",
            "artifact",
            "bomb",
            "clockwork",
            "companion",
            "consumable",
            "contract",
            "cursed",
            "elixir",
            "focused",
            "fulu",
            "gadget",
            "healing",
            "intelligent",
            "invested",
            "magical",
            "mechanical",
            "oil",
            "potion",
            "precious",
            "scroll",
            "spellheart",
            "splash",
            "staff",
            "structure",
            "talisman",
            "wand",
        }
    )
    | _DAMAGE_TRAITS
    | _TRADITION_TRAITS
    | _DEFAULT_WEAPON_TRAITS
)

_DEFAULT_ATTACK_EFFECTS = frozenset(
    {"grab", "improved-grab", "knockdown", "improved-knockdown", "push", "improved-push", "trip"}
)

_DEFAULT_SKILLS = frozenset(
    {
        "acrobatics",
        "arcana",
        "athletics",
        "crafting",
        "deception",
        "diplomacy",
        "intimidation",
        "medicine",
        "nature",
        "occultism",
        "performance",
        "religion",
        "society",
        "stealth",
        "survival",
        "thievery",
    }
)

_IWR_DAMAGE_TYPES = frozenset(
    {
        "acid",
        "bludgeoning",
        "cold",
        "electricity",
        "fire",
        "force",
        "holy",
        "mental",
        "piercing",
        "poison",
        "slashing",
        "sonic",
        "spirit",
        "unholy",
        "vitality",
        "void",
        "bleed",
        "custom",
    }
)

_DEFAULT_IMMUNITY_TYPES = _IWR_DAMAGE_TYPES | frozenset(
    {
        "critical-hits",
        "death-effects",
        "disease",
        "emotion",
        "fear-effects",
        "magic",
        "nonlethal-attacks",
        "object-immunities",
        "paralyzed",
        "precision",
        "sleep",
        "swarm-mind",
        "water",
    }
)

_DEFAULT_WEAKNESS_TYPES = _IWR_DAMAGE_TYPES | frozenset(
    {
        "adamantine",
        "area-damage",
        "cold-iron",
        "critical-hits",
        "magical",
        "orichalcum",
        "persistent-damage",
        "physical",
        "precision",
        "salt-water",
        "silver",
        "splash-damage",
        "water",
    }
)

_DEFAULT_RESISTANCE_TYPES = _DEFAULT_WEAKNESS_TYPES | frozenset({"all-damage", "non-magical", "spells"})

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(value: Any) -> str:
    """Return the lowercase hyphenated slug for *value*."""

    if value is None:
        return ""
    return _SLUG_PATTERN.sub("-", str(value).strip().lower()).strip("-")


def _compact(value: str) -> str:
    return value.replace("-", "")


@dataclass(frozen=True)
class SystemConfig:
    """Read-only lookup tables for one game system."""

    system_id: str = "pf2e"
    action_traits: FrozenSet[str] = _DEFAULT_ACTION_TRAITS
    creature_traits: FrozenSet[str] = _DEFAULT_CREATURE_TRAITS
    equipment_traits: FrozenSet[str] = _DEFAULT_EQUIPMENT_TRAITS
    weapon_traits: FrozenSet[str] = _DEFAULT_WEAPON_TRAITS
    parametric_traits: Tuple[str, ...] = _DEFAULT_PARAMETRIC_TRAITS
    attack_effects: FrozenSet[str] = _DEFAULT_ATTACK_EFFECTS
    skills: FrozenSet[str] = _DEFAULT_SKILLS
    immunity_types: FrozenSet[str] = _DEFAULT_IMMUNITY_TYPES
    weakness_types: FrozenSet[str] = _DEFAULT_WEAKNESS_TYPES
    resistance_types: FrozenSet[str] = _DEFAULT_RESISTANCE_TYPES
    conditions: Mapping[str, Condition] = field(default_factory=lambda: dict(_DEFAULT_CONDITIONS))
    condition_aliases: Mapping[str, str] = field(default_factory=lambda: dict(_DEFAULT_CONDITION_ALIASES))

    def traits_for(self, kind: str) -> FrozenSet[str]:
        tables = {
            "action": self.action_traits,
            "creature": self.creature_traits,
            "equipment": self.equipment_traits,
            "weapon": self.weapon_traits,
        }
        return tables.get(kind, frozenset())

    def is_known_trait(self, kind: str, trait: str) -> bool:
        """Return True when *trait* appears in the *kind* trait table."""

        known = self.traits_for(kind)
        if trait in known:
            return True
        if kind in {"weapon", "equipment"}:
            for prefix in self.parametric_traits:
                if trait.startswith(prefix + "-") and re.fullmatch(r"[a-z0-9]+", trait[len(prefix) + 1 :]):
                    return True
        return False

    def condition(self, name: str) -> Optional[Condition]:
        """Resolve *name* (slug, label or document id) to a condition."""

        if not name:
            return None
        for candidate in self.conditions.values():
            if candidate.document_id == name:
                return candidate
        slug = slugify(name)
        slug = self.condition_aliases.get(slug, slug)
        found = self.conditions.get(slug)
        if found is not None:
            return found
        compact = _compact(slug)
        for candidate in self.conditions.values():
            if _compact(candidate.slug) == compact:
                return candidate
        return None

    def iwr_types(self, kind: str) -> FrozenSet[str]:
        tables = {
            "immunities": self.immunity_types,
            "weaknesses": self.weakness_types,
            "resistances": self.resistance_types,
        }
        return tables.get(kind, frozenset())

    def normalize_iwr_slug(self, kind: str, value: Any) -> Optional[str]:
        """Map *value* onto a known slug of the *kind* IWR table, or ``None``.

        Spelling variants that only differ in separators (``saltwater`` vs
        ``salt-water``) resolve to the configured slug.
        """

        slug = slugify(value)
        if not slug:
            return None
        known = self.iwr_types(kind)
        if slug in known:
            return slug
        compact = _compact(slug)
        for candidate in sorted(known):
            if _compact(candidate) == compact:
                return candidate
        return None


DEFAULT_SYSTEM_CONFIG = SystemConfig()

_CONFIG_KEYS = {
    "actionTraits": "action_traits",
    "creatureTraits": "creature_traits",
    "equipmentTraits": "equipment_traits",
    "weaponTraits": "weapon_traits",
    "attackEffects": "attack_effects",
    "skills": "skills",
    "immunityTypes": "immunity_types",
    "weaknessTypes": "weakness_types",
    "resistanceTypes": "resistance_types",
}


def _slug_set(values: Any) -> FrozenSet[str]:
    if isinstance(values, Mapping):
        values = values.keys()
    if not isinstance(values, Iterable) or isinstance(values, (str, bytes)):
        return frozenset()
    return frozenset(slug for slug in (slugify(value) for value in values) if slug)


def system_config_from_mapping(
    payload: Mapping[str, Any],
    *,
    base: SystemConfig = DEFAULT_SYSTEM_CONFIG,
) -> SystemConfig:
    """Overlay an exported ``CONFIG.PF2E`` style mapping on *base*.

    Dictionaries are keyed by slug in the host configuration; lists of slugs
    are accepted as well. Tables absent from *payload* keep the *base* values.
    """

    overrides: Dict[str, Any] = {}
    for source_key, attribute in _CONFIG_KEYS.items():
        if source_key in payload:
            overrides[attribute] = _slug_set(payload[source_key])
    system_id = payload.get("systemId")
    if isinstance(system_id, str) and system_id.strip():
        overrides["system_id"] = system_id.strip()
    return replace(base, **overrides)


def load_system_config(path: Optional[str] = None) -> SystemConfig:
    """Return the system configuration stored at *path* or the defaults."""

    if not path:
        return DEFAULT_SYSTEM_CONFIG
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, Mapping):
        raise ValueError(f"system configuration at {path} must be a JSON object")
    config = system_config_from_mapping(payload)
    logger.debug("loaded system configuration path=%s system=%s", path, config.system_id)
    return config


__all__ = [
    "Condition",
    "DEFAULT_SYSTEM_CONFIG",
    "SystemConfig",
    "load_system_config",
    "slugify",
    "system_config_from_mapping",
]
