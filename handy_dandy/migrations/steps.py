"""Pure per-version transforms for canonical records.

Every step receives a loosely typed record at version ``n`` and returns a new
record stamped with version ``n + 1``. Steps never mutate their input.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

MutableRecord = Dict[str, Any]

logger = logging.getLogger(__name__)

_ACTOR_BASE_SPEED = 25
_ACTOR_BASE_AC = 14


def _bump(data: MutableRecord, version: int) -> MutableRecord:
    upgraded = copy.deepcopy(data)
    upgraded["schema_version"] = version
    return upgraded


def _with_source_default(data: MutableRecord) -> MutableRecord:
    if not isinstance(data.get("source"), str):
        data["source"] = ""
    return data


def normalize_string_list(values: Any, *, lowercase: bool = False) -> List[str]:
    """Trim, drop blanks and de-duplicate *values* preserving first occurrence."""

    if isinstance(values, str):
        values = [values]
    if not isinstance(values, Iterable):
        return []
    result: List[str] = []
    seen = set()
    for value in values:
        if not isinstance(value, str):
            continue
        cleaned = value.strip()
        if lowercase:
            cleaned = cleaned.lower()
        if not cleaned:
            continue
        key = cleaned.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result


def _coerce_level(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    if isinstance(value, str):
        try:
            return max(int(float(value.strip())), 0)
        except ValueError:
            return 0
    return 0


def default_actor_attributes(level: int) -> MutableRecord:
    """Return the attribute block a level ``level`` creature starts from."""

    hit_points = max(level * 5, 1)
    return {
        "hp": {"value": hit_points, "max": hit_points, "temp": 0, "details": None},
        "ac": {"value": _ACTOR_BASE_AC + level, "details": None},
        "perception": {"value": level, "details": None, "senses": []},
        "speed": {"value": _ACTOR_BASE_SPEED, "details": None, "other": []},
        "saves": {
            "fortitude": {"value": level, "details": None},
            "reflex": {"value": level, "details": None},
            "will": {"value": level, "details": None},
        },
        "immunities": [],
        "weaknesses": [],
        "resistances": [],
    }


def action_v1_to_v2(data: MutableRecord) -> MutableRecord:
    return _with_source_default(_bump(data, 2))


def action_v2_to_v3(data: MutableRecord) -> MutableRecord:
    upgraded = _with_source_default(_bump(data, 3))
    if upgraded.get("traits") is not None:
        upgraded["traits"] = normalize_string_list(upgraded.get("traits"), lowercase=True)
    return upgraded


item_v1_to_v2 = action_v1_to_v2
item_v2_to_v3 = action_v2_to_v3


def actor_v1_to_v2(data: MutableRecord) -> MutableRecord:
    """Rebuild the attribute block and discard combat sections.

    Version 1 actors stored statistics in shapes that cannot be mapped onto
    the version 2 layout without guessing. The attributes block is recreated
    from level-derived defaults and skills, strikes, actions and spellcasting
    are cleared. This is lossy: regenerate or re-author those sections after
    upgrading.
    """

    upgraded = _with_source_default(_bump(data, 2))
    level = _coerce_level(upgraded.get("level"))
    upgraded["level"] = level

    discarded = [
        key
        for key in ("skills", "strikes", "actions", "spellcasting")
        if upgraded.get(key)
    ]
    if discarded or isinstance(upgraded.get("attributes"), dict):
        logger.warning(
            "actor v1->v2 migration rebuilt attributes and discarded sections slug=%s sections=%s",
            upgraded.get("slug"),
            ",".join(discarded) or "none",
        )

    upgraded["attributes"] = default_actor_attributes(level)
    upgraded["skills"] = []
    upgraded["strikes"] = []
    upgraded["actions"] = []
    upgraded["spellcasting"] = []
    if not isinstance(upgraded.get("abilities"), dict):
        upgraded["abilities"] = {key: 0 for key in ("str", "dex", "con", "int", "wis", "cha")}
    return upgraded


def actor_v2_to_v3(data: MutableRecord) -> MutableRecord:
    upgraded = _with_source_default(_bump(data, 3))
    upgraded["traits"] = normalize_string_list(upgraded.get("traits"), lowercase=True)
    upgraded["languages"] = normalize_string_list(upgraded.get("languages"))
    if not isinstance(upgraded.get("inventory"), list):
        upgraded["inventory"] = []
    return upgraded


def pack_entry_v1_to_v2(data: MutableRecord) -> MutableRecord:
    return _bump(data, 2)


def pack_entry_v2_to_v3(data: MutableRecord) -> MutableRecord:
    upgraded = _bump(data, 3)
    sort: Optional[Any] = upgraded.get("sort")
    if not isinstance(sort, int) or isinstance(sort, bool):
        upgraded["sort"] = 0
    return upgraded


__all__ = [
    "action_v1_to_v2",
    "action_v2_to_v3",
    "actor_v1_to_v2",
    "actor_v2_to_v3",
    "default_actor_attributes",
    "item_v1_to_v2",
    "item_v2_to_v3",
    "normalize_string_list",
    "pack_entry_v1_to_v2",
    "pack_entry_v2_to_v3",
]
