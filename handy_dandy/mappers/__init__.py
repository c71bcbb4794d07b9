"""Mappers between canonical records and host documents."""

from handy_dandy.mappers.export import from_foundry_action, from_foundry_actor, from_foundry_item
from handy_dandy.mappers.foundry import (
    ensure_current,
    to_foundry_action_data,
    to_foundry_actor_data,
    to_foundry_item_data,
)

__all__ = [
    "ensure_current",
    "from_foundry_action",
    "from_foundry_actor",
    "from_foundry_item",
    "to_foundry_action_data",
    "to_foundry_actor_data",
    "to_foundry_item_data",
]
