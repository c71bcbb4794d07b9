"""Pathfinder Second Edition lookup tables used by the host mapper."""

from handy_dandy.pf2e.config import DEFAULT_SYSTEM_CONFIG, Condition, SystemConfig, load_system_config
from handy_dandy.pf2e.images import default_image_for_category

__all__ = [
    "Condition",
    "DEFAULT_SYSTEM_CONFIG",
    "SystemConfig",
    "default_image_for_category",
    "load_system_config",
]
