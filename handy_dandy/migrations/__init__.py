"""Schema migration engine for canonical records."""

from __future__ import annotations

import copy
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from handy_dandy.exceptions import MigrationError
from handy_dandy.migrations import steps
from handy_dandy.schemas import LATEST_SCHEMA_VERSION

MutableRecord = Dict[str, Any]
MigrationStep = Callable[[MutableRecord], MutableRecord]


class MigrationRegistry(Mapping[str, Mapping[int, MigrationStep]]):
    """Immutable table of migration steps keyed by entity type and source version."""

    def __init__(self, table: Mapping[str, Mapping[int, MigrationStep]]) -> None:
        self._table = MappingProxyType(
            {entity: MappingProxyType(dict(versions)) for entity, versions in table.items()}
        )

    def __getitem__(self, key: str) -> Mapping[int, MigrationStep]:
        return self._table[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def step(self, entity_type: str, version: int) -> Optional[MigrationStep]:
        versions = self._table.get(entity_type)
        if versions is None:
            return None
        return versions.get(version)


DEFAULT_REGISTRY = MigrationRegistry(
    {
        "action": {1: steps.action_v1_to_v2, 2: steps.action_v2_to_v3},
        "item": {1: steps.item_v1_to_v2, 2: steps.item_v2_to_v3},
        "actor": {1: steps.actor_v1_to_v2, 2: steps.actor_v2_to_v3},
        "packEntry": {1: steps.pack_entry_v1_to_v2, 2: steps.pack_entry_v2_to_v3},
    }
)


def _clone(data: Any) -> MutableRecord:
    if not isinstance(data, Mapping):
        return {}
    return copy.deepcopy(dict(data))


def migrate(
    entity_type: str,
    from_version: int,
    to_version: int,
    data: Any,
    *,
    registry: MigrationRegistry = DEFAULT_REGISTRY,
) -> MutableRecord:
    """Advance *data* from *from_version* to *to_version* one step at a time.

    The caller's object is never modified. Backward migrations and gaps in the
    registry raise :class:`MigrationError` before any step runs.
    """

    if from_version == to_version:
        return _clone(data)
    if from_version > to_version:
        raise MigrationError(
            entity_type,
            from_version,
            to_version,
            f"Cannot migrate {entity_type} schema backwards from v{from_version} to v{to_version}",
        )

    for version in range(from_version, to_version):
        if registry.step(entity_type, version) is None:
            raise MigrationError(
                entity_type,
                from_version,
                to_version,
                f"No migration registered for {entity_type} schema v{version} -> v{version + 1}",
            )

    working = _clone(data)
    for version in range(from_version, to_version):
        step = registry.step(entity_type, version)
        working = step(working)
    return working


def migrate_to_latest(
    entity_type: str,
    data: Any,
    *,
    registry: MigrationRegistry = DEFAULT_REGISTRY,
    default_version: int = 1,
) -> MutableRecord:
    """Migrate *data* from its recorded ``schema_version`` to the current version."""

    recorded = data.get("schema_version") if isinstance(data, Mapping) else None
    if isinstance(recorded, bool) or not isinstance(recorded, int):
        recorded = default_version
    return migrate(entity_type, recorded, LATEST_SCHEMA_VERSION, data, registry=registry)


__all__ = [
    "DEFAULT_REGISTRY",
    "MigrationRegistry",
    "MigrationStep",
    "migrate",
    "migrate_to_latest",
]
