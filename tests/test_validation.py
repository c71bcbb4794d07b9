"""Schema validator tests."""

from __future__ import annotations

import copy

from handy_dandy.schemas import SCHEMAS, schema_uri
from handy_dandy.validation import schema_registry, validate


def test_fixtures_are_valid(action_record, item_record, actor_record) -> None:
    assert validate("action", action_record).ok
    assert validate("item", item_record).ok
    assert validate("actor", actor_record).ok


def test_missing_required_field_is_reported(action_record) -> None:
    del action_record["actionType"]

    result = validate("action", action_record)

    assert result.ok is False
    assert result.messages() == ["(root): 'actionType' is a required property"]
    assert result.errors[0].keyword == "required"


def test_additional_properties_are_listed_per_key(item_record) -> None:
    item_record["zeta"] = 1
    item_record["alpha"] = 2

    result = validate("item", item_record)

    assert [issue.path for issue in result.errors] == ["alpha", "zeta"]
    assert all(issue.message == "must NOT have additional properties" for issue in result.errors)


def test_nested_paths_use_dotted_notation(actor_record) -> None:
    broken = copy.deepcopy(actor_record)
    broken["strikes"][0]["damage"] = []
    broken["attributes"]["hp"]["value"] = -1

    result = validate("actor", broken)

    paths = [issue.path for issue in result.errors]
    assert "attributes.hp.value" in paths
    assert "strikes.0.damage" in paths


def test_stale_schema_version_is_rejected(action_record) -> None:
    action_record["schema_version"] = 2

    assert validate("action", action_record).ok is False


def test_pack_entry_schema() -> None:
    entry = {
        "schema_version": 3,
        "systemId": "pf2e",
        "id": "abc123",
        "entityType": "item",
        "name": "Rope",
        "slug": "rope",
    }

    assert validate("packEntry", entry).ok
    assert validate("packEntry", dict(entry, entityType="vehicle")).ok is False


def test_registry_resolves_every_schema_id() -> None:
    registry = schema_registry()

    for name, schema in SCHEMAS.items():
        assert registry.contents(schema_uri(name)) == schema
