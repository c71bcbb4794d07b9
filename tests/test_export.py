"""Host document to canonical record mapping tests."""

from __future__ import annotations

import logging

import pytest

from handy_dandy.mappers import (
    from_foundry_action,
    from_foundry_actor,
    from_foundry_item,
    to_foundry_action_data,
    to_foundry_actor_data,
    to_foundry_item_data,
)
from handy_dandy.mappers.export import action_cost, coins_to_price, format_frequency, item_category
from handy_dandy.validation import validate


def test_action_round_trip_restores_record(action_record) -> None:
    record = from_foundry_action(to_foundry_action_data(action_record))

    assert record == action_record
    assert validate("action", record).ok


def test_item_round_trip_key_fields(item_record) -> None:
    document = to_foundry_item_data(item_record)

    record = from_foundry_item(document)

    assert record["slug"] == "flaming-longsword"
    assert record["itemType"] == "weapon"
    assert record["rarity"] == "uncommon"
    assert record["level"] == 8
    assert record["price"] == 13.5
    assert record["traits"] == ["magical", "versatile-p", "glimmering"]
    assert record["description"] == "This blade deals @Damage[1d6[fire]] damage on a hit."
    assert record["img"] is None
    assert validate("item", record).ok
    assert to_foundry_item_data(record) == document


@pytest.mark.parametrize("category", ["wand", "staff", "armor", "consumable", "feat"])
def test_item_categories_survive_round_trip(item_record, category) -> None:
    name = "Oak Staff" if category == "staff" else "Relic"
    record = dict(item_record, itemType=category, name=name, traits=[])

    assert from_foundry_item(to_foundry_item_data(record))["itemType"] == category


def test_action_reads_loose_host_shapes() -> None:
    document = {
        "name": "Quick Jab",
        "type": "action",
        "img": "icons/svg/mystery-man.svg",
        "system": {
            "description": "<p>Strike &amp; step.</p><ul><li>Once</li><li>Twice</li></ul>",
            "actionType": "reaction",
            "traits": {"value": "brawler, flourish", "rarity": "Rare"},
        },
    }

    record = from_foundry_action(document)

    assert record["slug"] == "quick-jab"
    assert record["actionType"] == "reaction"
    assert record["description"] == "Strike & step.\n\n- Once\n- Twice"
    assert record["traits"] == ["brawler", "flourish"]
    assert record["rarity"] == "rare"
    assert record["img"] is None
    assert record["requirements"] == ""


def test_actor_round_trip(actor_record) -> None:
    document = to_foundry_actor_data(actor_record)

    record = from_foundry_actor(document)

    assert validate("actor", record).ok, validate("actor", record).messages()
    assert record["slug"] == "cinder-wolf"
    assert record["actorType"] == "npc"
    assert record["level"] == 2
    assert record["size"] == "med"
    assert record["traits"] == ["animal", "fire", "ashbound"]
    assert record["description"] == "A wolf wreathed in embers."
    assert record["source"] == "Handy Dandy Bestiary"
    assert record["img"] is None
    assert record["abilities"] == actor_record["abilities"]
    assert record["skills"] == actor_record["skills"]

    attributes = record["attributes"]
    assert attributes["hp"] == {"value": 32, "max": 32, "temp": 0, "details": None}
    assert attributes["ac"] == {"value": 17, "details": None}
    assert attributes["perception"]["value"] == 8
    assert attributes["perception"]["senses"] == ["low-light vision", "scent (imprecise) 30 feet"]
    assert attributes["speed"]["value"] == 40
    assert attributes["saves"] == actor_record["attributes"]["saves"]
    assert [(entry["type"], entry["value"]) for entry in attributes["weaknesses"]] == [("cold", 5), ("saltwater", 3)]

    strike = record["strikes"][0]
    assert strike["name"] == "Jaws"
    assert strike["type"] == "melee"
    assert strike["attackBonus"] == 11
    assert strike["traits"] == ["fire", "agile", "smoldering"]
    assert strike["damage"] == actor_record["strikes"][0]["damage"]
    assert strike["effects"] == ["knockdown"]

    pack_attack, ember_howl = record["actions"]
    assert pack_attack["actionCost"] == "passive"
    assert ember_howl["actionCost"] == "one-action"
    assert ember_howl["frequency"] == "once per minute"
    assert not ember_howl["description"].startswith("**Frequency**")
    assert ember_howl["traits"] == ["auditory", "emotion", "fear", "mental"]

    entry = record["spellcasting"][0]
    assert (entry["tradition"], entry["castingType"], entry["attackBonus"], entry["saveDC"]) == (
        "primal",
        "innate",
        10,
        18,
    )
    assert [(spell["level"], spell["name"], spell["tradition"]) for spell in entry["spells"]] == [
        (0, "Ignition", None),
        (1, "Breathe Fire", None),
    ]
    assert record["inventory"] == [
        {
            "name": "Charred Collar",
            "itemType": "equipment",
            "quantity": 1,
            "level": 0,
            "description": None,
            "img": None,
        }
    ]


def test_actor_round_trip_keeps_item_ids(actor_record) -> None:
    document = to_foundry_actor_data(actor_record)

    remapped = to_foundry_actor_data(from_foundry_actor(document))

    assert [item["_id"] for item in remapped["items"]] == [item["_id"] for item in document["items"]]
    assert remapped["system"]["attributes"]["weaknesses"] == document["system"]["attributes"]["weaknesses"]


def test_hazard_and_loot_blocks(actor_record) -> None:
    hazard = dict(
        actor_record,
        actorType="hazard",
        hazard={"isComplex": True, "emitsSound": "never", "hardness": 5, "stealthBonus": 9, "disable": "Smash it"},
    )
    loot = dict(actor_record, actorType="loot", loot={"lootSheetType": "Merchant", "hiddenWhenEmpty": True})

    hazard_record = from_foundry_actor(to_foundry_actor_data(hazard))
    loot_record = from_foundry_actor(to_foundry_actor_data(loot))

    assert hazard_record["hazard"]["isComplex"] is True
    assert hazard_record["hazard"]["emitsSound"] == "never"
    assert hazard_record["hazard"]["hardness"] == 5
    assert hazard_record["hazard"]["stealthBonus"] == 9
    assert hazard_record["hazard"]["disable"] == "Smash it"
    assert hazard_record["loot"] is None
    assert loot_record["loot"] == {"lootSheetType": "Merchant", "hiddenWhenEmpty": True}
    assert loot_record["hazard"] is None


def test_strikes_without_damage_are_skipped(caplog) -> None:
    caplog.set_level(logging.WARNING, logger="handy_dandy.mappers.export")
    document = {
        "name": "Husk",
        "type": "npc",
        "system": {},
        "items": [{"_id": "a", "name": "Claw", "type": "melee", "system": {"damageRolls": {}}}],
    }

    record = from_foundry_actor(document)

    assert record["strikes"] == []
    assert "strike without damage rolls skipped" in caplog.text


def test_unknown_actor_type_reads_as_npc(caplog) -> None:
    caplog.set_level(logging.WARNING, logger="handy_dandy.mappers.export")

    record = from_foundry_actor({"name": "Thing", "type": "army", "system": {}})

    assert record["actorType"] == "npc"
    assert "unknown host actor type" in caplog.text


@pytest.mark.parametrize(
    "price, expected",
    [
        ({"value": {"pp": 1, "gp": 3, "sp": 5, "cp": 0}}, 13.5),
        ({"gp": 2, "cp": 5}, 2.05),
        ("3 gp 4 sp", 3.4),
        ("12", 12.0),
        (7, 7.0),
        ("priceless", None),
        (None, None),
        (True, None),
    ],
)
def test_coins_to_price(price, expected) -> None:
    assert coins_to_price(price) == expected


@pytest.mark.parametrize(
    "system, expected",
    [
        ({"actionType": {"value": "action"}, "actions": {"value": 3}}, "three-actions"),
        ({"actionType": {"value": "reaction"}, "actions": {"value": None}}, "reaction"),
        ({"actionType": "two"}, "two-actions"),
        ({"actions": 2}, "two-actions"),
        ({}, "free"),
    ],
)
def test_action_cost(system, expected) -> None:
    assert action_cost(system) == expected


def test_format_frequency() -> None:
    assert format_frequency({"value": 1, "max": 1, "per": "PT1M"}) == "once per minute"
    assert format_frequency({"max": 4, "per": "day"}) == "4 times per day"
    assert format_frequency({"max": 1, "per": "fortnight"}) is None
    assert format_frequency(None) is None


def test_item_category_for_unknown_host_types() -> None:
    assert item_category("shield", {}) == "armor"
    assert item_category("treasure", {}) == "equipment"
    assert item_category("lore", {}) == "other"
